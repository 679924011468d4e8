from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from app.utils.datetime_utils import to_naive_utc, to_utc


@dataclass(frozen=True)
class DeadlineWindow:
    """Closed interval [start, end] of deadlines that get notified on one scan tick (naive UTC)."""

    start: datetime
    end: datetime

    def contains(self, deadline: Optional[datetime]) -> bool:
        if deadline is None:
            return False
        deadline = to_naive_utc(deadline)
        return self.start <= deadline <= self.end


class DeadlineCalculator:
    """Utility class for deadline-related calculations"""

    @staticmethod
    def scan_window(
        now: datetime, lead_time: timedelta, check_period: timedelta
    ) -> DeadlineWindow:
        """Window scanned at `now`: [now + lead_time, now + lead_time + check_period]"""
        start = to_naive_utc(now) + lead_time
        return DeadlineWindow(start=start, end=start + check_period)

    @staticmethod
    def time_remaining(deadline: datetime, now: datetime) -> timedelta:
        """Time left until the deadline; negative once it has passed"""
        return to_utc(deadline) - to_utc(now)

    @staticmethod
    def is_deadline_passed(deadline: Optional[datetime], now: datetime) -> bool:
        """Check if deadline has passed"""
        if not deadline:
            return False

        return to_utc(now) > to_utc(deadline)
