from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta


def utc_now() -> datetime:
    """
    Get current UTC datetime as a timezone-aware datetime.

    Returns:
        datetime: Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def naive_utc_now() -> datetime:
    """
    Get current UTC datetime as a naive datetime (no timezone info).
    All timestamp columns store naive UTC.

    Returns:
        datetime: Current UTC datetime without timezone info
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime object to UTC timezone-aware datetime.

    Args:
        dt: Datetime object to convert

    Returns:
        datetime: UTC timezone-aware datetime
    """
    if dt.tzinfo is None:
        # Assume naive datetime is in UTC
        return dt.replace(tzinfo=timezone.utc)
    else:
        # Convert to UTC
        return dt.astimezone(timezone.utc)


def to_naive_utc(dt: datetime) -> datetime:
    """
    Convert a datetime object to naive UTC (no timezone info).

    Args:
        dt: Datetime object to convert

    Returns:
        datetime: Naive UTC datetime
    """
    if dt.tzinfo is None:
        # Already naive, assume it's UTC
        return dt
    else:
        # Convert to UTC and remove timezone info
        utc_dt = dt.astimezone(timezone.utc)
        return utc_dt.replace(tzinfo=None)


def from_naive_utc(dt: datetime, zone: ZoneInfo = ZoneInfo("UTC")) -> datetime:
    """
    Convert a naive UTC datetime (no timezone info) to a timezone-aware datetime.

    Args:
        dt: Naive UTC datetime to convert
        zone: Timezone to use for the conversion (default: UTC)

    Returns:
        datetime: Timezone-aware datetime
    """
    if dt.tzinfo is not None:
        raise ValueError("Input datetime must be naive (no timezone info)")
    return dt.replace(tzinfo=timezone.utc).astimezone(zone)


def to_rfc3339(dt: datetime) -> str:
    """Serialize as RFC3339 in UTC with a `Z` suffix. Naive input is taken as UTC."""
    return to_utc(dt).isoformat().replace("+00:00", "Z")


PERIOD_STEPS = {
    "daily": relativedelta(days=1),
    "weekly": relativedelta(weeks=1),
    "monthly": relativedelta(months=1),
}


def truncate_to_period(dt: datetime, period: str) -> datetime:
    """
    Truncate an aware datetime to the start of its day, ISO week (Monday) or month,
    in the datetime's own timezone.
    """
    start_of_day = dt.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "daily":
        return start_of_day
    if period == "weekly":
        return start_of_day - timedelta(days=start_of_day.weekday())
    if period == "monthly":
        return start_of_day.replace(day=1)
    raise ValueError(f"Unknown period: {period}")


def period_reset_threshold(
    period: str, now: datetime, zone: ZoneInfo = ZoneInfo("UTC")
) -> datetime:
    """
    Naive UTC instant T such that `truncate(checktime) <= now - one period`
    holds exactly when `checktime < T`.

    T = truncate(now - one period) + one period, i.e. the start of the period
    containing `now`, computed on the wall clock of `zone`.
    """
    step = PERIOD_STEPS[period]
    local_now = to_utc(now).astimezone(zone)
    threshold = truncate_to_period(local_now - step, period) + step
    return to_naive_utc(threshold)


def format_duration(delta: timedelta) -> str:
    """Render a duration as `1d 2h 3m 4s`, dropping leading zero units. Negative stays negative."""
    total = int(delta.total_seconds())
    sign = "-" if total < 0 else ""
    total = abs(total)

    days, rem = divmod(total, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, seconds = divmod(rem, 60)

    parts = []
    for value, unit in ((days, "d"), (hours, "h"), (minutes, "m")):
        if value or parts:
            parts.append(f"{value}{unit}")
    parts.append(f"{seconds}s")
    return sign + " ".join(parts)
