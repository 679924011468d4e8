from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models import Task
from app.schemas.notification_schemas import NotificationEvent
from app.services.messaging import QueueBroker
from app.services.notifications.deadline_utils import DeadlineCalculator, DeadlineWindow
from app.utils.datetime_utils import to_utc, utc_now
from app.utils.errors import BrokerError
from app.utils.logging import get_logger
from app.utils.periodic import LoopState

logger = get_logger()

# Timer jitter between consecutive ticks is not reported as a gap or an overlap
WINDOW_TOLERANCE = timedelta(seconds=1)


@dataclass
class ScanResult:
    window: DeadlineWindow
    matched: int = 0
    published: int = 0
    failed: int = 0
    skipped: bool = False


def task_to_event(task: Task) -> NotificationEvent:
    return NotificationEvent(
        user_id=task.user_id,
        task_id=str(task.id),
        title=task.title,
        description=task.description,
        deadline=to_utc(task.deadline),
    )


class DeadlineScanner:
    """
    Publishes one NotificationEvent per task whose deadline is in
    [now + lead_time, now + lead_time + check_period].

    Tasks carry no "already notified" marker. A window that overlaps the previous one
    (shorter period, restart, a second scanner) notifies the overlap twice; a late tick
    leaves a gap that is never notified. Both are logged.
    """

    def __init__(
        self,
        broker: QueueBroker,
        session_factory: async_sessionmaker[AsyncSession],
        queue_name: str,
        lead_time: timedelta,
        check_period: timedelta,
    ):
        self.broker = broker
        self.session_factory = session_factory
        self.queue_name = queue_name
        self.lead_time = lead_time
        self.check_period = check_period
        self.last_window: Optional[DeadlineWindow] = None

    async def fetch_due_tasks(self, window: DeadlineWindow) -> List[Task]:
        async with self.session_factory() as db_session:
            result = await db_session.execute(
                select(Task)
                .where(
                    and_(
                        Task.deadline.is_not(None),
                        Task.deadline >= window.start,
                        Task.deadline <= window.end,
                    )
                )
                .order_by(Task.deadline)
            )
            return list(result.scalars().all())

    def _check_continuity(self, window: DeadlineWindow) -> None:
        previous = self.last_window
        if previous is None:
            return
        if previous.end - window.start > WINDOW_TOLERANCE:
            logger.warning(
                "Scan window overlaps the previous one; tasks in the overlap are notified again",
                overlap_start=window.start.isoformat(),
                overlap_end=previous.end.isoformat(),
            )
        elif window.start - previous.end > WINDOW_TOLERANCE:
            logger.warning(
                "Scan window gap; tasks with deadlines in the gap are not notified",
                gap_start=previous.end.isoformat(),
                gap_end=window.start.isoformat(),
            )

    async def scan(
        self, now: Optional[datetime] = None, run_id: Optional[str] = None
    ) -> ScanResult:
        """One scan tick. Never raises."""
        log = logger.bind(request_id=run_id) if run_id else logger
        window = DeadlineCalculator.scan_window(
            now or utc_now(), self.lead_time, self.check_period
        )
        result = ScanResult(window=window)
        self._check_continuity(window)
        self.last_window = window

        log.debug(
            "Checking for deadlines",
            window_start=window.start.isoformat(),
            window_end=window.end.isoformat(),
        )

        try:
            tasks = await self.fetch_due_tasks(window)
        except Exception as e:
            log.error("Failed to fetch tasks", error=str(e))
            result.skipped = True
            return result

        result.matched = len(tasks)
        for task in tasks:
            event = task_to_event(task)
            try:
                await self.broker.publish(self.queue_name, event.to_bytes())
            except BrokerError as e:
                result.failed += 1
                log.error(
                    "Failed to send task", task_id=event.task_id, error=e.message
                )
                continue
            result.published += 1
            log.info(
                "Sent notification event",
                task_id=event.task_id,
                user_id=str(event.user_id),
                deadline=event.deadline.isoformat(),
            )

        if result.matched:
            log.info(
                "Deadline scan finished",
                matched=result.matched,
                published=result.published,
                failed=result.failed,
            )
        return result

    async def tick(self, state: LoopState) -> None:
        await self.scan(state.last_tick_at, run_id=state.run_id)
