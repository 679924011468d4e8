import uuid
from datetime import datetime
from typing import Dict, Optional
from zoneinfo import ZoneInfo

from fastapi import Depends
from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models import Routine, RoutinePeriod
from app.db.session import get_async_session
from app.utils.datetime_utils import naive_utc_now, period_reset_threshold, to_naive_utc, utc_now
from app.utils.logging import get_logger
from app.utils.periodic import LoopState

logger = get_logger()


class RoutineService:
    """Completion state of recurring routines"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def get_routine(self, routine_id: uuid.UUID) -> Optional[Routine]:
        result = await self.db.execute(select(Routine).where(Routine.id == routine_id))
        return result.scalar_one_or_none()

    async def complete_routine(self, routine_id: uuid.UUID) -> Optional[Routine]:
        """Mark completed for the current period. `checktime` records the transition."""
        routine = await self.get_routine(routine_id)
        if routine is None:
            return None

        if not routine.completed:
            routine.completed = True
            routine.checktime = naive_utc_now()
            await self.db.commit()
            await self.db.refresh(routine)
            logger.info("Completing routine", routine_id=str(routine_id))
        return routine

    async def reset_elapsed(
        self, period: RoutinePeriod, now: datetime, zone: ZoneInfo
    ) -> int:
        """
        Un-complete every `period` routine whose period-truncated checktime is at or
        before `now` minus one period. Returns the number of routines reset.
        """
        threshold = period_reset_threshold(period.value, now, zone)
        result = await self.db.execute(
            update(Routine)
            .where(
                and_(
                    Routine.period == period,
                    Routine.completed.is_(True),
                    Routine.checktime < threshold,
                )
            )
            .values(completed=False, checktime=to_naive_utc(now))
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount


class RoutineResetScheduler:
    """
    Resets daily, weekly and monthly routines once their period boundary has passed.

    Each period kind runs in its own transaction; one failing does not stop the others.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timezone: str = "UTC",
    ):
        self.session_factory = session_factory
        self.zone = ZoneInfo(timezone)

    async def reset(
        self, now: Optional[datetime] = None, run_id: Optional[str] = None
    ) -> Dict[str, Optional[int]]:
        """Returns rows reset per period; None for a period whose update failed."""
        log = logger.bind(request_id=run_id) if run_id else logger
        now = now or utc_now()
        outcome: Dict[str, Optional[int]] = {}

        for period in RoutinePeriod:
            try:
                async with self.session_factory() as db_session:
                    outcome[period.value] = await RoutineService(db_session).reset_elapsed(
                        period, now, self.zone
                    )
            except Exception as e:
                outcome[period.value] = None
                log.error("Failed to reset routines", period=period.value, error=str(e))

        if any(outcome.values()):
            log.info("Routines reset", **{k: v for k, v in outcome.items() if v})
        return outcome

    async def tick(self, state: LoopState) -> None:
        await self.reset(state.last_tick_at, run_id=state.run_id)


def get_routine_service(
    db: AsyncSession = Depends(get_async_session),
) -> RoutineService:
    """Dependency to provide RoutineService instance"""
    return RoutineService(db)
