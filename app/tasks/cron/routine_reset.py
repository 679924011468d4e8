import asyncio

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.celery import celery
from app.config.settings import settings
from app.db.session import create_task_engine
from app.services.routine_service import RoutineResetScheduler


@celery.task(bind=True)
def routine_reset_task(self, request_id: str):
    """
    Un-complete routines whose daily, weekly or monthly period has ended.

    Args:
        request_id: The request ID for tracking purposes (provided by Celery Beat configuration)
    """
    return asyncio.run(_async_routine_reset(request_id))


async def _async_routine_reset(request_id: str):
    engine = create_task_engine()
    try:
        scheduler = RoutineResetScheduler(
            async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False),
            timezone=settings.ROUTINE_RESET_TIMEZONE,
        )
        outcome = await scheduler.reset(run_id=request_id)
    finally:
        await engine.dispose()

    return {
        "success": all(count is not None for count in outcome.values()),
        "reset": outcome,
        "request_id": request_id,
    }
