import asyncio

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.celery import celery
from app.config.settings import settings
from app.db.session import create_task_engine
from app.services.messaging import QueueBroker
from app.services.notifications.deadline_scanner import DeadlineScanner
from app.utils.logging import get_logger


@celery.task(bind=True)
def deadline_scan_task(self, request_id: str):
    """
    Publish notification events for tasks whose deadline is about to come up.

    Scheduled by Celery Beat every CHECK_PERIOD_SECONDS. Not retried: a failed scan is
    superseded by the next one.

    Args:
        request_id: The request ID for tracking purposes (provided by Celery Beat configuration)
    """
    return asyncio.run(_async_deadline_scan(request_id))


async def _async_deadline_scan(request_id: str):
    logger = get_logger().bind(request_id=request_id)
    engine = create_task_engine()
    broker = QueueBroker(settings.broker_url)

    try:
        scanner = DeadlineScanner(
            broker=broker,
            session_factory=async_sessionmaker(
                bind=engine, class_=AsyncSession, expire_on_commit=False
            ),
            queue_name=settings.NOTIFICATION_QUEUE_NAME,
            lead_time=settings.lead_time,
            check_period=settings.check_period,
        )
        result = await scanner.scan(run_id=request_id)
    finally:
        await broker.close()
        await engine.dispose()

    logger.info(
        "Deadline scan task finished",
        matched=result.matched,
        published=result.published,
        failed=result.failed,
        skipped=result.skipped,
    )
    return {
        "success": not result.skipped and result.failed == 0,
        "window_start": result.window.start.isoformat(),
        "window_end": result.window.end.isoformat(),
        "matched": result.matched,
        "published": result.published,
        "failed": result.failed,
        "request_id": request_id,
    }
