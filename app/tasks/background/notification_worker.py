"""
Notification consumer process.

Run with `python -m app.tasks.background.notification_worker`. Stops on SIGINT/SIGTERM
after the delivery in progress has been handled and acknowledged.
"""

import asyncio
import signal

from app.config.settings import settings
from app.db.session import AsyncSessionLocal, engine
from app.services.messaging import QueueBroker
from app.services.notifications.notification_consumer import NotificationConsumer
from app.services.notifications.webhook_dispatcher import WebhookDispatcher
from app.utils.logging import get_logger

logger = get_logger().bind(request_id="notification-worker")


async def run_notification_worker(stop_event: asyncio.Event) -> None:
    broker = QueueBroker(
        settings.broker_url, poll_timeout=settings.CONSUMER_POLL_TIMEOUT_SECONDS
    )
    dispatcher = WebhookDispatcher(
        timeout=settings.WEBHOOK_TIMEOUT_SECONDS,
        display_timezone=settings.NOTIFICATION_DISPLAY_TIMEZONE,
    )
    consumer = NotificationConsumer(
        broker=broker,
        dispatcher=dispatcher,
        session_factory=AsyncSessionLocal,
        queue_name=settings.NOTIFICATION_QUEUE_NAME,
    )

    try:
        await consumer.run(stop_event)
    finally:
        await dispatcher.aclose()
        await broker.close()
        await engine.dispose()


async def main() -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def request_stop(signum: int) -> None:
        logger.info(f"Received signal {signum}, initiating shutdown...")
        stop_event.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, request_stop, signum)
        except NotImplementedError:
            # Windows event loops; Ctrl+C still raises KeyboardInterrupt
            pass

    logger.info("Starting notification worker", queue=settings.NOTIFICATION_QUEUE_NAME)
    await run_notification_worker(stop_event)
    logger.info("Notification worker stopped")


if __name__ == "__main__":
    asyncio.run(main())
