import asyncio
import enum
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.schemas.notification_schemas import NotificationEvent
from app.services.messaging import Delivery, QueueBroker
from app.services.notifications.webhook_dispatcher import WebhookDispatcher
from app.services.webhook_config_service import WebhookConfigService
from app.utils.errors import BrokerError
from app.utils.logging import get_logger

logger = get_logger()


class DeliveryOutcome(enum.Enum):
    DELIVERED = "delivered"
    NO_DESTINATION = "no_destination"
    MALFORMED = "malformed"
    LOOKUP_FAILED = "lookup_failed"
    DISPATCH_FAILED = "dispatch_failed"


class NotificationConsumer:
    """
    Pulls NotificationEvents off the queue and hands them to the webhook dispatcher.

    Every delivery is acknowledged once it has been processed, whatever the outcome:
    poison messages, users without a webhook and failing webhooks are logged and dropped.
    A crash before the ack leaves the message on the queue for redelivery.
    """

    def __init__(
        self,
        broker: QueueBroker,
        dispatcher: WebhookDispatcher,
        session_factory: async_sessionmaker[AsyncSession],
        queue_name: str,
        error_backoff_seconds: float = 1.0,
    ):
        self.broker = broker
        self.dispatcher = dispatcher
        self.session_factory = session_factory
        self.queue_name = queue_name
        self.error_backoff_seconds = error_backoff_seconds

    async def _lookup_destination(self, event: NotificationEvent) -> Optional[str]:
        async with self.session_factory() as db_session:
            return await WebhookConfigService(db_session).get_destination(event.user_id)

    async def handle_delivery(self, delivery: Delivery) -> DeliveryOutcome:
        """Process one delivery. Never raises and never acknowledges."""
        logger.info(
            "Received message",
            queue=delivery.queue_name,
            delivery_tag=str(delivery.delivery_tag),
            redelivered=delivery.redelivered,
        )

        try:
            event = NotificationEvent.from_bytes(delivery.body)
        except ValidationError as e:
            logger.error(
                "Dropping malformed notification payload",
                payload=delivery.body.decode("utf-8", errors="replace"),
                error=str(e),
            )
            return DeliveryOutcome.MALFORMED

        try:
            url = await self._lookup_destination(event)
        except Exception as e:
            logger.error(
                "Failed to look up webhook, notification dropped",
                user_id=str(event.user_id),
                task_id=event.task_id,
                error=str(e),
            )
            return DeliveryOutcome.LOOKUP_FAILED

        if not url:
            logger.warning(
                "No webhook URL found for user. Notification not sent.",
                user_id=str(event.user_id),
                task_id=event.task_id,
            )
            return DeliveryOutcome.NO_DESTINATION

        try:
            delivered = await self.dispatcher.dispatch(event, url)
        except Exception as e:
            logger.exception(
                "Unexpected error while dispatching, notification dropped",
                task_id=event.task_id,
                error=str(e),
            )
            return DeliveryOutcome.DISPATCH_FAILED

        if delivered:
            return DeliveryOutcome.DELIVERED
        return DeliveryOutcome.DISPATCH_FAILED

    async def process_next(self, timeout: Optional[float] = None) -> Optional[DeliveryOutcome]:
        """Handle and acknowledge at most one delivery. None when the queue was empty."""
        delivery = await self.broker.get(self.queue_name, timeout=timeout)
        if delivery is None:
            return None

        outcome = await self.handle_delivery(delivery)
        try:
            await self.broker.ack(delivery)
        except BrokerError as e:
            # Left unacknowledged; the broker redelivers it after reconnect
            logger.error("Failed to acknowledge delivery", error=e.message)
        return outcome

    async def _declare_queue(self, stop_event: asyncio.Event) -> bool:
        """Declare the queue, retrying until it works or the consumer is stopped."""
        while not stop_event.is_set():
            try:
                await self.broker.declare(self.queue_name)
                return True
            except BrokerError as e:
                logger.error("Failed to declare queue, retrying", error=e.message)
                await asyncio.sleep(self.error_backoff_seconds)
        return False

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Consume until `stop_event` is set. Broker and delivery errors never escape."""
        stop_event = stop_event or asyncio.Event()
        if not await self._declare_queue(stop_event):
            logger.info("Notification consumer stopped", queue=self.queue_name)
            return
        logger.info("Notification consumer is ready to receive tasks", queue=self.queue_name)

        while not stop_event.is_set():
            try:
                outcome = await self.process_next()
            except BrokerError as e:
                logger.error("Error in consumer", error=e.message)
                await asyncio.sleep(self.error_backoff_seconds)
                continue
            except Exception as e:
                logger.exception("Unexpected error in consumer", error=str(e))
                await asyncio.sleep(self.error_backoff_seconds)
                continue

            if outcome is not None:
                logger.info("Delivery processed", outcome=outcome.value)

        logger.info("Notification consumer stopped", queue=self.queue_name)
