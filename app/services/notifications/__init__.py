from .deadline_utils import DeadlineCalculator, DeadlineWindow
from .deadline_scanner import DeadlineScanner, ScanResult
from .notification_consumer import DeliveryOutcome, NotificationConsumer
from .webhook_dispatcher import WebhookDispatcher

__all__ = [
    "DeadlineCalculator",
    "DeadlineWindow",
    "DeadlineScanner",
    "ScanResult",
    "DeliveryOutcome",
    "NotificationConsumer",
    "WebhookDispatcher",
]
