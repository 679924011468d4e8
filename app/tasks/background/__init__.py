from .loops import BackgroundLoops
from .notification_worker import run_notification_worker

__all__ = ["BackgroundLoops", "run_notification_worker"]
