from .cron import *

__all__ = [
    # Scheduled/Cron Tasks
    "deadline_scan_task",
    "routine_reset_task",
]
