from .deadline_scan import deadline_scan_task
from .routine_reset import routine_reset_task

__all__ = [
    "deadline_scan_task",
    "routine_reset_task",
]
