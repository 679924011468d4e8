from .settings import settings

# Basic Celery Configuration
broker_url = settings.broker_url

# Task Discovery
include = ["app.tasks"]

# Timezone Configuration
timezone = "UTC"
enable_utc = True

# Scan results are only logged
task_ignore_result = True

# Task Serialization
task_serializer = "json"
accept_content = ["json"]
result_serializer = "json"

# Task Execution Configuration
task_track_started = True
task_time_limit = 5 * 60  # 5 minutes
task_soft_time_limit = 4 * 60  # 4 minutes

# Worker Configuration
worker_prefetch_multiplier = 1
worker_max_tasks_per_child = 1000

# A worker lost mid-scan leaves the run to the next period
task_acks_late = False

# Entries expire after one period: a run the worker picks up late is dropped, the next
# one covers the window
beat_schedule = {
    "deadline-scan": {
        "task": "app.tasks.cron.deadline_scan.deadline_scan_task",
        "schedule": settings.check_period,
        "args": ("deadline_scan_cron",),
        "options": {"expires": settings.check_period.total_seconds()},
    },
    "routine-reset": {
        "task": "app.tasks.cron.routine_reset.routine_reset_task",
        "schedule": settings.routine_reset_interval,
        "args": ("routine_reset_cron",),
        "options": {"expires": settings.routine_reset_interval.total_seconds()},
    },
}

# Default Queue
task_default_queue = "tododo"

# Beat Scheduler Configuration
beat_schedule_filename = "tmp/celerybeat-schedule"
