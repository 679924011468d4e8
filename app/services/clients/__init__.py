from .task_service_client import TaskServiceClient, get_task_service_client

__all__ = ["TaskServiceClient", "get_task_service_client"]
