from typing import AsyncGenerator, Optional

import httpx

from app.config.settings import settings
from app.middlewares.request_id_middleware import REQUEST_ID_HEADER
from app.schemas.replication_schemas import (
    AddCommunityTaskRequest,
    AddCommunityTaskResult,
    RemoveCommunityTaskResult,
    RpcErrorCode,
)
from app.utils.context import get_request_id
from app.utils.errors import ReplicationError
from app.utils.logging import get_logger

logger = get_logger()


def _error_from_response(response: httpx.Response) -> ReplicationError:
    """Map an error envelope `{message, meta: {error_code}}` to a ReplicationError"""
    code = RpcErrorCode.UNKNOWN.value
    message = f"Task service answered {response.status_code}"
    try:
        body = response.json()
        message = body.get("message") or message
        code = (body.get("meta") or {}).get("error_code") or code
    except (ValueError, AttributeError):
        pass
    return ReplicationError(message, error_code=code)


class TaskServiceClient:
    """Client of the task service's member-task replication endpoints"""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        request_id = get_request_id()
        if request_id:
            kwargs.setdefault("headers", {})[REQUEST_ID_HEADER] = request_id
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise ReplicationError(
                f"Task service timed out: {e}",
                error_code=RpcErrorCode.DEADLINE_EXCEEDED.value,
            ) from e
        except httpx.HTTPError as e:
            raise ReplicationError(
                f"Task service unreachable: {e}",
                error_code=RpcErrorCode.UNAVAILABLE.value,
            ) from e

        if response.is_error:
            raise _error_from_response(response)
        return response

    async def add_community_task(
        self, request: AddCommunityTaskRequest
    ) -> AddCommunityTaskResult:
        """Create one task per member. Raises ReplicationError on any failure."""
        response = await self._send(
            "POST", "/community-tasks", json=request.model_dump(mode="json")
        )
        try:
            return AddCommunityTaskResult.model_validate(response.json().get("data"))
        except ValueError as e:
            raise ReplicationError(
                f"Unreadable answer from task service: {e}",
                error_code=RpcErrorCode.INTERNAL.value,
            ) from e

    async def remove_community_task(self, community_task_id: str) -> int:
        """Delete the member tasks replicated from `community_task_id`"""
        response = await self._send("DELETE", f"/community-tasks/{community_task_id}")
        try:
            result = RemoveCommunityTaskResult.model_validate(response.json().get("data"))
        except ValueError as e:
            raise ReplicationError(
                f"Unreadable answer from task service: {e}",
                error_code=RpcErrorCode.INTERNAL.value,
            ) from e
        return result.removed

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()


async def get_task_service_client() -> AsyncGenerator[TaskServiceClient, None]:
    """Dependency to provide a TaskServiceClient for the duration of a request"""
    client = TaskServiceClient(
        settings.TASK_SERVICE_URL, timeout=settings.TASK_SERVICE_TIMEOUT_SECONDS
    )
    try:
        yield client
    finally:
        await client.aclose()
