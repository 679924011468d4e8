from fastapi import APIRouter, Depends, Path, Request, status

from app.schemas.replication_schemas import (
    AddCommunityTaskRequest,
    RemoveCommunityTaskResult,
    RpcErrorCode,
)
from app.services.task_replication_service import (
    TaskReplicationService,
    get_task_replication_service,
)
from app.utils.error_handlers import handle_service_error
from app.utils.logging import get_logger
from app.utils.responses import ResponseBuilder

logger = get_logger()

replication_router = APIRouter()


def _internal_error(request: Request, message: str):
    return ResponseBuilder.error(
        request=request,
        message=message,
        error_code=RpcErrorCode.INTERNAL.value,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


@replication_router.post(
    "/community-tasks",
    response_model=None,
    status_code=status.HTTP_201_CREATED,
    summary="Create member copies of a community task",
    description="Idempotent on community_task_id; a replayed request creates nothing.",
)
async def add_community_task(
    request: Request,
    body: AddCommunityTaskRequest,
    service: TaskReplicationService = Depends(get_task_replication_service),
):
    try:
        result = await service.add_community_task(body)
    except ValueError as e:
        return handle_service_error(request, e)
    except Exception as e:
        logger.error(
            "Failed to create task for joined members",
            community_task_id=body.community_task_id,
            error=str(e),
        )
        return _internal_error(request, "Failed to create member tasks")

    return ResponseBuilder.success(
        request=request,
        data=result.model_dump(),
        message="Member tasks already exist" if result.duplicate else "Member tasks created",
        status_code=status.HTTP_200_OK if result.duplicate else status.HTTP_201_CREATED,
    )


@replication_router.delete(
    "/community-tasks/{community_task_id}",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="Remove member copies of a community task",
)
async def remove_community_task(
    request: Request,
    community_task_id: str = Path(..., description="Community task ID"),
    service: TaskReplicationService = Depends(get_task_replication_service),
):
    try:
        removed = await service.remove_community_task(community_task_id)
    except ValueError as e:
        return handle_service_error(request, e)
    except Exception as e:
        logger.error(
            "Failed to remove member tasks",
            community_task_id=community_task_id,
            error=str(e),
        )
        return _internal_error(request, "Failed to remove member tasks")

    return ResponseBuilder.success(
        request=request,
        data=RemoveCommunityTaskResult(removed=removed).model_dump(),
        message=f"Removed {removed} member tasks",
    )
