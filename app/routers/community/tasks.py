import uuid

from fastapi import APIRouter, Depends, Path, Request, status

from app.schemas.community_task_schemas import (
    CommunityTaskResponse,
    CreateCommunityTaskRequest,
)
from app.services.community_task_service import (
    CommunityTaskService,
    get_community_task_service,
)
from app.utils.errors import BusinessLogicError, NotFoundError
from app.utils.responses import ResponseBuilder

community_tasks_router = APIRouter()


def _to_response(task) -> dict:
    return CommunityTaskResponse.model_validate(task, from_attributes=True).model_dump(
        mode="json"
    )


@community_tasks_router.get(
    "/{community_id}/tasks",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="List tasks of a community",
)
async def list_community_tasks(
    request: Request,
    community_id: uuid.UUID = Path(..., description="Community ID"),
    service: CommunityTaskService = Depends(get_community_task_service),
):
    tasks = await service.list_community_tasks(community_id)
    return ResponseBuilder.success(
        request=request,
        data=[_to_response(task) for task in tasks],
        message=f"Retrieved {len(tasks)} community tasks",
    )


@community_tasks_router.get(
    "/{community_id}/tasks/{task_id}",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="Get one community task",
)
async def get_community_task(
    request: Request,
    community_id: uuid.UUID = Path(..., description="Community ID"),
    task_id: uuid.UUID = Path(..., description="Community task ID"),
    service: CommunityTaskService = Depends(get_community_task_service),
):
    task = await service.get_community_task(community_id, task_id)
    if task is None:
        raise NotFoundError("Community task not found", error_code="COMMUNITY_TASK_NOT_FOUND")

    return ResponseBuilder.success(
        request=request,
        data=_to_response(task),
        message="Community task retrieved successfully",
    )


@community_tasks_router.post(
    "/{community_id}/tasks",
    response_model=CommunityTaskResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a community task",
    description="Create the community task and a personal copy for every current member. "
    "Nothing is kept when the copies cannot be created.",
)
async def create_community_task(
    request: Request,
    task_data: CreateCommunityTaskRequest,
    community_id: uuid.UUID = Path(..., description="Community ID"),
    service: CommunityTaskService = Depends(get_community_task_service),
):
    """ReplicationError and NotFoundError are answered by the global handlers"""
    task_response = await service.create_community_task(community_id, task_data)

    return ResponseBuilder.success(
        request=request,
        data=task_response.model_dump(mode="json"),
        message="Community task created successfully",
        status_code=status.HTTP_201_CREATED,
    )


@community_tasks_router.delete(
    "/tasks/{task_id}",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="Delete a community task",
    description="Deletes the community task only; member copies are kept.",
)
async def delete_community_task(
    request: Request,
    task_id: uuid.UUID = Path(..., description="Community task ID"),
    service: CommunityTaskService = Depends(get_community_task_service),
):
    try:
        deleted = await service.delete_community_task(task_id)
    except Exception as e:
        raise BusinessLogicError(
            message="Failed to delete community task",
            error_code="COMMUNITY_TASK_DELETE_FAILED",
        ) from e

    if not deleted:
        raise NotFoundError("Community task not found", error_code="COMMUNITY_TASK_NOT_FOUND")

    return ResponseBuilder.success(
        request=request,
        data={"id": str(task_id)},
        message="Community task deleted successfully",
    )
