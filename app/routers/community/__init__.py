from fastapi import APIRouter

from .tasks import community_tasks_router

community_router = APIRouter()

community_router.include_router(
    community_tasks_router, tags=["Community - Task Management"]
)
