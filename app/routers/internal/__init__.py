from fastapi import APIRouter

from .community_tasks import replication_router

internal_router = APIRouter()

internal_router.include_router(
    replication_router, tags=["Internal - Task Replication"]
)
