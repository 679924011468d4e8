from fastapi import APIRouter

from .health import health_router
from .routines import routines_router
from .webhooks import webhooks_router

shared_router = APIRouter()

# Include sub-routers
shared_router.include_router(
    health_router, prefix="/health", tags=["Shared - Health Checks"]
)
shared_router.include_router(
    webhooks_router, prefix="/webhooks", tags=["Shared - Webhooks"]
)
shared_router.include_router(
    routines_router, prefix="/routines", tags=["Shared - Routines"]
)
