from fastapi import APIRouter, Request

from app.config.settings import settings
from app.utils.responses import ResponseBuilder

health_router = APIRouter()


@health_router.get("/")
async def health_check(request: Request):
    """
    Basic health check endpoint

    Returns application status and, when they run in this process, the background loops
    """
    loops = getattr(request.app.state, "background_loops", None)
    return ResponseBuilder.success(
        request=request,
        data={
            "status": "healthy",
            "service": settings.NAME,
            "version": settings.VERSION,
            "loops": loops.describe() if loops else [],
        },
        message="Service is running",
    )
