from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config.settings import settings, validate_scheduler_settings
from app.db.session import AsyncSessionLocal
from app.utils.logging import get_logger
from app.routers import main_router, internal_router
from app.utils.errors import setup_error_handlers
from app.middlewares import RequestIDMiddleware
from app.tasks.background.loops import BackgroundLoops

# Initialize the logger
logger = get_logger()


def _runs_background_loops() -> bool:
    return settings.RUN_BACKGROUND_LOOPS and settings.SCHEDULER_BACKEND == "inprocess"


@asynccontextmanager
async def lifespan(application: FastAPI):
    logger.info(f"{settings.NAME} is starting up...")
    # Invalid intervals abort startup
    validate_scheduler_settings(settings)

    loops = None
    if _runs_background_loops():
        loops = BackgroundLoops(settings, AsyncSessionLocal)
        await loops.start()
    application.state.background_loops = loops

    yield

    if loops is not None:
        await loops.stop()
    logger.info(f"{settings.NAME} is shutting down...")


def create_application() -> FastAPI:
    """Initialize the FastAPI application with settings and lifespan events."""
    application = FastAPI(
        title=settings.NAME, version=settings.VERSION, lifespan=lifespan
    )

    # Setup error handlers
    setup_error_handlers(application)

    # Add CORS middleware
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_HOSTS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "authorization"],
    )

    # Add custom middlewares
    application.add_middleware(RequestIDMiddleware)

    # Routers
    application.include_router(main_router, prefix=settings.API_PREFIX, tags=["APIs"])
    application.include_router(
        internal_router, prefix=settings.INTERNAL_PREFIX, tags=["Internal"]
    )

    return application


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_config=None,
        log_level=None,
    )
