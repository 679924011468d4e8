from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from app.config.settings import settings


def _engine_options(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        return {"echo": False}
    return {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
        "echo": False,
    }


engine = create_async_engine(
    str(settings.DATABASE_URL), **_engine_options(str(settings.DATABASE_URL))
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get async database session"""
    async with AsyncSessionLocal() as db:
        try:
            yield db
        except Exception:
            await db.rollback()
            raise


def create_task_engine() -> AsyncEngine:
    """
    Engine for one `asyncio.run` call (Celery tasks). Pooled connections are bound to the
    event loop that opened them, so nothing is pooled across runs.
    """
    return create_async_engine(str(settings.DATABASE_URL), poolclass=NullPool)
