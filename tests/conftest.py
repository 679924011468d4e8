import os

# Must be set before any app module reads settings
os.environ.setdefault("ENVIRONMENT", "test")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["BROKER_URL"] = "memory://"
os.environ["RUN_BACKGROUND_LOOPS"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

import uuid
from datetime import datetime
from typing import AsyncGenerator, Callable, List, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.db.models import (
    Base,
    Community,
    Routine,
    RoutinePeriod,
    Task,
    UserJoinCommunity,
    Webhook,
)
from app.services.messaging import QueueBroker


# Test database setup
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=test_engine, class_=AsyncSession, expire_on_commit=False
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def broker() -> AsyncGenerator[QueueBroker, None]:
    """Queue broker on kombu's in-memory transport, with a short poll timeout."""
    queue_broker = QueueBroker("memory://", poll_timeout=0.05)
    yield queue_broker
    await queue_broker.close()


@pytest.fixture
def queue_name() -> str:
    # The memory transport shares its queues process-wide
    return f"task_queue_{uuid.uuid4().hex[:8]}"


class RecordingTransport:
    """httpx.MockTransport handler that remembers every request it answered."""

    def __init__(self, responder: Callable[[httpx.Request], httpx.Response]):
        self.responder = responder
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    def client(self, base_url: str = "") -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self), base_url=base_url)


@pytest.fixture
def recording_transport() -> Callable[..., RecordingTransport]:
    return RecordingTransport


# Test data factories
@pytest.fixture
def task_factory(db_session: AsyncSession):
    async def create(
        deadline: Optional[datetime],
        user_id: Optional[uuid.UUID] = None,
        title: str = "Write report",
        description: str = "Quarterly numbers",
    ) -> Task:
        task = Task(
            id=uuid.uuid4(),
            user_id=user_id or uuid.uuid4(),
            title=title,
            description=description,
            deadline=deadline,
        )
        db_session.add(task)
        await db_session.commit()
        return task

    return create


@pytest.fixture
def routine_factory(db_session: AsyncSession):
    async def create(
        period: RoutinePeriod, checktime: datetime, completed: bool = True
    ) -> Routine:
        routine = Routine(
            id=uuid.uuid4(),
            user_id=uuid.uuid4(),
            title=f"{period.value} routine",
            period=period,
            completed=completed,
            checktime=checktime,
        )
        db_session.add(routine)
        await db_session.commit()
        return routine

    return create


@pytest.fixture
def webhook_factory(db_session: AsyncSession):
    async def create(user_id: uuid.UUID, url: Optional[str]) -> Webhook:
        webhook = Webhook(user_id=user_id, url=url)
        db_session.add(webhook)
        await db_session.commit()
        return webhook

    return create


@pytest_asyncio.fixture
async def sample_community(db_session: AsyncSession) -> Community:
    """Community with three members."""
    community = Community(
        id=uuid.uuid4(), name="Book club", description="Monthly reads", owner_id=uuid.uuid4()
    )
    db_session.add(community)
    await db_session.flush()
    for _ in range(3):
        db_session.add(UserJoinCommunity(account_id=uuid.uuid4(), community_id=community.id))
    await db_session.commit()
    return community


@pytest.fixture
def api_client(session_factory):
    """
    Build an httpx client for the FastAPI app on the test database.

    `task_client` replaces the task service client used for community task fan-out.
    """
    from app.db.session import get_async_session
    from app.main import app
    from app.services.clients import get_task_service_client

    async def override_session():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    def build(task_client=None) -> httpx.AsyncClient:
        app.dependency_overrides[get_async_session] = override_session
        if task_client is not None:
            app.dependency_overrides[get_task_service_client] = lambda: task_client
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://testserver"
        )

    yield build
    app.dependency_overrides.clear()
