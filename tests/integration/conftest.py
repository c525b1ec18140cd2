"""Integration test fixtures for database and HTTP client operations.

Storage runs on in-memory SQLite (aiosqlite) sharing one connection, Redis
on fakeredis.
"""

from collections.abc import AsyncGenerator
from uuid import UUID, uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from src.mailflow.core.config import Settings
from src.mailflow.core.db import create_session_factory, create_tables
from src.mailflow.core.notifications.email import LogOnlyTransport
from src.mailflow.core.shutdown import request_tracker
from src.mailflow.jobs import build_workers
from src.mailflow.main import create_app, reset_health_cache
from src.mailflow.models import MailingList, Subscriber
from src.mailflow.queue import QueueName, QueueService, Worker
from src.mailflow.workflow import GraphCache
from tests.factories import MailingListFactory, SubscriberFactory, persist


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine]:
    """Fresh in-memory database with every table created."""
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession]:
    """Session for seeding data.

    The session does not auto-commit; use ``persist`` or commit explicitly
    before running workers, which read through their own sessions.
    """
    async with session_factory() as session:
        yield session


@pytest.fixture
def tenant_id() -> UUID:
    return uuid4()


@pytest.fixture
def graph_cache() -> GraphCache:
    return GraphCache()


@pytest.fixture
async def subscriber(db_session: AsyncSession, tenant_id: UUID) -> Subscriber:
    (created,) = await persist(db_session, SubscriberFactory.build(tenant_id=tenant_id, first_name="Ada"))
    return created


@pytest.fixture
async def mailing_list(db_session: AsyncSession, tenant_id: UUID) -> MailingList:
    (created,) = await persist(db_session, MailingListFactory.build(tenant_id=tenant_id))
    return created


@pytest.fixture
def make_workers(
    queue_service: QueueService,
    session_factory: async_sessionmaker[AsyncSession],
    graph_cache: GraphCache,
    settings: Settings,
):
    """Build workers for the given queues with the test stack."""

    def _make(*queues: QueueName, worker_settings: Settings | None = None) -> list[Worker]:
        return build_workers(
            queue_service,
            session_factory,
            LogOnlyTransport(),
            list(queues),
            worker_settings or settings,
            graph_cache,
        )

    return _make


@pytest.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    queue_service: QueueService,
    graph_cache: GraphCache,
) -> AsyncGenerator[AsyncClient]:
    """HTTP client against the app, with state wired as the lifespan would."""
    request_tracker.reset()
    reset_health_cache()

    app = create_app()
    app.state.session_factory = session_factory
    app.state.queue_service = queue_service
    app.state.graph_cache = graph_cache

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    request_tracker.reset()
    reset_health_cache()
