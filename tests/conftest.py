"""pytest fixtures for animegen backend tests.

Provides:
- utc_timezone: Autouse fixture enforcing UTC timezone
- engine / session_factory: Function-scoped in-memory SQLite database with all tables
- session: Function-scoped database session
- uow_factory: Function-scoped UnitOfWork factory
- settings: Settings with local defaults (no .env)
- blob_store / gateway / tag_generator: In-memory doubles for external services
- clock / kv_store / rate_limiter: Fixed-window limiter over the in-process store
- app / test_client: FastAPI app wired to the doubles, httpx AsyncClient via ASGITransport
"""

import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from animegen import models  # noqa: F401
from animegen.core.config import Settings
from animegen.models.user import User
from animegen.services.cache.kv_store import InMemoryKeyValueStore
from animegen.services.image_generation.tagging import TagGenerator
from animegen.services.rate_limiter import FixedWindowRateLimiter
from animegen.uow import create_uow_factory
from animegen.workers.generation_job_worker import GenerationContext
from tests.helpers import FakeBlobStore, FakeClock, FakeGateway


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests."""
    os.environ["TZ"] = "UTC"
    yield


@pytest_asyncio.fixture(scope="function")
async def engine():
    """Provide a fresh in-memory SQLite database with all tables created.

    StaticPool keeps a single connection so every session sees the same
    in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide function-scoped database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def uow_factory(session_factory):
    """Provide function-scoped UnitOfWork factory."""
    return create_uow_factory(session_factory)


@pytest.fixture
def settings() -> Settings:
    return Settings(  # type: ignore[call-arg]
        _env_file=None,
        DATABASE_URL="sqlite+aiosqlite://",
        APP_ENV="test",
        REDIS_URL="",
        REPLICATE_API_TOKEN="",
        TAG_GENERATION_ENABLED=True,
        PUBLIC_BASE_URL="",
        IP_HASH_SALT="test-salt",
    )


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def tag_generator(gateway, settings) -> TagGenerator:
    return TagGenerator(completion=gateway, model=settings.tag_model, enabled=True)


@pytest.fixture
def generation_context(uow_factory, gateway, blob_store, tag_generator, settings):
    return GenerationContext(
        uow_factory=uow_factory,
        gateway=gateway,  # type: ignore[arg-type]
        blob_store=blob_store,  # type: ignore[arg-type]
        tag_generator=tag_generator,
        settings=settings,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv_store(clock) -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture
def rate_limiter(kv_store, settings, clock) -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter.from_settings(kv_store, settings, clock=clock)


@pytest.fixture
def app(settings, session_factory, uow_factory, blob_store, rate_limiter, generation_context):
    """FastAPI app with app.state wired to test doubles (lifespan is not run)."""
    from animegen.app import create_app

    app = create_app(settings)
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.blob_store = blob_store
    app.state.rate_limiter = rate_limiter
    app.state.generation_context = generation_context
    return app


@pytest_asyncio.fixture
async def test_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Provide AsyncClient for testing API endpoints.

    Background tasks finish before ASGITransport returns the response, so a
    submitted job has already been processed when the request completes.
    """
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def user(uow_factory) -> User:
    """Registered (non-anonymous) user."""
    async with await uow_factory() as uow:
        created = await uow.users.add(
            User(name="Sakura", handle="sakura", email="sakura@example.com", is_anonymous=False)
        )
    return created


@pytest_asyncio.fixture
async def other_user(uow_factory) -> User:
    async with await uow_factory() as uow:
        created = await uow.users.add(User(name="Kenji", handle="kenji", is_anonymous=False))
    return created
