"""
Test configuration and shared fixtures.
Uses an in-memory SQLite database per test for fast, isolated tests.
"""
from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import Integer, String
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.pool import StaticPool

import activity_feed.models  # noqa: F401
from activity_feed.core.rate_limit import limiter
from activity_feed.db.base import Base
from activity_feed.db.session import get_db
from activity_feed.feed.cache import MemoryCacheBackend
from activity_feed.main import create_application
from activity_feed.services.entity_store import register_entity_model
from activity_feed.services.feed_service import FeedService

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# ── Caller-owned domain models referenced by feed items ───────────────────────

@register_entity_model
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)


@register_entity_model
class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    reference: Mapped[str] = mapped_column(String(50), nullable=False)

    def feed_display_name(self) -> str:
        return f"Order #{self.id}"


class FrozenClock:
    def __init__(self, current: datetime) -> None:
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


# ── Database ──────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """A fresh in-memory database with every table created."""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture
async def db(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Provide a test database session that rolls back after each test."""
    session_factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        try:
            yield session
            await session.rollback()
        finally:
            await session.close()


# ── Feed service ──────────────────────────────────────────────────────────────

@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def cache_backend(clock: FrozenClock) -> MemoryCacheBackend:
    return MemoryCacheBackend(clock)


@pytest.fixture
def feed_service(cache_backend: MemoryCacheBackend, clock: FrozenClock) -> FeedService:
    return FeedService(cache_backend, clock=clock)


@pytest_asyncio.fixture
async def client(
    db: AsyncSession, feed_service: FeedService
) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP test client with the test DB injected."""
    app = create_application(feed_service)

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db

    app.dependency_overrides[get_db] = override_get_db
    limiter.enabled = False

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
    limiter.enabled = True


# ── Helper fixtures ───────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def john(db: AsyncSession) -> User:
    user = User(id=42, name="John Doe")
    db.add(user)
    await db.flush()
    return user


@pytest_asyncio.fixture
async def jane(db: AsyncSession) -> User:
    user = User(id=43, name="Jane Roe")
    db.add(user)
    await db.flush()
    return user


@pytest_asyncio.fixture
async def order(db: AsyncSession) -> Order:
    obj = Order(id=7, reference="SO-7")
    db.add(obj)
    await db.flush()
    return obj
