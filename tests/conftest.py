"""Shared pytest fixtures for all test suites."""

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from backend.docctx.db.models import Base
from backend.docctx.kv.inmemory import InMemoryKeyValueStore
from backend.docctx.store.context_store import ContextStore


class FakeClock:
    """Controllable clock for TTL tests."""

    def __init__(self) -> None:
        self.current = datetime(2025, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class RecordingSleep:
    """Sleep replacement that records requested delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def kv(clock: FakeClock) -> InMemoryKeyValueStore:
    """Fresh in-memory backend per test."""
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture
def store(kv: InMemoryKeyValueStore, sleep: RecordingSleep) -> ContextStore:
    """Context store over the in-memory backend with no real backoff waits."""
    return ContextStore(kv, sleep_fn=sleep)


@pytest_asyncio.fixture
async def sqlite_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create in-memory SQLite engine with all tables.

    StaticPool keeps one connection so every session sees the same database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()
