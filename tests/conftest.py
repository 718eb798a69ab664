"""
Pytest configuration and fixtures.

This module provides fixtures that simulate a host stand on a busy evening:
- A shared row store (SQLite in-memory) holding the venue's tables
- A fixed clock at 18:00 venue time (Europe/Berlin)
- A failure-injecting store wrapper for rollback and partial-write scenarios
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Dict, FrozenSet, List, Mapping, Optional, Sequence
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine

from tableboard.config import Settings
from tableboard.database import Base, build_engine, build_session_factory
from tableboard.models import ReservationRecord, TableRecord  # noqa: F401
from tableboard.services.board_session import BoardSession
from tableboard.store.base import ALL_CHANGES, TABLES, ChangeType, Row, RowStore, Subscription, WriteOp
from tableboard.store.sql import SqlRowStore


# Use SQLite for testing (in-memory)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

VENUE_TZ = ZoneInfo("Europe/Berlin")

# 18:00 in Berlin (CEST, UTC+2)
NOW = datetime(2026, 10, 19, 16, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return NOW


class Notices:
    """Collects user-visible notices."""

    def __init__(self) -> None:
        self.messages: List[str] = []

    def __call__(self, message: str) -> None:
        self.messages.append(message)


class FlakyStore(RowStore):
    """
    Delegates to a real store, failing selected calls on demand.

    ``fail("update", exc)`` makes the next update raise ``exc``; queued
    failures are consumed in order.
    """

    def __init__(self, inner: RowStore, supports_transactions: bool = True) -> None:
        self.inner = inner
        self.supports_transactions = supports_transactions
        self._failures: Dict[str, List[Exception]] = {}
        self.calls: List[str] = []

    def fail(self, operation: str, exc: Exception) -> None:
        self._failures.setdefault(operation, []).append(exc)

    def _maybe_fail(self, operation: str) -> None:
        self.calls.append(operation)
        queued = self._failures.get(operation)
        if queued:
            raise queued.pop(0)

    async def select(self, collection: str, filters: Optional[Mapping[str, Any]] = None, order_by: Optional[str] = None) -> List[Row]:
        self._maybe_fail("select")
        return await self.inner.select(collection, filters, order_by)

    async def insert(self, collection: str, fields: Mapping[str, Any]) -> Row:
        self._maybe_fail("insert")
        return await self.inner.insert(collection, fields)

    async def update(self, collection: str, match: Mapping[str, Any], fields: Mapping[str, Any]) -> List[Row]:
        self._maybe_fail("update")
        return await self.inner.update(collection, match, fields)

    async def delete(self, collection: str, match: Mapping[str, Any]) -> List[Row]:
        self._maybe_fail("delete")
        return await self.inner.delete(collection, match)

    async def transaction(self, ops: Sequence[WriteOp]) -> List[List[Row]]:
        self._maybe_fail("transaction")
        return await self.inner.transaction(ops)

    def subscribe(self, collection: str, events: FrozenSet[ChangeType] = ALL_CHANGES) -> Subscription:
        return self.inner.subscribe(collection, events)


@pytest_asyncio.fixture(scope="function")
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a test database engine."""
    engine = build_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def store(db_engine: AsyncEngine) -> AsyncGenerator[SqlRowStore, None]:
    """A shared row store, as every host stand would see it."""
    row_store = SqlRowStore(build_session_factory(db_engine))
    yield row_store
    await row_store.close()


@pytest_asyncio.fixture
async def flaky_store(store: SqlRowStore) -> FlakyStore:
    return FlakyStore(store)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        venue_timezone="Europe/Berlin",
        expiry_interval_seconds=30,
        no_show_minutes=30,
        default_table_count=6,
        default_table_capacity=4,
        table_capacity_overrides='{"T1": 2, "T6": 8}',
    )


@pytest.fixture
def notices() -> Notices:
    return Notices()


@pytest_asyncio.fixture
async def sample_tables(store: SqlRowStore) -> List[Row]:
    """
    A small floor in mid-service:
    - T1 (2 seats) free
    - T2 reserved for "Schmidt" at 17:45 (15 minutes ago)
    - T3 (4 seats) free
    - T4 seated walk-in since 17:20
    - T5 dirty
    - T6 (8 seats) reserved for "Weber" at 17:20 (40 minutes ago, a no-show)
    """
    rows = [
        {"id": "T1", "capacity": 2, "status": "FREE"},
        {
            "id": "T2",
            "capacity": 4,
            "status": "RESERVED",
            "name": "Schmidt",
            "party_size": 3,
            "since": (NOW - timedelta(hours=2)).isoformat(),
            "reserved_for": (NOW - timedelta(minutes=15)).isoformat(),
        },
        {"id": "T3", "capacity": 4, "status": "FREE"},
        {
            "id": "T4",
            "capacity": 4,
            "status": "SEATED",
            "name": None,
            "party_size": None,
            "since": (NOW - timedelta(minutes=40)).isoformat(),
        },
        {"id": "T5", "capacity": 4, "status": "DIRTY", "since": (NOW - timedelta(minutes=5)).isoformat()},
        {
            "id": "T6",
            "capacity": 8,
            "status": "RESERVED",
            "name": "Weber",
            "party_size": 7,
            "since": (NOW - timedelta(hours=3)).isoformat(),
            "reserved_for": (NOW - timedelta(minutes=40)).isoformat(),
        },
    ]
    return [await store.insert(TABLES, row) for row in rows]


@pytest_asyncio.fixture
async def board_session(
    flaky_store: FlakyStore,
    settings: Settings,
    notices: Notices,
    sample_tables: List[Row],
) -> AsyncGenerator[BoardSession, None]:
    """A hydrated, subscribed session whose feed is drained by the test."""
    session = BoardSession(flaky_store, settings=settings, notify=notices, clock=fixed_clock)
    session.feed.subscribe()
    await session.hydrate()
    yield session
    await session.stop()
