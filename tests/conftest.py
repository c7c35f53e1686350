"""Shared test fixtures for the Onboarding Guard."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass

import aiosqlite
import pytest

from onboarding_guard.config_schema import GuardConfig
from onboarding_guard.db import AppContext, RecordStore, ensure_schema
from onboarding_guard.router import Router, build_router


@dataclass
class _MockRequestContext:
    """Stands in for the MCP request context so request_context.lifespan_context works."""

    lifespan_context: AppContext


@dataclass
class MockContext:
    """Minimal mock for fastmcp.Context that provides request_context.lifespan_context."""

    request_context: _MockRequestContext

    @property
    def lifespan_context(self) -> AppContext:
        return self.request_context.lifespan_context


@pytest.fixture
async def db() -> AsyncIterator[aiosqlite.Connection]:
    """In-memory SQLite database for tests."""
    conn = await aiosqlite.connect(":memory:", isolation_level=None)
    conn.row_factory = aiosqlite.Row
    await ensure_schema(conn)
    yield conn
    await conn.close()


@pytest.fixture
def store(db: aiosqlite.Connection) -> RecordStore:
    return RecordStore(db=db)


@pytest.fixture
def router() -> Router:
    return build_router()


@pytest.fixture
def ctx(db: aiosqlite.Connection, store: RecordStore, router: Router) -> MockContext:
    """Create a MockContext wrapping the in-memory db fixture."""
    app = AppContext(db=db, store=store, router=router, config=GuardConfig())
    return MockContext(request_context=_MockRequestContext(lifespan_context=app))


async def count_records(db: aiosqlite.Connection) -> int:
    cursor = await db.execute("SELECT COUNT(*) AS n FROM customer_onboardings")
    row = await cursor.fetchone()
    return int(row["n"])


async def insert_record(
    db: aiosqlite.Connection,
    record_id: str,
    status: str = "DRAFT",
    country: str | None = "FR",
    email: str | None = None,
) -> str:
    """Insert a row directly, bypassing the router and its hooks."""
    await db.execute(
        "INSERT INTO customer_onboardings (id, country, email, status) VALUES (?, ?, ?, ?)",
        (record_id, country, email, status),
    )
    return record_id
