"""Database connection, record store, and lifespan for the Onboarding Guard."""

from __future__ import annotations

import asyncio
import logging
import os
import sys
import uuid
from collections.abc import AsyncIterator, Iterable, Mapping
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import aiosqlite
from fastmcp import FastMCP

from onboarding_guard.config_schema import GuardConfig, load_guard_config

if TYPE_CHECKING:
    from onboarding_guard.router import Router

DB_FILENAME = "onboarding.sqlite3"
DB_CONFIG_DIRNAME = "onboarding-guard"
DB_PATH_ENV_VAR = "ONBOARDING_DB_PATH"
CONFIG_PATH_ENV_VAR = "ONBOARDING_CONFIG_PATH"
DEFAULT_CONFIG_FILENAME = "onboarding-guard.json"
logger = logging.getLogger("onboarding_guard")

ENTITY = "CustomerOnboardings"

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS customer_onboardings (
    id          TEXT PRIMARY KEY,
    country     TEXT,
    email       TEXT,
    status      TEXT NOT NULL DEFAULT 'DRAFT'
                CHECK(status IN ('DRAFT', 'SUBMITTED')),
    created_at  TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    updated_at  TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_onboardings_status ON customer_onboardings(status);
"""


@dataclass(frozen=True)
class EntityTable:
    """Maps an entity name to its table and the columns callers may touch."""

    table: str
    columns: tuple[str, ...]
    writable: frozenset[str]

    def check_columns(self, names: Iterable[str]) -> None:
        unknown = sorted(set(names) - set(self.columns))
        if unknown:
            raise KeyError(f"Unknown columns for {self.table}: {unknown}")


ENTITIES: dict[str, EntityTable] = {
    ENTITY: EntityTable(
        table="customer_onboardings",
        columns=("id", "country", "email", "status", "created_at", "updated_at"),
        writable=frozenset({"country", "email", "status"}),
    ),
}


def _entity(name: str) -> EntityTable:
    try:
        return ENTITIES[name]
    except KeyError:
        raise KeyError(f"Unknown entity: {name}") from None


def _where_clause(entity: EntityTable, where: Mapping[str, Any]) -> tuple[str, list[Any]]:
    entity.check_columns(where)
    if not where:
        return "", []
    conditions = [f"{column} = ?" for column in where]
    return "WHERE " + " AND ".join(conditions), list(where.values())


class Transaction:
    """Handle scoping reads and writes to one BEGIN IMMEDIATE...COMMIT block.

    Obtained from RecordStore.transaction(); never kept past the request
    that opened it.
    """

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def read(
        self,
        entity: str,
        where: Mapping[str, Any] | None = None,
        order_by: str = "created_at",
    ) -> list[dict]:
        """Return every row matching *where* (all rows when empty)."""
        table = _entity(entity)
        table.check_columns([order_by])
        clause, params = _where_clause(table, where or {})
        cursor = await self._db.execute(
            f"SELECT {', '.join(table.columns)} FROM {table.table} {clause} "
            f"ORDER BY {order_by} ASC, rowid ASC",
            params,
        )
        rows = await cursor.fetchall()
        return [{column: row[column] for column in table.columns} for row in rows]

    async def update(
        self,
        entity: str,
        where: Mapping[str, Any],
        fields: Mapping[str, Any],
    ) -> int:
        """Apply *fields* to matching rows; returns the number of rows changed."""
        table = _entity(entity)
        if not where:
            raise ValueError("update requires a filter")
        _check_writable(table, fields)
        if not fields:
            return 0
        assignments = ", ".join(f"{column} = ?" for column in fields)
        clause, params = _where_clause(table, where)
        cursor = await self._db.execute(
            f"UPDATE {table.table} "
            f"SET {assignments}, updated_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now') "
            f"{clause}",
            [*fields.values(), *params],
        )
        return cursor.rowcount

    async def insert(self, entity: str, fields: Mapping[str, Any]) -> dict:
        """Insert a row with a store-assigned id and return it as stored."""
        table = _entity(entity)
        _check_writable(table, fields)
        values = {"id": str(uuid.uuid4()), **fields}
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        await self._db.execute(
            f"INSERT INTO {table.table} ({columns}) VALUES ({placeholders})",
            list(values.values()),
        )
        rows = await self.read(entity, {"id": values["id"]})
        return rows[0]


def _check_writable(table: EntityTable, fields: Mapping[str, Any]) -> None:
    blocked = sorted(set(fields) - table.writable)
    if blocked:
        raise KeyError(f"Columns not writable on {table.table}: {blocked}")


@dataclass
class RecordStore:
    """Transactional access to onboarding records over a shared connection."""

    db: aiosqlite.Connection
    write_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        """Open one write transaction; commit on exit, roll back on any exception."""
        async with self.write_lock:
            await self.db.execute("BEGIN IMMEDIATE")
            try:
                yield Transaction(self.db)
                await self.db.execute("COMMIT")
            except BaseException:
                await _rollback_quietly(self.db)
                raise


@dataclass
class AppContext:
    """Application context holding the store and the configured router."""

    db: aiosqlite.Connection
    store: RecordStore
    router: Router
    config: GuardConfig = field(default_factory=GuardConfig)


async def ensure_schema(db: aiosqlite.Connection) -> None:
    """Create tables and indexes if they don't exist."""
    await db.executescript(SCHEMA_SQL)


async def _rollback_quietly(db: aiosqlite.Connection) -> None:
    with suppress(Exception):
        await db.execute("ROLLBACK")


def _default_user_config_dir() -> Path:
    """Resolve a cross-platform user config directory for guard state."""
    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config_home:
        return Path(xdg_config_home).expanduser() / DB_CONFIG_DIRNAME

    if os.name == "nt":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata).expanduser() / DB_CONFIG_DIRNAME
        return Path.home() / "AppData" / "Roaming" / DB_CONFIG_DIRNAME

    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / DB_CONFIG_DIRNAME

    return Path.home() / ".config" / DB_CONFIG_DIRNAME


def resolve_db_path() -> Path:
    """Resolve the database path.

    Priority:
    1) Explicit ONBOARDING_DB_PATH environment variable
    2) Standard user config directory (~/.config, APPDATA, or Application Support)
    """
    configured_path = os.environ.get(DB_PATH_ENV_VAR)
    if configured_path:
        return Path(configured_path).expanduser()

    return _default_user_config_dir() / DB_FILENAME


def resolve_config_path() -> Path:
    configured_path = os.environ.get(CONFIG_PATH_ENV_VAR)
    if configured_path:
        return Path(configured_path).expanduser()
    return Path.cwd() / DEFAULT_CONFIG_FILENAME


def load_config_or_default(config_path: Path) -> GuardConfig:
    """Load guard config, falling back to defaults when missing or invalid."""
    try:
        config = load_guard_config(config_path)
    except FileNotFoundError:
        logger.info("No config file, using defaults (%s)", config_path)
        return GuardConfig()
    except Exception as exc:
        logger.warning("Failed to load onboarding_guard config; using defaults: %s", exc)
        return GuardConfig()
    if config is None:
        logger.info("No onboarding_guard config section, using defaults")
        return GuardConfig()
    return config


@asynccontextmanager
async def guard_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """Open SQLite with WAL mode at server startup, close it on shutdown."""
    del server
    from onboarding_guard.router import build_router  # local import avoids cycle

    db_path = resolve_db_path()
    config_path = resolve_config_path()
    if os.environ.get(CONFIG_PATH_ENV_VAR):
        logger.info("Using config path override from %s: %s", CONFIG_PATH_ENV_VAR, config_path)
    config = load_config_or_default(config_path)

    db_path.parent.mkdir(parents=True, exist_ok=True)
    db = await aiosqlite.connect(
        str(db_path),
        isolation_level=None,  # CRITICAL: enables manual BEGIN IMMEDIATE
    )
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA journal_mode=WAL")
    await db.execute("PRAGMA busy_timeout=5000")
    await db.execute("PRAGMA synchronous=NORMAL")
    await ensure_schema(db)

    ctx = AppContext(
        db=db,
        store=RecordStore(db=db),
        router=build_router(config),
        config=config,
    )
    logger.info(
        "Guard ready - db=%s, merged_update_validation=%s",
        db_path,
        config.validate_merged_updates,
    )
    try:
        yield ctx
    finally:
        await db.execute("PRAGMA wal_checkpoint(TRUNCATE)")
        await db.close()
