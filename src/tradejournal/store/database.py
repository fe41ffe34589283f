"""Async SQLite database manager for the journal store.

Uses aiosqlite for non-blocking access with WAL mode so the auto-sync task
and interactive writes do not block each other.
"""

import os
from typing import Self

import aiosqlite

from tradejournal.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS broker_connections (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    broker_type TEXT NOT NULL,
    display_name TEXT NOT NULL DEFAULT '',
    credentials TEXT NOT NULL DEFAULT '{}',
    is_active INTEGER NOT NULL DEFAULT 1,
    last_sync TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS trades (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    ticker TEXT NOT NULL,
    entry_price TEXT NOT NULL,
    exit_price TEXT NOT NULL,
    quantity INTEGER NOT NULL,
    direction TEXT NOT NULL,
    status TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    realized_pl TEXT NOT NULL,
    notes TEXT,
    commission TEXT NOT NULL DEFAULT '0',
    broker_type TEXT,
    connection_id TEXT,
    broker_trade_id TEXT
);
"""

_CREATE_INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_connections_user
    ON broker_connections(user_id, created_at);

CREATE INDEX IF NOT EXISTS idx_trades_user_ts
    ON trades(user_id, timestamp);

CREATE UNIQUE INDEX IF NOT EXISTS idx_trades_broker_trade
    ON trades(connection_id, broker_trade_id)
    WHERE broker_trade_id IS NOT NULL;
"""


class JournalDatabase:
    """Async SQLite connection manager for trades and broker connections.

    Usage:
        async with JournalDatabase("data/journal.db") as database:
            store = SQLiteJournalStore(database)
    """

    def __init__(self, db_path: str = "data/journal.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    @property
    def db(self) -> aiosqlite.Connection:
        """Access the raw aiosqlite connection.

        Raises RuntimeError if not connected.
        """
        if self._connection is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    async def connect(self) -> None:
        """Open the connection, configure pragmas and create the schema."""
        db_dir = os.path.dirname(self._db_path)
        if db_dir and self._db_path != ":memory:":
            os.makedirs(db_dir, exist_ok=True)

        self._connection = await aiosqlite.connect(self._db_path)

        await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._connection.execute("PRAGMA synchronous=NORMAL")

        await self._create_tables()
        await self._ensure_schema_version()

        logger.info("journal_db_connected", db_path=self._db_path)

    async def close(self) -> None:
        """Close the database connection if open."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("journal_db_closed", db_path=self._db_path)

    async def _create_tables(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(_CREATE_TABLES_SQL)
        await self._connection.executescript(_CREATE_INDEXES_SQL)
        await self._connection.commit()

    async def _ensure_schema_version(self) -> None:
        assert self._connection is not None
        cursor = await self._connection.execute(
            "SELECT version FROM schema_version LIMIT 1"
        )
        row = await cursor.fetchone()
        if row is None:
            await self._connection.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            await self._connection.commit()
            logger.info("schema_version_set", version=SCHEMA_VERSION)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()
