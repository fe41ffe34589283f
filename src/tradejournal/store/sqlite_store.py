"""SQLite implementation of the journal store.

CRITICAL: Decimals are stored as TEXT and restored as Decimal on read;
datetimes are stored as ISO-8601 UTC strings; credentials as JSON.
"""

import json
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import uuid4

import aiosqlite

from tradejournal.exceptions import PersistenceError
from tradejournal.logging import get_logger
from tradejournal.models import (
    BrokerConnection,
    BrokerType,
    CanonicalTrade,
    ClosedPosition,
    ConnectionDraft,
    Direction,
    OpenPosition,
    PositionState,
    TradeStatus,
    utcnow,
)
from tradejournal.store.base import UPDATABLE_CONNECTION_FIELDS, JournalStore
from tradejournal.store.database import JournalDatabase

logger = get_logger(__name__)

_TRADE_COLUMNS = (
    "id, user_id, ticker, entry_price, exit_price, quantity, direction, status, "
    "timestamp, realized_pl, notes, commission, broker_type, connection_id, broker_trade_id"
)

_CONNECTION_COLUMNS = (
    "id, user_id, broker_type, display_name, credentials, is_active, "
    "last_sync, created_at, updated_at"
)


@contextmanager
def _db_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except aiosqlite.Error as e:
        logger.error("journal_store_error", operation=operation, error=str(e))
        raise PersistenceError(f"Failed to {operation}: {e}") from e


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _position(status: str, exit_price: str) -> PositionState:
    if TradeStatus(status) is TradeStatus.OPEN:
        return OpenPosition(exit_price=Decimal(exit_price))
    return ClosedPosition(exit_price=Decimal(exit_price))


def _row_to_trade(row: aiosqlite.Row | tuple) -> CanonicalTrade:
    return CanonicalTrade(
        id=row[0],
        ticker=row[2],
        entry_price=Decimal(row[3]),
        position=_position(row[7], row[4]),
        quantity=row[5],
        direction=Direction(row[6]),
        timestamp=datetime.fromisoformat(row[8]),
        realized_pl=Decimal(row[9]),
        notes=row[10],
        commission=Decimal(row[11]),
        broker_type=BrokerType(row[12]) if row[12] else None,
        connection_id=row[13],
        broker_trade_id=row[14],
    )


def _trade_params(user_id: str, trade: CanonicalTrade) -> tuple:
    return (
        trade.id,
        user_id,
        trade.ticker,
        str(trade.entry_price),
        str(trade.exit_price),
        trade.quantity,
        trade.direction.value,
        trade.status.value,
        trade.timestamp.isoformat(),
        str(trade.realized_pl),
        trade.notes,
        str(trade.commission),
        trade.broker_type.value if trade.broker_type else None,
        trade.connection_id,
        trade.broker_trade_id,
    )


def _row_to_connection(row: aiosqlite.Row | tuple) -> BrokerConnection:
    return BrokerConnection(
        id=row[0],
        user_id=row[1],
        broker_type=BrokerType(row[2]),
        display_name=row[3],
        credentials=json.loads(row[4]),
        is_active=bool(row[5]),
        last_sync=_parse_dt(row[6]),
        created_at=datetime.fromisoformat(row[7]),
        updated_at=datetime.fromisoformat(row[8]),
    )


class SQLiteJournalStore(JournalStore):
    """JournalStore backed by a JournalDatabase.

    Usage:
        async with JournalDatabase("data/journal.db") as database:
            store = SQLiteJournalStore(database)
            connections = await store.get_connections("user-1")
    """

    def __init__(self, database: JournalDatabase) -> None:
        self._database = database

    # ──────────────────────────────────────────────
    # Broker connections
    # ──────────────────────────────────────────────

    async def get_connections(self, user_id: str) -> list[BrokerConnection]:
        with _db_errors("fetch broker connections"):
            cursor = await self._database.db.execute(
                f"SELECT {_CONNECTION_COLUMNS} FROM broker_connections "
                "WHERE user_id = ? ORDER BY created_at DESC",
                (user_id,),
            )
            rows = await cursor.fetchall()
        return [_row_to_connection(row) for row in rows]

    async def add_connection(self, user_id: str, draft: ConnectionDraft) -> BrokerConnection:
        now = utcnow()
        connection = BrokerConnection(
            id=f"conn_{uuid4().hex[:16]}",
            user_id=user_id,
            broker_type=draft.broker_type,
            display_name=draft.display_name,
            credentials=dict(draft.credentials),
            is_active=draft.is_active,
            last_sync=None,
            created_at=now,
            updated_at=now,
        )
        with _db_errors("add broker connection"):
            await self._database.db.execute(
                f"INSERT INTO broker_connections ({_CONNECTION_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    connection.id,
                    user_id,
                    connection.broker_type.value,
                    connection.display_name,
                    json.dumps(connection.credentials),
                    1 if connection.is_active else 0,
                    None,
                    now.isoformat(),
                    now.isoformat(),
                ),
            )
            await self._database.db.commit()
        logger.info(
            "broker_connection_added",
            user_id=user_id,
            connection_id=connection.id,
            broker_type=connection.broker_type.value,
        )
        return connection

    async def update_connection(self, connection_id: str, updates: Mapping[str, Any]) -> None:
        unknown = set(updates) - UPDATABLE_CONNECTION_FIELDS
        if unknown:
            raise ValueError(f"Cannot update connection fields: {sorted(unknown)}")

        assignments: list[str] = []
        params: list = []
        for key, value in updates.items():
            if key == "credentials":
                value = json.dumps(dict(value))
            elif key == "is_active":
                value = 1 if value else 0
            elif key == "last_sync":
                value = _iso(value)
            assignments.append(f"{key} = ?")
            params.append(value)
        assignments.append("updated_at = ?")
        params.append(utcnow().isoformat())
        params.append(connection_id)

        with _db_errors("update broker connection"):
            await self._database.db.execute(
                f"UPDATE broker_connections SET {', '.join(assignments)} WHERE id = ?",
                params,
            )
            await self._database.db.commit()

    async def delete_connection(self, connection_id: str) -> None:
        with _db_errors("delete broker connection"):
            await self._database.db.execute(
                "DELETE FROM trades WHERE connection_id = ?", (connection_id,)
            )
            await self._database.db.execute(
                "DELETE FROM broker_connections WHERE id = ?", (connection_id,)
            )
            await self._database.db.commit()
        logger.info("broker_connection_deleted", connection_id=connection_id)

    # ──────────────────────────────────────────────
    # Trades
    # ──────────────────────────────────────────────

    async def get_trades_by_broker_connection(
        self, user_id: str
    ) -> dict[str, list[CanonicalTrade]]:
        with _db_errors("fetch broker trades"):
            cursor = await self._database.db.execute(
                f"SELECT {_TRADE_COLUMNS} FROM trades "
                "WHERE user_id = ? AND connection_id IS NOT NULL "
                "ORDER BY timestamp DESC",
                (user_id,),
            )
            rows = await cursor.fetchall()

        grouped: dict[str, list[CanonicalTrade]] = {}
        for row in rows:
            trade = _row_to_trade(row)
            assert trade.connection_id is not None
            grouped.setdefault(trade.connection_id, []).append(trade)
        return grouped

    async def save_trade(self, user_id: str, trade: CanonicalTrade) -> str:
        with _db_errors("save trade"):
            await self._database.db.execute(
                f"INSERT INTO trades ({_TRADE_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                _trade_params(user_id, trade),
            )
            await self._database.db.commit()
        logger.debug("trade_saved", user_id=user_id, trade_id=trade.id, ticker=trade.ticker)
        return trade.id

    async def get_trades(self, user_id: str) -> list[CanonicalTrade]:
        with _db_errors("fetch trades"):
            cursor = await self._database.db.execute(
                f"SELECT {_TRADE_COLUMNS} FROM trades WHERE user_id = ? "
                "ORDER BY timestamp DESC",
                (user_id,),
            )
            rows = await cursor.fetchall()
        return [_row_to_trade(row) for row in rows]

    async def update_trade(self, user_id: str, trade: CanonicalTrade) -> None:
        params = _trade_params(user_id, trade)
        with _db_errors("update trade"):
            cursor = await self._database.db.execute(
                "UPDATE trades SET ticker = ?, entry_price = ?, exit_price = ?, "
                "quantity = ?, direction = ?, status = ?, timestamp = ?, "
                "realized_pl = ?, notes = ?, commission = ? "
                "WHERE id = ? AND user_id = ?",
                (*params[2:12], trade.id, user_id),
            )
            await self._database.db.commit()
        if cursor.rowcount == 0:
            raise PersistenceError(f"Trade not found: {trade.id}")
