"""Factories and an in-memory store for tests."""

from collections.abc import Mapping
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from tradejournal.exceptions import PersistenceError
from tradejournal.models import (
    BrokerConnection,
    BrokerType,
    CanonicalTrade,
    ConnectionDraft,
    Direction,
    ImportedExecution,
)
from tradejournal.store.base import UPDATABLE_CONNECTION_FIELDS, JournalStore


def make_execution(
    broker_trade_id: str = "alpaca_1",
    ticker: str = "AAPL",
    entry_price: str = "100",
    exit_price: str = "110",
    quantity: str = "10",
    direction: Direction = Direction.LONG,
    broker_type: BrokerType = BrokerType.ALPACA,
    timestamp: datetime = datetime(2024, 5, 1, 15, 30, tzinfo=timezone.utc),
    **overrides,
) -> ImportedExecution:
    """Build an ImportedExecution with sensible defaults."""
    return ImportedExecution(
        broker_trade_id=broker_trade_id,
        ticker=ticker,
        entry_price=Decimal(entry_price),
        exit_price=Decimal(exit_price),
        quantity=Decimal(quantity),
        direction=direction,
        timestamp=timestamp,
        broker_type=broker_type,
        **overrides,
    )


def make_connection(
    connection_id: str = "conn_a",
    user_id: str = "user-1",
    broker_type: BrokerType = BrokerType.ALPACA,
    is_active: bool = True,
    last_sync: datetime | None = None,
) -> BrokerConnection:
    return BrokerConnection(
        id=connection_id,
        user_id=user_id,
        broker_type=broker_type,
        display_name=f"{broker_type.value} account",
        credentials={"api_key": "k", "api_secret": "s", "base_url": "https://paper"},
        is_active=is_active,
        last_sync=last_sync,
    )


class InMemoryJournalStore(JournalStore):
    """JournalStore held in dicts. Set fail_save_for to make chosen saves fail."""

    def __init__(self) -> None:
        self.connections: dict[str, BrokerConnection] = {}
        self.trades: dict[str, tuple[str, CanonicalTrade]] = {}
        self.fail_save_for: set[str] = set()
        self._next_id = 0

    def seed_connection(self, connection: BrokerConnection) -> BrokerConnection:
        self.connections[connection.id] = connection
        return connection

    async def get_connections(self, user_id: str) -> list[BrokerConnection]:
        return [replace(c) for c in self.connections.values() if c.user_id == user_id]

    async def add_connection(self, user_id: str, draft: ConnectionDraft) -> BrokerConnection:
        self._next_id += 1
        connection = BrokerConnection(
            id=f"conn_{self._next_id}",
            user_id=user_id,
            broker_type=draft.broker_type,
            display_name=draft.display_name,
            credentials=dict(draft.credentials),
            is_active=draft.is_active,
        )
        self.connections[connection.id] = connection
        return connection

    async def update_connection(self, connection_id: str, updates: Mapping[str, Any]) -> None:
        unknown = set(updates) - UPDATABLE_CONNECTION_FIELDS
        if unknown:
            raise ValueError(f"Cannot update connection fields: {sorted(unknown)}")
        connection = self.connections[connection_id]
        self.connections[connection_id] = replace(connection, **updates)

    async def delete_connection(self, connection_id: str) -> None:
        self.connections.pop(connection_id, None)
        self.trades = {
            tid: (uid, t) for tid, (uid, t) in self.trades.items() if t.connection_id != connection_id
        }

    async def get_trades_by_broker_connection(
        self, user_id: str
    ) -> dict[str, list[CanonicalTrade]]:
        grouped: dict[str, list[CanonicalTrade]] = {}
        for uid, trade in self.trades.values():
            if uid == user_id and trade.connection_id is not None:
                grouped.setdefault(trade.connection_id, []).append(trade)
        return grouped

    async def save_trade(self, user_id: str, trade: CanonicalTrade) -> str:
        if trade.broker_trade_id in self.fail_save_for:
            raise PersistenceError(f"Failed to save trade: {trade.broker_trade_id}")
        self.trades[trade.id] = (user_id, trade)
        return trade.id

    async def get_trades(self, user_id: str) -> list[CanonicalTrade]:
        return [t for uid, t in self.trades.values() if uid == user_id]

    async def update_trade(self, user_id: str, trade: CanonicalTrade) -> None:
        if trade.id not in self.trades:
            raise PersistenceError(f"Trade not found: {trade.id}")
        self.trades[trade.id] = (user_id, trade)
