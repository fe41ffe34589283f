"""Tests for JournalDatabase and SQLiteJournalStore against a temp database."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
import pytest_asyncio

from tradejournal.exceptions import PersistenceError
from tradejournal.models import (
    BrokerType,
    CanonicalTrade,
    ClosedPosition,
    ConnectionDraft,
    Direction,
    OpenPosition,
    TradeStatus,
)
from tradejournal.store.database import JournalDatabase
from tradejournal.store.sqlite_store import SQLiteJournalStore

USER = "user-1"


@pytest_asyncio.fixture
async def database(tmp_path):
    async with JournalDatabase(str(tmp_path / "journal.db")) as db:
        yield db


@pytest.fixture
def store(database: JournalDatabase) -> SQLiteJournalStore:
    return SQLiteJournalStore(database)


def _make_trade(
    trade_id: str = "trade_1",
    connection_id: str | None = None,
    broker_trade_id: str | None = None,
    **overrides,
) -> CanonicalTrade:
    fields = dict(
        id=trade_id,
        ticker="AAPL",
        entry_price=Decimal("150.25"),
        quantity=10,
        direction=Direction.LONG,
        position=ClosedPosition(exit_price=Decimal("155.75")),
        timestamp=datetime(2024, 5, 1, 14, 30, tzinfo=timezone.utc),
        realized_pl=Decimal("55.00"),
        notes="Breakout",
        broker_type=BrokerType.ALPACA if connection_id else None,
        connection_id=connection_id,
        broker_trade_id=broker_trade_id,
    )
    fields.update(overrides)
    return CanonicalTrade(**fields)


def _draft(broker_type: BrokerType = BrokerType.ALPACA) -> ConnectionDraft:
    return ConnectionDraft(
        broker_type=broker_type,
        display_name="Paper account",
        credentials={"api_key": "k", "api_secret": "s", "base_url": "https://paper"},
    )


class TestDatabase:
    @pytest.mark.asyncio
    async def test_db_before_connect_raises(self, tmp_path) -> None:
        database = JournalDatabase(str(tmp_path / "x.db"))
        with pytest.raises(RuntimeError):
            _ = database.db

    @pytest.mark.asyncio
    async def test_schema_version_recorded(self, database: JournalDatabase) -> None:
        cursor = await database.db.execute("SELECT version FROM schema_version")
        assert await cursor.fetchone() == (1,)

    @pytest.mark.asyncio
    async def test_creates_parent_directory(self, tmp_path) -> None:
        path = tmp_path / "nested" / "dir" / "journal.db"
        async with JournalDatabase(str(path)):
            pass
        assert path.exists()


class TestConnections:
    @pytest.mark.asyncio
    async def test_add_and_get(self, store: SQLiteJournalStore) -> None:
        created = await store.add_connection(USER, _draft())

        assert created.id.startswith("conn_")
        connections = await store.get_connections(USER)
        assert len(connections) == 1
        loaded = connections[0]
        assert loaded.id == created.id
        assert loaded.broker_type is BrokerType.ALPACA
        assert loaded.credentials["api_key"] == "k"
        assert loaded.is_active is True
        assert loaded.last_sync is None

    @pytest.mark.asyncio
    async def test_connections_scoped_to_user(self, store: SQLiteJournalStore) -> None:
        await store.add_connection(USER, _draft())
        assert await store.get_connections("someone-else") == []

    @pytest.mark.asyncio
    async def test_update_last_sync_and_active(self, store: SQLiteJournalStore) -> None:
        created = await store.add_connection(USER, _draft())
        synced_at = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

        await store.update_connection(created.id, {"last_sync": synced_at, "is_active": False})

        loaded = (await store.get_connections(USER))[0]
        assert loaded.last_sync == synced_at
        assert loaded.is_active is False

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_fields(self, store: SQLiteJournalStore) -> None:
        created = await store.add_connection(USER, _draft())
        with pytest.raises(ValueError):
            await store.update_connection(created.id, {"user_id": "hijack"})

    @pytest.mark.asyncio
    async def test_delete_removes_imported_trades(self, store: SQLiteJournalStore) -> None:
        created = await store.add_connection(USER, _draft())
        await store.save_trade(USER, _make_trade("t1", created.id, "alpaca_1"))
        await store.save_trade(USER, _make_trade("t2"))

        await store.delete_connection(created.id)

        assert await store.get_connections(USER) == []
        remaining = await store.get_trades(USER)
        assert [t.id for t in remaining] == ["t2"]


class TestTrades:
    @pytest.mark.asyncio
    async def test_round_trip_preserves_decimals(self, store: SQLiteJournalStore) -> None:
        trade = _make_trade()
        await store.save_trade(USER, trade)

        [loaded] = await store.get_trades(USER)

        assert loaded == trade
        assert loaded.entry_price == Decimal("150.25")
        assert loaded.status is TradeStatus.CLOSED

    @pytest.mark.asyncio
    async def test_open_position_round_trip(self, store: SQLiteJournalStore) -> None:
        trade = _make_trade(position=OpenPosition(), realized_pl=Decimal("0"))
        await store.save_trade(USER, trade)
        [loaded] = await store.get_trades(USER)
        assert isinstance(loaded.position, OpenPosition)

    @pytest.mark.asyncio
    async def test_grouped_by_connection(self, store: SQLiteJournalStore) -> None:
        await store.save_trade(USER, _make_trade("t1", "conn_a", "a_1"))
        await store.save_trade(USER, _make_trade("t2", "conn_a", "a_2"))
        await store.save_trade(USER, _make_trade("t3", "conn_b", "b_1"))
        await store.save_trade(USER, _make_trade("t4"))

        grouped = await store.get_trades_by_broker_connection(USER)

        assert set(grouped) == {"conn_a", "conn_b"}
        assert len(grouped["conn_a"]) == 2
        assert len(grouped["conn_b"]) == 1

    @pytest.mark.asyncio
    async def test_duplicate_broker_trade_id_rejected(self, store: SQLiteJournalStore) -> None:
        await store.save_trade(USER, _make_trade("t1", "conn_a", "a_1"))
        with pytest.raises(PersistenceError):
            await store.save_trade(USER, _make_trade("t2", "conn_a", "a_1"))

    @pytest.mark.asyncio
    async def test_update_trade(self, store: SQLiteJournalStore) -> None:
        await store.save_trade(USER, _make_trade())
        edited = _make_trade(notes="Edited", quantity=5, realized_pl=Decimal("27.50"))

        await store.update_trade(USER, edited)

        [loaded] = await store.get_trades(USER)
        assert loaded.notes == "Edited"
        assert loaded.quantity == 5

    @pytest.mark.asyncio
    async def test_update_missing_trade_raises(self, store: SQLiteJournalStore) -> None:
        with pytest.raises(PersistenceError):
            await store.update_trade(USER, _make_trade("nope"))
