"""Tests for CcxtBrokerAdapter using a mocked ccxt exchange."""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from ccxt.base.errors import AuthenticationError, ExchangeError, NetworkError

from tradejournal.brokers.ccxt_adapter import CcxtBrokerAdapter
from tradejournal.brokers.credentials import missing_credentials
from tradejournal.exceptions import BrokerAuthError, BrokerError, BrokerTransportError
from tradejournal.models import BrokerType, Direction

CREDENTIALS = {"api_key": "key", "api_secret": "secret"}

MOCK_TRADES = [
    {
        "id": "101",
        "symbol": "BTC/USDT",
        "side": "buy",
        "amount": 2.0,
        "price": 30000.0,
        "timestamp": 1714572000000,
        "order": "o-1",
        "fee": {"cost": 0.5, "currency": "USDT"},
    },
    {
        "id": "102",
        "symbol": "BTC/USDT",
        "side": "sell",
        "amount": 2.0,
        "price": 31000.0,
        "timestamp": 1714575600000,
        "order": "o-2",
        "fee": {"cost": 0.5, "currency": "USDT"},
    },
]


@pytest.fixture
def mock_exchange() -> AsyncMock:
    exchange = AsyncMock()
    exchange.fetch_my_trades = AsyncMock(return_value=MOCK_TRADES)
    exchange.fetch_balance = AsyncMock(return_value={"total": {}})
    exchange.close = AsyncMock()
    return exchange


@pytest.fixture
def factory(mock_exchange: AsyncMock) -> MagicMock:
    return MagicMock(return_value=mock_exchange)


@pytest.fixture
def adapter(factory: MagicMock) -> CcxtBrokerAdapter:
    return CcxtBrokerAdapter(
        broker_type=BrokerType.BINANCE,
        exchange_id="binance",
        symbols=["BTC/USDT"],
        exchange_factory=factory,
    )


class TestFetchExecutions:
    @pytest.mark.asyncio
    async def test_pairs_fills_into_round_trip(
        self, adapter: CcxtBrokerAdapter, mock_exchange: AsyncMock
    ) -> None:
        executions = await adapter.fetch_executions(CREDENTIALS, None)

        assert len(executions) == 1
        ex = executions[0]
        assert ex.broker_trade_id == "binance_102"
        assert ex.ticker == "BTCUSDT"
        assert ex.direction is Direction.LONG
        assert ex.entry_price == Decimal("30000.0")
        assert ex.exit_price == Decimal("31000.0")
        assert ex.broker_type is BrokerType.BINANCE
        mock_exchange.fetch_my_trades.assert_awaited_once_with("BTC/USDT", since=None)
        mock_exchange.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_since_passed_in_milliseconds(
        self, adapter: CcxtBrokerAdapter, mock_exchange: AsyncMock
    ) -> None:
        since = datetime(2024, 5, 1, tzinfo=timezone.utc)
        await adapter.fetch_executions(CREDENTIALS, since)
        mock_exchange.fetch_my_trades.assert_awaited_once_with(
            "BTC/USDT", since=int(since.timestamp() * 1000)
        )

    @pytest.mark.asyncio
    async def test_builds_exchange_from_credentials(
        self, adapter: CcxtBrokerAdapter, factory: MagicMock
    ) -> None:
        await adapter.fetch_executions(
            {**CREDENTIALS, "base_url": "https://testnet.example"}, None
        )
        config = factory.call_args.args[0]
        assert config["apiKey"] == "key"
        assert config["secret"] == "secret"
        assert config["urls"] == {"api": "https://testnet.example"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("ccxt_error", "expected"),
        [
            (AuthenticationError("bad key"), BrokerAuthError),
            (NetworkError("timeout"), BrokerTransportError),
            (ExchangeError("boom"), BrokerError),
        ],
    )
    async def test_ccxt_errors_are_mapped(
        self,
        adapter: CcxtBrokerAdapter,
        mock_exchange: AsyncMock,
        ccxt_error: Exception,
        expected: type,
    ) -> None:
        mock_exchange.fetch_my_trades.side_effect = ccxt_error

        with pytest.raises(expected):
            await adapter.fetch_executions(CREDENTIALS, None)
        mock_exchange.close.assert_awaited_once()


class TestTestConnection:
    @pytest.mark.asyncio
    async def test_success(self, adapter: CcxtBrokerAdapter) -> None:
        ok, message = await adapter.test_connection(CREDENTIALS)
        assert ok is True
        assert message == "Connection successful"

    @pytest.mark.asyncio
    async def test_missing_credentials_short_circuit(
        self, adapter: CcxtBrokerAdapter, factory: MagicMock
    ) -> None:
        ok, message = await adapter.test_connection({"api_key": "key"})
        assert ok is False
        assert "api_secret" in message
        factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_auth_failure_reported_not_raised(
        self, adapter: CcxtBrokerAdapter, mock_exchange: AsyncMock
    ) -> None:
        mock_exchange.fetch_balance.side_effect = AuthenticationError("invalid")
        ok, message = await adapter.test_connection(CREDENTIALS)
        assert ok is False
        assert message.startswith("Authentication failed")


class TestMissingCredentials:
    def test_alpaca_requires_base_url(self) -> None:
        assert missing_credentials(
            BrokerType.ALPACA, {"api_key": "k", "api_secret": "s"}
        ) == ["base_url"]

    def test_blank_values_count_as_missing(self) -> None:
        assert missing_credentials(BrokerType.BINANCE, {"api_key": " ", "api_secret": "s"}) == [
            "api_key"
        ]

    def test_complete(self) -> None:
        assert missing_credentials(BrokerType.INTERACTIVE_BROKERS, {"client_id": "7"}) == []
