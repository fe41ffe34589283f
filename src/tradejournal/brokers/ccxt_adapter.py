"""Broker adapter for exchanges reachable through ccxt async.

A fresh ccxt exchange instance is created per call with the connection's own
credentials and always closed afterwards. ccxt errors are mapped onto the
journal's broker error hierarchy so the orchestrator never sees ccxt types.
"""

from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import ccxt.async_support as ccxt_async
from ccxt.base.errors import AuthenticationError, BaseError, NetworkError

from tradejournal.brokers.base import BrokerAdapter
from tradejournal.brokers.credentials import missing_credentials
from tradejournal.brokers.fills import BrokerFill, FillSide, pair_fills
from tradejournal.exceptions import BrokerAuthError, BrokerError, BrokerTransportError
from tradejournal.logging import get_logger
from tradejournal.models import BrokerType, ImportedExecution

logger = get_logger(__name__)

ExchangeFactory = Callable[[dict], Any]


def _default_factory(exchange_id: str) -> ExchangeFactory:
    exchange_cls = getattr(ccxt_async, exchange_id)
    return lambda config: exchange_cls(config)


def _ticker_from_symbol(symbol: str) -> str:
    """Strip the slash and settle suffix from a ccxt symbol (BTC/USDT:USDT -> BTCUSDT)."""
    return symbol.split(":")[0].replace("/", "")


class CcxtBrokerAdapter(BrokerAdapter):
    """Fetches fill history via ccxt and pairs it into round trips.

    Args:
        broker_type: Broker type stamped on every execution.
        exchange_id: ccxt exchange id (e.g. "binance").
        symbols: Unified symbols to pull fills for. Most exchanges require a
            symbol for fetch_my_trades.
        exchange_factory: Builds an exchange from a ccxt config dict.
            Defaults to the ccxt async class named by exchange_id.
    """

    def __init__(
        self,
        broker_type: BrokerType,
        exchange_id: str,
        symbols: list[str],
        exchange_factory: ExchangeFactory | None = None,
    ) -> None:
        self._broker_type = broker_type
        self._exchange_id = exchange_id
        self._symbols = symbols
        self._factory = exchange_factory or _default_factory(exchange_id)

    def _build_exchange(self, credentials: Mapping[str, Any]) -> Any:
        config: dict = {
            "apiKey": credentials.get("api_key", ""),
            "secret": credentials.get("api_secret", ""),
            "enableRateLimit": True,
        }
        if credentials.get("base_url"):
            config["urls"] = {"api": credentials["base_url"]}
        return self._factory(config)

    async def fetch_executions(
        self, credentials: Mapping[str, Any], since: datetime | None
    ) -> list[ImportedExecution]:
        since_ms = int(since.timestamp() * 1000) if since is not None else None
        exchange = self._build_exchange(credentials)
        fills: list[BrokerFill] = []
        try:
            for symbol in self._symbols:
                raw_trades = await exchange.fetch_my_trades(symbol, since=since_ms)
                fills.extend(self._to_fill(raw) for raw in raw_trades)
        except AuthenticationError as e:
            raise BrokerAuthError(f"{self._exchange_id} rejected credentials: {e}") from e
        except NetworkError as e:
            raise BrokerTransportError(f"{self._exchange_id} unreachable: {e}") from e
        except BaseError as e:
            raise BrokerError(f"{self._exchange_id} error: {e}") from e
        finally:
            await exchange.close()

        executions = pair_fills(fills)
        logger.info(
            "ccxt_executions_fetched",
            exchange=self._exchange_id,
            fills=len(fills),
            executions=len(executions),
        )
        return executions

    async def test_connection(self, credentials: Mapping[str, Any]) -> tuple[bool, str]:
        missing = missing_credentials(self._broker_type, credentials)
        if missing:
            return False, f"Missing credentials: {', '.join(missing)}"

        exchange = self._build_exchange(credentials)
        try:
            await exchange.fetch_balance()
        except AuthenticationError as e:
            return False, f"Authentication failed: {e}"
        except BaseError as e:
            return False, str(e)
        finally:
            await exchange.close()
        return True, "Connection successful"

    def _to_fill(self, raw: dict) -> BrokerFill:
        fee = raw.get("fee") or {}
        return BrokerFill(
            broker_trade_id=f"{self._exchange_id}_{raw['id']}",
            symbol=_ticker_from_symbol(raw["symbol"]),
            side=FillSide(raw["side"]),
            quantity=Decimal(str(raw["amount"])),
            price=Decimal(str(raw["price"])),
            timestamp=datetime.fromtimestamp(raw["timestamp"] / 1000, tz=timezone.utc),
            broker_type=self._broker_type,
            commission=Decimal(str(fee.get("cost") or 0)),
            order_id=raw.get("order"),
            execution_id=str(raw["id"]),
        )
