"""Entry point for the trade journal sync service.

Wires all components together and, when run as a process, syncs the
configured user's broker connections and keeps auto-sync running until
SIGINT/SIGTERM.

Component wiring order (in _build_components):
1. JournalDatabase + SQLiteJournalStore (persistence)
2. RateLimiter (per-user request windows)
3. TradeValidator (shared by manual entry and broker import)
4. ConnectionRegistry (connection list and live statuses)
5. TradeNormalizer (execution -> canonical trade)
6. Broker adapters (ccxt-backed where available)
7. SyncOrchestrator (sync_one / sync_all / auto-sync)
8. TradeLedger (manual and bulk entry)
"""

import asyncio
import signal
from collections.abc import Callable, Mapping
from typing import Any, Self

from tradejournal.brokers.base import BrokerAdapter
from tradejournal.brokers.ccxt_adapter import CcxtBrokerAdapter
from tradejournal.config import AppSettings
from tradejournal.identity import IdentityProvider, StaticIdentity
from tradejournal.ledger.entry import TradeLedger
from tradejournal.limits.rate_limiter import RateLimiter
from tradejournal.logging import get_logger, setup_logging
from tradejournal.models import AutoSyncFailure, BrokerType
from tradejournal.orchestrator import SyncOrchestrator
from tradejournal.store.database import JournalDatabase
from tradejournal.store.sqlite_store import SQLiteJournalStore
from tradejournal.sync.normalizer import TradeNormalizer
from tradejournal.sync.registry import ConnectionRegistry
from tradejournal.validation.trade_validator import TradeValidator

logger = get_logger(__name__)


def default_adapters(settings: AppSettings) -> dict[BrokerType, BrokerAdapter]:
    """Adapters for the broker types that have a working integration."""
    return {
        BrokerType.BINANCE: CcxtBrokerAdapter(
            broker_type=BrokerType.BINANCE,
            exchange_id="binance",
            symbols=settings.broker.binance_symbols,
        ),
    }


def _build_components(
    settings: AppSettings,
    identity: IdentityProvider,
    adapters: Mapping[BrokerType, BrokerAdapter],
    on_auto_sync_error: Callable[[AutoSyncFailure], None] | None,
) -> dict[str, Any]:
    """Build the component graph. Does NOT open the database."""
    database = JournalDatabase(settings.store.db_path)
    store = SQLiteJournalStore(database)
    rate_limiter = RateLimiter(settings.rate_limit)
    validator = TradeValidator(settings.validation)
    registry = ConnectionRegistry(store)
    normalizer = TradeNormalizer(validator)

    orchestrator = SyncOrchestrator(
        identity=identity,
        registry=registry,
        store=store,
        adapters=adapters,
        normalizer=normalizer,
        settings=settings.sync,
        rate_limiter=rate_limiter,
        on_auto_sync_error=on_auto_sync_error,
    )
    ledger = TradeLedger(
        store=store,
        identity=identity,
        validator=validator,
        rate_limiter=rate_limiter,
    )

    return {
        "database": database,
        "store": store,
        "rate_limiter": rate_limiter,
        "validator": validator,
        "registry": registry,
        "normalizer": normalizer,
        "orchestrator": orchestrator,
        "ledger": ledger,
    }


class JournalApp:
    """Owns the journal components for one session.

    Usage:
        async with JournalApp(settings, StaticIdentity("user-1")) as app:
            outcomes = await app.orchestrator.sync_all()

    Args:
        settings: Application settings (defaults to environment).
        identity: Session identity provider.
        adapters: Broker adapters; defaults to default_adapters(settings).
        on_auto_sync_error: Observer for background auto-sync failures.
    """

    def __init__(
        self,
        settings: AppSettings | None = None,
        identity: IdentityProvider | None = None,
        adapters: Mapping[BrokerType, BrokerAdapter] | None = None,
        on_auto_sync_error: Callable[[AutoSyncFailure], None] | None = None,
    ) -> None:
        self.settings = settings or AppSettings()
        self.identity = identity or StaticIdentity(self.settings.journal_user_id)
        self.adapters = dict(adapters) if adapters is not None else default_adapters(self.settings)
        self.components = _build_components(
            self.settings, self.identity, self.adapters, on_auto_sync_error
        )

    @property
    def store(self) -> SQLiteJournalStore:
        return self.components["store"]

    @property
    def registry(self) -> ConnectionRegistry:
        return self.components["registry"]

    @property
    def orchestrator(self) -> SyncOrchestrator:
        return self.components["orchestrator"]

    @property
    def ledger(self) -> TradeLedger:
        return self.components["ledger"]

    @property
    def rate_limiter(self) -> RateLimiter:
        return self.components["rate_limiter"]

    async def start(self) -> None:
        """Open the database, start the limiter sweep and load connections."""
        await self.components["database"].connect()
        await self.rate_limiter.start()
        await self.registry.load(self.identity.current_user_id())
        if self.settings.sync.auto_sync_on_start:
            self.orchestrator.enable_auto_sync()
        logger.info(
            "journal_app_started",
            connections=len(self.registry.connections),
            auto_sync=self.orchestrator.auto_sync_enabled,
        )

    async def stop(self) -> None:
        """Stop auto-sync (waiting for a running tick), then release resources."""
        await self.orchestrator.close()
        await self.rate_limiter.stop()
        for adapter in self.adapters.values():
            await adapter.close()
        await self.components["database"].close()
        logger.info("journal_app_stopped")

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.stop()


async def run() -> None:
    """Sync the configured user once, then keep auto-sync going until signalled."""
    settings = AppSettings()
    setup_logging(settings.log_level)

    if not settings.journal_user_id:
        logger.error("no_user_configured", hint="set JOURNAL_USER_ID")
        return

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    async with JournalApp(settings) as app:
        outcomes = await app.orchestrator.sync_all()
        for outcome in outcomes:
            if outcome.result is not None:
                logger.info(
                    "connection_synced",
                    connection_id=outcome.connection_id,
                    imported=outcome.result.trades_imported,
                    skipped=outcome.result.trades_skipped,
                )
            else:
                logger.warning(
                    "connection_sync_failed",
                    connection_id=outcome.connection_id,
                    error=outcome.error,
                )

        if not app.orchestrator.auto_sync_enabled:
            return
        await stop_event.wait()
        logger.info("graceful_shutdown_signal")


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
