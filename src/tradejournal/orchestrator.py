"""Broker sync orchestrator -- drives per-connection and all-connection syncs.

Per connection the lifecycle is Idle -> Syncing -> (Success | Error) -> Idle:
  1. LOOKUP: connection must be in the loaded registry (else fail fast)
  2. MARK: status.is_loading = True, last_error cleared
  3. FETCH: broker adapter returns executions since the last sync
  4. IMPORT: skip already-stored ids, normalize, save (per-trade isolation)
  5. STAMP: persist the new last_sync on the connection
  6. RELOAD: full registry load so every status and trade count is fresh
On failure only that connection's status records the error, and the error is
re-raised to the caller of sync_one(). sync_all() runs the active connections
one at a time in registry order and collects each outcome independently.

A second sync_one() for a connection that is already syncing either joins the
in-flight run or is rejected, per SyncSettings.concurrent_sync_policy.

Auto-sync runs sync_all() on a timer. Tick failures are logged and passed to
the optional on_auto_sync_error hook, never raised. Disabling stops future
ticks but lets a running tick finish; close() waits for it.
"""

import asyncio
from collections.abc import Callable, Mapping
from dataclasses import replace
from datetime import datetime, timedelta

import structlog

from tradejournal.brokers.base import BrokerAdapter
from tradejournal.config import SyncSettings
from tradejournal.exceptions import (
    ConnectionNotFoundError,
    PersistenceError,
    SyncInProgressError,
    UnsupportedBrokerError,
)
from tradejournal.identity import IdentityProvider, require_user
from tradejournal.limits.rate_limiter import RateLimiter
from tradejournal.logging import get_logger
from tradejournal.models import (
    AutoSyncFailure,
    BrokerConnection,
    BrokerType,
    SyncOutcome,
    SyncResult,
    utcnow,
)
from tradejournal.store.base import JournalStore
from tradejournal.sync.normalizer import TradeNormalizer
from tradejournal.sync.registry import ConnectionRegistry

logger = get_logger(__name__)

SYNC_RATE_LIMIT_ACTION = "broker_sync"


class SyncOrchestrator:
    """Synchronizes a user's broker connections into the journal.

    Args:
        identity: Supplies the session's user id.
        registry: Connection list and live statuses.
        store: Journal persistence.
        adapters: Broker adapter per broker type.
        normalizer: Converts executions into canonical trades.
        settings: Auto-sync interval and concurrency policy.
        rate_limiter: Optional per-user limiter for sync requests.
        on_auto_sync_error: Optional observer for background tick failures.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        identity: IdentityProvider,
        registry: ConnectionRegistry,
        store: JournalStore,
        adapters: Mapping[BrokerType, BrokerAdapter],
        normalizer: TradeNormalizer,
        settings: SyncSettings | None = None,
        rate_limiter: RateLimiter | None = None,
        on_auto_sync_error: Callable[[AutoSyncFailure], None] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._identity = identity
        self._registry = registry
        self._store = store
        self._adapters = dict(adapters)
        self._normalizer = normalizer
        self._settings = settings or SyncSettings()
        self._rate_limiter = rate_limiter
        self._on_auto_sync_error = on_auto_sync_error
        self._clock = clock
        self._in_flight: dict[str, asyncio.Task[SyncResult]] = {}
        self._auto_sync_task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._auto_sync_interval: float | None = None  # seconds
        self._ticking: set[asyncio.Task] = set()  # type: ignore[type-arg]
        self._draining: set[asyncio.Task] = set()  # type: ignore[type-arg]

    @property
    def auto_sync_enabled(self) -> bool:
        return self._auto_sync_task is not None

    def is_syncing(self, connection_id: str) -> bool:
        return connection_id in self._in_flight

    # ──────────────────────────────────────────────
    # Sync operations
    # ──────────────────────────────────────────────

    async def sync_one(self, connection_id: str) -> SyncResult:
        """Sync a single connection.

        Returns:
            The SyncResult. A rate-limit refusal is returned as a failed
            result without touching any status.

        Raises:
            UnauthenticatedError: No user in the session.
            ConnectionNotFoundError: The id is not in the loaded registry.
            SyncInProgressError: Already syncing and the policy is "reject".
            BrokerError / PersistenceError: The sync failed; the connection's
                status carries the message as last_error.
        """
        user_id = require_user(self._identity)
        connection = self._registry.get(connection_id)
        if connection is None:
            raise ConnectionNotFoundError(connection_id)

        in_flight = self._in_flight.get(connection_id)
        if in_flight is not None:
            if self._settings.concurrent_sync_policy == "reject":
                raise SyncInProgressError(connection_id)
            logger.info("sync_coalesced", connection_id=connection_id)
            return await asyncio.shield(in_flight)

        if self._rate_limiter is not None and not self._rate_limiter.check_rate_limit(
            user_id,
            SYNC_RATE_LIMIT_ACTION,
            max_requests=self._settings.sync_rate_limit_requests,
        ):
            return SyncResult(
                success=False,
                trades_imported=0,
                trades_skipped=0,
                errors=["Rate limit exceeded for broker sync, try again shortly"],
                last_sync_time=self._clock(),
            )

        task = asyncio.create_task(self._run_sync(user_id, connection))
        self._in_flight[connection_id] = task
        task.add_done_callback(lambda t: self._release(connection_id, t))
        return await task

    async def sync_all(self) -> list[SyncOutcome]:
        """Sync every active connection sequentially, isolating failures.

        Returns:
            One SyncOutcome per active connection, in registry order.
        """
        require_user(self._identity)
        active = [c for c in self._registry.connections if c.is_active]
        outcomes: list[SyncOutcome] = []

        for connection in active:
            try:
                result = await self.sync_one(connection.id)
            except Exception as e:
                outcomes.append(SyncOutcome(connection_id=connection.id, result=None, error=str(e)))
            else:
                outcomes.append(SyncOutcome(connection_id=connection.id, result=result, error=None))

        logger.info(
            "sync_all_completed",
            connections=len(active),
            failed=sum(1 for o in outcomes if o.error is not None),
        )
        return outcomes

    def _release(self, connection_id: str, task: asyncio.Task) -> None:  # type: ignore[type-arg]
        if self._in_flight.get(connection_id) is task:
            del self._in_flight[connection_id]

    async def _run_sync(self, user_id: str, connection: BrokerConnection) -> SyncResult:
        connection_id = connection.id
        with structlog.contextvars.bound_contextvars(
            user_id=user_id, connection_id=connection_id
        ):
            self._registry.mark_syncing(connection_id)
            logger.info("sync_started", broker_type=connection.broker_type.value)
            try:
                result = await self._import_executions(user_id, connection)
                await self._store.update_connection(
                    connection_id, {"last_sync": result.last_sync_time}
                )
                await self._registry.load(user_id)
            except asyncio.CancelledError:
                self._registry.mark_failed(connection_id, "Sync cancelled")
                raise
            except Exception as e:
                self._registry.mark_failed(connection_id, str(e))
                logger.warning("sync_failed", error=str(e), error_type=type(e).__name__)
                raise

            logger.info(
                "sync_completed",
                imported=result.trades_imported,
                skipped=result.trades_skipped,
                errors=len(result.errors),
            )
            return result

    async def _import_executions(
        self, user_id: str, connection: BrokerConnection
    ) -> SyncResult:
        adapter = self._adapters.get(connection.broker_type)
        if adapter is None:
            raise UnsupportedBrokerError(
                f"No adapter registered for {connection.broker_type.value}"
            )

        sync_time = self._clock()
        executions = await adapter.fetch_executions(connection.credentials, connection.last_sync)

        grouped = await self._store.get_trades_by_broker_connection(user_id)
        seen = {t.broker_trade_id for t in grouped.get(connection.id, [])}

        imported = 0
        skipped = 0
        errors: list[str] = []
        for execution in executions:
            execution = replace(execution, connection_id=connection.id)
            if execution.broker_trade_id in seen:
                skipped += 1
                continue

            trade, _rejections = self._normalizer.normalize(execution, now=sync_time)
            if trade is None:
                skipped += 1
                continue

            try:
                await self._store.save_trade(user_id, trade)
            except PersistenceError as e:
                errors.append(f"Failed to import trade {execution.broker_trade_id}: {e}")
                continue
            seen.add(execution.broker_trade_id)
            imported += 1

        next_sync_time = None
        if self._auto_sync_interval is not None:
            next_sync_time = sync_time + timedelta(seconds=self._auto_sync_interval)

        return SyncResult(
            success=not errors,
            trades_imported=imported,
            trades_skipped=skipped,
            errors=errors,
            last_sync_time=sync_time,
            next_sync_time=next_sync_time,
        )

    # ──────────────────────────────────────────────
    # Auto-sync
    # ──────────────────────────────────────────────

    def enable_auto_sync(self, interval_minutes: float | None = None) -> None:
        """Start (or restart) the recurring sync_all() timer.

        Must be called from within a running event loop.
        """
        minutes = (
            interval_minutes
            if interval_minutes is not None
            else self._settings.auto_sync_interval_minutes
        )
        if minutes <= 0:
            raise ValueError(f"Auto-sync interval must be positive, got {minutes}")

        self.disable_auto_sync()
        self._auto_sync_interval = minutes * 60
        self._auto_sync_task = asyncio.create_task(
            self._auto_sync_loop(self._auto_sync_interval)
        )
        logger.info("auto_sync_enabled", interval_minutes=minutes)

    def disable_auto_sync(self) -> None:
        """Stop future ticks. A tick already running is allowed to finish."""
        task = self._auto_sync_task
        if task is None:
            return
        self._auto_sync_task = None
        self._auto_sync_interval = None
        if task not in self._ticking:
            task.cancel()
        self._draining.add(task)
        task.add_done_callback(self._draining.discard)
        logger.info("auto_sync_disabled")

    async def close(self) -> None:
        """Cancel the timer and wait for any running tick to finish."""
        self.disable_auto_sync()
        pending = list(self._draining)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("sync_orchestrator_closed")

    async def __aenter__(self) -> "SyncOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()

    async def _auto_sync_loop(self, interval: float) -> None:
        current = asyncio.current_task()
        while self._auto_sync_task is current:
            await asyncio.sleep(interval)
            if self._auto_sync_task is not current:
                break
            assert current is not None
            self._ticking.add(current)
            try:
                await self._auto_sync_tick()
            finally:
                self._ticking.discard(current)

    async def _auto_sync_tick(self) -> None:
        if not self._identity.current_user_id():
            logger.debug("auto_sync_skipped_signed_out")
            return

        logger.info("auto_sync_tick")
        try:
            outcomes = await self.sync_all()
        except Exception as e:
            logger.warning("auto_sync_tick_failed", error=str(e), exc_info=True)
            self._report(AutoSyncFailure(error=str(e)))
            return

        for outcome in outcomes:
            if outcome.error is not None:
                logger.warning(
                    "auto_sync_connection_failed",
                    connection_id=outcome.connection_id,
                    error=outcome.error,
                )
                self._report(
                    AutoSyncFailure(error=outcome.error, connection_id=outcome.connection_id)
                )

    def _report(self, failure: AutoSyncFailure) -> None:
        if self._on_auto_sync_error is None:
            return
        try:
            self._on_auto_sync_error(failure)
        except Exception:
            logger.error("auto_sync_observer_failed", exc_info=True)
