"""Manual and bulk trade entry into the user's ledger.

Every entry goes through the same TradeValidator as broker imports, and
realized P/L is always recomputed. Validation failures and rate-limit
refusals come back as data on the outcome; persistence failures on a single
manual entry propagate as PersistenceError.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime

from tradejournal.exceptions import PersistenceError
from tradejournal.identity import IdentityProvider, require_user
from tradejournal.limits.rate_limiter import RateLimiter
from tradejournal.logging import get_logger
from tradejournal.models import CanonicalTrade, TradeCandidate, generate_trade_id, utcnow
from tradejournal.store.base import JournalStore
from tradejournal.validation.trade_validator import TradeValidator

logger = get_logger(__name__)

ADD_TRADE_ACTION = "add_trade"
BULK_IMPORT_ACTION = "bulk_import"
RATE_LIMITED_MESSAGE = "Too many requests, please wait before trying again"


@dataclass
class EntryOutcome:
    """Result of recording or amending one trade."""

    success: bool
    trade: CanonicalTrade | None = None
    errors: list[str] = field(default_factory=list)


@dataclass
class BulkRowError:
    """Why one row of a bulk entry was not recorded. index is 0-based."""

    index: int
    errors: list[str]


@dataclass
class BulkEntryResult:
    """Result of a bulk entry. Rows are recorded or rejected independently."""

    trades: list[CanonicalTrade] = field(default_factory=list)
    row_errors: list[BulkRowError] = field(default_factory=list)
    rate_limited: bool = False

    @property
    def imported(self) -> int:
        return len(self.trades)

    @property
    def failed(self) -> int:
        return len(self.row_errors)


class TradeLedger:
    """Entry point for trades the user types in or uploads.

    Args:
        store: Journal persistence.
        identity: Supplies the session's user id.
        validator: Field validator shared with the broker import path.
        rate_limiter: Optional per-user limiter.
        clock: Returns the current UTC time; stamps entries without a timestamp.
    """

    def __init__(
        self,
        store: JournalStore,
        identity: IdentityProvider,
        validator: TradeValidator,
        rate_limiter: RateLimiter | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._identity = identity
        self._validator = validator
        self._rate_limiter = rate_limiter
        self._clock = clock

    def _allowed(self, user_id: str, action: str) -> bool:
        if self._rate_limiter is None:
            return True
        return self._rate_limiter.check_rate_limit(user_id, action)

    async def record(self, candidate: TradeCandidate) -> EntryOutcome:
        """Validate and store one manually entered trade.

        Raises:
            UnauthenticatedError: No user in the session.
            PersistenceError: The store rejected the write.
        """
        user_id = require_user(self._identity)
        if not self._allowed(user_id, ADD_TRADE_ACTION):
            return EntryOutcome(success=False, errors=[RATE_LIMITED_MESSAGE])

        now = self._clock()
        result = self._validator.validate_trade(candidate, now=now)
        if not result.is_valid:
            logger.info("trade_entry_rejected", user_id=user_id, errors=result.errors)
            return EntryOutcome(success=False, errors=result.errors)

        trade = result.build_trade(trade_id=generate_trade_id(), default_timestamp=now)
        await self._store.save_trade(user_id, trade)
        logger.info("trade_recorded", user_id=user_id, trade_id=trade.id, ticker=trade.ticker)
        return EntryOutcome(success=True, trade=trade)

    async def record_bulk(self, candidates: Iterable[TradeCandidate]) -> BulkEntryResult:
        """Validate and store a batch of trades, one rate-limit check for the batch.

        A row that fails validation or cannot be saved is reported in
        row_errors; the remaining rows are still recorded.
        """
        user_id = require_user(self._identity)
        if not self._allowed(user_id, BULK_IMPORT_ACTION):
            return BulkEntryResult(rate_limited=True)

        now = self._clock()
        outcome = BulkEntryResult()
        for index, candidate in enumerate(candidates):
            result = self._validator.validate_trade(candidate, now=now)
            if not result.is_valid:
                outcome.row_errors.append(BulkRowError(index=index, errors=result.errors))
                continue

            trade = result.build_trade(trade_id=generate_trade_id(), default_timestamp=now)
            try:
                await self._store.save_trade(user_id, trade)
            except PersistenceError as e:
                outcome.row_errors.append(BulkRowError(index=index, errors=[str(e)]))
                continue
            outcome.trades.append(trade)

        logger.info(
            "bulk_entry_completed",
            user_id=user_id,
            imported=outcome.imported,
            failed=outcome.failed,
        )
        return outcome

    async def amend(self, trade_id: str, candidate: TradeCandidate) -> EntryOutcome:
        """Re-validate an edited trade and store it under the same id.

        Broker provenance and commission are kept from the stored trade. A
        candidate without a timestamp keeps the stored one.
        """
        user_id = require_user(self._identity)
        if not self._allowed(user_id, ADD_TRADE_ACTION):
            return EntryOutcome(success=False, errors=[RATE_LIMITED_MESSAGE])

        existing = next(
            (t for t in await self._store.get_trades(user_id) if t.id == trade_id), None
        )
        if existing is None:
            return EntryOutcome(success=False, errors=[f"Trade not found: {trade_id}"])

        result = self._validator.validate_trade(candidate, now=self._clock())
        if not result.is_valid:
            return EntryOutcome(success=False, errors=result.errors)

        trade = result.build_trade(
            trade_id=existing.id,
            default_timestamp=existing.timestamp,
            commission=existing.commission,
            broker_type=existing.broker_type,
            connection_id=existing.connection_id,
            broker_trade_id=existing.broker_trade_id,
        )
        await self._store.update_trade(user_id, trade)
        logger.info("trade_amended", user_id=user_id, trade_id=trade.id)
        return EntryOutcome(success=True, trade=trade)
