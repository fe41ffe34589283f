"""Shared data models for the trade journal core.

All monetary values use Decimal. Timestamps are timezone-aware UTC datetimes.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar
from uuid import uuid4


class Direction(str, Enum):
    """Trade direction."""

    LONG = "long"
    SHORT = "short"


class TradeStatus(str, Enum):
    """Whether a position has been exited."""

    OPEN = "open"
    CLOSED = "closed"


class BrokerType(str, Enum):
    """Brokerages a connection can point at."""

    ALPACA = "alpaca"
    INTERACTIVE_BROKERS = "interactive_brokers"
    BINANCE = "binance"
    MT4 = "mt4"
    MT5 = "mt5"
    TD_AMERITRADE = "td_ameritrade"
    SCHWAB = "schwab"
    WEBULL = "webull"
    ROBINHOOD = "robinhood"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_trade_id() -> str:
    """Return a new unique ledger id for a trade."""
    return f"trade_{uuid4().hex}"


@dataclass
class TradeCandidate:
    """Untrusted trade input from a form, a bulk file row or a broker import.

    Nothing is guaranteed: any field may be missing or hold the wrong type.
    """

    ticker: Any = None
    entry_price: Any = None
    exit_price: Any = None
    quantity: Any = None
    direction: Any = None
    status: Any = None
    timestamp: Any = None
    notes: Any = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TradeCandidate":
        """Build a candidate from a loose mapping (e.g. a bulk import row).

        Accepts both snake_case and the camelCase keys used by the web client.
        """
        def pick(*keys: str) -> Any:
            for key in keys:
                if key in data:
                    return data[key]
            return None

        return cls(
            ticker=pick("ticker"),
            entry_price=pick("entry_price", "entryPrice"),
            exit_price=pick("exit_price", "exitPrice"),
            quantity=pick("quantity"),
            direction=pick("direction"),
            status=pick("status"),
            timestamp=pick("timestamp"),
            notes=pick("notes"),
        )


@dataclass(frozen=True)
class OpenPosition:
    """Position still held. exit_price is 0 unless the caller tracks a mark."""

    exit_price: Decimal = Decimal("0")
    status: ClassVar[TradeStatus] = TradeStatus.OPEN


@dataclass(frozen=True)
class ClosedPosition:
    """Position exited at a strictly positive price."""

    exit_price: Decimal
    status: ClassVar[TradeStatus] = TradeStatus.CLOSED


PositionState = OpenPosition | ClosedPosition


@dataclass(frozen=True)
class CanonicalTrade:
    """A validated trade as stored in the user's ledger.

    Only built from a passing ValidationResult; edits go back through the
    validator. Provenance fields are None for manually entered trades.
    """

    id: str
    ticker: str
    entry_price: Decimal
    quantity: int
    direction: Direction
    position: PositionState
    timestamp: datetime
    realized_pl: Decimal
    notes: str | None = None
    commission: Decimal = Decimal("0")
    broker_type: BrokerType | None = None
    connection_id: str | None = None
    broker_trade_id: str | None = None

    @property
    def status(self) -> TradeStatus:
        return self.position.status

    @property
    def exit_price(self) -> Decimal:
        return self.position.exit_price

    def to_candidate(self) -> TradeCandidate:
        """Return the trade's fields as a candidate for re-validation."""
        return TradeCandidate(
            ticker=self.ticker,
            entry_price=self.entry_price,
            exit_price=self.exit_price,
            quantity=self.quantity,
            direction=self.direction,
            status=self.status,
            timestamp=self.timestamp,
            notes=self.notes,
        )


def compute_realized_pl(
    direction: Direction,
    entry_price: Decimal,
    position: PositionState,
    quantity: int,
) -> Decimal:
    """Realized P/L for a trade; open positions have realized nothing yet."""
    if isinstance(position, OpenPosition):
        return Decimal("0")
    if direction is Direction.LONG:
        return (position.exit_price - entry_price) * quantity
    return (entry_price - position.exit_price) * quantity


@dataclass
class BrokerConnection:
    """A user's configured link to one brokerage account."""

    id: str
    user_id: str
    broker_type: BrokerType
    display_name: str = ""
    credentials: dict[str, Any] = field(default_factory=dict, repr=False)
    is_active: bool = True
    last_sync: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class ConnectionDraft:
    """User-supplied fields for a connection that does not exist yet."""

    broker_type: BrokerType
    display_name: str = ""
    credentials: dict[str, Any] = field(default_factory=dict, repr=False)
    is_active: bool = True


@dataclass(frozen=True)
class ConnectionStatus:
    """Live, process-local view of one connection. Never persisted."""

    connection_id: str
    broker_type: BrokerType
    is_connected: bool
    last_sync: datetime | None
    total_trades: int = 0
    is_loading: bool = False
    last_error: str | None = None


@dataclass
class SyncResult:
    """Outcome of a single sync attempt against one connection."""

    success: bool
    trades_imported: int
    trades_skipped: int
    errors: list[str]
    last_sync_time: datetime
    next_sync_time: datetime | None = None


@dataclass(frozen=True)
class SyncOutcome:
    """Per-connection entry returned by sync_all()."""

    connection_id: str
    result: SyncResult | None
    error: str | None


@dataclass(frozen=True)
class AutoSyncFailure:
    """A failure observed during a background auto-sync tick."""

    error: str
    connection_id: str | None = None
    occurred_at: datetime = field(default_factory=utcnow)


@dataclass
class RateLimitWindow:
    """Request counter for one (user, action) key."""

    key: str
    count: int
    reset_time: float  # epoch seconds


@dataclass
class ImportedExecution:
    """A broker round trip (entry and exit) awaiting normalization.

    realized_pl is whatever the broker reported; the normalizer recomputes it.
    """

    broker_trade_id: str
    ticker: str
    entry_price: Decimal
    exit_price: Decimal
    quantity: Decimal
    direction: Direction
    timestamp: datetime
    broker_type: BrokerType
    realized_pl: Decimal = Decimal("0")
    commission: Decimal = Decimal("0")
    connection_id: str | None = None
    notes: str | None = None
    order_id: str | None = None
    execution_id: str | None = None
