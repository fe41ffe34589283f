"""Field-level validation and normalization of trade input.

Every trade passes through TradeValidator before it reaches the ledger,
whatever its origin: manual entry, bulk entry or broker import. Validation is
pure and synchronous. Errors are collected as human-readable strings and
returned alongside whatever fields did pass, so a form can flag every failing
field at once.

The open/closed decision is made here, once, and recorded as an
OpenPosition/ClosedPosition on the sanitized output:
  - explicit status "open"   -> open   (exit price may be 0)
  - explicit status "closed" -> closed (exit price must be > 0)
  - no status                -> open iff exit price == 0
"""

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from tradejournal.config import ValidationSettings
from tradejournal.models import (
    BrokerType,
    CanonicalTrade,
    ClosedPosition,
    Direction,
    OpenPosition,
    PositionState,
    TradeCandidate,
    TradeStatus,
    compute_realized_pl,
)
from tradejournal.validation.sanitizer import sanitize

_DISALLOWED_TICKER_CHARS = re.compile(r"[^A-Z0-9.]")
_LEADING_NON_LETTERS = re.compile(r"^[^A-Z]+")


@dataclass
class TickerValidation:
    is_valid: bool
    sanitized: str
    errors: list[str]


@dataclass
class SanitizedTrade:
    """Fields that individually passed validation. Unset fields are None."""

    ticker: str | None = None
    entry_price: Decimal | None = None
    exit_price: Decimal | None = None
    quantity: int | None = None
    direction: Direction | None = None
    status: TradeStatus | None = None
    timestamp: datetime | None = None
    notes: str | None = None
    position: PositionState | None = None


@dataclass
class ValidationResult:
    is_valid: bool
    sanitized: SanitizedTrade
    errors: list[str] = field(default_factory=list)

    def build_trade(
        self,
        trade_id: str,
        default_timestamp: datetime,
        commission: Decimal = Decimal("0"),
        broker_type: BrokerType | None = None,
        connection_id: str | None = None,
        broker_trade_id: str | None = None,
    ) -> CanonicalTrade:
        """Assemble a CanonicalTrade from a passing result.

        realized_pl is always recomputed from the sanitized fields.

        Raises:
            ValueError: If the result is not valid.
        """
        if not self.is_valid:
            raise ValueError(f"Cannot build a trade from invalid input: {self.errors}")
        s = self.sanitized
        assert s.ticker is not None and s.entry_price is not None
        assert s.quantity is not None and s.direction is not None
        assert s.position is not None
        return CanonicalTrade(
            id=trade_id,
            ticker=s.ticker,
            entry_price=s.entry_price,
            quantity=s.quantity,
            direction=s.direction,
            position=s.position,
            timestamp=s.timestamp or default_timestamp,
            realized_pl=compute_realized_pl(
                s.direction, s.entry_price, s.position, s.quantity
            ),
            notes=s.notes,
            commission=commission,
            broker_type=broker_type,
            connection_id=connection_id,
            broker_trade_id=broker_trade_id,
        )


def _to_decimal(value: Any) -> Decimal | None:
    """Coerce a numeric value to Decimal, or None if it is not a finite number."""
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        return None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return Decimal(str(value))
    if isinstance(value, Decimal) and not value.is_finite():
        return None
    return Decimal(value)


def _to_utc(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    return None


class TradeValidator:
    """Validates and normalizes a single trade's scalar fields.

    Args:
        settings: Price, quantity, notes and date limits.
    """

    def __init__(self, settings: ValidationSettings | None = None) -> None:
        self._settings = settings or ValidationSettings()

    def validate_ticker(self, ticker: str) -> TickerValidation:
        """Uppercase, strip disallowed characters, then check the symbol rules.

        The sanitized symbol is returned even when a rule fails; leading
        characters that are not letters are dropped from it so it is always
        usable as a best-effort suggestion.
        """
        errors: list[str] = []
        cleaned = _DISALLOWED_TICKER_CHARS.sub("", str(ticker).upper().strip())
        max_len = self._settings.max_ticker_length

        if not cleaned:
            errors.append("Ticker symbol is required")
            return TickerValidation(is_valid=False, sanitized="", errors=errors)

        if len(cleaned) > max_len:
            errors.append(f"Ticker symbol must be {max_len} characters or less")
        if not cleaned[0].isalpha():
            errors.append("Ticker symbol must start with a letter")
            cleaned = _LEADING_NON_LETTERS.sub("", cleaned)

        return TickerValidation(is_valid=not errors, sanitized=cleaned, errors=errors)

    def validate_trade(
        self, candidate: TradeCandidate, now: datetime | None = None
    ) -> ValidationResult:
        """Validate every field of a candidate trade.

        Args:
            candidate: Untrusted input.
            now: Reference time for the future-timestamp bound. Defaults to
                the current UTC time.

        Returns:
            ValidationResult with is_valid, the fields that passed and all
            error messages.
        """
        errors: list[str] = []
        sanitized = SanitizedTrade()
        now = _to_utc(now) or datetime.now(timezone.utc)
        max_price = self._settings.max_price

        # Ticker
        if candidate.ticker:
            ticker = self.validate_ticker(candidate.ticker)
            errors.extend(ticker.errors)
            if ticker.sanitized:
                sanitized.ticker = ticker.sanitized
        else:
            errors.append("Ticker is required")

        # Entry price (no rounding, precision preserved)
        entry = _to_decimal(candidate.entry_price)
        if entry is None:
            errors.append("Valid entry price is required")
        elif entry <= 0 or entry > max_price:
            errors.append(f"Entry price must be between $0.000001 and ${max_price:,}")
        else:
            sanitized.entry_price = entry

        # Status, then exit price against the position kind it implies
        status: TradeStatus | None = None
        status_rejected = False
        if candidate.status not in (None, ""):
            try:
                status = TradeStatus(candidate.status)
            except ValueError:
                status_rejected = True
                errors.append('Status must be either "open" or "closed"')

        exit_value = _to_decimal(candidate.exit_price)
        if exit_value is None and candidate.exit_price is None and status is TradeStatus.OPEN:
            exit_value = Decimal("0")

        if exit_value is None:
            errors.append("Valid exit price is required")
        else:
            if status is None:
                status = TradeStatus.OPEN if exit_value == 0 else TradeStatus.CLOSED
            position = self._check_exit_price(exit_value, status, errors)
            if position is not None:
                sanitized.exit_price = position.exit_price
                if not status_rejected:
                    sanitized.position = position

        if status is not None and not status_rejected:
            sanitized.status = status

        # Quantity
        sanitized.quantity = self._check_quantity(candidate.quantity, errors)

        # Direction
        try:
            sanitized.direction = Direction(candidate.direction)
        except ValueError:
            errors.append('Direction must be either "long" or "short"')

        # Notes
        if candidate.notes:
            notes = sanitize(str(candidate.notes))
            if len(notes) > self._settings.max_notes_length:
                errors.append(
                    f"Notes must be {self._settings.max_notes_length} characters or less"
                )
            else:
                sanitized.notes = notes

        # Timestamp (optional; the caller stamps intake time when absent)
        if candidate.timestamp is not None:
            timestamp = _to_utc(candidate.timestamp)
            if timestamp is None:
                errors.append("Valid timestamp is required")
            else:
                earliest = datetime.combine(
                    self._settings.min_trade_date, time.min, tzinfo=timezone.utc
                )
                latest = now + timedelta(hours=self._settings.future_tolerance_hours)
                if timestamp < earliest or timestamp > latest:
                    errors.append(
                        f"Trade timestamp must be after {earliest.year} "
                        "and not in the future"
                    )
                else:
                    sanitized.timestamp = timestamp

        return ValidationResult(
            is_valid=not errors, sanitized=sanitized, errors=errors
        )

    def _check_exit_price(
        self, exit_price: Decimal, status: TradeStatus, errors: list[str]
    ) -> PositionState | None:
        max_price = self._settings.max_price
        if status is TradeStatus.OPEN:
            if exit_price < 0 or exit_price > max_price:
                errors.append(f"Exit price must be between $0 and ${max_price:,}")
                return None
            return OpenPosition(exit_price=exit_price)

        if exit_price == 0:
            errors.append("Exit price is required for a closed trade")
            return None
        if exit_price < 0 or exit_price > max_price:
            errors.append(f"Exit price must be between $0.000001 and ${max_price:,}")
            return None
        return ClosedPosition(exit_price=exit_price)

    def _check_quantity(self, value: Any, errors: list[str]) -> int | None:
        quantity = _to_decimal(value)
        if quantity is None:
            errors.append("Valid quantity is required")
            return None
        max_qty = self._settings.max_quantity
        try:
            integral = quantity == quantity.to_integral_value()
        except InvalidOperation:
            integral = False
        if not integral or quantity <= 0 or quantity > max_qty:
            errors.append(f"Quantity must be a positive integer up to {max_qty:,}")
            return None
        return int(quantity)
