"""Trade input validation: markup sanitizer and field validator."""

from tradejournal.validation.sanitizer import sanitize
from tradejournal.validation.trade_validator import (
    SanitizedTrade,
    TickerValidation,
    TradeValidator,
    ValidationResult,
)

__all__ = [
    "SanitizedTrade",
    "TickerValidation",
    "TradeValidator",
    "ValidationResult",
    "sanitize",
]
