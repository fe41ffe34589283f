"""Map broker executions onto the canonical trade shape.

Each execution becomes a TradeCandidate, gets a provenance marker in its
notes, and goes through the same TradeValidator as manual entries. The
broker-reported P/L is discarded and recomputed from the validated fields.
A rejected execution is reported back as data so the orchestrator can count
it as skipped; it never aborts the batch.
"""

from datetime import datetime

from tradejournal.logging import get_logger
from tradejournal.models import (
    CanonicalTrade,
    ImportedExecution,
    TradeCandidate,
    generate_trade_id,
    utcnow,
)
from tradejournal.validation.trade_validator import TradeValidator

logger = get_logger(__name__)


def provenance_notes(notes: str | None, execution: ImportedExecution) -> str:
    """Append the "[BROKER]" provenance marker to an execution's notes."""
    return f"{notes or ''} [{execution.broker_type.value.upper()}]".strip()


class TradeNormalizer:
    """Converts ImportedExecutions into CanonicalTrades.

    Args:
        validator: Field validator shared with the manual entry path.
    """

    def __init__(self, validator: TradeValidator) -> None:
        self._validator = validator

    def normalize(
        self, execution: ImportedExecution, now: datetime | None = None
    ) -> tuple[CanonicalTrade | None, list[str]]:
        """Validate and convert one execution.

        Returns:
            Tuple of (trade, errors). trade is None when validation failed.
        """
        candidate = TradeCandidate(
            ticker=execution.ticker,
            entry_price=execution.entry_price,
            exit_price=execution.exit_price,
            quantity=execution.quantity,
            direction=execution.direction,
            timestamp=execution.timestamp,
            notes=provenance_notes(execution.notes, execution),
        )
        result = self._validator.validate_trade(candidate, now=now)
        if not result.is_valid:
            logger.warning(
                "execution_rejected",
                broker_trade_id=execution.broker_trade_id,
                broker_type=execution.broker_type.value,
                errors=result.errors,
            )
            return None, result.errors

        trade = result.build_trade(
            trade_id=generate_trade_id(),
            default_timestamp=now or utcnow(),
            commission=execution.commission,
            broker_type=execution.broker_type,
            connection_id=execution.connection_id,
            broker_trade_id=execution.broker_trade_id,
        )
        return trade, []

