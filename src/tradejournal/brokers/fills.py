"""Rebuild round-trip executions from a broker's raw fill history.

Brokers report individual buy/sell fills; the journal records round trips.
Fills are grouped per symbol and replayed in time order against a running
signed position:
  - a fill from flat opens a position at the fill price
  - a fill in the same direction adds to it at the volume-weighted price
  - a fill against the position closes min(|position|, |fill|) and emits one
    ImportedExecution keyed by the closing fill's id
  - any remainder past flat opens a new position the other way at the fill price
A position still open at the end of the history produces nothing.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from tradejournal.models import BrokerType, Direction, ImportedExecution


class FillSide(str, Enum):
    """Fill direction."""

    BUY = "buy"
    SELL = "sell"


@dataclass
class BrokerFill:
    """A single execution as reported by the broker."""

    broker_trade_id: str
    symbol: str
    side: FillSide
    quantity: Decimal
    price: Decimal
    timestamp: datetime
    broker_type: BrokerType
    commission: Decimal = Decimal("0")
    order_id: str | None = None
    execution_id: str | None = None


def pair_fills(fills: list[BrokerFill]) -> list[ImportedExecution]:
    """Convert raw fills into closed round-trip executions.

    realized_pl on the result is the broker-side figure net of the closing
    fill's commission; the normalizer recomputes the ledger value.
    """
    by_symbol: dict[str, list[BrokerFill]] = {}
    for fill in fills:
        by_symbol.setdefault(fill.symbol, []).append(fill)

    executions: list[ImportedExecution] = []
    for symbol, symbol_fills in by_symbol.items():
        symbol_fills.sort(key=lambda f: f.timestamp)
        executions.extend(_replay_symbol(symbol, symbol_fills))
    return executions


def _replay_symbol(symbol: str, fills: list[BrokerFill]) -> list[ImportedExecution]:
    executions: list[ImportedExecution] = []
    position = Decimal("0")
    entry_price = Decimal("0")
    entry_time: datetime | None = None

    for fill in fills:
        signed = fill.quantity if fill.side is FillSide.BUY else -fill.quantity
        if signed == 0:
            continue

        if position == 0:
            position, entry_price, entry_time = signed, fill.price, fill.timestamp
            continue

        if (position > 0) == (signed > 0):
            total = abs(position) + abs(signed)
            entry_price = (entry_price * abs(position) + fill.price * abs(signed)) / total
            position += signed
            continue

        closing_qty = min(abs(position), abs(signed))
        direction = Direction.LONG if position > 0 else Direction.SHORT
        if direction is Direction.LONG:
            gross = (fill.price - entry_price) * closing_qty
        else:
            gross = (entry_price - fill.price) * closing_qty

        executions.append(
            ImportedExecution(
                broker_trade_id=fill.broker_trade_id,
                ticker=symbol,
                entry_price=entry_price,
                exit_price=fill.price,
                quantity=closing_qty,
                direction=direction,
                timestamp=entry_time or fill.timestamp,
                broker_type=fill.broker_type,
                realized_pl=gross - fill.commission,
                commission=fill.commission,
                order_id=fill.order_id,
                execution_id=fill.execution_id,
            )
        )

        was_long = position > 0
        position += signed
        if position == 0:
            entry_time = None
        elif (position > 0) != was_long:
            # Flipped through flat: the remainder is a fresh position.
            entry_price, entry_time = fill.price, fill.timestamp

    return executions
