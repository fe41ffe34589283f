"""Broker sync support: execution normalizer and connection registry."""

from tradejournal.sync.normalizer import TradeNormalizer, provenance_notes
from tradejournal.sync.registry import ConnectionRegistry

__all__ = ["ConnectionRegistry", "TradeNormalizer", "provenance_notes"]
