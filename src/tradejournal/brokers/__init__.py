"""Broker integration layer: adapter contract, credential rules, fill pairing."""

from tradejournal.brokers.base import BrokerAdapter
from tradejournal.brokers.ccxt_adapter import CcxtBrokerAdapter
from tradejournal.brokers.credentials import REQUIRED_CREDENTIALS, missing_credentials
from tradejournal.brokers.fills import BrokerFill, FillSide, pair_fills

__all__ = [
    "REQUIRED_CREDENTIALS",
    "BrokerAdapter",
    "BrokerFill",
    "CcxtBrokerAdapter",
    "FillSide",
    "missing_credentials",
    "pair_fills",
]
