"""Credential fields each broker type needs before a connection can be saved."""

from collections.abc import Mapping
from typing import Any

from tradejournal.models import BrokerType

_OAUTH_APP = ("client_secret", "redirect_uri")
_MT_BRIDGE = ("server_url", "login", "password", "server_name")

REQUIRED_CREDENTIALS: dict[BrokerType, tuple[str, ...]] = {
    BrokerType.ALPACA: ("api_key", "api_secret", "base_url"),
    BrokerType.INTERACTIVE_BROKERS: ("client_id",),
    BrokerType.BINANCE: ("api_key", "api_secret"),
    BrokerType.MT4: _MT_BRIDGE,
    BrokerType.MT5: _MT_BRIDGE,
    BrokerType.TD_AMERITRADE: _OAUTH_APP,
    BrokerType.SCHWAB: _OAUTH_APP,
    BrokerType.WEBULL: _OAUTH_APP,
    BrokerType.ROBINHOOD: _OAUTH_APP,
}


def missing_credentials(
    broker_type: BrokerType, credentials: Mapping[str, Any]
) -> list[str]:
    """Return the required credential fields that are absent or blank."""
    return [
        key
        for key in REQUIRED_CREDENTIALS.get(broker_type, ())
        if not str(credentials.get(key) or "").strip()
    ]
