"""Abstract broker adapter interface.

The sync layer depends only on this contract; each brokerage's wire protocol
stays inside its concrete adapter.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from tradejournal.models import ImportedExecution


class BrokerAdapter(ABC):
    """Abstract base class for brokerage integrations."""

    @abstractmethod
    async def fetch_executions(
        self, credentials: Mapping[str, Any], since: datetime | None
    ) -> list[ImportedExecution]:
        """Return round-trip executions completed after `since`.

        `since` is None on a connection's first sync.

        Raises:
            BrokerAuthError: The broker rejected the credentials.
            BrokerTransportError: The broker could not be reached.
        """
        ...

    @abstractmethod
    async def test_connection(self, credentials: Mapping[str, Any]) -> tuple[bool, str]:
        """Check the credentials against the broker.

        Returns:
            Tuple of (success, human-readable message). Never raises for
            rejected credentials.
        """
        ...

    async def close(self) -> None:
        """Release network resources held by the adapter."""
        return None
