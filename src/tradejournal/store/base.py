"""Abstract journal persistence interface.

The registry, orchestrator and ledger depend only on this contract. All
methods raise PersistenceError when the backing store fails.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from tradejournal.models import BrokerConnection, CanonicalTrade, ConnectionDraft

# Fields a caller may change on an existing connection.
UPDATABLE_CONNECTION_FIELDS = frozenset({"display_name", "credentials", "is_active", "last_sync"})


class JournalStore(ABC):
    """Abstract base class for trade and broker-connection storage."""

    @abstractmethod
    async def get_connections(self, user_id: str) -> list[BrokerConnection]:
        """Return the user's connections, newest first."""
        ...

    @abstractmethod
    async def add_connection(self, user_id: str, draft: ConnectionDraft) -> BrokerConnection:
        """Persist a new connection and return it with its assigned id."""
        ...

    @abstractmethod
    async def update_connection(self, connection_id: str, updates: Mapping[str, Any]) -> None:
        """Apply a partial update. Keys outside UPDATABLE_CONNECTION_FIELDS are rejected."""
        ...

    @abstractmethod
    async def delete_connection(self, connection_id: str) -> None:
        """Delete a connection together with the trades imported through it."""
        ...

    @abstractmethod
    async def get_trades_by_broker_connection(
        self, user_id: str
    ) -> dict[str, list[CanonicalTrade]]:
        """Return the user's imported trades grouped by connection id."""
        ...

    @abstractmethod
    async def save_trade(self, user_id: str, trade: CanonicalTrade) -> str:
        """Insert a trade and return its id."""
        ...

    @abstractmethod
    async def get_trades(self, user_id: str) -> list[CanonicalTrade]:
        """Return all of the user's trades, newest first."""
        ...

    @abstractmethod
    async def update_trade(self, user_id: str, trade: CanonicalTrade) -> None:
        """Replace an existing trade owned by the user."""
        ...
