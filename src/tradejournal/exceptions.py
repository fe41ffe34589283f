"""Custom exceptions for the trade journal core.

Validation failures and rate-limit refusals are returned as data and have no
exception type here. Everything that aborts an operation lives in this module
to avoid circular imports between the sync, store and broker layers.
"""


class JournalError(Exception):
    """Base exception for all journal errors."""


class UnauthenticatedError(JournalError):
    """Raised when an operation needs a user and the session has none."""


class ConnectionNotFoundError(JournalError):
    """Raised when a broker connection id is not in the loaded registry."""

    def __init__(self, connection_id: str) -> None:
        super().__init__(f"Connection not found: {connection_id}")
        self.connection_id = connection_id


class InvalidConnectionError(JournalError):
    """Raised when a new broker connection is missing required credentials."""


class SyncInProgressError(JournalError):
    """Raised when a connection is already syncing and the policy is reject."""

    def __init__(self, connection_id: str) -> None:
        super().__init__(f"Sync already in progress for connection {connection_id}")
        self.connection_id = connection_id


class PersistenceError(JournalError):
    """Raised by the store when a read or write cannot be completed."""


class BrokerError(JournalError):
    """Base exception for broker adapter failures."""


class BrokerTransportError(BrokerError):
    """Raised when the broker cannot be reached or returns a transport failure."""


class BrokerAuthError(BrokerError):
    """Raised when the broker rejects the connection's credentials."""


class UnsupportedBrokerError(BrokerError):
    """Raised when no adapter is registered for a connection's broker type."""
