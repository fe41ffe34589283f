"""In-memory view of a user's broker connections and their live status.

The status map is rebuilt on every successful load: each connection is
seeded from its stored fields, then imported-trade counts are folded in. A
last_error recorded for the same user carries over until the next sync of
that connection starts. Status changes made between loads (syncing, failed) replace the
affected ConnectionStatus object; nothing is mutated in place. add() and
remove() always finish with a full reload so the connection list and the
trade counts cannot drift apart.
"""

from dataclasses import replace

from tradejournal.brokers.credentials import missing_credentials
from tradejournal.exceptions import ConnectionNotFoundError, InvalidConnectionError
from tradejournal.logging import get_logger
from tradejournal.models import BrokerConnection, ConnectionDraft, ConnectionStatus
from tradejournal.store.base import JournalStore

logger = get_logger(__name__)


class ConnectionRegistry:
    """Connection list plus per-connection ConnectionStatus for one session.

    Args:
        store: Persistence for connections and imported trades.
    """

    def __init__(self, store: JournalStore) -> None:
        self._store = store
        self._user_id: str | None = None
        self._connections: list[BrokerConnection] = []
        self._statuses: dict[str, ConnectionStatus] = {}

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def connections(self) -> list[BrokerConnection]:
        return list(self._connections)

    async def load(self, user_id: str | None) -> list[BrokerConnection]:
        """Fetch the user's connections and rebuild every status.

        A signed-out session (user_id None) clears the registry. If the
        connection fetch fails the error propagates and the previous state
        is kept as it was.
        """
        if not user_id:
            self.clear()
            return []

        connections = await self._store.get_connections(user_id)

        # Recorded failures survive a reload for the same user; only
        # mark_syncing clears them.
        previous = self._statuses if user_id == self._user_id else {}
        statuses = {
            c.id: ConnectionStatus(
                connection_id=c.id,
                broker_type=c.broker_type,
                is_connected=c.is_active,
                last_sync=c.last_sync,
                total_trades=0,
                is_loading=False,
                last_error=previous[c.id].last_error if c.id in previous else None,
            )
            for c in connections
        }

        try:
            grouped = await self._store.get_trades_by_broker_connection(user_id)
        except Exception as e:
            logger.warning("trade_count_load_failed", user_id=user_id, error=str(e))
            grouped = {}

        for connection_id, trades in grouped.items():
            status = statuses.get(connection_id)
            if status is not None:
                statuses[connection_id] = replace(status, total_trades=len(trades))

        self._user_id = user_id
        self._connections = connections
        self._statuses = statuses
        logger.debug("connections_loaded", user_id=user_id, count=len(connections))
        return list(connections)

    async def add(self, user_id: str, draft: ConnectionDraft) -> BrokerConnection:
        """Persist a new connection, then reload.

        Raises:
            InvalidConnectionError: Required credentials for the broker type
                are missing.
        """
        missing = missing_credentials(draft.broker_type, draft.credentials)
        if missing:
            raise InvalidConnectionError(
                f"Missing credentials for {draft.broker_type.value}: {', '.join(missing)}"
            )
        connection = await self._store.add_connection(user_id, draft)
        await self.load(user_id)
        return connection

    async def remove(self, user_id: str, connection_id: str) -> None:
        """Delete one of the user's connections (and its imported trades), then reload.

        Raises:
            ConnectionNotFoundError: The user owns no connection with that id.
        """
        owned = await self._store.get_connections(user_id)
        if not any(c.id == connection_id for c in owned):
            raise ConnectionNotFoundError(connection_id)
        await self._store.delete_connection(connection_id)
        await self.load(user_id)

    def clear(self) -> None:
        self._user_id = None
        self._connections = []
        self._statuses = {}

    def get(self, connection_id: str) -> BrokerConnection | None:
        return next((c for c in self._connections if c.id == connection_id), None)

    def get_status(self, connection_id: str) -> ConnectionStatus | None:
        return self._statuses.get(connection_id)

    def statuses(self) -> dict[str, ConnectionStatus]:
        return dict(self._statuses)

    def mark_syncing(self, connection_id: str) -> None:
        """Flag a connection as loading and clear its last error."""
        status = self._statuses.get(connection_id)
        if status is not None:
            self._statuses[connection_id] = replace(status, is_loading=True, last_error=None)

    def mark_failed(self, connection_id: str, error: str) -> None:
        """Record a sync failure on one connection only."""
        status = self._statuses.get(connection_id)
        if status is not None:
            self._statuses[connection_id] = replace(status, is_loading=False, last_error=error)

    def is_any_syncing(self) -> bool:
        return any(status.is_loading for status in self._statuses.values())

    def total_broker_trades(self) -> int:
        return sum(status.total_trades for status in self._statuses.values())
