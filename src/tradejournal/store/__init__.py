"""Journal persistence: store contract and the SQLite reference store."""

from tradejournal.store.base import UPDATABLE_CONNECTION_FIELDS, JournalStore
from tradejournal.store.database import JournalDatabase
from tradejournal.store.sqlite_store import SQLiteJournalStore

__all__ = [
    "UPDATABLE_CONNECTION_FIELDS",
    "JournalDatabase",
    "JournalStore",
    "SQLiteJournalStore",
]
