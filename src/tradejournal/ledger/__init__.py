from tradejournal.ledger.entry import BulkEntryResult, BulkRowError, EntryOutcome, TradeLedger

__all__ = ["BulkEntryResult", "BulkRowError", "EntryOutcome", "TradeLedger"]
