"""Persistence infrastructure for the ledger entry store."""

from .memory_store import InMemoryLedgerStore
from .schema import ensure_schema, ledger_entries
from .sql_store import SqlLedgerStore
from .store_interface import LedgerStore, WriteKind, WriteListener

__all__ = [
    "InMemoryLedgerStore",
    "SqlLedgerStore",
    "LedgerStore",
    "WriteKind",
    "WriteListener",
    "ensure_schema",
    "ledger_entries",
]
