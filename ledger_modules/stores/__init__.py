"""LedgerStore implementations."""

from ledger_modules.stores.memory_store import InMemoryLedgerStore
from ledger_modules.stores.sql_store import SqlAlchemyLedgerStore

__all__ = ["InMemoryLedgerStore", "SqlAlchemyLedgerStore"]
