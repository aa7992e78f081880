"""
Ledger modules: billing, pharmacy and reporting services over a LedgerStore.

Architecture position:
    Modules layer.  May import ledger_kernel, ledger_engines and
    ledger_config.  Services own transaction boundaries through
    ``LedgerStore.transaction()``.
"""
