"""
Module: ledger_engines
Responsibility:
    Pure calculation layer for the ledger: invoice totals, invoice status
    derivation and stock rules.

Architecture position:
    Engines -- zero I/O.  May only import ledger_kernel.domain and
    ledger_kernel.exceptions.  MUST NOT import ledger_modules.

Invariants enforced:
    - Engines never read the clock; ``as_of`` dates are passed in.
    - Money arithmetic is integer minor units; floats are never used.
    - Identical inputs always produce identical outputs.
"""

from ledger_engines.invoice_status import InvoiceStatus, derive_invoice_status
from ledger_engines.invoice_totals import InvoiceTotals, compute_invoice_totals, line_total
from ledger_engines.stock_rules import (
    StockFlags,
    can_dispense,
    classify_stock,
    is_low_stock,
)

__all__ = [
    "InvoiceStatus",
    "InvoiceTotals",
    "StockFlags",
    "can_dispense",
    "classify_stock",
    "compute_invoice_totals",
    "derive_invoice_status",
    "is_low_stock",
    "line_total",
]
