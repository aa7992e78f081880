"""
Module: ledger_engines.invoice_status
Responsibility:
    Derive an invoice's status from its items, total, payments and the
    current date.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - CANCELLED is sticky: a cancelled invoice stays cancelled whatever
      its payments or dates.
    - An invoice with no items is DRAFT; there is nothing to pay or to be
      overdue on.
    - Otherwise: PAID when amount_paid >= total_amount (equality is PAID),
      else OVERDUE when as_of is after due_date, else PENDING.
    - Order-independent: only the sum of payments matters.
"""

from __future__ import annotations

from datetime import date
from enum import Enum

from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.values import Money


class InvoiceStatus(Enum):
    """Invoice lifecycle states."""

    DRAFT = "draft"
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


@traced_engine(
    "invoice_status",
    "1.0",
    fingerprint_fields=("current_status", "total_amount", "amount_paid", "due_date", "as_of"),
)
def derive_invoice_status(
    *,
    current_status: InvoiceStatus,
    has_items: bool,
    total_amount: Money,
    amount_paid: Money,
    due_date: date,
    as_of: date,
) -> InvoiceStatus:
    if current_status == InvoiceStatus.CANCELLED:
        return InvoiceStatus.CANCELLED
    if not has_items:
        return InvoiceStatus.DRAFT
    if amount_paid >= total_amount:
        return InvoiceStatus.PAID
    if as_of > due_date:
        return InvoiceStatus.OVERDUE
    return InvoiceStatus.PENDING
