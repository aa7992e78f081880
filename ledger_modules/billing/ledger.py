"""
Invoice ledger rules over billing models.

Thin adapters from the domain dataclasses to the pure engines in
``ledger_engines``.  Everything here is deterministic: the current time is
always passed in.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
from typing import Iterable

from ledger_engines.invoice_status import InvoiceStatus, derive_invoice_status
from ledger_engines.invoice_totals import compute_invoice_totals
from ledger_kernel.domain.values import Money, sum_money
from ledger_modules.billing.models import Invoice, Payment


def recompute_totals(invoice: Invoice) -> Invoice:
    """
    Return the invoice with subtotal and total re-summed from its items.

    Idempotent: an unchanged item list always yields identical totals.
    """
    totals = compute_invoice_totals(
        lines=invoice.items,
        tax_amount=invoice.tax_amount,
        discount_amount=invoice.discount_amount,
    )
    return replace(
        invoice,
        subtotal=totals.subtotal,
        total_amount=totals.total_amount,
    )


def amount_paid(payments: Iterable[Payment]) -> Money:
    return sum_money(p.amount for p in payments)


def balance_due(invoice: Invoice, payments: Iterable[Payment]) -> Money:
    """max(0, total_amount - sum of payments)."""
    return (invoice.total_amount - amount_paid(payments)).clamp_at_zero()


def _as_date(now: datetime | date) -> date:
    return now.date() if isinstance(now, datetime) else now


def derive_status(
    invoice: Invoice,
    payments: Iterable[Payment],
    now: datetime | date,
) -> InvoiceStatus:
    """
    Status as a pure function of the invoice, its payments and the time.

    The invoice is overdue from the calendar day after its due date.
    """
    return derive_invoice_status(
        current_status=invoice.status,
        has_items=invoice.has_items,
        total_amount=invoice.total_amount,
        amount_paid=amount_paid(payments),
        due_date=invoice.due_date,
        as_of=_as_date(now),
    )


def with_derived_status(
    invoice: Invoice,
    payments: Iterable[Payment],
    now: datetime | date,
) -> Invoice:
    status = derive_status(invoice, payments, now)
    if status == invoice.status:
        return invoice
    return replace(invoice, status=status)
