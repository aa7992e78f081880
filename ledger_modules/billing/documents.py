"""
Invoice document read-model.

An ``InvoiceDocument`` is everything a renderer (PDF, HTML, email body)
needs to present an invoice: the invoice with its items and derived status,
its payments in insertion order, and the reconciled amounts.  Renderers
must not compute anything themselves.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ledger_kernel.domain.values import Money
from ledger_modules.billing.models import Invoice, Payment


@dataclass(frozen=True)
class InvoiceDocument:
    invoice: Invoice
    payments: tuple[Payment, ...]
    amount_paid: Money
    balance_due: Money
    currency: str = "USD"

    def to_dict(self) -> dict[str, Any]:
        """Wire form: money as 2-dp strings, dates as ISO-8601."""
        return {
            "currency": self.currency,
            "invoice": self.invoice.to_dict(),
            "payments": [p.to_dict() for p in self.payments],
            "amount_paid": self.amount_paid.to_wire(),
            "balance_due": self.balance_due.to_wire(),
        }
