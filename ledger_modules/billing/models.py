"""
Billing Domain Models (``ledger_modules.billing.models``).

Responsibility
--------------
Frozen dataclass value objects for the invoice ledger: invoice items,
invoices, payments and the reconciliation summary.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Returned to
callers by ``InvoiceLedgerService`` and ``PaymentReconciliationService``.

Invariants enforced
-------------------
* All models are ``frozen=True``; changes produce new instances.
* All monetary fields are ``Money`` (integer minor units), never float.
* An ``InvoiceItem`` validates its own quantity, price and description.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from ledger_engines.invoice_status import InvoiceStatus
from ledger_engines.invoice_totals import line_total
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import ValidationError
from ledger_modules._guards import coerce_money, coerce_quantity

__all__ = [
    "Invoice",
    "InvoiceItem",
    "InvoiceStatus",
    "Payment",
    "ReconciliationSummary",
]


@dataclass(frozen=True)
class InvoiceItem:
    """A single billed line on an invoice."""

    id: UUID
    description: str
    quantity: int
    unit_price: Money
    billing_item_id: UUID | None = None

    def __post_init__(self):
        if not self.description or not self.description.strip():
            raise ValidationError("Item description is required", field="description")
        # line_total validates quantity >= 1 and unit_price >= 0
        line_total(self.quantity, self.unit_price)

    @classmethod
    def create(
        cls,
        description: str,
        quantity: int | str,
        unit_price: Money | Decimal | str | int,
        billing_item_id: UUID | None = None,
    ) -> InvoiceItem:
        """Build an item from caller input, coercing quantity and price."""
        return cls(
            id=uuid4(),
            description=description,
            quantity=coerce_quantity(quantity),
            unit_price=coerce_money(unit_price, "unit_price"),
            billing_item_id=billing_item_id,
        )

    @property
    def total_price(self) -> Money:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "description": self.description,
            "quantity": self.quantity,
            "unit_price": self.unit_price.to_wire(),
            "total_price": self.total_price.to_wire(),
            "billing_item_id": str(self.billing_item_id) if self.billing_item_id else None,
        }


@dataclass(frozen=True)
class Invoice:
    """A patient invoice with its items and stored totals."""

    id: UUID
    invoice_number: str
    patient_id: str
    issue_date: date
    due_date: date
    subtotal: Money
    tax_amount: Money
    discount_amount: Money
    total_amount: Money
    status: InvoiceStatus
    created_by: str
    items: tuple[InvoiceItem, ...] = field(default_factory=tuple)
    notes: str | None = None
    appointment_id: str | None = None
    cancelled_at: datetime | None = None
    cancelled_by: str | None = None
    cancellation_reason: str | None = None

    @property
    def has_items(self) -> bool:
        return bool(self.items)

    @property
    def is_cancelled(self) -> bool:
        return self.status == InvoiceStatus.CANCELLED

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "invoice_number": self.invoice_number,
            "patient_id": self.patient_id,
            "appointment_id": self.appointment_id,
            "issue_date": self.issue_date.isoformat(),
            "due_date": self.due_date.isoformat(),
            "subtotal": self.subtotal.to_wire(),
            "tax_amount": self.tax_amount.to_wire(),
            "discount_amount": self.discount_amount.to_wire(),
            "total_amount": self.total_amount.to_wire(),
            "status": self.status.value,
            "notes": self.notes,
            "created_by": self.created_by,
            "items": [item.to_dict() for item in self.items],
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "cancellation_reason": self.cancellation_reason,
        }


@dataclass(frozen=True)
class Payment:
    """A payment received against one invoice. Append-only."""

    id: UUID
    invoice_id: UUID
    amount: Money
    payment_method: str
    payment_date: date
    recorded_by: str
    recorded_at: datetime
    reference_number: str | None = None
    notes: str | None = None
    sequence: int = 0  # assigned by the store on insert

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "invoice_id": str(self.invoice_id),
            "amount": self.amount.to_wire(),
            "payment_method": self.payment_method,
            "payment_date": self.payment_date.isoformat(),
            "reference_number": self.reference_number,
            "notes": self.notes,
            "recorded_by": self.recorded_by,
            "recorded_at": self.recorded_at.isoformat(),
        }


@dataclass(frozen=True)
class ReconciliationSummary:
    """Balance position of one invoice."""

    invoice_id: UUID
    invoice_number: str
    total_amount: Money
    amount_paid: Money
    balance_due: Money
    status: InvoiceStatus
    payment_count: int

    @property
    def is_settled(self) -> bool:
        return self.balance_due.is_zero and self.status != InvoiceStatus.CANCELLED

    @property
    def is_partially_paid(self) -> bool:
        return self.amount_paid.is_positive and self.balance_due.is_positive
