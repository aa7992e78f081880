"""
Billing ORM Models (``ledger_modules.billing.orm``).

Responsibility
--------------
SQLAlchemy persistence models for invoices, invoice items and payments.
Maps the frozen dataclasses in ``models.py`` to tables.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``ledger_kernel.db`` and
sibling ``models.py``.  MUST NOT be imported by ``ledger_kernel`` except
through ``ledger_modules._orm_registry``.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase
from ledger_kernel.db.immutability import APPEND_ONLY, NO_DELETE
from ledger_kernel.db.types import ensure_utc
from ledger_kernel.domain.values import Money


# ---------------------------------------------------------------------------
# 1. InvoiceModel
# ---------------------------------------------------------------------------


class InvoiceModel(TrackedBase):
    """
    ORM model for patient invoices.

    Guarantees:
        - invoice_number is unique (uq_invoices_invoice_number).
        - total_amount >= 0 (ck_invoices_total_non_negative).
        - status stored as the enum value; the stored status is the last
          derived one, authoritative only for ``cancelled``.
        - Rows are never deleted.
    """

    __tablename__ = "invoices"
    __immutability__ = NO_DELETE

    __table_args__ = (
        UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
        CheckConstraint("total_amount >= 0", name="ck_invoices_total_non_negative"),
        CheckConstraint("due_date > issue_date", name="ck_invoices_due_after_issue"),
        Index("idx_invoices_patient_id", "patient_id"),
        Index("idx_invoices_status", "status"),
        Index("idx_invoices_due_date", "due_date"),
    )

    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)
    patient_id: Mapped[str] = mapped_column(String(128), nullable=False)
    appointment_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    subtotal: Mapped[Money] = mapped_column(nullable=False)
    tax_amount: Mapped[Money] = mapped_column(nullable=False)
    discount_amount: Mapped[Money] = mapped_column(nullable=False)
    total_amount: Mapped[Money] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list["InvoiceItemModel"]] = relationship(
        back_populates="invoice",
        cascade="save-update, merge",
        order_by="InvoiceItemModel.line_number",
        lazy="selectin",
    )

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from ledger_modules.billing.models import Invoice, InvoiceStatus

        return Invoice(
            id=self.id,
            invoice_number=self.invoice_number,
            patient_id=self.patient_id,
            appointment_id=self.appointment_id,
            issue_date=self.issue_date,
            due_date=self.due_date,
            subtotal=self.subtotal,
            tax_amount=self.tax_amount,
            discount_amount=self.discount_amount,
            total_amount=self.total_amount,
            status=InvoiceStatus(self.status),
            created_by=self.created_by,
            items=tuple(item.to_dto() for item in self.items),
            notes=self.notes,
            cancelled_at=ensure_utc(self.cancelled_at),
            cancelled_by=self.cancelled_by,
            cancellation_reason=self.cancellation_reason,
        )

    @classmethod
    def from_dto(cls, dto) -> "InvoiceModel":
        """Create ORM model from frozen dataclass."""
        model = cls(
            id=dto.id,
            invoice_number=dto.invoice_number,
            patient_id=dto.patient_id,
            appointment_id=dto.appointment_id,
            issue_date=dto.issue_date,
            due_date=dto.due_date,
            subtotal=dto.subtotal,
            tax_amount=dto.tax_amount,
            discount_amount=dto.discount_amount,
            total_amount=dto.total_amount,
            status=dto.status.value,
            notes=dto.notes,
            cancelled_at=dto.cancelled_at,
            cancelled_by=dto.cancelled_by,
            cancellation_reason=dto.cancellation_reason,
            created_by=dto.created_by,
        )
        model.items = [
            InvoiceItemModel.from_dto(item, line_number, dto.created_by)
            for line_number, item in enumerate(dto.items, start=1)
        ]
        return model

    def apply_header(self, dto, actor_id: str) -> None:
        """Copy mutable header fields from a DTO onto this row."""
        self.subtotal = dto.subtotal
        self.tax_amount = dto.tax_amount
        self.discount_amount = dto.discount_amount
        self.total_amount = dto.total_amount
        self.status = dto.status.value
        self.notes = dto.notes
        self.cancelled_at = dto.cancelled_at
        self.cancelled_by = dto.cancelled_by
        self.cancellation_reason = dto.cancellation_reason
        self.updated_by = actor_id

    def __repr__(self) -> str:
        return (
            f"<InvoiceModel {self.invoice_number} "
            f"status={self.status} total={self.total_amount}>"
        )


# ---------------------------------------------------------------------------
# 2. InvoiceItemModel
# ---------------------------------------------------------------------------


class InvoiceItemModel(TrackedBase):
    """
    ORM model for invoice line items.  Append-only.

    Guarantees:
        - invoice_id FK to invoices.id; (invoice_id, line_number) unique.
        - quantity >= 1 and unit_price >= 0.
    """

    __tablename__ = "invoice_items"
    __immutability__ = APPEND_ONLY

    __table_args__ = (
        UniqueConstraint("invoice_id", "line_number", name="uq_invoice_items_line"),
        CheckConstraint("quantity >= 1", name="ck_invoice_items_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_invoice_items_price_non_negative"),
        Index("idx_invoice_items_invoice_id", "invoice_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(ForeignKey("invoices.id"), nullable=False)
    line_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)
    unit_price: Mapped[Money] = mapped_column(nullable=False)
    total_price: Mapped[Money] = mapped_column(nullable=False)
    billing_item_id: Mapped[UUID | None] = mapped_column(nullable=True)

    invoice: Mapped[InvoiceModel] = relationship(back_populates="items")

    def to_dto(self):
        from ledger_modules.billing.models import InvoiceItem

        return InvoiceItem(
            id=self.id,
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            billing_item_id=self.billing_item_id,
        )

    @classmethod
    def from_dto(cls, dto, line_number: int, created_by: str) -> "InvoiceItemModel":
        return cls(
            id=dto.id,
            line_number=line_number,
            description=dto.description,
            quantity=dto.quantity,
            unit_price=dto.unit_price,
            total_price=dto.total_price,
            billing_item_id=dto.billing_item_id,
            created_by=created_by,
        )

    def __repr__(self) -> str:
        return f"<InvoiceItemModel #{self.line_number} {self.description} x{self.quantity}>"


# ---------------------------------------------------------------------------
# 3. PaymentModel
# ---------------------------------------------------------------------------


class PaymentModel(TrackedBase):
    """
    ORM model for payments.  Append-only.

    Guarantees:
        - amount > 0.
        - sequence is unique and strictly increasing in insertion order.
    """

    __tablename__ = "payments"
    __immutability__ = APPEND_ONLY

    __table_args__ = (
        UniqueConstraint("sequence", name="uq_payments_sequence"),
        CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        Index("idx_payments_invoice_id", "invoice_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(ForeignKey("invoices.id"), nullable=False)
    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False)
    amount: Mapped[Money] = mapped_column(nullable=False)
    payment_method: Mapped[str] = mapped_column(String(50), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_dto(self):
        from ledger_modules.billing.models import Payment

        return Payment(
            id=self.id,
            invoice_id=self.invoice_id,
            amount=self.amount,
            payment_method=self.payment_method,
            payment_date=self.payment_date,
            recorded_by=self.created_by,
            recorded_at=ensure_utc(self.recorded_at),
            reference_number=self.reference_number,
            notes=self.notes,
            sequence=self.sequence,
        )

    @classmethod
    def from_dto(cls, dto, sequence: int) -> "PaymentModel":
        return cls(
            id=dto.id,
            invoice_id=dto.invoice_id,
            sequence=sequence,
            amount=dto.amount,
            payment_method=dto.payment_method,
            payment_date=dto.payment_date,
            reference_number=dto.reference_number,
            notes=dto.notes,
            recorded_at=dto.recorded_at,
            created_by=dto.recorded_by,
        )

    def __repr__(self) -> str:
        return f"<PaymentModel #{self.sequence} invoice={self.invoice_id} amount={self.amount}>"
