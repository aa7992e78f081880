"""
Invoice Ledger Service - Orchestrates the invoice lifecycle over a LedgerStore.

Thin glue layer that:
1. Validates caller input into InvoiceItem / Money values
2. Calls the invoice_totals and invoice_status engines for all computation
3. Allocates invoice numbers and retries on collisions with bounded backoff
4. Persists through the LedgerStore inside one transaction per operation

Status is a view: reads always return the status derived for the clock's
current date, whatever was last stored.

Usage:
    ledger = InvoiceLedgerService(store, numbers, settings, clock)
    invoice = ledger.create_invoice(
        patient_id="P-1001",
        due_in_days=30,
        items=[InvoiceItem.create("Consultation", 1, "100.00")],
        notes=None,
        actor_id="billing-clerk-7",
        tax_amount="10.00",
        discount_amount="5.00",
    )
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import replace
from datetime import timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from ledger_config.schema import BillingSettings
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import (
    ConflictError,
    InvoiceStateError,
    NotFoundError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_modules._guards import coerce_money, coerce_quantity, require_text
from ledger_modules.billing.documents import InvoiceDocument
from ledger_modules.billing.ledger import (
    amount_paid,
    balance_due,
    recompute_totals,
    with_derived_status,
)
from ledger_modules.billing.models import Invoice, InvoiceItem, InvoiceStatus
from ledger_modules.ports import (
    DocumentRenderer,
    InvoiceNumberGenerator,
    LedgerStore,
    PatientDirectory,
)

logger = get_logger("modules.billing.service")

ItemInput = InvoiceItem | Mapping[str, Any]


def coerce_item(item: ItemInput) -> InvoiceItem:
    """Accept an InvoiceItem or a mapping with description/quantity/unit_price."""
    if isinstance(item, InvoiceItem):
        return item
    if not isinstance(item, Mapping):
        raise ValidationError(f"Unsupported item type: {type(item).__name__}", field="items")
    return InvoiceItem.create(
        description=item.get("description", ""),
        quantity=item.get("quantity", 1),
        unit_price=item.get("unit_price"),
        billing_item_id=item.get("billing_item_id"),
    )


class InvoiceLedgerService:
    """
    Creates invoices, appends items, applies adjustments and cancels.

    Transaction boundary: every public method runs in one
    ``store.transaction()``; an exception leaves the store untouched.
    Invoice numbers are the exception: they are allocated before the insert
    transaction, so a failed create may leave a gap in the sequence.
    """

    def __init__(
        self,
        store: LedgerStore,
        numbers: InvoiceNumberGenerator,
        settings: BillingSettings | None = None,
        clock: Clock | None = None,
        patients: PatientDirectory | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._store = store
        self._numbers = numbers
        self._settings = settings or BillingSettings.with_defaults()
        self._clock = clock or SystemClock()
        self._patients = patients
        self._sleep = sleep

    # =========================================================================
    # Creation
    # =========================================================================

    def create_invoice(
        self,
        patient_id: str,
        due_in_days: int,
        items: Sequence[ItemInput],
        notes: str | None = None,
        *,
        actor_id: str,
        tax_amount: Money | Decimal | str | int | None = None,
        discount_amount: Money | Decimal | str | int | None = None,
        appointment_id: str | None = None,
    ) -> Invoice:
        """
        Create a pending invoice with at least one item.

        Raises:
            ValidationError: no items, an invalid item, due_in_days < 1,
                negative tax or discount, or a negative total.
            NotFoundError: the patient directory does not know the patient.
            ConflictError: every numbering attempt collided.
        """
        if not items:
            raise ValidationError("An invoice needs at least one item", field="items")
        lines = tuple(coerce_item(item) for item in items)
        return self._create(
            patient_id=patient_id,
            due_in_days=due_in_days,
            lines=lines,
            notes=notes,
            actor_id=actor_id,
            tax_amount=tax_amount,
            discount_amount=discount_amount,
            appointment_id=appointment_id,
        )

    def open_draft(
        self,
        patient_id: str,
        due_in_days: int | None = None,
        notes: str | None = None,
        *,
        actor_id: str,
        appointment_id: str | None = None,
    ) -> Invoice:
        """Create an item-less draft; items are added later with add_item()."""
        return self._create(
            patient_id=patient_id,
            due_in_days=due_in_days if due_in_days is not None else self._settings.default_due_days,
            lines=(),
            notes=notes,
            actor_id=actor_id,
            tax_amount=None,
            discount_amount=None,
            appointment_id=appointment_id,
        )

    def _create(
        self,
        *,
        patient_id: str,
        due_in_days: int,
        lines: tuple[InvoiceItem, ...],
        notes: str | None,
        actor_id: str,
        tax_amount: Any,
        discount_amount: Any,
        appointment_id: str | None,
    ) -> Invoice:
        actor_id = require_text(actor_id, "actor_id")
        patient_id = require_text(patient_id, "patient_id")
        days = coerce_quantity(due_in_days, "due_in_days")
        if days < 1:
            raise ValidationError(
                f"due_in_days must be at least 1, got {days}", field="due_in_days"
            )
        self._require_patient(patient_id)

        today = self._clock.today()
        draft = Invoice(
            id=uuid4(),
            invoice_number="",
            patient_id=patient_id,
            issue_date=today,
            due_date=today + timedelta(days=days),
            subtotal=Money.zero(),
            tax_amount=coerce_money(tax_amount, "tax_amount", default_zero=True),
            discount_amount=coerce_money(discount_amount, "discount_amount", default_zero=True),
            total_amount=Money.zero(),
            status=InvoiceStatus.PENDING if lines else InvoiceStatus.DRAFT,
            created_by=actor_id,
            items=lines,
            notes=notes,
            appointment_id=appointment_id,
        )
        draft = recompute_totals(draft)

        invoice = self._insert_with_fresh_number(draft)
        logger.info(
            "invoice_created",
            extra={
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
                "status": invoice.status.value,
                "item_count": len(invoice.items),
                "total_amount": invoice.total_amount.to_wire(),
                "actor_id": actor_id,
            },
        )
        return invoice

    def _insert_with_fresh_number(self, draft: Invoice) -> Invoice:
        attempts = self._settings.max_number_attempts
        for attempt in range(1, attempts + 1):
            invoice = replace(draft, invoice_number=self._numbers.next_number())
            try:
                with self._store.transaction():
                    self._store.add_invoice(invoice)
                return invoice
            except ConflictError:
                logger.warning(
                    "invoice_number_collision",
                    extra={
                        "invoice_number": invoice.invoice_number,
                        "attempt": attempt,
                        "max_attempts": attempts,
                    },
                )
                if attempt < attempts:
                    self._sleep(self._settings.retry_backoff_seconds * attempt)

        logger.error("invoice_numbering_exhausted", extra={"max_attempts": attempts})
        raise ConflictError("Invoice", invoice.invoice_number, attempts=attempts)

    def _require_patient(self, patient_id: str) -> None:
        if self._patients is not None and not self._patients.exists(patient_id):
            raise NotFoundError("Patient", patient_id)

    # =========================================================================
    # Changes
    # =========================================================================

    def _load_open_invoice(self, invoice_id: UUID, operation: str) -> Invoice:
        """Lock the invoice and refuse cancelled or already-paid-into invoices."""
        invoice = self._store.get_invoice(invoice_id, for_update=True)
        if invoice.is_cancelled:
            raise InvoiceStateError(invoice.invoice_number, invoice.status.value, operation)
        if self._store.list_payments(invoice_id):
            raise InvoiceStateError(
                invoice.invoice_number,
                invoice.status.value,
                operation,
                reason="payments have already been recorded",
            )
        return invoice

    def add_item(self, invoice_id: UUID, item: ItemInput, *, actor_id: str) -> Invoice:
        """Append an item and recompute totals. A draft becomes pending."""
        actor_id = require_text(actor_id, "actor_id")
        line = coerce_item(item)
        with self._store.transaction():
            invoice = self._load_open_invoice(invoice_id, "add items to")
            updated = recompute_totals(replace(invoice, items=invoice.items + (line,)))
            updated = with_derived_status(updated, (), self._clock.now())
            self._store.save_invoice(updated, actor_id=actor_id)

        logger.info(
            "invoice_item_added",
            extra={
                "invoice_number": updated.invoice_number,
                "item_id": str(line.id),
                "line_total": line.total_price.to_wire(),
                "total_amount": updated.total_amount.to_wire(),
                "status": updated.status.value,
            },
        )
        return updated

    def set_adjustments(
        self,
        invoice_id: UUID,
        *,
        actor_id: str,
        tax_amount: Money | Decimal | str | int | None = None,
        discount_amount: Money | Decimal | str | int | None = None,
    ) -> Invoice:
        """Replace tax and/or discount before any payment is recorded."""
        actor_id = require_text(actor_id, "actor_id")
        with self._store.transaction():
            invoice = self._load_open_invoice(invoice_id, "adjust")
            changes: dict[str, Money] = {}
            if tax_amount is not None:
                changes["tax_amount"] = coerce_money(tax_amount, "tax_amount")
            if discount_amount is not None:
                changes["discount_amount"] = coerce_money(discount_amount, "discount_amount")
            updated = recompute_totals(replace(invoice, **changes))
            updated = with_derived_status(updated, (), self._clock.now())
            self._store.save_invoice(updated, actor_id=actor_id)

        logger.info(
            "invoice_adjusted",
            extra={
                "invoice_number": updated.invoice_number,
                "tax_amount": updated.tax_amount.to_wire(),
                "discount_amount": updated.discount_amount.to_wire(),
                "total_amount": updated.total_amount.to_wire(),
            },
        )
        return updated

    def recompute_totals(self, invoice_id: UUID, *, actor_id: str) -> Invoice:
        """Re-sum stored items and persist the result if it differs."""
        actor_id = require_text(actor_id, "actor_id")
        with self._store.transaction():
            invoice = self._store.get_invoice(invoice_id, for_update=True)
            updated = recompute_totals(invoice)
            if updated != invoice:
                logger.warning(
                    "invoice_totals_corrected",
                    extra={
                        "invoice_number": invoice.invoice_number,
                        "stored_total": invoice.total_amount.to_wire(),
                        "recomputed_total": updated.total_amount.to_wire(),
                    },
                )
                self._store.save_invoice(updated, actor_id=actor_id)
        return updated

    def cancel_invoice(
        self,
        invoice_id: UUID,
        *,
        actor_id: str,
        reason: str | None = None,
    ) -> Invoice:
        """
        Cancel an invoice.  One-way; recorded payments are kept.

        Raises:
            InvoiceStateError: the invoice is already cancelled.
        """
        actor_id = require_text(actor_id, "actor_id")
        with self._store.transaction():
            invoice = self._store.get_invoice(invoice_id, for_update=True)
            if invoice.is_cancelled:
                raise InvoiceStateError(invoice.invoice_number, invoice.status.value, "cancel")
            cancelled = replace(
                invoice,
                status=InvoiceStatus.CANCELLED,
                cancelled_at=self._clock.now(),
                cancelled_by=actor_id,
                cancellation_reason=reason,
            )
            self._store.save_invoice(cancelled, actor_id=actor_id)

        logger.info(
            "invoice_cancelled",
            extra={
                "invoice_number": cancelled.invoice_number,
                "previous_status": invoice.status.value,
                "actor_id": actor_id,
            },
        )
        return cancelled

    # =========================================================================
    # Reads
    # =========================================================================

    def get_invoice(self, invoice_id: UUID) -> Invoice:
        """The invoice with its status derived for the current date."""
        with self._store.transaction():
            invoice = self._store.get_invoice(invoice_id)
            payments = self._store.list_payments(invoice_id)
        return with_derived_status(invoice, payments, self._clock.now())

    def list_invoices(
        self,
        *,
        status: InvoiceStatus | None = None,
        patient_id: str | None = None,
    ) -> list[Invoice]:
        """Invoices with derived status, optionally filtered on that status."""
        now = self._clock.now()
        with self._store.transaction():
            invoices = [
                with_derived_status(inv, self._store.list_payments(inv.id), now)
                for inv in self._store.list_invoices(patient_id=patient_id)
            ]
        if status is not None:
            invoices = [inv for inv in invoices if inv.status == status]
        return invoices

    def build_document(self, invoice_id: UUID) -> InvoiceDocument:
        """A fully reconciled read-model for renderers."""
        with self._store.transaction():
            invoice = self._store.get_invoice(invoice_id)
            payments = tuple(self._store.list_payments(invoice_id))
        return InvoiceDocument(
            invoice=with_derived_status(invoice, payments, self._clock.now()),
            payments=payments,
            amount_paid=amount_paid(payments),
            balance_due=balance_due(invoice, payments),
            currency=self._settings.currency,
        )

    def render_document(self, invoice_id: UUID, renderer: DocumentRenderer) -> bytes:
        document = self.build_document(invoice_id)
        with LogContext.bind(invoice_number=document.invoice.invoice_number):
            content = renderer.render(document)
            logger.info(
                "invoice_document_rendered",
                extra={"renderer": type(renderer).__name__, "size_bytes": len(content)},
            )
        return content
