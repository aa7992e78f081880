"""
Payment Reconciliation Service - Records payments against invoices.

Each payment is checked against the invoice's balance inside the same
transaction that locks the invoice, so two concurrent payments can never
together exceed the total.  After every accepted payment the invoice status
is re-derived and persisted when it changed.

Usage:
    payments = PaymentReconciliationService(store, settings, clock)
    payment = payments.record_payment(
        invoice.id, "50.00", "cash", actor_id="cashier-3",
    )
    payments.balance_due(invoice.id)   # Money("55.00")
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from ledger_config.schema import BillingSettings
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import (
    InvoiceStateError,
    OverpaymentError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_modules._guards import coerce_money, require_text
from ledger_modules.billing.ledger import (
    amount_paid,
    balance_due,
    derive_status,
    with_derived_status,
)
from ledger_modules.billing.models import (
    Invoice,
    Payment,
    ReconciliationSummary,
)
from ledger_modules.ports import LedgerStore

logger = get_logger("modules.billing.reconciliation")


class PaymentReconciliationService:
    """
    Records payments and reports invoice balances.

    Transaction boundary: record_payment() locks the invoice, checks the
    balance, appends the payment and updates the status in one
    ``store.transaction()``.
    """

    def __init__(
        self,
        store: LedgerStore,
        settings: BillingSettings | None = None,
        clock: Clock | None = None,
    ):
        self._store = store
        self._settings = settings or BillingSettings.with_defaults()
        self._clock = clock or SystemClock()

    def record_payment(
        self,
        invoice: Invoice | UUID,
        amount: Money | Decimal | str | int,
        method: str,
        payment_date: date | None = None,
        reference_number: str | None = None,
        notes: str | None = None,
        *,
        actor_id: str,
    ) -> Payment:
        """
        Append a payment and re-derive the invoice status.

        Args:
            invoice: The invoice or its id.  Balances are always re-read
                under lock; a stale snapshot is never trusted.
            amount: Strictly positive amount.
            method: One of the configured payment methods.

        Raises:
            ValidationError: non-positive amount or unknown method.
            InvoiceStateError: the invoice is cancelled or has no items.
            OverpaymentError: the payment exceeds the balance due.
            NotFoundError: the invoice does not exist.
        """
        invoice_id = invoice.id if isinstance(invoice, Invoice) else invoice
        actor_id = require_text(actor_id, "actor_id")
        value = coerce_money(amount, "amount")
        if not value.is_positive:
            raise ValidationError(
                f"Payment amount must be positive, got {value.to_wire()}", field="amount"
            )
        method = require_text(method, "payment_method")
        if method not in self._settings.payment_methods:
            raise ValidationError(
                f"Unknown payment method {method!r}; expected one of "
                f"{', '.join(self._settings.payment_methods)}",
                field="payment_method",
            )

        with self._store.transaction():
            current = self._store.get_invoice(invoice_id, for_update=True)
            with LogContext.bind(invoice_number=current.invoice_number, actor_id=actor_id):
                if current.is_cancelled:
                    raise InvoiceStateError(
                        current.invoice_number, current.status.value, "record a payment on"
                    )
                if not current.has_items:
                    raise InvoiceStateError(
                        current.invoice_number,
                        current.status.value,
                        "record a payment on",
                        reason="the invoice has no items",
                    )

                existing = self._store.list_payments(invoice_id)
                paid = amount_paid(existing)
                if paid + value > current.total_amount:
                    remaining = balance_due(current, existing)
                    logger.warning(
                        "payment_rejected_overpayment",
                        extra={
                            "amount": value.to_wire(),
                            "amount_paid": paid.to_wire(),
                            "balance_due": remaining.to_wire(),
                        },
                    )
                    raise OverpaymentError(
                        invoice_number=current.invoice_number,
                        amount=value.to_wire(),
                        amount_paid=paid.to_wire(),
                        total_amount=current.total_amount.to_wire(),
                        balance_due=remaining.to_wire(),
                    )

                now = self._clock.now()
                payment = self._store.add_payment(
                    Payment(
                        id=uuid4(),
                        invoice_id=invoice_id,
                        amount=value,
                        payment_method=method,
                        payment_date=payment_date or now.date(),
                        recorded_by=actor_id,
                        recorded_at=now,
                        reference_number=reference_number,
                        notes=notes,
                    )
                )

                payments = [*existing, payment]
                updated = with_derived_status(current, payments, now)
                if updated.status != current.status:
                    self._store.save_invoice(updated, actor_id=actor_id)

                logger.info(
                    "payment_recorded",
                    extra={
                        "payment_id": str(payment.id),
                        "amount": value.to_wire(),
                        "payment_method": method,
                        "balance_due": balance_due(current, payments).to_wire(),
                        "previous_status": current.status.value,
                        "status": updated.status.value,
                    },
                )
        return payment

    def balance_due(self, invoice_id: UUID) -> Money:
        with self._store.transaction():
            invoice = self._store.get_invoice(invoice_id)
            return balance_due(invoice, self._store.list_payments(invoice_id))

    def reconcile(self, invoice_id: UUID) -> ReconciliationSummary:
        """Totals, amount paid, balance and derived status for one invoice."""
        with self._store.transaction():
            invoice = self._store.get_invoice(invoice_id)
            payments = self._store.list_payments(invoice_id)
        return ReconciliationSummary(
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            total_amount=invoice.total_amount,
            amount_paid=amount_paid(payments),
            balance_due=balance_due(invoice, payments),
            status=derive_status(invoice, payments, self._clock.now()),
            payment_count=len(payments),
        )

    def payment_history(self, invoice_id: UUID) -> list[Payment]:
        """Payments for the invoice in the order they were recorded."""
        with self._store.transaction():
            self._store.get_invoice(invoice_id)
            return self._store.list_payments(invoice_id)

