"""
Typed exception hierarchy for the hospital ledger.

Every error the ledger raises is a subclass of LedgerKernelError and carries:
  1. a typed class, so callers catch by type rather than by message text;
  2. a machine-readable ``code`` attribute that is safe to expose over an API;
  3. structured attributes describing the rejected operation.

    LedgerKernelError (base)
    |
    +-- ValidationError              malformed input, never retried
    |   +-- InvoiceStateError        operation not allowed in the invoice's status
    |
    +-- ConflictError                unique collision, retried with bounded attempts
    |
    +-- NotFoundError                referenced invoice, item or patient missing
    |
    +-- BusinessRuleError            surfaced to the caller, never clamped
    |   +-- OverpaymentError
    |   +-- InsufficientStockError
    |   +-- NegativeStockError
    |
    +-- ImmutabilityViolationError   append-only row modified through the ORM

Business-rule errors are not retryable: the same request will be rejected
again until the underlying balance or stock changes.
"""

from decimal import Decimal
from typing import Any


class LedgerKernelError(Exception):
    """Base exception for all ledger errors."""

    code: str = "LEDGER_ERROR"

    def to_dict(self) -> dict[str, Any]:
        """Structured view used by logging and API error envelopes."""
        payload: dict[str, Any] = {"code": self.code, "message": str(self)}
        for key, value in vars(self).items():
            if key.startswith("_"):
                continue
            payload[key] = str(value) if isinstance(value, Decimal) else value
        return payload


# =============================================================================
# Validation
# =============================================================================


class ValidationError(LedgerKernelError):
    """Input failed validation. The caller must fix the request."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvoiceStateError(ValidationError):
    """The requested operation is not allowed in the invoice's current status."""

    code: str = "INVOICE_STATE_ERROR"

    def __init__(
        self,
        invoice_number: str,
        status: str,
        operation: str,
        reason: str | None = None,
    ):
        self.invoice_number = invoice_number
        self.status = status
        self.operation = operation
        self.reason = reason
        detail = reason or f"status is {status}"
        super().__init__(
            f"Cannot {operation} invoice {invoice_number}: {detail}",
            field="status",
        )


# =============================================================================
# Conflicts and lookups
# =============================================================================


class ConflictError(LedgerKernelError):
    """A unique key collided with an existing row."""

    code: str = "CONFLICT"

    def __init__(self, resource: str, key: str, attempts: int | None = None):
        self.resource = resource
        self.key = key
        self.attempts = attempts
        if attempts:
            message = (
                f"{resource} {key} already exists "
                f"(gave up after {attempts} attempts)"
            )
        else:
            message = f"{resource} {key} already exists"
        super().__init__(message)


class NotFoundError(LedgerKernelError):
    """A referenced entity does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


# =============================================================================
# Business rules
# =============================================================================


class BusinessRuleError(LedgerKernelError):
    """Base for rejections that depend on current balances or stock."""

    code: str = "BUSINESS_RULE_VIOLATION"


class OverpaymentError(BusinessRuleError):
    """A payment would push the amount paid above the invoice total."""

    code: str = "OVERPAYMENT"

    def __init__(
        self,
        invoice_number: str,
        amount: str,
        amount_paid: str,
        total_amount: str,
        balance_due: str,
    ):
        self.invoice_number = invoice_number
        self.amount = amount
        self.amount_paid = amount_paid
        self.total_amount = total_amount
        self.balance_due = balance_due
        super().__init__(
            f"Payment of {amount} exceeds balance due {balance_due} on "
            f"{invoice_number} (total {total_amount}, already paid {amount_paid})"
        )


class InsufficientStockError(BusinessRuleError):
    """Not enough stock on hand to dispense the requested quantity."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        inventory_item_id: str,
        available: int,
        requested: int,
        unit: str = "units",
    ):
        self.inventory_item_id = inventory_item_id
        self.available = available
        self.requested = requested
        self.unit = unit
        super().__init__(f"only {available} {unit} available, {requested} requested")


class NegativeStockError(BusinessRuleError):
    """A stock adjustment would drive the on-hand quantity below zero."""

    code: str = "NEGATIVE_STOCK"

    def __init__(self, inventory_item_id: str, quantity: int, delta: int):
        self.inventory_item_id = inventory_item_id
        self.quantity = quantity
        self.delta = delta
        super().__init__(
            f"Adjustment of {delta} on inventory item {inventory_item_id} "
            f"would leave {quantity + delta} on hand (currently {quantity})"
        )


# =============================================================================
# Persistence guards
# =============================================================================


class ImmutabilityViolationError(LedgerKernelError):
    """An append-only row was updated or deleted."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")
