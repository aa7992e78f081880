"""Tests for the ledger exception hierarchy."""

import pytest

from ledger_kernel.exceptions import (
    BusinessRuleError,
    ConflictError,
    ImmutabilityViolationError,
    InsufficientStockError,
    InvoiceStateError,
    LedgerKernelError,
    NegativeStockError,
    NotFoundError,
    OverpaymentError,
    ValidationError,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        "exc, parent",
        [
            (InvoiceStateError("INV-00001", "cancelled", "cancel"), ValidationError),
            (OverpaymentError("INV-00001", "60.00", "50.00", "105.00", "55.00"), BusinessRuleError),
            (InsufficientStockError("item", 4, 10), BusinessRuleError),
            (NegativeStockError("item", 2, -3), BusinessRuleError),
            (ConflictError("Invoice", "INV-00001"), LedgerKernelError),
            (NotFoundError("Invoice", "x"), LedgerKernelError),
            (ImmutabilityViolationError("Payment", "x", "append-only"), LedgerKernelError),
        ],
    )
    def test_parent(self, exc, parent):
        assert isinstance(exc, parent)


class TestCodes:
    def test_codes_are_stable(self):
        assert ValidationError("bad").code == "VALIDATION_ERROR"
        assert InvoiceStateError("INV-1", "paid", "adjust").code == "INVOICE_STATE_ERROR"
        assert ConflictError("Invoice", "INV-1").code == "CONFLICT"
        assert NotFoundError("Invoice", "x").code == "NOT_FOUND"
        assert OverpaymentError("INV-1", "1", "1", "1", "0").code == "OVERPAYMENT"
        assert InsufficientStockError("i", 1, 2).code == "INSUFFICIENT_STOCK"
        assert NegativeStockError("i", 1, -2).code == "NEGATIVE_STOCK"


class TestMessages:
    def test_insufficient_stock_message(self):
        exc = InsufficientStockError("item-1", available=4, requested=10)
        assert str(exc) == "only 4 units available, 10 requested"
        assert exc.available == 4
        assert exc.requested == 10

    def test_insufficient_stock_message_uses_unit(self):
        exc = InsufficientStockError("item-1", 4, 10, unit="tablets")
        assert str(exc) == "only 4 tablets available, 10 requested"

    def test_invoice_state_default_detail(self):
        exc = InvoiceStateError("INV-00001", "cancelled", "cancel")
        assert str(exc) == "Cannot cancel invoice INV-00001: status is cancelled"

    def test_invoice_state_reason_overrides_detail(self):
        exc = InvoiceStateError("INV-00001", "pending", "adjust", reason="payments exist")
        assert str(exc) == "Cannot adjust invoice INV-00001: payments exist"

    def test_conflict_mentions_attempts(self):
        exc = ConflictError("Invoice", "INV-00003", attempts=5)
        assert "5 attempts" in str(exc)
        assert exc.attempts == 5


class TestToDict:
    def test_structured_payload(self):
        payload = OverpaymentError("INV-00001", "60.00", "50.00", "105.00", "55.00").to_dict()
        assert payload["code"] == "OVERPAYMENT"
        assert payload["balance_due"] == "55.00"
        assert payload["invoice_number"] == "INV-00001"
        assert "message" in payload

    def test_validation_field(self):
        payload = ValidationError("quantity must be positive", field="quantity").to_dict()
        assert payload["field"] == "quantity"
