"""
Concurrency tests for dispensing, payments and invoice numbering.

Worker threads share one store instance.  On the SQLAlchemy store each
worker gets its own session; SQLite serializes writers with
BEGIN IMMEDIATE, the in-memory store with its lock.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from ledger_config.schema import BillingSettings
from ledger_kernel.exceptions import (
    ConflictError,
    InsufficientStockError,
    OverpaymentError,
)
from ledger_modules.billing.models import InvoiceItem
from ledger_modules.billing.service import InvoiceLedgerService
from ledger_modules.pharmacy.dispensing import DispensingService

pytestmark = [pytest.mark.slow_locks]


def run_concurrently(fn, args_list):
    """Start every call at the same barrier; return results or exceptions."""
    barrier = threading.Barrier(len(args_list))

    def worker(args):
        barrier.wait()
        try:
            return fn(*args)
        except Exception as exc:
            return exc

    with ThreadPoolExecutor(max_workers=len(args_list)) as pool:
        return list(pool.map(worker, args_list))


class TestConcurrentDispense:
    def test_two_dispenses_of_three_against_five(self, create_item, store, deterministic_clock, stock):
        item = create_item(quantity=5)
        dispensing = DispensingService(store, deterministic_clock)

        results = run_concurrently(
            dispensing.dispense,
            [(item, "P-1", 3, "pharmacist-1"), (item, "P-2", 3, "pharmacist-2")],
        )

        failures = [r for r in results if isinstance(r, Exception)]
        successes = [r for r in results if not isinstance(r, Exception)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], InsufficientStockError)
        assert failures[0].available == 2
        assert stock.get_item(item.id).quantity == 2
        assert len(dispensing.dispensing_history(inventory_item_id=item.id)) == 1

    def test_many_single_unit_dispenses_never_oversell(self, create_item, store, deterministic_clock, stock):
        item = create_item(quantity=6)
        dispensing = DispensingService(store, deterministic_clock)

        results = run_concurrently(
            dispensing.dispense,
            [(item, f"P-{n}", 1, "pharmacist") for n in range(10)],
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(successes) == 6
        assert all(isinstance(f, InsufficientStockError) for f in failures)
        assert stock.get_item(item.id).quantity == 0


class TestConcurrentPayments:
    def test_overpayment_guard_is_serialized(self, create_invoice, payments, test_actor_id):
        invoice = create_invoice()

        def pay(amount):
            return payments.record_payment(invoice.id, amount, "cash", actor_id=test_actor_id)

        results = run_concurrently(pay, [("60.00",) for _ in range(3)])

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(successes) == 1
        assert all(isinstance(f, OverpaymentError) for f in failures)
        assert payments.balance_due(invoice.id).to_wire() == "45.00"


class TestConcurrentNumbering:
    def test_parallel_creates_get_distinct_numbers(self, create_invoice):
        results = run_concurrently(create_invoice, [() for _ in range(8)])

        assert not [r for r in results if isinstance(r, Exception)]
        numbers = {r.invoice_number for r in results}
        assert len(numbers) == 8


class RepeatingNumbers:
    """Hands out a scripted list of numbers, repeating the last one."""

    def __init__(self, numbers):
        self._numbers = list(numbers)
        self.calls = 0

    def next_number(self):
        self.calls += 1
        if len(self._numbers) > 1:
            return self._numbers.pop(0)
        return self._numbers[0]


class TestNumberCollisionRetry:
    def make_ledger(self, store, numbers, billing_settings, deterministic_clock, sleeps):
        return InvoiceLedgerService(
            store, numbers, billing_settings, deterministic_clock, sleep=sleeps.append
        )

    def items(self):
        return [InvoiceItem.create("Consultation", 1, "10.00")]

    def test_collision_is_retried(self, store, billing_settings, deterministic_clock, captured_logs):
        sleeps = []
        numbers = RepeatingNumbers(["INV-00001", "INV-00001", "INV-00002"])
        ledger = self.make_ledger(store, numbers, billing_settings, deterministic_clock, sleeps)

        first = ledger.create_invoice("P-1", 30, self.items(), actor_id="clerk")
        second = ledger.create_invoice("P-1", 30, self.items(), actor_id="clerk")

        assert first.invoice_number == "INV-00001"
        assert second.invoice_number == "INV-00002"
        assert numbers.calls == 3
        assert len(sleeps) == 1
        messages = [r["message"] for r in captured_logs()]
        assert "invoice_number_collision" in messages

    def test_exhausted_attempts_raise_conflict(self, store, billing_settings, deterministic_clock):
        sleeps = []
        numbers = RepeatingNumbers(["INV-00001"])
        ledger = self.make_ledger(store, numbers, billing_settings, deterministic_clock, sleeps)
        ledger.create_invoice("P-1", 30, self.items(), actor_id="clerk")

        with pytest.raises(ConflictError) as exc_info:
            ledger.create_invoice("P-1", 30, self.items(), actor_id="clerk")

        attempts = billing_settings.max_number_attempts
        assert exc_info.value.attempts == attempts
        assert numbers.calls == 1 + attempts
        assert len(sleeps) == attempts - 1
        assert len(ledger.list_invoices()) == 1

    def test_backoff_is_linear(self, store, deterministic_clock):
        settings = BillingSettings(max_number_attempts=3, retry_backoff_seconds=0.5)
        sleeps = []
        numbers = RepeatingNumbers(["INV-00001"])
        ledger = self.make_ledger(store, numbers, settings, deterministic_clock, sleeps)
        ledger.create_invoice("P-1", 30, self.items(), actor_id="clerk")

        with pytest.raises(ConflictError):
            ledger.create_invoice("P-1", 30, self.items(), actor_id="clerk")

        assert sleeps == [0.5, 1.0]
