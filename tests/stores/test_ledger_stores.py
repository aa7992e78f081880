"""
Contract tests for the LedgerStore implementations.

The ``store`` fixture is parametrised, so each test runs against both the
in-memory store and the SQLAlchemy store.
"""

from dataclasses import replace
from datetime import UTC, date, datetime
from uuid import uuid4

import pytest

from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import ConflictError, NotFoundError
from ledger_modules.billing.ledger import recompute_totals
from ledger_modules.billing.models import Invoice, InvoiceItem, InvoiceStatus, Payment
from ledger_modules.pharmacy.models import InventoryItem, MovementKind, StockMovement

ACTOR = "store-test"


def make_invoice(number="INV-00001", items=None):
    invoice = Invoice(
        id=uuid4(),
        invoice_number=number,
        patient_id="P-1",
        issue_date=date(2024, 1, 1),
        due_date=date(2024, 1, 31),
        subtotal=Money.zero(),
        tax_amount=Money.zero(),
        discount_amount=Money.zero(),
        total_amount=Money.zero(),
        status=InvoiceStatus.PENDING,
        created_by=ACTOR,
        items=tuple(items if items is not None else [InvoiceItem.create("Consultation", 1, "50.00")]),
    )
    return recompute_totals(invoice)


def make_item(quantity=10):
    return InventoryItem(
        id=uuid4(),
        drug_name="Ibuprofen 200mg",
        category="analgesic",
        quantity=quantity,
        unit="tablets",
        reorder_level=5,
        unit_price=Money.of("0.20"),
    )


def make_payment(invoice_id, amount="10.00"):
    return Payment(
        id=uuid4(),
        invoice_id=invoice_id,
        amount=Money.of(amount),
        payment_method="cash",
        payment_date=date(2024, 1, 2),
        recorded_by=ACTOR,
        recorded_at=datetime(2024, 1, 2, 9, 0, tzinfo=UTC),
    )


class TestInvoices:
    def test_round_trip(self, store):
        invoice = make_invoice()
        with store.transaction():
            store.add_invoice(invoice)

        with store.transaction():
            loaded = store.get_invoice(invoice.id)
        assert loaded == invoice

    def test_duplicate_number_is_conflict(self, store):
        with store.transaction():
            store.add_invoice(make_invoice("INV-00007"))

        with pytest.raises(ConflictError) as exc_info:
            with store.transaction():
                store.add_invoice(make_invoice("INV-00007"))
        assert exc_info.value.key == "INV-00007"

    def test_find_by_number(self, store):
        invoice = make_invoice("INV-00042")
        with store.transaction():
            store.add_invoice(invoice)
            assert store.find_invoice_by_number("INV-00042").id == invoice.id
            assert store.find_invoice_by_number("INV-99999") is None

    def test_missing(self, store):
        with pytest.raises(NotFoundError):
            with store.transaction():
                store.get_invoice(uuid4())

    def test_save_appends_items_and_keeps_stored_ones(self, store):
        invoice = make_invoice()
        with store.transaction():
            store.add_invoice(invoice)

        extra = InvoiceItem.create("Lab panel", 2, "10.00")
        # A caller that drops stored items cannot remove them
        updated = recompute_totals(replace(invoice, items=invoice.items + (extra,)))
        with store.transaction():
            store.save_invoice(replace(updated, items=(extra,)), actor_id=ACTOR)
            loaded = store.get_invoice(invoice.id)

        assert [i.description for i in loaded.items] == ["Consultation", "Lab panel"]
        assert loaded.total_amount == Money.of("70.00")

    def test_list_ordered_by_number(self, store):
        with store.transaction():
            store.add_invoice(make_invoice("INV-00002"))
            store.add_invoice(make_invoice("INV-00001"))
            numbers = [i.invoice_number for i in store.list_invoices()]
        assert numbers == ["INV-00001", "INV-00002"]


class TestTransactions:
    def test_rollback_on_error(self, store):
        invoice = make_invoice()
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.add_invoice(invoice)
                raise RuntimeError("boom")

        with store.transaction():
            assert store.list_invoices() == []

    def test_nested_joins_outer(self, store):
        invoice = make_invoice()
        with pytest.raises(RuntimeError):
            with store.transaction():
                with store.transaction():
                    store.add_invoice(invoice)
                raise RuntimeError("outer fails after inner completes")

        with store.transaction():
            assert store.find_invoice_by_number(invoice.invoice_number) is None


class TestPayments:
    def test_sequence_assigned_in_order(self, store):
        invoice = make_invoice()
        with store.transaction():
            store.add_invoice(invoice)
            first = store.add_payment(make_payment(invoice.id, "1.00"))
            second = store.add_payment(make_payment(invoice.id, "2.00"))
            listed = store.list_payments(invoice.id)

        assert first.sequence < second.sequence
        assert [p.id for p in listed] == [first.id, second.id]
        assert listed[0].recorded_at == datetime(2024, 1, 2, 9, 0, tzinfo=UTC)


class TestInventory:
    def test_conditional_adjust(self, store):
        item = make_item(quantity=5)
        with store.transaction():
            store.add_inventory_item(item, actor_id=ACTOR)
            assert store.adjust_quantity_if_available(item.id, -3) == 2
            assert store.adjust_quantity_if_available(item.id, -3) is None
            assert store.get_inventory_item(item.id).quantity == 2

    def test_adjust_missing_item(self, store):
        with pytest.raises(NotFoundError):
            with store.transaction():
                store.adjust_quantity_if_available(uuid4(), -1)

    def test_save_never_touches_quantity(self, store):
        item = make_item(quantity=5)
        with store.transaction():
            store.add_inventory_item(item, actor_id=ACTOR)
            store.save_inventory_item(replace(item, quantity=500, reorder_level=1), actor_id=ACTOR)
            loaded = store.get_inventory_item(item.id)

        assert loaded.quantity == 5
        assert loaded.reorder_level == 1

    def test_movements_in_sequence(self, store):
        item = make_item()
        with store.transaction():
            store.add_inventory_item(item, actor_id=ACTOR)
            for delta in (3, -1):
                store.add_stock_movement(
                    StockMovement(
                        id=uuid4(),
                        inventory_item_id=item.id,
                        kind=MovementKind.ADJUSTMENT,
                        delta=delta,
                        resulting_quantity=10 + delta,
                        actor_id=ACTOR,
                        occurred_at=datetime(2024, 1, 1, tzinfo=UTC),
                    )
                )
            deltas = [m.delta for m in store.list_stock_movements(item.id)]
        assert deltas == [3, -1]
