"""
Tests for StockManager.

Covers:
- Registration defaults and opening-stock movements
- Low-stock boundary and dispense eligibility
- Conditional adjustments and NegativeStockError
- Restock, detail edits and stock alerts
"""

from datetime import date, timedelta
from uuid import uuid4

import pytest

from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import NegativeStockError, NotFoundError, ValidationError
from ledger_modules.pharmacy.models import MovementKind


class TestRegisterItem:
    def test_defaults(self, stock, test_actor_id):
        item = stock.register_item(
            drug_name="Paracetamol 500mg",
            category="analgesic",
            unit_price="0.10",
            actor_id=test_actor_id,
        )

        assert item.quantity == 0
        assert item.unit == "tablets"
        assert item.reorder_level == 10
        assert stock.get_item(item.id) == item

    def test_opening_stock_is_a_restock_movement(self, create_item, stock):
        item = create_item(quantity=40)

        history = stock.movement_history(item.id)
        assert len(history) == 1
        assert history[0].kind == MovementKind.RESTOCK
        assert history[0].delta == 40
        assert history[0].resulting_quantity == 40
        assert history[0].reason == "initial stock"

    def test_zero_opening_stock_has_no_movement(self, create_item, stock):
        item = create_item(quantity=0)
        assert stock.movement_history(item.id) == []

    def test_negative_quantity_rejected(self, create_item):
        with pytest.raises(ValidationError):
            create_item(quantity=-1)

    def test_unknown_unit_rejected(self, create_item):
        with pytest.raises(ValidationError) as exc_info:
            create_item(unit="barrels")
        assert exc_info.value.field == "unit"

    def test_blank_name_rejected(self, create_item):
        with pytest.raises(ValidationError):
            create_item(drug_name="  ")


class TestPredicates:
    def test_low_stock_at_reorder_level(self, create_item, stock):
        item = create_item(quantity=10, reorder_level=10)
        assert stock.is_low_stock(item)
        assert item.is_low_stock

    def test_not_low_above_reorder_level(self, create_item, stock):
        assert not stock.is_low_stock(create_item(quantity=11, reorder_level=10))

    def test_can_dispense(self, create_item, stock):
        item = create_item(quantity=5)
        assert stock.can_dispense(item, 5)
        assert not stock.can_dispense(item, 6)
        assert not stock.can_dispense(item, 0)

    def test_can_dispense_ignores_expiry(self, create_item, stock):
        item = create_item(quantity=5, expiry_date=date(2000, 1, 1))
        assert stock.can_dispense(item, 1)

    def test_low_stock_items(self, create_item, stock):
        low = create_item(drug_name="A", quantity=2, reorder_level=5)
        create_item(drug_name="B", quantity=50, reorder_level=5)

        assert [i.id for i in stock.low_stock_items()] == [low.id]


class TestAdjustStock:
    def test_positive_and_negative(self, create_item, stock, test_actor_id):
        item = create_item(quantity=10)

        item = stock.adjust_stock(item, 5, actor_id=test_actor_id, reason="count correction")
        assert item.quantity == 15
        item = stock.adjust_stock(item.id, -15, actor_id=test_actor_id)
        assert item.quantity == 0

    def test_negative_result_rejected_and_unchanged(self, create_item, stock, test_actor_id):
        item = create_item(quantity=2)

        with pytest.raises(NegativeStockError) as exc_info:
            stock.adjust_stock(item, -3, actor_id=test_actor_id)

        assert exc_info.value.quantity == 2
        assert exc_info.value.delta == -3
        assert stock.get_item(item.id).quantity == 2
        assert len(stock.movement_history(item.id)) == 1

    def test_zero_delta_rejected(self, create_item, stock, test_actor_id):
        with pytest.raises(ValidationError):
            stock.adjust_stock(create_item(), 0, actor_id=test_actor_id)

    def test_non_integer_delta_rejected(self, create_item, stock, test_actor_id):
        with pytest.raises(ValidationError):
            stock.adjust_stock(create_item(), 1.5, actor_id=test_actor_id)

    def test_writes_movement(self, create_item, stock, test_actor_id):
        item = create_item(quantity=10)
        stock.adjust_stock(item, -4, actor_id=test_actor_id, reason="damaged")

        last = stock.movement_history(item.id)[-1]
        assert last.kind == MovementKind.ADJUSTMENT
        assert last.delta == -4
        assert last.resulting_quantity == 6
        assert last.actor_id == test_actor_id
        assert last.reason == "damaged"

    def test_missing_item(self, stock, test_actor_id):
        with pytest.raises(NotFoundError):
            stock.adjust_stock(uuid4(), 1, actor_id=test_actor_id)


class TestRestock:
    def test_restock_updates_batch(self, create_item, stock, test_actor_id):
        item = create_item(quantity=5, batch_number="B-1")
        new_expiry = date(2026, 6, 30)

        restocked = stock.restock(
            item.id, 100, actor_id=test_actor_id, batch_number="B-2", expiry_date=new_expiry
        )

        assert restocked.quantity == 105
        assert restocked.batch_number == "B-2"
        assert restocked.expiry_date == new_expiry
        assert stock.movement_history(item.id)[-1].kind == MovementKind.RESTOCK

    @pytest.mark.parametrize("quantity", [0, -5])
    def test_non_positive_restock_rejected(self, create_item, stock, quantity, test_actor_id):
        with pytest.raises(ValidationError):
            stock.restock(create_item().id, quantity, actor_id=test_actor_id)


class TestUpdateItemDetails:
    def test_update(self, create_item, stock, test_actor_id):
        item = create_item()
        updated = stock.update_item_details(
            item.id, actor_id=test_actor_id, unit_price="0.75", reorder_level=25
        )

        assert updated.unit_price == Money.of("0.75")
        assert updated.reorder_level == 25
        assert stock.get_item(item.id).reorder_level == 25
        assert stock.get_item(item.id).quantity == item.quantity

    def test_quantity_not_editable(self, create_item, stock, test_actor_id):
        with pytest.raises(ValidationError) as exc_info:
            stock.update_item_details(create_item().id, actor_id=test_actor_id, quantity=1)
        assert exc_info.value.field == "quantity"

    def test_unknown_field(self, create_item, stock, test_actor_id):
        with pytest.raises(ValidationError):
            stock.update_item_details(create_item().id, actor_id=test_actor_id, colour="red")


class TestStockAlerts:
    def test_alert_kinds(self, create_item, stock):
        today = date(2024, 1, 1)
        empty = create_item(drug_name="Empty", quantity=0)
        low = create_item(drug_name="Low", quantity=3, reorder_level=5)
        expired = create_item(drug_name="Expired", quantity=50, expiry_date=today - timedelta(days=1))
        soon = create_item(drug_name="Soon", quantity=50, expiry_date=today + timedelta(days=30))
        create_item(drug_name="Fine", quantity=50, expiry_date=today + timedelta(days=365))

        alerts = {(a.item.id, a.kind) for a in stock.stock_alerts(as_of=today)}

        assert alerts == {
            (empty.id, "out_of_stock"),
            (low.id, "low_stock"),
            (expired.id, "expired"),
            (soon.id, "expiring_soon"),
        }

    def test_defaults_to_clock_date(self, create_item, stock, deterministic_clock):
        item = create_item(quantity=50, expiry_date=date(2024, 1, 10))
        deterministic_clock.advance_days(10)

        kinds = [a.kind for a in stock.stock_alerts() if a.item.id == item.id]
        assert kinds == ["expired"]
