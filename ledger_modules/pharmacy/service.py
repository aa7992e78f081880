"""
Stock Manager - Inventory registration, adjustment and stock alerts.

Every quantity change goes through the store's conditional update, so the
on-hand quantity never becomes negative even under concurrent writers, and
each change appends a StockMovement recording the delta and the resulting
quantity.

Usage:
    stock = StockManager(store, settings, clock)
    item = stock.register_item(
        drug_name="Amoxicillin 500mg",
        category="antibiotic",
        unit_price="0.45",
        quantity=200,
        actor_id="pharmacist-2",
    )
    stock.adjust_stock(item, -3, actor_id="pharmacist-2", reason="damaged")
"""

from __future__ import annotations

from dataclasses import fields, replace
from datetime import date
from typing import Any
from uuid import UUID, uuid4

from ledger_config.schema import PharmacySettings
from ledger_engines.stock_rules import can_dispense, classify_stock, is_low_stock
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import NegativeStockError, ValidationError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_modules._guards import coerce_money, coerce_quantity, require_text
from ledger_modules.pharmacy.models import (
    InventoryItem,
    MovementKind,
    StockAlert,
    StockMovement,
)
from ledger_modules.ports import LedgerStore

logger = get_logger("modules.pharmacy.service")

# Fields update_item_details() may change.  Quantity only moves through
# adjust_stock(), restock() and dispensing.
_EDITABLE_FIELDS = frozenset(
    f.name for f in fields(InventoryItem) if f.name not in ("id", "quantity")
)


class StockManager:
    """Inventory operations over a LedgerStore."""

    def __init__(
        self,
        store: LedgerStore,
        settings: PharmacySettings | None = None,
        clock: Clock | None = None,
    ):
        self._store = store
        self._settings = settings or PharmacySettings.with_defaults()
        self._clock = clock or SystemClock()

    # =========================================================================
    # Registration and details
    # =========================================================================

    def register_item(
        self,
        *,
        drug_name: str,
        category: str,
        unit_price: Any,
        actor_id: str,
        quantity: int = 0,
        unit: str | None = None,
        reorder_level: int | None = None,
        expiry_date: date | None = None,
        batch_number: str | None = None,
        manufacturer: str | None = None,
        description: str | None = None,
    ) -> InventoryItem:
        """Register a new batch.  A non-zero opening quantity is recorded as a restock."""
        actor_id = require_text(actor_id, "actor_id")
        item = InventoryItem(
            id=uuid4(),
            drug_name=require_text(drug_name, "drug_name"),
            category=require_text(category, "category"),
            quantity=coerce_quantity(quantity),
            unit=self._check_unit(unit or self._settings.default_unit),
            reorder_level=coerce_quantity(
                self._settings.default_reorder_level if reorder_level is None else reorder_level,
                "reorder_level",
            ),
            unit_price=coerce_money(unit_price, "unit_price"),
            expiry_date=expiry_date,
            batch_number=batch_number,
            manufacturer=manufacturer,
            description=description,
        )

        with self._store.transaction():
            self._store.add_inventory_item(item, actor_id=actor_id)
            if item.quantity:
                self._store.add_stock_movement(
                    self._movement(
                        item.id,
                        MovementKind.RESTOCK,
                        item.quantity,
                        item.quantity,
                        actor_id,
                        "initial stock",
                    )
                )

        logger.info(
            "inventory_item_registered",
            extra={
                "inventory_item_id": str(item.id),
                "drug_name": item.drug_name,
                "quantity": item.quantity,
                "reorder_level": item.reorder_level,
            },
        )
        return item

    def update_item_details(self, item_id: UUID, *, actor_id: str, **changes: Any) -> InventoryItem:
        """
        Change descriptive fields of a batch.

        Raises:
            ValidationError: an unknown field, or an attempt to set quantity.
        """
        actor_id = require_text(actor_id, "actor_id")
        if "quantity" in changes:
            raise ValidationError(
                "quantity cannot be edited directly; use adjust_stock or restock",
                field="quantity",
            )
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Unknown inventory fields: {', '.join(sorted(unknown))}",
                field=sorted(unknown)[0],
            )
        if "unit_price" in changes:
            changes["unit_price"] = coerce_money(changes["unit_price"], "unit_price")
        if "reorder_level" in changes:
            changes["reorder_level"] = coerce_quantity(changes["reorder_level"], "reorder_level")
        if "unit" in changes:
            changes["unit"] = self._check_unit(changes["unit"])

        with self._store.transaction():
            current = self._store.get_inventory_item(item_id)
            updated = replace(current, **changes)
            self._store.save_inventory_item(updated, actor_id=actor_id)

        logger.info(
            "inventory_item_updated",
            extra={"inventory_item_id": str(item_id), "fields": sorted(changes)},
        )
        return updated

    def _check_unit(self, unit: str) -> str:
        if unit not in self._settings.units:
            raise ValidationError(
                f"Unknown unit {unit!r}; expected one of {', '.join(self._settings.units)}",
                field="unit",
            )
        return unit

    # =========================================================================
    # Queries
    # =========================================================================

    def get_item(self, item_id: UUID) -> InventoryItem:
        return self._store.get_inventory_item(item_id)

    def list_items(self) -> list[InventoryItem]:
        return self._store.list_inventory_items()

    def is_low_stock(self, item: InventoryItem) -> bool:
        return is_low_stock(item.quantity, item.reorder_level)

    def can_dispense(self, item: InventoryItem, quantity: int) -> bool:
        """Eligibility against the given snapshot.  Expiry is not considered."""
        return can_dispense(item.quantity, quantity)

    def low_stock_items(self) -> list[InventoryItem]:
        return [item for item in self._store.list_inventory_items() if item.is_low_stock]

    def stock_alerts(self, as_of: date | None = None) -> list[StockAlert]:
        """
        Alerts for every batch that is out of stock, low, expired or expiring.

        Out of stock supersedes low stock; expired supersedes expiring soon.
        """
        as_of = as_of or self._clock.today()
        alerts: list[StockAlert] = []
        for item in self._store.list_inventory_items():
            flags = classify_stock(
                quantity=item.quantity,
                reorder_level=item.reorder_level,
                expiry_date=item.expiry_date,
                as_of=as_of,
                warning_days=self._settings.expiry_warning_days,
            )
            if flags.out_of_stock:
                alerts.append(StockAlert(item, "out_of_stock", "no units on hand"))
            elif flags.low_stock:
                alerts.append(
                    StockAlert(
                        item,
                        "low_stock",
                        f"{item.quantity} {item.unit} on hand, reorder level {item.reorder_level}",
                    )
                )
            if flags.expired:
                alerts.append(
                    StockAlert(item, "expired", f"expired on {item.expiry_date.isoformat()}")
                )
            elif flags.expiring_soon:
                alerts.append(
                    StockAlert(
                        item,
                        "expiring_soon",
                        f"expires in {flags.days_until_expiry} days",
                    )
                )
        return alerts

    def movement_history(self, item_id: UUID) -> list[StockMovement]:
        with self._store.transaction():
            self._store.get_inventory_item(item_id)
            return self._store.list_stock_movements(item_id)

    # =========================================================================
    # Quantity changes
    # =========================================================================

    def adjust_stock(
        self,
        item: InventoryItem | UUID,
        delta: int,
        *,
        actor_id: str,
        reason: str | None = None,
        kind: MovementKind = MovementKind.ADJUSTMENT,
    ) -> InventoryItem:
        """
        Apply a signed quantity change.

        Raises:
            ValidationError: delta is zero or not an integer.
            NegativeStockError: the change would leave a negative quantity.
            NotFoundError: the item does not exist.
        """
        item_id = item.id if isinstance(item, InventoryItem) else item
        actor_id = require_text(actor_id, "actor_id")
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise ValidationError(f"delta must be an integer, got {delta!r}", field="delta")
        if delta == 0:
            raise ValidationError("delta must be non-zero", field="delta")

        with self._store.transaction():
            with LogContext.bind(inventory_item_id=item_id, actor_id=actor_id):
                new_quantity = self._store.adjust_quantity_if_available(item_id, delta)
                if new_quantity is None:
                    current = self._store.get_inventory_item(item_id)
                    logger.warning(
                        "stock_adjustment_rejected_negative",
                        extra={"quantity": current.quantity, "delta": delta},
                    )
                    raise NegativeStockError(str(item_id), current.quantity, delta)
                self._store.add_stock_movement(
                    self._movement(item_id, kind, delta, new_quantity, actor_id, reason)
                )
                updated = self._store.get_inventory_item(item_id)

                logger.info(
                    "stock_adjusted",
                    extra={
                        "movement_kind": kind.value,
                        "delta": delta,
                        "quantity": new_quantity,
                        "reason": reason,
                    },
                )
                if updated.is_low_stock:
                    logger.warning(
                        "stock_below_reorder_level",
                        extra={"quantity": new_quantity, "reorder_level": updated.reorder_level},
                    )
        return updated

    def restock(
        self,
        item_id: UUID,
        quantity: int,
        *,
        actor_id: str,
        batch_number: str | None = None,
        expiry_date: date | None = None,
        reason: str | None = None,
    ) -> InventoryItem:
        """Receive stock, optionally updating the batch number and expiry date."""
        quantity = coerce_quantity(quantity)
        if quantity < 1:
            raise ValidationError(f"Restock quantity must be positive, got {quantity}", field="quantity")

        with self._store.transaction():
            details: dict[str, Any] = {}
            if batch_number is not None:
                details["batch_number"] = batch_number
            if expiry_date is not None:
                details["expiry_date"] = expiry_date
            if details:
                self.update_item_details(item_id, actor_id=actor_id, **details)
            return self.adjust_stock(
                item_id,
                quantity,
                actor_id=actor_id,
                reason=reason or "restock",
                kind=MovementKind.RESTOCK,
            )

    def _movement(
        self,
        item_id: UUID,
        kind: MovementKind,
        delta: int,
        resulting_quantity: int,
        actor_id: str,
        reason: str | None,
    ) -> StockMovement:
        return StockMovement(
            id=uuid4(),
            inventory_item_id=item_id,
            kind=kind,
            delta=delta,
            resulting_quantity=resulting_quantity,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            reason=reason,
        )
