"""
Pharmacy Domain Models (``ledger_modules.pharmacy.models``).

Frozen dataclasses for inventory batches, dispensing records and the stock
movement trail.  Pure data with ZERO I/O.

Invariants enforced
-------------------
* ``InventoryItem.quantity`` and ``reorder_level`` are integers >= 0.
* ``DispensedRecord.quantity_dispensed`` is an integer > 0.
* ``is_low_stock`` is computed from the current quantity, never stored.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from uuid import UUID

from ledger_engines.stock_rules import is_low_stock
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import ValidationError


class MovementKind(Enum):
    """Reasons a stock quantity changes."""

    RESTOCK = "restock"
    DISPENSE = "dispense"
    ADJUSTMENT = "adjustment"


@dataclass(frozen=True)
class InventoryItem:
    """One drug batch held by the pharmacy."""

    id: UUID
    drug_name: str
    category: str
    quantity: int
    unit: str
    reorder_level: int
    unit_price: Money
    expiry_date: date | None = None
    batch_number: str | None = None
    manufacturer: str | None = None
    description: str | None = None

    def __post_init__(self):
        if not self.drug_name or not self.drug_name.strip():
            raise ValidationError("drug_name is required", field="drug_name")
        if not self.category or not self.category.strip():
            raise ValidationError("category is required", field="category")
        for name in ("quantity", "reorder_level"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValidationError(f"{name} must be an integer >= 0, got {value!r}", field=name)
        if self.unit_price.is_negative:
            raise ValidationError(f"unit_price must be >= 0, got {self.unit_price}", field="unit_price")

    @property
    def is_low_stock(self) -> bool:
        return is_low_stock(self.quantity, self.reorder_level)

    @property
    def stock_value(self) -> Money:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "drug_name": self.drug_name,
            "category": self.category,
            "description": self.description,
            "manufacturer": self.manufacturer,
            "quantity": self.quantity,
            "unit": self.unit,
            "reorder_level": self.reorder_level,
            "unit_price": self.unit_price.to_wire(),
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "batch_number": self.batch_number,
            "is_low_stock": self.is_low_stock,
        }


@dataclass(frozen=True)
class DispensedRecord:
    """Immutable record that a quantity of a drug was given to a patient."""

    id: UUID
    inventory_item_id: UUID
    patient_id: str
    quantity_dispensed: int
    dispensed_by: str
    dispensed_at: datetime
    notes: str | None = None
    medical_record_id: str | None = None

    def __post_init__(self):
        value = self.quantity_dispensed
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ValidationError(
                f"quantity_dispensed must be an integer > 0, got {value!r}",
                field="quantity_dispensed",
            )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "inventory_item_id": str(self.inventory_item_id),
            "patient_id": self.patient_id,
            "quantity_dispensed": self.quantity_dispensed,
            "dispensed_by": self.dispensed_by,
            "dispensed_at": self.dispensed_at.isoformat(),
            "notes": self.notes,
            "medical_record_id": self.medical_record_id,
        }


@dataclass(frozen=True)
class StockMovement:
    """One entry in an item's append-only quantity trail."""

    id: UUID
    inventory_item_id: UUID
    kind: MovementKind
    delta: int
    resulting_quantity: int
    actor_id: str
    occurred_at: datetime
    reason: str | None = None
    dispensed_record_id: UUID | None = None
    sequence: int = 0  # assigned by the store on insert


@dataclass(frozen=True)
class StockAlert:
    """A reportable condition on an inventory batch."""

    item: InventoryItem
    kind: str  # "out_of_stock", "low_stock", "expired", "expiring_soon"
    detail: str
