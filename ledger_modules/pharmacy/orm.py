"""
Pharmacy ORM Models (``ledger_modules.pharmacy.orm``).

SQLAlchemy persistence models for inventory batches, dispensed records and
stock movements.  ``inventory_items.quantity`` is only ever written by the
store's conditional UPDATE; ORM detail edits leave it untouched.
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
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase
from ledger_kernel.db.immutability import APPEND_ONLY, NO_DELETE
from ledger_kernel.db.types import ensure_utc
from ledger_kernel.domain.values import Money


class InventoryItemModel(TrackedBase):
    """
    ORM model for pharmacy inventory batches.

    Guarantees:
        - quantity >= 0 (ck_inventory_items_quantity_non_negative), so even a
          raw UPDATE cannot drive stock negative.
        - reorder_level >= 0 and unit_price >= 0.
    """

    __tablename__ = "inventory_items"
    __immutability__ = NO_DELETE

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity_non_negative"),
        CheckConstraint("reorder_level >= 0", name="ck_inventory_items_reorder_non_negative"),
        CheckConstraint("unit_price >= 0", name="ck_inventory_items_price_non_negative"),
        Index("idx_inventory_items_drug_name", "drug_name"),
        Index("idx_inventory_items_category", "category"),
        Index("idx_inventory_items_expiry_date", "expiry_date"),
    )

    drug_name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    manufacturer: Mapped[str | None] = mapped_column(String(200), nullable=True)
    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    unit: Mapped[str] = mapped_column(String(50), nullable=False)
    reorder_level: Mapped[int] = mapped_column(BigInteger, nullable=False, default=10)
    unit_price: Mapped[Money] = mapped_column(nullable=False)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    batch_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def to_dto(self):
        from ledger_modules.pharmacy.models import InventoryItem

        return InventoryItem(
            id=self.id,
            drug_name=self.drug_name,
            category=self.category,
            quantity=self.quantity,
            unit=self.unit,
            reorder_level=self.reorder_level,
            unit_price=self.unit_price,
            expiry_date=self.expiry_date,
            batch_number=self.batch_number,
            manufacturer=self.manufacturer,
            description=self.description,
        )

    @classmethod
    def from_dto(cls, dto, created_by: str) -> "InventoryItemModel":
        return cls(
            id=dto.id,
            drug_name=dto.drug_name,
            category=dto.category,
            description=dto.description,
            manufacturer=dto.manufacturer,
            quantity=dto.quantity,
            unit=dto.unit,
            reorder_level=dto.reorder_level,
            unit_price=dto.unit_price,
            expiry_date=dto.expiry_date,
            batch_number=dto.batch_number,
            created_by=created_by,
        )

    def apply_details(self, dto, actor_id: str) -> None:
        """Copy everything except quantity from a DTO onto this row."""
        self.drug_name = dto.drug_name
        self.category = dto.category
        self.description = dto.description
        self.manufacturer = dto.manufacturer
        self.unit = dto.unit
        self.reorder_level = dto.reorder_level
        self.unit_price = dto.unit_price
        self.expiry_date = dto.expiry_date
        self.batch_number = dto.batch_number
        self.updated_by = actor_id

    def __repr__(self) -> str:
        return f"<InventoryItemModel {self.drug_name} qty={self.quantity} {self.unit}>"


class DispensedRecordModel(TrackedBase):
    """ORM model for dispensed medicines.  Append-only."""

    __tablename__ = "dispensed_records"
    __immutability__ = APPEND_ONLY

    __table_args__ = (
        CheckConstraint("quantity_dispensed > 0", name="ck_dispensed_records_quantity_positive"),
        Index("idx_dispensed_records_item_id", "inventory_item_id"),
        Index("idx_dispensed_records_patient_id", "patient_id"),
    )

    inventory_item_id: Mapped[UUID] = mapped_column(
        ForeignKey("inventory_items.id"), nullable=False
    )
    patient_id: Mapped[str] = mapped_column(String(128), nullable=False)
    quantity_dispensed: Mapped[int] = mapped_column(BigInteger, nullable=False)
    dispensed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    medical_record_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    def to_dto(self):
        from ledger_modules.pharmacy.models import DispensedRecord

        return DispensedRecord(
            id=self.id,
            inventory_item_id=self.inventory_item_id,
            patient_id=self.patient_id,
            quantity_dispensed=self.quantity_dispensed,
            dispensed_by=self.created_by,
            dispensed_at=ensure_utc(self.dispensed_at),
            notes=self.notes,
            medical_record_id=self.medical_record_id,
        )

    @classmethod
    def from_dto(cls, dto) -> "DispensedRecordModel":
        return cls(
            id=dto.id,
            inventory_item_id=dto.inventory_item_id,
            patient_id=dto.patient_id,
            quantity_dispensed=dto.quantity_dispensed,
            dispensed_at=dto.dispensed_at,
            notes=dto.notes,
            medical_record_id=dto.medical_record_id,
            created_by=dto.dispensed_by,
        )


class StockMovementModel(TrackedBase):
    """ORM model for the stock movement trail.  Append-only."""

    __tablename__ = "stock_movements"
    __immutability__ = APPEND_ONLY

    __table_args__ = (
        UniqueConstraint("sequence", name="uq_stock_movements_sequence"),
        CheckConstraint("resulting_quantity >= 0", name="ck_stock_movements_result_non_negative"),
        Index("idx_stock_movements_item_id", "inventory_item_id"),
    )

    inventory_item_id: Mapped[UUID] = mapped_column(
        ForeignKey("inventory_items.id"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    delta: Mapped[int] = mapped_column(BigInteger, nullable=False)
    resulting_quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    dispensed_record_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("dispensed_records.id"), nullable=True
    )

    def to_dto(self):
        from ledger_modules.pharmacy.models import MovementKind, StockMovement

        return StockMovement(
            id=self.id,
            inventory_item_id=self.inventory_item_id,
            kind=MovementKind(self.kind),
            delta=self.delta,
            resulting_quantity=self.resulting_quantity,
            actor_id=self.created_by,
            occurred_at=ensure_utc(self.occurred_at),
            reason=self.reason,
            dispensed_record_id=self.dispensed_record_id,
            sequence=self.sequence,
        )

    @classmethod
    def from_dto(cls, dto, sequence: int) -> "StockMovementModel":
        return cls(
            id=dto.id,
            inventory_item_id=dto.inventory_item_id,
            sequence=sequence,
            kind=dto.kind.value,
            delta=dto.delta,
            resulting_quantity=dto.resulting_quantity,
            occurred_at=dto.occurred_at,
            reason=dto.reason,
            dispensed_record_id=dto.dispensed_record_id,
            created_by=dto.actor_id,
        )
