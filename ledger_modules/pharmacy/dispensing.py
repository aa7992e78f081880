"""
Dispensing Service - Gives stock to patients without ever overselling.

The eligibility check against the caller's snapshot is only a fast path:
a snapshot that looks too small is re-read from the store before anything
is rejected.  The authoritative check is the store's conditional decrement, which
succeeds only when enough stock remains at commit time.  Two concurrent
requests for more than the remaining stock therefore cannot both succeed.

Usage:
    dispensing = DispensingService(store, clock)
    record = dispensing.dispense(item, "P-1001", 2, "pharmacist-2")
"""

from __future__ import annotations

from uuid import UUID, uuid4

from ledger_engines.stock_rules import can_dispense
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import (
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_modules._guards import coerce_quantity, require_text
from ledger_modules.pharmacy.models import (
    DispensedRecord,
    InventoryItem,
    MovementKind,
    StockMovement,
)
from ledger_modules.ports import LedgerStore, PatientDirectory

logger = get_logger("modules.pharmacy.dispensing")


class DispensingService:
    """
    Dispenses inventory to patients.

    Transaction boundary: the decrement, the DispensedRecord and its DISPENSE
    movement are written in one ``store.transaction()``.  A rejected dispense
    writes nothing.
    """

    def __init__(
        self,
        store: LedgerStore,
        clock: Clock | None = None,
        patients: PatientDirectory | None = None,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._patients = patients

    def dispense(
        self,
        item: InventoryItem | UUID,
        patient_id: str,
        quantity: int,
        staff_id: str,
        notes: str | None = None,
        *,
        medical_record_id: str | None = None,
    ) -> DispensedRecord:
        """
        Dispense ``quantity`` units of ``item`` to a patient.

        Raises:
            ValidationError: quantity is not a positive integer, or a
                required identifier is blank.
            InsufficientStockError: fewer than ``quantity`` units remain.
            NotFoundError: the item or patient does not exist.
        """
        snapshot = item if isinstance(item, InventoryItem) else self._store.get_inventory_item(item)
        patient_id = require_text(patient_id, "patient_id")
        staff_id = require_text(staff_id, "staff_id")
        quantity = coerce_quantity(quantity)
        if quantity < 1:
            raise ValidationError(
                f"Dispensed quantity must be positive, got {quantity}", field="quantity"
            )

        with LogContext.bind(inventory_item_id=snapshot.id, actor_id=staff_id):
            if not can_dispense(snapshot.quantity, quantity):
                # The caller's copy may predate a restock; only stored stock rejects
                snapshot = self._store.get_inventory_item(snapshot.id)
                if not can_dispense(snapshot.quantity, quantity):
                    self._reject(snapshot.id, snapshot.quantity, quantity, snapshot.unit)
            if self._patients is not None and not self._patients.exists(patient_id):
                raise NotFoundError("Patient", patient_id)

            now = self._clock.now()
            record = DispensedRecord(
                id=uuid4(),
                inventory_item_id=snapshot.id,
                patient_id=patient_id,
                quantity_dispensed=quantity,
                dispensed_by=staff_id,
                dispensed_at=now,
                notes=notes,
                medical_record_id=medical_record_id,
            )

            with self._store.transaction():
                remaining = self._store.adjust_quantity_if_available(snapshot.id, -quantity)
                if remaining is None:
                    current = self._store.get_inventory_item(snapshot.id)
                    self._reject(current.id, current.quantity, quantity, current.unit)
                self._store.add_dispensed_record(record)
                self._store.add_stock_movement(
                    StockMovement(
                        id=uuid4(),
                        inventory_item_id=snapshot.id,
                        kind=MovementKind.DISPENSE,
                        delta=-quantity,
                        resulting_quantity=remaining,
                        actor_id=staff_id,
                        occurred_at=now,
                        reason=f"dispensed to patient {patient_id}",
                        dispensed_record_id=record.id,
                    )
                )

            logger.info(
                "dispense_completed",
                extra={
                    "dispensed_record_id": str(record.id),
                    "patient_id": patient_id,
                    "quantity": quantity,
                    "remaining": remaining,
                },
            )
            if remaining <= snapshot.reorder_level:
                logger.warning(
                    "stock_below_reorder_level",
                    extra={"quantity": remaining, "reorder_level": snapshot.reorder_level},
                )
        return record

    def _reject(self, item_id: UUID, available: int, requested: int, unit: str) -> None:
        logger.warning(
            "dispense_rejected_insufficient_stock",
            extra={"available": available, "requested": requested},
        )
        raise InsufficientStockError(str(item_id), available, requested, unit)

    def dispensing_history(
        self,
        *,
        inventory_item_id: UUID | None = None,
        patient_id: str | None = None,
    ) -> list[DispensedRecord]:
        return self._store.list_dispensed_records(
            inventory_item_id=inventory_item_id, patient_id=patient_id
        )
