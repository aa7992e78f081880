"""
In-process LedgerStore.

Holds every entity in dictionaries guarded by one re-entrant lock.  A
transaction takes the lock for its whole duration and snapshots the state
on entry; an exception restores the snapshot, so a failed unit of work
leaves nothing behind.  Holding the lock for the whole transaction makes
transactions serializable, which is what gives
``adjust_quantity_if_available`` its compare-and-set guarantee.

Suitable for tests, tooling and single-process embedding.  Entities are
frozen dataclasses, so snapshots are shallow copies.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Iterator
from uuid import UUID

from ledger_engines.invoice_status import InvoiceStatus
from ledger_kernel.exceptions import ConflictError, NotFoundError
from ledger_modules.billing.models import Invoice, Payment
from ledger_modules.pharmacy.models import DispensedRecord, InventoryItem, StockMovement


class InMemoryLedgerStore:
    """LedgerStore kept in process memory."""

    def __init__(self):
        self._lock = threading.RLock()
        self._depth = 0
        self._invoices: dict[UUID, Invoice] = {}
        self._invoice_ids_by_number: dict[str, UUID] = {}
        self._payments: list[Payment] = []
        self._items: dict[UUID, InventoryItem] = {}
        self._dispensed: list[DispensedRecord] = []
        self._movements: list[StockMovement] = []
        self._payment_sequence = 0
        self._movement_sequence = 0

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def _snapshot(self) -> dict:
        return {
            "_invoices": dict(self._invoices),
            "_invoice_ids_by_number": dict(self._invoice_ids_by_number),
            "_payments": list(self._payments),
            "_items": dict(self._items),
            "_dispensed": list(self._dispensed),
            "_movements": list(self._movements),
            "_payment_sequence": self._payment_sequence,
            "_movement_sequence": self._movement_sequence,
        }

    def _restore(self, snapshot: dict) -> None:
        for name, value in snapshot.items():
            setattr(self, name, value)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            if self._depth > 0:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            snapshot = self._snapshot()
            self._depth = 1
            try:
                yield
            except Exception:
                self._restore(snapshot)
                raise
            finally:
                self._depth = 0

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    def add_invoice(self, invoice: Invoice) -> None:
        with self.transaction():
            if invoice.invoice_number in self._invoice_ids_by_number:
                raise ConflictError("Invoice", invoice.invoice_number)
            self._invoices[invoice.id] = invoice
            self._invoice_ids_by_number[invoice.invoice_number] = invoice.id

    def get_invoice(self, invoice_id: UUID, *, for_update: bool = False) -> Invoice:
        with self.transaction():
            try:
                return self._invoices[invoice_id]
            except KeyError:
                raise NotFoundError("Invoice", str(invoice_id)) from None

    def find_invoice_by_number(self, invoice_number: str) -> Invoice | None:
        with self.transaction():
            invoice_id = self._invoice_ids_by_number.get(invoice_number)
            return self._invoices[invoice_id] if invoice_id is not None else None

    def save_invoice(self, invoice: Invoice, *, actor_id: str) -> None:
        with self.transaction():
            stored = self.get_invoice(invoice.id)
            stored_ids = {item.id for item in stored.items}
            new_items = tuple(item for item in invoice.items if item.id not in stored_ids)
            # Header fields come from the caller; stored items are kept as-is
            self._invoices[invoice.id] = replace(
                invoice,
                invoice_number=stored.invoice_number,
                items=stored.items + new_items,
            )

    def list_invoices(
        self,
        *,
        status: InvoiceStatus | None = None,
        patient_id: str | None = None,
    ) -> list[Invoice]:
        with self.transaction():
            invoices = sorted(self._invoices.values(), key=lambda inv: inv.invoice_number)
            if status is not None:
                invoices = [inv for inv in invoices if inv.status == status]
            if patient_id is not None:
                invoices = [inv for inv in invoices if inv.patient_id == patient_id]
            return invoices

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def add_payment(self, payment: Payment) -> Payment:
        with self.transaction():
            self.get_invoice(payment.invoice_id)
            self._payment_sequence += 1
            stored = replace(payment, sequence=self._payment_sequence)
            self._payments.append(stored)
            return stored

    def list_payments(self, invoice_id: UUID) -> list[Payment]:
        with self.transaction():
            return [p for p in self._payments if p.invoice_id == invoice_id]

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    def add_inventory_item(self, item: InventoryItem, *, actor_id: str) -> None:
        with self.transaction():
            if item.id in self._items:
                raise ConflictError("InventoryItem", str(item.id))
            self._items[item.id] = item

    def get_inventory_item(self, item_id: UUID) -> InventoryItem:
        with self.transaction():
            try:
                return self._items[item_id]
            except KeyError:
                raise NotFoundError("InventoryItem", str(item_id)) from None

    def save_inventory_item(self, item: InventoryItem, *, actor_id: str) -> None:
        with self.transaction():
            stored = self.get_inventory_item(item.id)
            self._items[item.id] = replace(item, quantity=stored.quantity)

    def list_inventory_items(self) -> list[InventoryItem]:
        with self.transaction():
            return sorted(self._items.values(), key=lambda i: (i.drug_name, str(i.id)))

    def adjust_quantity_if_available(self, item_id: UUID, delta: int) -> int | None:
        with self.transaction():
            stored = self.get_inventory_item(item_id)
            new_quantity = stored.quantity + delta
            if new_quantity < 0:
                return None
            self._items[item_id] = replace(stored, quantity=new_quantity)
            return new_quantity

    def add_dispensed_record(self, record: DispensedRecord) -> None:
        with self.transaction():
            self.get_inventory_item(record.inventory_item_id)
            self._dispensed.append(record)

    def list_dispensed_records(
        self,
        *,
        inventory_item_id: UUID | None = None,
        patient_id: str | None = None,
    ) -> list[DispensedRecord]:
        with self.transaction():
            records = list(self._dispensed)
            if inventory_item_id is not None:
                records = [r for r in records if r.inventory_item_id == inventory_item_id]
            if patient_id is not None:
                records = [r for r in records if r.patient_id == patient_id]
            return records

    def add_stock_movement(self, movement: StockMovement) -> StockMovement:
        with self.transaction():
            self.get_inventory_item(movement.inventory_item_id)
            self._movement_sequence += 1
            stored = replace(movement, sequence=self._movement_sequence)
            self._movements.append(stored)
            return stored

    def list_stock_movements(self, inventory_item_id: UUID) -> list[StockMovement]:
        with self.transaction():
            return [m for m in self._movements if m.inventory_item_id == inventory_item_id]
