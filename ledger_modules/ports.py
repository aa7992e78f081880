"""
Collaborator ports for the ledger services.

The services depend on these protocols, never on a concrete database.
``ledger_modules.stores`` provides a SQLAlchemy implementation and an
in-process implementation of ``LedgerStore``.

Transaction contract
--------------------
``LedgerStore.transaction()`` is a context manager.  Everything done inside
it commits together on normal exit, or is rolled back when an exception
escapes.  Nested ``transaction()`` calls join the outermost one.  Every
store method may also be called outside a transaction, in which case it
runs in its own short transaction.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Protocol, runtime_checkable
from uuid import UUID

from ledger_engines.invoice_status import InvoiceStatus
from ledger_modules.billing.documents import InvoiceDocument
from ledger_modules.billing.models import Invoice, Payment
from ledger_modules.pharmacy.models import DispensedRecord, InventoryItem, StockMovement


class LedgerStore(Protocol):
    """Persistence port for invoices, payments and pharmacy stock."""

    def transaction(self) -> AbstractContextManager[None]: ...

    # -- invoices -----------------------------------------------------------

    def add_invoice(self, invoice: Invoice) -> None:
        """Insert a new invoice with its items.

        Raises ConflictError when the invoice number is already taken.
        """
        ...

    def get_invoice(self, invoice_id: UUID, *, for_update: bool = False) -> Invoice:
        """Raises NotFoundError. ``for_update`` locks the row until commit."""
        ...

    def find_invoice_by_number(self, invoice_number: str) -> Invoice | None: ...

    def save_invoice(self, invoice: Invoice, *, actor_id: str) -> None:
        """Persist header changes and insert items not yet stored.

        Stored items are never modified or removed.
        """
        ...

    def list_invoices(
        self,
        *,
        status: InvoiceStatus | None = None,
        patient_id: str | None = None,
    ) -> list[Invoice]:
        """Invoices ordered by invoice number; ``status`` filters on the stored value."""
        ...

    # -- payments -----------------------------------------------------------

    def add_payment(self, payment: Payment) -> Payment:
        """Append a payment; returns it with its store-assigned sequence."""
        ...

    def list_payments(self, invoice_id: UUID) -> list[Payment]:
        """Payments for one invoice in insertion order."""
        ...

    # -- inventory ----------------------------------------------------------

    def add_inventory_item(self, item: InventoryItem, *, actor_id: str) -> None: ...

    def get_inventory_item(self, item_id: UUID) -> InventoryItem:
        """Raises NotFoundError."""
        ...

    def save_inventory_item(self, item: InventoryItem, *, actor_id: str) -> None:
        """Persist detail edits. Never writes ``quantity``."""
        ...

    def list_inventory_items(self) -> list[InventoryItem]: ...

    def adjust_quantity_if_available(self, item_id: UUID, delta: int) -> int | None:
        """Atomically apply ``quantity += delta`` only if the result stays >= 0.

        Returns the new quantity, or None when the guard rejected the change.
        Raises NotFoundError for an unknown item.
        """
        ...

    def add_dispensed_record(self, record: DispensedRecord) -> None: ...

    def list_dispensed_records(
        self,
        *,
        inventory_item_id: UUID | None = None,
        patient_id: str | None = None,
    ) -> list[DispensedRecord]: ...

    def add_stock_movement(self, movement: StockMovement) -> StockMovement: ...

    def list_stock_movements(self, inventory_item_id: UUID) -> list[StockMovement]: ...


class InvoiceNumberGenerator(Protocol):
    """Produces human-readable invoice numbers such as ``INV-00001``."""

    def next_number(self) -> str: ...


@runtime_checkable
class PatientDirectory(Protocol):
    """Patient lookup. The ledger only asks whether a patient exists."""

    def exists(self, patient_id: str) -> bool: ...


class DocumentRenderer(Protocol):
    """Turns a reconciled invoice document into bytes (PDF, HTML, ...)."""

    def render(self, document: InvoiceDocument) -> bytes: ...
