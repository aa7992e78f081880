"""
Module: ledger_modules.stores.sql_store
Responsibility: SQLAlchemy implementation of the LedgerStore port.
Architecture position: Modules > Stores.  Imports the billing and pharmacy
    ORM models and the kernel sequence service.

Invariants enforced:
    - One session per transaction, owned by the calling thread.  The store
      object itself is safe to share between threads.
    - invoice_number uniqueness is enforced by the database; a collision
      inside a savepoint becomes ConflictError and leaves the enclosing
      transaction usable.
    - Stock changes are a single conditional UPDATE
      (``quantity = quantity + :delta WHERE id = :id AND quantity + :delta >= 0``)
      whose affected-row count decides success.  There is no
      read-then-write window.
    - Payments and stock movements get their order from locked counter rows,
      never from MAX(sequence) + 1.

Failure modes:
    - NotFoundError for unknown invoice or inventory ids.
    - ConflictError on a duplicate invoice number.
    - Any other database error propagates after rollback.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Iterator
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ledger_engines.invoice_status import InvoiceStatus
from ledger_kernel.db.immutability import register_immutability_listeners
from ledger_kernel.exceptions import ConflictError, NotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.services.sequence_service import SequenceService
from ledger_modules.billing.models import Invoice, Payment
from ledger_modules.billing.orm import InvoiceItemModel, InvoiceModel, PaymentModel
from ledger_modules.pharmacy.models import DispensedRecord, InventoryItem, StockMovement
from ledger_modules.pharmacy.orm import (
    DispensedRecordModel,
    InventoryItemModel,
    StockMovementModel,
)

logger = get_logger("modules.stores.sql")


class SqlAlchemyLedgerStore:
    """LedgerStore backed by a SQLAlchemy session factory."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory
        self._local = threading.local()
        register_immutability_listeners()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if getattr(self._local, "session", None) is not None:
            # Nested call joins the outer transaction
            yield
            return

        session = self._session_factory()
        self._local.session = session
        try:
            yield
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            self._local.session = None
            session.close()

    @property
    def _session(self) -> Session:
        session = getattr(self._local, "session", None)
        if session is None:
            raise RuntimeError("No active ledger transaction")
        return session

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    def _invoice_model(self, invoice_id: UUID, *, for_update: bool = False) -> InvoiceModel:
        stmt = (
            select(InvoiceModel)
            .where(InvoiceModel.id == invoice_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        model = self._session.execute(stmt).scalar_one_or_none()
        if model is None:
            raise NotFoundError("Invoice", str(invoice_id))
        return model

    def add_invoice(self, invoice: Invoice) -> None:
        with self.transaction():
            session = self._session
            model = InvoiceModel.from_dto(invoice)
            try:
                with session.begin_nested():
                    session.add(model)
                    session.flush()
            except IntegrityError as exc:
                if "invoice_number" not in str(exc.orig):
                    raise
                logger.info(
                    "invoice_number_conflict_detected",
                    extra={"invoice_number": invoice.invoice_number},
                )
                raise ConflictError("Invoice", invoice.invoice_number) from exc

    def get_invoice(self, invoice_id: UUID, *, for_update: bool = False) -> Invoice:
        with self.transaction():
            return self._invoice_model(invoice_id, for_update=for_update).to_dto()

    def find_invoice_by_number(self, invoice_number: str) -> Invoice | None:
        with self.transaction():
            model = self._session.execute(
                select(InvoiceModel)
                .where(InvoiceModel.invoice_number == invoice_number)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            return model.to_dto() if model is not None else None

    def save_invoice(self, invoice: Invoice, *, actor_id: str) -> None:
        with self.transaction():
            model = self._invoice_model(invoice.id)
            model.apply_header(invoice, actor_id)
            stored_ids = {item.id for item in model.items}
            next_line = len(model.items) + 1
            for item in invoice.items:
                if item.id in stored_ids:
                    continue
                model.items.append(InvoiceItemModel.from_dto(item, next_line, actor_id))
                next_line += 1
            self._session.flush()

    def list_invoices(
        self,
        *,
        status: InvoiceStatus | None = None,
        patient_id: str | None = None,
    ) -> list[Invoice]:
        with self.transaction():
            stmt = select(InvoiceModel).order_by(InvoiceModel.invoice_number)
            if status is not None:
                stmt = stmt.where(InvoiceModel.status == status.value)
            if patient_id is not None:
                stmt = stmt.where(InvoiceModel.patient_id == patient_id)
            stmt = stmt.execution_options(populate_existing=True)
            return [m.to_dto() for m in self._session.execute(stmt).scalars()]

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def add_payment(self, payment: Payment) -> Payment:
        with self.transaction():
            sequence = SequenceService(self._session).next_value(SequenceService.PAYMENT)
            self._session.add(PaymentModel.from_dto(payment, sequence))
            self._session.flush()
            return replace(payment, sequence=sequence)

    def list_payments(self, invoice_id: UUID) -> list[Payment]:
        with self.transaction():
            rows = self._session.execute(
                select(PaymentModel)
                .where(PaymentModel.invoice_id == invoice_id)
                .order_by(PaymentModel.sequence)
            ).scalars()
            return [row.to_dto() for row in rows]

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    def _item_model(self, item_id: UUID) -> InventoryItemModel:
        model = self._session.execute(
            select(InventoryItemModel)
            .where(InventoryItemModel.id == item_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise NotFoundError("InventoryItem", str(item_id))
        return model

    def add_inventory_item(self, item: InventoryItem, *, actor_id: str) -> None:
        with self.transaction():
            self._session.add(InventoryItemModel.from_dto(item, actor_id))
            self._session.flush()

    def get_inventory_item(self, item_id: UUID) -> InventoryItem:
        with self.transaction():
            return self._item_model(item_id).to_dto()

    def save_inventory_item(self, item: InventoryItem, *, actor_id: str) -> None:
        with self.transaction():
            self._item_model(item.id).apply_details(item, actor_id)
            self._session.flush()

    def list_inventory_items(self) -> list[InventoryItem]:
        with self.transaction():
            rows = self._session.execute(
                select(InventoryItemModel)
                .order_by(InventoryItemModel.drug_name, InventoryItemModel.id)
                .execution_options(populate_existing=True)
            ).scalars()
            return [row.to_dto() for row in rows]

    def adjust_quantity_if_available(self, item_id: UUID, delta: int) -> int | None:
        with self.transaction():
            result = self._session.execute(
                update(InventoryItemModel)
                .where(
                    InventoryItemModel.id == item_id,
                    InventoryItemModel.quantity + delta >= 0,
                )
                .values(quantity=InventoryItemModel.quantity + delta)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                # Either the guard rejected the change or the row is missing
                self._item_model(item_id)
                return None
            return self._session.execute(
                select(InventoryItemModel.quantity).where(InventoryItemModel.id == item_id)
            ).scalar_one()

    def add_dispensed_record(self, record: DispensedRecord) -> None:
        with self.transaction():
            self._session.add(DispensedRecordModel.from_dto(record))
            self._session.flush()

    def list_dispensed_records(
        self,
        *,
        inventory_item_id: UUID | None = None,
        patient_id: str | None = None,
    ) -> list[DispensedRecord]:
        with self.transaction():
            stmt = select(DispensedRecordModel).order_by(
                DispensedRecordModel.dispensed_at, DispensedRecordModel.id
            )
            if inventory_item_id is not None:
                stmt = stmt.where(DispensedRecordModel.inventory_item_id == inventory_item_id)
            if patient_id is not None:
                stmt = stmt.where(DispensedRecordModel.patient_id == patient_id)
            return [row.to_dto() for row in self._session.execute(stmt).scalars()]

    def add_stock_movement(self, movement: StockMovement) -> StockMovement:
        with self.transaction():
            sequence = SequenceService(self._session).next_value(SequenceService.STOCK_MOVEMENT)
            self._session.add(StockMovementModel.from_dto(movement, sequence))
            self._session.flush()
            return replace(movement, sequence=sequence)

    def list_stock_movements(self, inventory_item_id: UUID) -> list[StockMovement]:
        with self.transaction():
            rows = self._session.execute(
                select(StockMovementModel)
                .where(StockMovementModel.inventory_item_id == inventory_item_id)
                .order_by(StockMovementModel.sequence)
            ).scalars()
            return [row.to_dto() for row in rows]
