"""
Reporting Service - Read-only billing and pharmacy summaries.

All figures are computed from the store at call time; statuses are derived
for the clock's current date, so an unpaid invoice past its due date counts
as overdue without any stored transition.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date

from ledger_config.schema import PharmacySettings
from ledger_engines.stock_rules import classify_stock
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.values import Money, sum_money
from ledger_kernel.logging_config import get_logger
from ledger_modules.billing.ledger import amount_paid, balance_due, derive_status
from ledger_modules.billing.models import InvoiceStatus
from ledger_modules.pharmacy.models import InventoryItem
from ledger_modules.ports import LedgerStore

logger = get_logger("modules.reporting.service")


@dataclass(frozen=True)
class BillingSummary:
    invoice_count: int
    status_counts: dict[InvoiceStatus, int] = field(default_factory=dict)
    total_billed: Money = Money.zero()
    total_collected: Money = Money.zero()
    total_outstanding: Money = Money.zero()

    @property
    def overdue_count(self) -> int:
        return self.status_counts.get(InvoiceStatus.OVERDUE, 0)

    def to_dict(self) -> dict:
        return {
            "invoice_count": self.invoice_count,
            "status_counts": {s.value: n for s, n in self.status_counts.items()},
            "total_billed": self.total_billed.to_wire(),
            "total_collected": self.total_collected.to_wire(),
            "total_outstanding": self.total_outstanding.to_wire(),
            "overdue_count": self.overdue_count,
        }


@dataclass(frozen=True)
class PharmacySummary:
    item_count: int
    low_stock_count: int
    out_of_stock_count: int
    total_units: int
    inventory_value: Money
    units_dispensed: int

    def to_dict(self) -> dict:
        return {
            "item_count": self.item_count,
            "low_stock_count": self.low_stock_count,
            "out_of_stock_count": self.out_of_stock_count,
            "total_units": self.total_units,
            "inventory_value": self.inventory_value.to_wire(),
            "units_dispensed": self.units_dispensed,
        }


class ReportingService:
    """Aggregate views over invoices, payments and inventory."""

    def __init__(
        self,
        store: LedgerStore,
        clock: Clock | None = None,
        settings: PharmacySettings | None = None,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._settings = settings or PharmacySettings.with_defaults()

    def billing_summary(self) -> BillingSummary:
        """
        Totals across all invoices.

        Cancelled invoices are excluded from billed and outstanding totals;
        payments already received against them still count as collected.
        """
        now = self._clock.now()
        statuses: Counter[InvoiceStatus] = Counter()
        billed: list[Money] = []
        collected: list[Money] = []
        outstanding: list[Money] = []

        with self._store.transaction():
            for invoice in self._store.list_invoices():
                payments = self._store.list_payments(invoice.id)
                status = derive_status(invoice, payments, now)
                statuses[status] += 1
                collected.append(amount_paid(payments))
                if status != InvoiceStatus.CANCELLED:
                    billed.append(invoice.total_amount)
                    outstanding.append(balance_due(invoice, payments))

        summary = BillingSummary(
            invoice_count=sum(statuses.values()),
            status_counts=dict(statuses),
            total_billed=sum_money(billed),
            total_collected=sum_money(collected),
            total_outstanding=sum_money(outstanding),
        )
        logger.info("billing_summary_built", extra=summary.to_dict())
        return summary

    def pharmacy_summary(self) -> PharmacySummary:
        with self._store.transaction():
            items = self._store.list_inventory_items()
            dispensed = self._store.list_dispensed_records()

        summary = PharmacySummary(
            item_count=len(items),
            low_stock_count=sum(1 for i in items if i.is_low_stock),
            out_of_stock_count=sum(1 for i in items if i.quantity == 0),
            total_units=sum(i.quantity for i in items),
            inventory_value=sum_money(i.stock_value for i in items),
            units_dispensed=sum(r.quantity_dispensed for r in dispensed),
        )
        logger.info("pharmacy_summary_built", extra=summary.to_dict())
        return summary

    def expiring_items(
        self,
        as_of: date | None = None,
        within_days: int | None = None,
    ) -> list[InventoryItem]:
        """Batches that are expired or expire within the window, soonest first."""
        as_of = as_of or self._clock.today()
        window = self._settings.expiry_warning_days if within_days is None else within_days
        matches = []
        for item in self._store.list_inventory_items():
            flags = classify_stock(
                quantity=item.quantity,
                reorder_level=item.reorder_level,
                expiry_date=item.expiry_date,
                as_of=as_of,
                warning_days=window,
            )
            if flags.expired or flags.expiring_soon:
                matches.append(item)
        return sorted(matches, key=lambda i: (i.expiry_date, i.drug_name))
