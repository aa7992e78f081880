"""
Module: ledger_engines.stock_rules
Responsibility:
    Pure stock predicates: low-stock detection, dispense eligibility and
    expiry classification for inventory batches.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Low stock means quantity <= reorder_level.
    - A dispense request is eligible only for 0 < requested <= available.
    - Expiry does not affect eligibility; it is reported separately.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True)
class StockFlags:
    low_stock: bool
    out_of_stock: bool
    expired: bool
    expiring_soon: bool
    days_until_expiry: int | None = None


def is_low_stock(quantity: int, reorder_level: int) -> bool:
    return quantity <= reorder_level


def can_dispense(available: int, requested: int) -> bool:
    if isinstance(requested, bool) or not isinstance(requested, int):
        return False
    return 0 < requested <= available


def classify_stock(
    *,
    quantity: int,
    reorder_level: int,
    expiry_date: date | None,
    as_of: date,
    warning_days: int,
) -> StockFlags:
    """
    Classify a batch for alerting.

    A batch expiring today counts as expiring soon, not expired; it is
    expired from the day after its expiry date.
    """
    days_left = None
    expired = False
    expiring_soon = False
    if expiry_date is not None:
        days_left = (expiry_date - as_of).days
        expired = days_left < 0
        expiring_soon = not expired and days_left <= warning_days
    return StockFlags(
        low_stock=is_low_stock(quantity, reorder_level),
        out_of_stock=quantity == 0,
        expired=expired,
        expiring_soon=expiring_soon,
        days_until_expiry=days_left,
    )
