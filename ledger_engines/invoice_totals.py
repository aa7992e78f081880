"""
Module: ledger_engines.invoice_totals
Responsibility:
    Compute invoice subtotal and total from line items, tax and discount.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - subtotal = sum of quantity x unit_price over all lines.
    - total_amount = subtotal + tax_amount - discount_amount.
    - total_amount >= 0; a discount larger than subtotal + tax is rejected.
    - Totals are recomputed from lines every time in integer minor units,
      so recomputation is idempotent.

Failure modes:
    - ValidationError on a non-positive quantity, a negative price, a
      negative tax or discount, or a negative resulting total.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.values import Money, sum_money
from ledger_kernel.exceptions import ValidationError


class PricedLine(Protocol):
    """Anything with an integer quantity and a Money unit price."""

    quantity: int
    unit_price: Money


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Money
    tax_amount: Money
    discount_amount: Money
    total_amount: Money


def line_total(quantity: int, unit_price: Money) -> Money:
    """quantity x unit_price, validating both."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError(
            f"Line quantity must be an integer >= 1, got {quantity!r}",
            field="quantity",
        )
    if unit_price.is_negative:
        raise ValidationError(
            f"Line unit price must be >= 0, got {unit_price}",
            field="unit_price",
        )
    return unit_price * quantity


@traced_engine(
    "invoice_totals",
    "1.0",
    fingerprint_fields=("tax_amount", "discount_amount"),
)
def compute_invoice_totals(
    *,
    lines: Sequence[PricedLine],
    tax_amount: Money,
    discount_amount: Money,
) -> InvoiceTotals:
    """
    Compute totals for a set of invoice lines.

    An empty line list is allowed here (a draft invoice); callers that
    require items enforce that themselves.
    """
    if tax_amount.is_negative:
        raise ValidationError(f"Tax amount must be >= 0, got {tax_amount}", field="tax_amount")
    if discount_amount.is_negative:
        raise ValidationError(
            f"Discount amount must be >= 0, got {discount_amount}",
            field="discount_amount",
        )

    subtotal = sum_money(line_total(line.quantity, line.unit_price) for line in lines)
    total = subtotal + tax_amount - discount_amount
    if total.is_negative:
        raise ValidationError(
            f"Discount {discount_amount} exceeds subtotal {subtotal} plus tax {tax_amount}",
            field="discount_amount",
        )

    return InvoiceTotals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        discount_amount=discount_amount,
        total_amount=total,
    )
