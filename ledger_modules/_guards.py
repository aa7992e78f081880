"""Input coercion shared by the ledger services.

Each helper turns caller input into a domain value or raises
ValidationError naming the offending field.
"""

from __future__ import annotations

from decimal import Decimal

from ledger_kernel.db.types import parse_quantity
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import ValidationError


def require_text(value: str | None, field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required", field=field)
    return str(value).strip()


def coerce_money(
    value: Money | Decimal | str | int | None,
    field: str,
    *,
    default_zero: bool = False,
) -> Money:
    if value is None:
        if default_zero:
            return Money.zero()
        raise ValidationError(f"{field} is required", field=field)
    try:
        return Money.of(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid {field}: {exc}", field=field) from exc


def coerce_quantity(value: int | str, field: str = "quantity") -> int:
    try:
        return parse_quantity(value, field=field)
    except (TypeError, ValueError) as exc:
        raise ValidationError(str(exc), field=field) from exc
