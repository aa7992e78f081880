"""
Module: ledger_kernel.db.types
Responsibility: Precision, rounding and quantity helpers shared by the domain
    values and the ORM column types.  Centralizes how decimal amounts become
    integer minor units so that every model and service converts identically.
Architecture position: Kernel > DB.  May be imported by domain/, models and
    services.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats.  Amounts arrive as Decimal, str or int and are quantized
      with ROUND_HALF_UP to MONEY_DECIMAL_PLACES before conversion.
    - Stock quantities are plain integers; bools and fractional values are
      rejected.

Failure modes:
    - TypeError on float input or on a non-integral quantity type.
    - ValueError on a string that is not a finite number.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from sqlalchemy import BigInteger
from sqlalchemy.types import TypeDecorator

MONEY_DECIMAL_PLACES = 2
MINOR_UNITS_PER_MAJOR = 10**MONEY_DECIMAL_PLACES
DEFAULT_ROUNDING = ROUND_HALF_UP

_MONEY_QUANTUM = Decimal(1).scaleb(-MONEY_DECIMAL_PLACES)


def to_decimal(value: Decimal | str | int) -> Decimal:
    """
    Coerce an amount to Decimal without passing through float.

    Raises:
        TypeError: value is a float or bool.
        ValueError: value is not a finite number.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(
            f"Amounts must be Decimal, str or int, not {type(value).__name__}"
        )
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValueError(f"Not a valid amount: {value!r}") from exc
    else:
        raise TypeError(f"Unsupported amount type: {type(value).__name__}")
    if not result.is_finite():
        raise ValueError(f"Not a valid amount: {value!r}")
    return result


def round_money(amount: Decimal) -> Decimal:
    """Quantize to the ledger's currency precision using ROUND_HALF_UP."""
    return amount.quantize(_MONEY_QUANTUM, rounding=DEFAULT_ROUNDING)


def to_minor_units(value: Decimal | str | int) -> int:
    """Convert a major-unit amount (e.g. "105.00") to integer minor units."""
    return int(round_money(to_decimal(value)) * MINOR_UNITS_PER_MAJOR)


def from_minor_units(minor_units: int) -> Decimal:
    """Convert integer minor units back to a quantized Decimal."""
    return (Decimal(minor_units) / MINOR_UNITS_PER_MAJOR).quantize(_MONEY_QUANTUM)


def parse_quantity(value: int | str, *, field: str = "quantity") -> int:
    """
    Coerce a stock or line quantity to int.

    Integral strings ("3") are accepted; "2.5", floats and bools are not.

    Raises:
        TypeError: value has an unsupported type.
        ValueError: value is not an integer.
    """
    if isinstance(value, bool):
        raise TypeError(f"{field} must be an integer, not bool")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("+-").isdigit():
            return int(text)
        raise ValueError(f"{field} must be an integer, got {value!r}")
    raise TypeError(f"{field} must be an integer, not {type(value).__name__}")


def ensure_utc(value: datetime | None) -> datetime | None:
    """
    Normalize a timestamp to an aware UTC datetime.

    SQLite returns naive datetimes for DateTime(timezone=True) columns; the
    ledger always stores UTC, so naive values are tagged as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class MoneyType(TypeDecorator):
    """
    Money column stored as BigInteger minor units.

    Guarantees:
        - process_bind_param: Money -> int minor units.
        - process_result_value: int -> Money.
        - Exact round-trip; no decimal scale differences across backends.
    """

    impl = BigInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        from ledger_kernel.domain.values import Money

        if isinstance(value, Money):
            return value.minor_units
        return to_minor_units(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        from ledger_kernel.domain.values import Money

        return Money(int(value))
