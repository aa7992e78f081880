"""
Value objects for the ledger's monetary arithmetic.

Responsibility:
    Money holds an amount as integer minor units (cents).  Every sum,
    difference and multiplication is exact integer arithmetic, so repeated
    recomputation of invoice totals can never drift.

Architecture position:
    Kernel > Domain -- pure value types, zero I/O.

Invariants enforced:
    - Money is immutable and hashable.
    - Construction from decimal text quantizes half-up to two places; floats
      are rejected outright.
    - The wire form is always a decimal string with two fractional digits.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from ledger_kernel.db.types import from_minor_units, to_minor_units


@dataclass(frozen=True, slots=True, order=True)
class Money:
    """
    A currency amount in integer minor units.

    Money values may be negative as intermediate results (e.g. a discount
    exceeding a subtotal); the invoice and payment rules decide whether a
    negative result is acceptable.
    """

    minor_units: int

    def __post_init__(self) -> None:
        if isinstance(self.minor_units, bool) or not isinstance(self.minor_units, int):
            raise TypeError(
                f"Money minor_units must be int, got {type(self.minor_units).__name__}"
            )

    @classmethod
    def of(cls, amount: Money | Decimal | str | int) -> Money:
        """Create Money from a major-unit amount such as "105.00"."""
        if isinstance(amount, Money):
            return amount
        return cls(to_minor_units(amount))

    @classmethod
    def zero(cls) -> Money:
        return cls(0)

    @property
    def amount(self) -> Decimal:
        """Major-unit Decimal with exactly two fractional digits."""
        return from_minor_units(self.minor_units)

    @property
    def is_zero(self) -> bool:
        return self.minor_units == 0

    @property
    def is_positive(self) -> bool:
        return self.minor_units > 0

    @property
    def is_negative(self) -> bool:
        return self.minor_units < 0

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.minor_units + other.minor_units)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.minor_units - other.minor_units)

    def __neg__(self) -> Money:
        return Money(-self.minor_units)

    def __mul__(self, factor: int) -> Money:
        if isinstance(factor, bool) or not isinstance(factor, int):
            return NotImplemented
        return Money(self.minor_units * factor)

    __rmul__ = __mul__

    def clamp_at_zero(self) -> Money:
        """Return self, or zero when self is negative."""
        return self if self.minor_units > 0 else Money(0)

    def to_wire(self) -> str:
        """Serialize as a decimal string with two fractional digits."""
        return str(self.amount)

    def __str__(self) -> str:
        return self.to_wire()

    def __repr__(self) -> str:
        return f"Money('{self.to_wire()}')"


def sum_money(values: Iterable[Money]) -> Money:
    """Sum Money values; an empty iterable sums to zero."""
    total = 0
    for value in values:
        total += value.minor_units
    return Money(total)
