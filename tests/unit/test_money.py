"""
Tests for Money and the minor-unit conversion helpers.

Covers:
- Construction from Decimal, str and int
- Float rejection
- ROUND_HALF_UP quantization
- Exact integer arithmetic
- Wire format
"""

from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from ledger_kernel.db.types import from_minor_units, parse_quantity, to_minor_units
from ledger_kernel.domain.values import Money, sum_money


class TestMoneyConstruction:
    """Tests for Money.of and the raw constructor."""

    def test_from_string(self):
        assert Money.of("105.00").minor_units == 10500

    def test_from_decimal(self):
        assert Money.of(Decimal("0.45")).minor_units == 45

    def test_from_int_is_major_units(self):
        assert Money.of(3).minor_units == 300

    def test_of_money_returns_same_value(self):
        m = Money.of("1.00")
        assert Money.of(m) is m

    def test_float_rejected(self):
        with pytest.raises(TypeError):
            Money.of(1.5)

    def test_bool_rejected(self):
        with pytest.raises(TypeError):
            Money.of(True)

    def test_garbage_string_rejected(self):
        with pytest.raises(ValueError):
            Money.of("ten dollars")

    def test_infinity_rejected(self):
        with pytest.raises(ValueError):
            Money.of("Infinity")

    def test_raw_constructor_requires_int(self):
        with pytest.raises(TypeError):
            Money(Decimal("1.00"))


class TestRounding:
    """Half-up rounding to two places on input."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("0.005", 1),
            ("0.004", 0),
            ("1.125", 113),
            ("-0.005", -1),
            ("2.999", 300),
        ],
    )
    def test_half_up(self, raw, expected):
        assert to_minor_units(raw) == expected

    def test_from_minor_units_has_two_places(self):
        assert str(from_minor_units(5)) == "0.05"
        assert str(from_minor_units(0)) == "0.00"


class TestArithmetic:
    """Exact integer arithmetic."""

    def test_add_and_subtract(self):
        total = Money.of("100.00") + Money.of("10.00") - Money.of("5.00")
        assert total == Money.of("105.00")

    def test_multiply_by_quantity(self):
        assert Money.of("0.45") * 3 == Money.of("1.35")
        assert 3 * Money.of("0.45") == Money.of("1.35")

    def test_multiply_by_float_not_supported(self):
        with pytest.raises(TypeError):
            Money.of("1.00") * 1.5

    def test_clamp_at_zero(self):
        assert (Money.of("1.00") - Money.of("2.00")).clamp_at_zero() == Money.zero()
        assert Money.of("2.00").clamp_at_zero() == Money.of("2.00")

    def test_ordering(self):
        assert Money.of("1.00") < Money.of("1.01")

    def test_sum_money_empty_is_zero(self):
        assert sum_money([]) == Money.zero()

    @given(st.lists(st.integers(min_value=-10**9, max_value=10**9), max_size=50))
    def test_sum_is_exact(self, values):
        assert sum_money(Money(v) for v in values).minor_units == sum(values)


class TestWireFormat:
    def test_two_fractional_digits(self):
        assert Money.of("105").to_wire() == "105.00"
        assert str(Money.of("0.5")) == "0.50"

    def test_negative(self):
        assert (-Money.of("0.05")).to_wire() == "-0.05"

    def test_repr(self):
        assert repr(Money.of("1.5")) == "Money('1.50')"


class TestParseQuantity:
    def test_int_passthrough(self):
        assert parse_quantity(3) == 3

    def test_integral_string(self):
        assert parse_quantity(" 12 ") == 12

    def test_fractional_string_rejected(self):
        with pytest.raises(ValueError):
            parse_quantity("2.5")

    def test_float_rejected(self):
        with pytest.raises(TypeError):
            parse_quantity(2.0)

    def test_bool_rejected(self):
        with pytest.raises(TypeError):
            parse_quantity(True)
