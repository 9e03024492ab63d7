"""Tests for Money, Quantity and Currency value objects."""

from decimal import Decimal

import pytest

from agri_kernel.domain.values import Currency, Money, Quantity


class TestCurrency:
    def test_normalizes_code(self):
        assert Currency(" kes ").code == "KES"

    def test_rejects_unknown_code(self):
        with pytest.raises(ValueError, match="Invalid ISO 4217"):
            Currency("XXX")

    def test_decimal_places(self):
        assert Currency("KES").decimal_places == 2
        assert Currency("UGX").decimal_places == 0


class TestMoney:
    def test_of_string_keeps_decimal(self):
        m = Money.of("200000.50", "KES")
        assert m.amount == Decimal("200000.50")
        assert m.currency == Currency("KES")

    def test_equality_ignores_trailing_zeros(self):
        assert Money.of("240", "KES") == Money.of("240.00", "KES")

    def test_round_half_up_to_currency_precision(self):
        assert Money.of("10.005", "KES").round() == Money.of("10.01", "KES")
        assert Money.of("1500.5", "UGX").round() == Money.of("1501", "UGX")

    def test_arithmetic(self):
        a = Money.of("100", "KES")
        b = Money.of("40", "KES")
        assert a + b == Money.of("140", "KES")
        assert a - b == Money.of("60", "KES")
        assert -b == Money.of("-40", "KES")
        assert a * Decimal("0.05") == Money.of("5", "KES")
        assert a / 4 == Money.of("25", "KES")

    def test_mixed_currency_refused(self):
        with pytest.raises(ValueError, match="different currencies"):
            Money.of("1", "KES") + Money.of("1", "USD")

    def test_comparisons(self):
        assert Money.of("1", "KES") < Money.of("2", "KES")
        assert Money.zero("KES").is_zero
        assert Money.of("-1", "KES").is_negative
        assert Money.of("0.01", "KES").is_positive

    def test_invalid_amount(self):
        with pytest.raises(ValueError):
            Money.of("abc", "KES")


class TestQuantity:
    def test_unit_normalized(self):
        assert Quantity.of(5, " KG ").unit == "kg"

    def test_unit_required(self):
        with pytest.raises(ValueError, match="unit is required"):
            Quantity(Decimal("1"), " ")

    def test_addition_same_unit(self):
        assert Quantity.of(120) + Quantity.of(30) == Quantity.of(150)

    def test_mixed_units_refused(self):
        with pytest.raises(ValueError, match="different units"):
            Quantity.of(1, "kg") + Quantity.of(1, "crates")

    def test_zero_and_positive(self):
        assert Quantity.zero().is_zero
        assert not Quantity.zero().is_positive
        assert Quantity.of("0.5").is_positive
