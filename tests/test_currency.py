"""
Test suite for currency module

Money must never use floating point and always carry the precision of its
currency.
"""

import pytest
from decimal import Decimal

from branch_finance.currency import Money, Currency, fits_precision


class TestMoney:

    def test_rounds_half_up(self):
        assert Money(Decimal('10.005'), Currency.ARS).amount == Decimal('10.01')
        assert Money(Decimal('10.004'), Currency.ARS).amount == Decimal('10.00')

    def test_string_input_converted(self):
        assert Money('12.5', Currency.USD).amount == Decimal('12.50')

    def test_arithmetic(self):
        a = Money(Decimal('100.00'), Currency.ARS)
        b = Money(Decimal('33.33'), Currency.ARS)

        assert a + b == Money(Decimal('133.33'), Currency.ARS)
        assert a - b == Money(Decimal('66.67'), Currency.ARS)
        assert a / 3 == Money(Decimal('33.33'), Currency.ARS)
        assert a * Decimal('0.1') == Money(Decimal('10.00'), Currency.ARS)
        assert -a == Money(Decimal('-100.00'), Currency.ARS)

    def test_comparisons(self):
        small = Money(Decimal('1'), Currency.ARS)
        large = Money(Decimal('2'), Currency.ARS)

        assert small < large
        assert large >= small
        assert small != large
        assert Money.zero(Currency.ARS).is_zero()
        assert large.is_positive()
        assert (-large).is_negative()

    def test_mixed_currencies_rejected(self):
        with pytest.raises(ValueError):
            Money(Decimal('1'), Currency.ARS) + Money(Decimal('1'), Currency.USD)
        with pytest.raises(ValueError):
            Money(Decimal('1'), Currency.ARS) < Money(Decimal('1'), Currency.EUR)

    def test_to_string(self):
        assert Money(Decimal('1234.5'), Currency.ARS).to_string() == "ARS 1,234.50"

    def test_hashable(self):
        assert len({Money(Decimal('1'), Currency.ARS), Money(Decimal('1.00'), Currency.ARS)}) == 1


class TestFitsPrecision:

    @pytest.mark.parametrize("value,expected", [
        ('10', True),
        ('10.5', True),
        ('10.55', True),
        ('10.550', True),
        ('10.555', False),
        ('0.001', False),
        ('1e30', False),
        ('-1e40', False),
    ])
    def test_fits_precision(self, value, expected):
        assert fits_precision(Decimal(value), Currency.ARS) is expected

    def test_quantum(self):
        assert Currency.ARS.quantum == Decimal('0.01')
