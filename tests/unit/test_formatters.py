"""
Unit tests for currency formatting.
"""

from decimal import Decimal

from agenda.models import Currency
from agenda.utils.formatters import CurrencyFormat, format_currency


USD = {'symbol': '$', 'decimals': 2, 'rounding': '0.01'}
EUR = {'symbol': '€', 'decimals': 2, 'rounding': '0.01'}
CHF = {'symbol': 'CHF', 'decimals': 2, 'rounding': '0.05'}
JPY = {'symbol': '¥', 'decimals': 0, 'rounding': '1'}


class TestFormatWithCurrency:
    """Amounts rendered with a company currency."""

    def test_zero(self):
        """Zero renders with all decimals."""
        assert format_currency(0, USD) == '$ 0.00'

    def test_thousands_grouping(self):
        """Thousands are grouped with commas."""
        assert format_currency(1234.5, EUR) == '€ 1,234.50'
        assert format_currency(Decimal('1234567.891'), EUR) == '€ 1,234,567.89'

    def test_half_up_rounding(self):
        """Half cents round away from zero."""
        assert format_currency('2.345', EUR) == '€ 2.35'
        assert format_currency('2.344', EUR) == '€ 2.34'

    def test_nickel_rounding(self):
        """A 0.05 increment rounds to the nearest nickel."""
        assert format_currency(1.02, CHF) == 'CHF 1.00'
        assert format_currency(1.03, CHF) == 'CHF 1.05'
        assert format_currency(1.075, CHF) == 'CHF 1.10'

    def test_zero_decimals(self):
        """Currencies without minor units show no fraction."""
        assert format_currency(1234.5, JPY) == '¥ 1,235'

    def test_non_positive_rounding_skips_rounding_step(self):
        """Rounding 0 keeps the value and only applies the decimal count."""
        currency = {'symbol': 'X', 'decimals': 3, 'rounding': 0}
        assert format_currency('1.23456', currency) == 'X 1.235'

    def test_negative_amount(self):
        """Negative amounts keep their sign after the symbol."""
        assert format_currency(-5, EUR) == '€ -5.00'

    def test_negative_zero_is_plain_zero(self):
        """A value rounding to zero never shows a minus sign."""
        assert format_currency('-0.001', EUR) == '€ 0.00'

    def test_currency_row(self):
        """A Currency model instance works as descriptor."""
        currency = Currency(name='ARS', symbol='$', decimals=2, rounding=Decimal('0.01'))
        assert format_currency(99.999, currency) == '$ 100.00'


class TestFormatWithoutCurrency:
    """Fallback USD-style format."""

    def test_default_format(self):
        """Without currency the result is '$ ' with two decimals."""
        assert format_currency(1234.5) == '$ 1,234.50'

    def test_negative(self):
        """Negative fallback amounts put the sign before the symbol."""
        assert format_currency(-1) == '-$ 1.00'

    def test_not_a_number_counts_as_zero(self):
        """NaN, None and garbage all render as zero."""
        assert format_currency(float('nan')) == '$ 0.00'
        assert format_currency(None) == '$ 0.00'
        assert format_currency('abc') == '$ 0.00'

    def test_not_a_number_with_currency(self):
        """Invalid amounts are zero on the currency path too."""
        assert format_currency(float('nan'), USD) == '$ 0.00'


class TestCurrencyFormat:
    """CurrencyFormat descriptor construction."""

    def test_from_none(self):
        """No currency gives no descriptor."""
        assert CurrencyFormat.from_value(None) is None

    def test_defaults_for_missing_fields(self):
        """Missing decimals and rounding fall back to 2 and 0.01."""
        fmt = CurrencyFormat.from_value({'symbol': '€'})
        assert fmt == CurrencyFormat(symbol='€', decimals=2, rounding=Decimal('0.01'))

    def test_invalid_rounding_falls_back(self):
        """Unparseable rounding uses 0.01."""
        fmt = CurrencyFormat.from_value({'symbol': '$', 'decimals': 2, 'rounding': 'n/a'})
        assert fmt.rounding == Decimal('0.01')


class TestLargeAndMalformedInput:
    """Inputs that must still produce a string."""

    def test_amount_beyond_default_precision(self):
        """Amounts wider than 28 digits keep every digit."""
        assert format_currency(Decimal('1e27')) == '$ 1' + ',000' * 9 + '.00'
        assert format_currency(1e30) == '$ 1' + ',000' * 10 + '.00'

    def test_large_amount_with_currency(self):
        """The rounding increment works on large amounts too."""
        assert format_currency(1e27, USD) == '$ 1' + ',000' * 9 + '.00'
        assert format_currency(Decimal('123456789012345678901234567890.125'), CHF) == (
            'CHF 123,456,789,012,345,678,901,234,567,890.15'
        )

    def test_non_numeric_decimals(self):
        """Unreadable decimals fall back to 2."""
        assert format_currency(1, {'symbol': '$', 'decimals': 'two', 'rounding': '0.01'}) == '$ 1.00'
        assert CurrencyFormat.from_value({'decimals': float('nan')}).decimals == 2
