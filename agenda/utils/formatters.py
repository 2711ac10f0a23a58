"""
Currency formatting utilities.
Renders amounts with a company's currency (symbol, decimal count, rounding increment).
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Any, Mapping, Optional, Union

Number = Union[int, float, Decimal, str, None]


@dataclass(frozen=True)
class CurrencyFormat:
    """Display descriptor of a currency."""
    symbol: str = '$'
    decimals: int = 2
    rounding: Decimal = Decimal('0.01')

    @classmethod
    def from_value(cls, currency: Any) -> Optional['CurrencyFormat']:
        """
        Build a descriptor from a Currency row, a record or a plain dict.

        Missing fields fall back to the defaults (2 decimals, 0.01 rounding).
        """
        if currency is None:
            return None
        if isinstance(currency, CurrencyFormat):
            return currency

        if isinstance(currency, Mapping):
            get = currency.get
        else:
            def get(name, default=None):
                return getattr(currency, name, default)

        symbol = get('symbol') or '$'
        rounding = get('rounding')
        try:
            decimals = int(get('decimals'))
        except (TypeError, ValueError, OverflowError):
            decimals = 2
        return cls(
            symbol=str(symbol),
            decimals=decimals,
            rounding=_to_decimal(rounding, Decimal('0.01')),
        )


def _to_decimal(value: Number, default: Decimal = Decimal('0')) -> Decimal:
    """Convert to a finite Decimal, or return the default."""
    if value is None or isinstance(value, bool):
        return default
    try:
        num = Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        return default
    if not num.is_finite():
        return default
    return num


def _group(value: Decimal, decimals: int) -> str:
    """Format with comma thousands separator and a fixed number of decimals."""
    return f"{value:,.{decimals}f}"


def format_currency(amount: Number, currency: Any = None) -> str:
    """
    Format an amount for display: "<symbol> <number>".

    Args:
        amount: Number to format (NaN, None or garbage count as 0)
        currency: Currency row, CurrencyFormat or dict with symbol/decimals/rounding

    Returns:
        Formatted string; never raises

    Examples:
        format_currency(1234.5, {'symbol': '€', 'decimals': 2, 'rounding': '0.01'}) -> "€ 1,234.50"
        format_currency(1.02, {'symbol': 'CHF', 'decimals': 2, 'rounding': '0.05'}) -> "CHF 1.00"
        format_currency(None) -> "$ 0.00"
        format_currency(-1) -> "-$ 1.00"
    """
    value = _to_decimal(amount)
    fmt = CurrencyFormat.from_value(currency)

    if fmt is None:
        value = _round(value, Decimal('0'), 2)
        sign = '-' if value < 0 else ''
        return f"{sign}$ {_group(abs(value), 2)}"

    decimals = max(fmt.decimals, 0)
    value = _round(value, fmt.rounding, decimals)
    # -0.00 renders as 0.00
    if value == 0:
        value = abs(value)
    return f"{fmt.symbol} {_group(value, decimals)}"


def _round(value: Decimal, increment: Decimal, decimals: int) -> Decimal:
    """Round half-up to the increment (skipped when not positive), then to ``decimals`` places.

    Precision grows with the magnitude so large amounts keep every digit.
    """
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, value.adjusted() + decimals + 2)
        try:
            if increment > 0:
                ctx.prec = max(ctx.prec, value.adjusted() - increment.adjusted() + 2)
                steps = (value / increment).quantize(Decimal('1'), rounding=ROUND_HALF_UP)
                value = steps * increment
            return value.quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP)
        except InvalidOperation:
            return value
