"""
Currency Module

Whole-unit rounding and display formatting for ledger amounts. Amounts in
this program are integer rupiah; fractional intermediate values are
computed with Decimal and rounded half-up, never with float.
"""

from decimal import Decimal, ROUND_HALF_UP, getcontext
from enum import Enum
from typing import Union

getcontext().prec = 28


class Currency(Enum):
    """Supported display currencies: (code, symbol, thousands separator)"""
    IDR = ("IDR", "Rp", ".")
    USD = ("USD", "$", ",")

    def __init__(self, code: str, symbol: str, separator: str):
        self.code = code
        self.symbol = symbol
        self.separator = separator


Number = Union[int, float, Decimal, str]


def to_decimal(value: Number) -> Decimal:
    """Convert a number or numeric string to Decimal"""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # Route floats through str so 0.1 stays 0.1
        return Decimal(str(value))
    return Decimal(value)


def round_whole(value: Number) -> int:
    """Round to the nearest whole currency unit, halves away from zero"""
    return int(to_decimal(value).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def format_amount(amount: Number, currency: Currency = Currency.IDR) -> str:
    """Format for display, e.g. ``Rp 1.200.000``"""
    whole = round_whole(amount)
    grouped = f"{abs(whole):,}".replace(",", currency.separator)
    sign = "-" if whole < 0 else ""
    return f"{sign}{currency.symbol} {grouped}"


def currency_for_code(code: str) -> Currency:
    """Look up a Currency by ISO code"""
    try:
        return Currency[code.upper()]
    except KeyError:
        raise ValueError(f"Unsupported currency: {code}")
