import math
import re

from .errors import BudgetValidationError


_CURRENCY_FORMATS = {
    # code: (symbol, thousands separator, decimal separator)
    "CAD": ("CA$", ",", "."),
    "USD": ("$", ",", "."),
    "COP": ("COL$", ".", ","),
    "BRL": ("R$", ".", ","),
}

_NON_DIGITS = re.compile(r"\D")


def to_cents(value, field: str = "amount_cents") -> int:
    """Sanitize a money value into non-negative integer cents."""
    if value is None or isinstance(value, bool) or not isinstance(value, (int, float)):
        raise BudgetValidationError("Enter a valid amount", field=field)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise BudgetValidationError("Enter a valid amount", field=field)
        value = math.floor(value + 0.5)
    if value < 0:
        raise BudgetValidationError("Amount cannot be negative", field=field)
    return int(value)


def parse_money_input(text: str) -> int:
    """Read whatever the user typed ("R$ 12,34", "12.34") as cents."""
    digits = _NON_DIGITS.sub("", text or "")
    if not digits:
        return 0
    return int(digits)


def divide_rounded(total: int, count: int) -> int:
    """Integer division rounding half up, for averages of cent amounts."""
    if count <= 0:
        raise ValueError("count must be positive")
    return (2 * total + count) // (2 * count)


def format_cents(cents: int, currency: str = "CAD") -> str:
    symbol, thousands, decimal = _CURRENCY_FORMATS.get(currency.upper(), (currency.upper(), ",", "."))
    sign = "-" if cents < 0 else ""
    units, fraction = divmod(abs(int(cents)), 100)
    grouped = f"{units:,}".replace(",", thousands)
    return f"{sign}{symbol} {grouped}{decimal}{fraction:02d}"
