"""Money helpers: Decimal conversion, rounding and Rupiah formatting."""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

ZERO = Decimal("0")
WHOLE_RUPIAH = Decimal("1")
MONTHS_PER_YEAR = Decimal("12")


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """
    Convert a raw amount to Decimal.

    Goes through str() so floats keep their printed value
    (0.1 -> Decimal("0.1"), not the binary expansion).

    Args:
        value: int, float, str, Decimal or None
        default: Returned for None and empty strings

    Returns:
        Decimal value

    Raises:
        ValueError: If the value is not a number
    """
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not an amount: {value!r}")

    text = str(value).strip().replace(",", "")
    if not text:
        return default

    try:
        amount = Decimal(text)
    except InvalidOperation:
        raise ValueError(f"Not an amount: {value!r}") from None

    if not amount.is_finite():
        raise ValueError(f"Not a finite amount: {value!r}")
    return amount


def round_rupiah(amount: Decimal) -> Decimal:
    """Round to whole Rupiah, half away from zero."""
    return amount.quantize(WHOLE_RUPIAH, rounding=ROUND_HALF_UP)


def format_idr(amount: Decimal, show_symbol: bool = True, show_decimals: bool = False) -> str:
    """
    Format an amount the way Indonesian payslips print it.

    Uses '.' as the thousands separator and ',' for decimals:
    format_idr(Decimal("1234567")) -> 'Rp 1.234.567'

    Negative amounts keep a leading minus sign.
    """
    places = 2 if show_decimals else 0
    quantum = Decimal("0.01") if show_decimals else WHOLE_RUPIAH
    value = Decimal(amount).quantize(quantum, rounding=ROUND_HALF_UP)

    text = f"{abs(value):,.{places}f}"
    # Swap separators: 1,234.50 -> 1.234,50
    text = text.replace(",", "_").replace(".", ",").replace("_", ".")

    sign = "-" if value < 0 else ""
    if show_symbol:
        return f"{sign}Rp {text}"
    return f"{sign}{text}"
