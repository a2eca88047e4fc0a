"""Formatting and parsing utilities for currency amounts."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Union

from .config import CURRENCY_CODE
from .errors import InvalidAmountError, NonPositiveAmountError

AmountLike = Union[Decimal, int, str]


def to_decimal(value: AmountLike) -> Decimal:
    """Convert ``value`` to an exact Decimal.

    Floats are rejected outright: a binary float has usually already lost the
    exact amount the user typed.

    Example:
        >>> to_decimal('12.50')
        Decimal('12.50')
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmountError(f"Amounts must be exact decimals, not {type(value).__name__}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise InvalidAmountError(f"Invalid amount: {value!r}") from None
    else:
        raise InvalidAmountError(f"Unsupported amount type: {type(value).__name__}")
    if not result.is_finite():
        raise InvalidAmountError(f"Invalid amount: {value!r}")
    return result


def require_positive(value: AmountLike) -> Decimal:
    amount = to_decimal(value)
    if amount <= 0:
        raise NonPositiveAmountError(amount)
    return amount


def parse_amount(text: str) -> Decimal:
    """Parse a typed amount such as ``"1,500,000"`` or ``"IDR 25000.50"``.

    Args:
        text: User input. A leading currency code and ``,`` digit grouping
            are allowed.

    Returns:
        The exact Decimal value.

    Raises:
        InvalidAmountError: If the text is empty or not a number.
    """
    if not isinstance(text, str):
        return to_decimal(text)
    cleaned = text.strip()
    for prefix in (CURRENCY_CODE, 'Rp'):
        if cleaned.upper().startswith(prefix.upper()):
            cleaned = cleaned[len(prefix):].strip()
    cleaned = cleaned.replace(',', '').replace('_', '')
    if not cleaned:
        raise InvalidAmountError(f"Invalid amount: {text!r}")
    return to_decimal(cleaned)


def format_idr(amount: Decimal) -> str:
    """Format an amount in the IDR style, e.g. 1000000 -> "1.000.000".

    Fractions are truncated toward zero.

    Example:
        >>> format_idr(Decimal('-1234567.89'))
        '-1.234.567'
    """
    whole = int(amount)
    digits = f"{abs(whole):,}".replace(',', '.')
    return f"-{digits}" if whole < 0 else digits


def format_currency(amount: Decimal, include_code: bool = True) -> str:
    """Format a currency amount for display.

    Example:
        >>> format_currency(Decimal('2500000'))
        'IDR 2.500.000'
        >>> format_currency(Decimal('2500000'), include_code=False)
        '2.500.000'
    """
    formatted = format_idr(amount)
    return f"{CURRENCY_CODE} {formatted}" if include_code else formatted


def format_percentage(value: Decimal) -> str:
    """Render a percentage without trailing zeros, e.g. 30.00 -> "30%"."""
    normalized = value.normalize()
    if normalized == normalized.to_integral():
        normalized = normalized.quantize(Decimal('1'))
    return f"{normalized}%"
