"""Utilities for working with monetary values and progress units."""

from __future__ import annotations

from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import Union

CENT = Decimal("0.01")
HUNDRED = Decimal("100")

AmountLike = Union[Decimal, int, float, str]


def to_decimal(value: AmountLike) -> Decimal:
    """Convert ``value`` to a :class:`~decimal.Decimal` with two decimal places."""

    if isinstance(value, bool):
        raise TypeError("Booleans are not valid amounts.")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        result = Decimal(value)
    else:
        raise TypeError(f"Unsupported amount type: {type(value)!r}")

    return result.quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value: AmountLike) -> int:
    """Return ``value`` expressed as a whole number of cents."""

    return int(to_decimal(value) * HUNDRED)


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / HUNDRED).quantize(CENT)


def whole_percent(ratio: Decimal) -> int:
    """Truncate a percentage to whole percent for progress reporting."""

    return int(ratio.quantize(Decimal("1"), rounding=ROUND_DOWN))


def percentage_of(part: AmountLike, whole: AmountLike) -> Decimal | None:
    """Return ``part`` as a percentage of ``whole`` or ``None`` when ``whole`` is zero."""

    denominator = to_decimal(whole)
    if denominator <= Decimal("0"):
        return None
    return (to_decimal(part) / denominator * HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)


def format_currency(amount: Decimal) -> str:
    """Return ``amount`` as a currency formatted string (e.g. ``$12.34``)."""

    return f"${amount.quantize(CENT, rounding=ROUND_HALF_UP):,.2f}"


def require_positive(amount: Decimal, *, allow_zero: bool = False) -> Decimal:
    """Ensure ``amount`` is positive (or non-negative when ``allow_zero`` is true)."""

    if allow_zero:
        if amount < Decimal("0"):
            raise ValueError("Amount must be zero or greater.")
    else:
        if amount <= Decimal("0"):
            raise ValueError("Amount must be greater than zero.")
    return amount
