"""
utils/money.py

Fixed-point money helpers. Every amount in the ledger is a Decimal quantized
to the currency's minor unit with ROUND_HALF_UP (zero places in integer
currency mode).

Do not import repos or open DB connections here.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Union

from ..errors import ValidationError

MoneyLike = Union[Decimal, int, str, float]

ZERO = Decimal("0")
HUNDRED = Decimal("100")

__all__ = [
    "ZERO",
    "HUNDRED",
    "quantum",
    "to_money",
    "parse_decimal",
    "money_sum",
    "prorate",
    "apply_rate",
    "epsilon",
    "is_near_zero",
]


def quantum(integer_currency: bool = False) -> Decimal:
    return Decimal("1") if integer_currency else Decimal("0.01")


def parse_decimal(value: MoneyLike) -> Decimal:
    """
    Parse to an unrounded Decimal. Floats go through str() so 0.1 stays 0.1.
    Raises ValidationError on anything that is not a number.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"Could not parse {value!r} as an amount.")
    try:
        if isinstance(value, float):
            return Decimal(str(value))
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Could not parse {value!r} as an amount.") from e


def to_money(value: MoneyLike, integer_currency: bool = False) -> Decimal:
    d = parse_decimal(value)
    if not d.is_finite():
        raise ValidationError(f"Amount must be finite, got {value!r}.")
    # "+ ZERO" folds -0.00 into 0.00
    return d.quantize(quantum(integer_currency), rounding=ROUND_HALF_UP) + ZERO


def money_sum(values: Iterable[MoneyLike], integer_currency: bool = False) -> Decimal:
    total = ZERO
    for v in values:
        total += parse_decimal(v)
    return to_money(total, integer_currency)


def prorate(
    amount: MoneyLike,
    numerator: MoneyLike,
    denominator: MoneyLike,
    integer_currency: bool = False,
) -> Decimal:
    """
    amount * numerator / denominator, rounded once at the end.
    Returns 0 when the denominator is not positive.
    """
    den = parse_decimal(denominator)
    if den <= 0:
        return to_money(ZERO, integer_currency)
    raw = parse_decimal(amount) * parse_decimal(numerator) / den
    return to_money(raw, integer_currency)


def apply_rate(amount: MoneyLike, percent: MoneyLike, integer_currency: bool = False) -> Decimal:
    """Percentage of an amount, e.g. apply_rate(90, 8) -> 7.20."""
    return to_money(parse_decimal(amount) * parse_decimal(percent) / HUNDRED, integer_currency)


def epsilon(integer_currency: bool = False) -> Decimal:
    """Half a minor unit; the tolerance for comparing two rounded amounts."""
    return quantum(integer_currency) / 2


def is_near_zero(value: MoneyLike, integer_currency: bool = False) -> bool:
    return abs(parse_decimal(value)) < epsilon(integer_currency)
