"""
sales/totals.py

Pure helpers for transaction totals.

    subtotal = Σ(unit_retail_price × quantity)      (sign included)
    total    = subtotal − discount + tax
    cogs     = Σ(unit_cost_price × quantity)        (negative on returns)
    profit   = total − tax − cogs

Do not import repos or open DB connections here.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Sequence

from ...constants import PAYMENT_METHODS, TYPE_SALE
from ...errors import ValidationError
from ...utils.helpers import fmt_money
from ...utils.money import ZERO, apply_rate, epsilon, to_money
from .models import LineItem, Payment

__all__ = [
    "Totals",
    "derive_totals",
    "price_cart",
    "cart_discount",
    "normalize_payments",
    "validate_payments",
]


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    cogs: Decimal
    profit: Decimal


def _subtotal(items: Iterable[LineItem]) -> Decimal:
    return sum((it.line_total for it in items), ZERO)


def _cogs(items: Iterable[LineItem]) -> Decimal:
    return sum((it.line_cost for it in items), ZERO)


def derive_totals(
    items: Sequence[LineItem],
    discount,
    tax,
    integer_currency: bool = False,
) -> Totals:
    """Totals for the given lines with an explicit discount and tax."""
    subtotal = to_money(_subtotal(items), integer_currency)
    discount = to_money(discount, integer_currency)
    tax = to_money(tax, integer_currency)
    total = subtotal - discount + tax
    cogs = to_money(_cogs(items), integer_currency)
    return Totals(
        subtotal=subtotal,
        discount=discount,
        tax=tax,
        total=total,
        cogs=cogs,
        profit=total - tax - cogs,
    )


def cart_discount(subtotal: Decimal, settings) -> Decimal:
    """Order discount from settings: applies only at or above the threshold."""
    if not settings.discount_enabled or subtotal < settings.discount_threshold:
        return to_money(ZERO, settings.integer_currency)
    return apply_rate(subtotal, settings.discount_rate, settings.integer_currency)


def price_cart(items: Sequence[LineItem], settings, discount=None, tax=None) -> Totals:
    """
    Price a new Sale with the current settings. Tax is charged on the
    discounted subtotal. An explicit discount or tax overrides the settings.
    """
    ic = settings.integer_currency
    subtotal = to_money(_subtotal(items), ic)
    if discount is None:
        discount = cart_discount(subtotal, settings)
    else:
        discount = to_money(discount, ic)
        if discount < 0 or discount > subtotal:
            raise ValidationError("Discount must be between zero and the subtotal.")
    if tax is not None:
        tax = to_money(tax, ic)
        if tax < 0:
            raise ValidationError("Tax cannot be negative.")
    elif settings.tax_enabled:
        tax = apply_rate(subtotal - discount, settings.tax_rate, ic)
    else:
        tax = to_money(ZERO, ic)
    return derive_totals(items, discount, tax, ic)


def normalize_payments(payments: Iterable, integer_currency: bool = False) -> tuple[Payment, ...]:
    """Payments (or (method, amount) pairs) with checked methods and rounded amounts."""
    out = []
    for p in payments:
        method, amount = (p.method, p.amount) if isinstance(p, Payment) else p
        if method not in PAYMENT_METHODS:
            raise ValidationError(f"Unknown payment method {method!r}.")
        out.append(Payment(method=method, amount=to_money(amount, integer_currency)))
    return tuple(out)


def validate_payments(sale_type: str, total: Decimal, payments: Sequence[Payment], settings) -> None:
    """
    Payments must add up to the total, sign included. A Sale may be overpaid
    when change-due is enabled (the excess is change); a Return never may.
    """
    ic = settings.integer_currency
    eps = epsilon(ic)
    paid = sum((p.amount for p in payments), ZERO)
    places = 0 if ic else 2

    if sale_type == TYPE_SALE:
        if any(p.amount < 0 for p in payments):
            raise ValidationError("Sale payments cannot be negative.")
        if len(payments) > 1 and not settings.split_payment_enabled:
            raise ValidationError("Split payments are disabled.")
        if settings.change_due_enabled:
            if paid < total - eps:
                raise ValidationError(
                    f"Payment short: paid {fmt_money(paid, places)} of {fmt_money(total, places)}."
                )
            return
    elif any(p.amount > 0 for p in payments):
        raise ValidationError("Refund payments must be negative.")

    if abs(paid - total) > eps:
        raise ValidationError(
            f"Payments ({fmt_money(paid, places)}) do not match total ({fmt_money(total, places)})."
        )
