"""
sales/refunds.py

Pure refund calculator: turns an original Sale plus requested quantities into
a Return record.

Allocation uses the original sale's own discount and tax, never the current
settings:

    refund_discount = refund_subtotal × (orig_discount / orig_subtotal)
    refund_tax      = refund_taxable  × (orig_tax / (orig_subtotal − orig_discount))

The refund that brings every line back to zero remaining takes whatever
discount and tax the earlier returns left over, so the returns of a sale
always net to exactly its original totals.

Do not import repos or open DB connections here.
"""
from __future__ import annotations

from dataclasses import replace
from typing import Callable, Iterable, Mapping, Optional, Sequence

from ...constants import PAYMENT_CASH, STATUS_REFUNDED, TYPE_RETURN
from ...errors import NotFoundError, NothingToRefundError, ValidationError
from ...utils.money import ZERO, prorate, to_money
from ...utils.validators import parse_quantity
from .models import CartLine, LineItem, Payment, Sale
from .totals import derive_totals

__all__ = [
    "resolve_quantities",
    "match_return_lines",
    "is_final_refund",
    "allocate",
    "build_return",
]


def _ensure_refundable(sale: Sale) -> None:
    if not sale.is_sale:
        raise ValidationError("Refunds are issued against the original sale, not a return.")
    if sale.status == STATUS_REFUNDED or all(it.remaining == 0 for it in sale.items):
        raise NothingToRefundError(f"Sale {sale.public_id} is already fully refunded.")


def resolve_quantities(sale: Sale, requested: Optional[Mapping[str, object]] = None) -> dict[str, int]:
    """
    Map line_id -> units to refund.

    requested=None means a full refund of everything still remaining.
    Asking for more than a line's remaining quantity is a ValidationError;
    a request that adds up to zero units is a NothingToRefundError.
    """
    _ensure_refundable(sale)

    if requested is None:
        quantities = {it.line_id: it.remaining for it in sale.items if it.remaining > 0}
    else:
        quantities = {}
        for line_id, raw in requested.items():
            line = sale.line(line_id)
            if line is None:
                raise ValidationError(f"Line {line_id!r} is not part of sale {sale.public_id}.")
            qty = abs(parse_quantity(raw, "Refund quantity"))
            if qty > line.remaining:
                raise ValidationError(
                    f"Return qty exceeds remaining for {line.name}: "
                    f"remaining {line.remaining}, requested {qty}."
                )
            if qty:
                quantities[line_id] = qty

    if not quantities:
        raise NothingToRefundError("Nothing to refund: every requested quantity is zero.")
    return quantities


def match_return_lines(sale: Sale, lines: Iterable[CartLine]) -> dict[str, int]:
    """
    Resolve free-form return lines (product/variant + quantity) onto the
    original sale's line ids, filling lines in their original order.
    """
    _ensure_refundable(sale)
    quantities: dict[str, int] = {}
    for cl in lines:
        wanted = abs(parse_quantity(cl.quantity))
        if wanted == 0:
            raise ValidationError("Line items must have a non-zero quantity.")
        candidates = [
            it for it in sale.items
            if it.product_id == cl.product_id and it.variant_id == cl.variant_id
        ]
        if not candidates:
            raise NotFoundError(
                f"Product {cl.product_id} (variant {cl.variant_id}) was not sold on {sale.public_id}."
            )
        for it in candidates:
            free = it.remaining - quantities.get(it.line_id, 0)
            take = min(free, wanted)
            if take > 0:
                quantities[it.line_id] = quantities.get(it.line_id, 0) + take
                wanted -= take
            if wanted == 0:
                break
        if wanted:
            raise ValidationError(
                f"Return qty exceeds remaining for product {cl.product_id} on {sale.public_id}."
            )
    return resolve_quantities(sale, quantities)


def is_final_refund(sale: Sale, quantities: Mapping[str, int]) -> bool:
    """True when this refund returns every unit still outstanding."""
    return all(quantities.get(it.line_id, 0) == it.remaining for it in sale.items)


def allocate(
    sale: Sale,
    quantities: Mapping[str, int],
    prior_returns: Sequence[Sale] = (),
    integer_currency: bool = False,
) -> tuple:
    """
    (refund_subtotal, refund_discount, refund_tax) as positive amounts.
    """
    refund_subtotal = to_money(
        sum((it.unit_retail_price * quantities.get(it.line_id, 0) for it in sale.items), ZERO),
        integer_currency,
    )

    if is_final_refund(sale, quantities):
        # prior returns are stored negated
        discount = sale.discount + sum((r.discount for r in prior_returns), ZERO)
        tax = sale.tax + sum((r.tax for r in prior_returns), ZERO)
        return refund_subtotal, to_money(discount, integer_currency), to_money(tax, integer_currency)

    discount = prorate(sale.discount, refund_subtotal, sale.subtotal, integer_currency)
    taxable = refund_subtotal - discount
    tax = prorate(sale.tax, taxable, sale.subtotal - sale.discount, integer_currency)
    return refund_subtotal, discount, tax


def build_return(
    sale: Sale,
    quantities: Mapping[str, int],
    *,
    sale_id: str,
    public_id: str,
    date: str,
    new_line_id: Callable[[], str],
    prior_returns: Sequence[Sale] = (),
    payments: Optional[Sequence[Payment]] = None,
    salesperson_id: Optional[int] = None,
    salesperson_name: Optional[str] = None,
    integer_currency: bool = False,
) -> Sale:
    """
    Build the Return record. Quantities come back negative, amounts negated,
    and each line points at the original sale. Without explicit payments the
    refund goes back through the original's first payment method.
    """
    items: list[LineItem] = []
    for it in sale.items:
        qty = quantities.get(it.line_id, 0)
        if not qty:
            continue
        items.append(
            replace(
                it,
                line_id=new_line_id(),
                quantity=-qty,
                returned_quantity=0,
                original_sale_id=sale.sale_id,
            )
        )
    if not items:
        raise NothingToRefundError("Nothing to refund: every requested quantity is zero.")

    _, discount, tax = allocate(sale, quantities, prior_returns, integer_currency)
    totals = derive_totals(items, -discount, -tax, integer_currency)

    if payments is None:
        method = sale.payments[0].method if sale.payments else PAYMENT_CASH
        payments = (Payment(method=method, amount=totals.total),)

    return Sale(
        sale_id=sale_id,
        public_id=public_id,
        date=date,
        type=TYPE_RETURN,
        items=tuple(items),
        subtotal=totals.subtotal,
        discount=totals.discount,
        tax=totals.tax,
        total=totals.total,
        cogs=totals.cogs,
        profit=totals.profit,
        payments=tuple(payments),
        status=None,
        original_sale_id=sale.sale_id,
        salesperson_id=salesperson_id,
        salesperson_name=salesperson_name,
        customer_id=sale.customer_id,
        integer_currency=integer_currency,
    )
