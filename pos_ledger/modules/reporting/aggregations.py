"""
reporting/aggregations.py

Read-only rollups over Sale records. Everything here is re-derivable from
the sales collection and safe to run at any time.

Stored aggregates are not trusted blindly: profit goes through
reconcile_profit(), which recomputes total − tax − cogs from the record's
own figures when the stored value is missing, not finite, or zero while the
total is not (rows written by older versions).

Do not import repos or open DB connections here.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Mapping, Optional

from ...errors import ConsistencyWarning, PROFIT_RECOMPUTED
from ...utils.money import HUNDRED, ZERO, epsilon, is_near_zero, to_money
from ..sales.models import Sale

__all__ = [
    "ProductPerformance",
    "CustomerMetrics",
    "SalesSummary",
    "in_range",
    "reconcile_profit",
    "sell_through",
    "product_performance",
    "customer_metrics",
    "sales_summary",
    "low_stock",
]

_PCT = Decimal("0.01")


@dataclass(frozen=True)
class ProductPerformance:
    product_id: int
    variant_id: Optional[int]
    name: str
    units_sold: int
    revenue: Decimal
    cogs: Decimal
    profit: Decimal
    margin: Decimal
    sell_through: Decimal


@dataclass(frozen=True)
class CustomerMetrics:
    customer_id: int
    orders: int
    total_spent: Decimal
    profit: Decimal
    last_visit: Optional[str]


@dataclass(frozen=True)
class SalesSummary:
    total_sales: Decimal
    total_tax: Decimal
    total_cogs: Decimal
    total_profit: Decimal
    transaction_count: int
    return_count: int
    warnings: tuple = field(default=())


# -----------------------------
# Core utilities
# -----------------------------

def in_range(sale: Sale, date_from: Optional[str] = None, date_to: Optional[str] = None) -> bool:
    """Inclusive whole-day range check on the ISO date prefix."""
    day = (sale.date or "")[:10]
    if date_from and day < date_from[:10]:
        return False
    if date_to and day > date_to[:10]:
        return False
    return True


def _finite(d: Optional[Decimal]) -> bool:
    return d is not None and d.is_finite()


def _cogs_of(sale: Sale) -> Decimal:
    if _finite(sale.cogs):
        return sale.cogs  # type: ignore[return-value]
    return sum((it.line_cost for it in sale.items), ZERO)


def _total_of(sale: Sale) -> Decimal:
    if _finite(sale.total):
        return sale.total
    subtotal = sum((it.line_total for it in sale.items), ZERO)
    return subtotal - (sale.discount if _finite(sale.discount) else ZERO) + _tax_of(sale)


def _tax_of(sale: Sale) -> Decimal:
    return sale.tax if _finite(sale.tax) else ZERO


def reconcile_profit(
    sale: Sale, integer_currency: bool = False
) -> tuple[Decimal, Optional[ConsistencyWarning]]:
    """
    Profit to report for `sale`, plus a warning when the stored figure had
    to be replaced.

    The stored profit is trusted unless it is missing, NaN/infinite, or near
    zero while the total is not. In those cases profit is recomputed as
    total − tax − cogs (cogs from the line items if it is unusable too).
    """
    stored = sale.profit
    total = _total_of(sale)
    suspicious = (
        not _finite(stored)
        or (is_near_zero(stored, integer_currency) and not is_near_zero(total, integer_currency))
    )
    if not suspicious:
        return stored, None  # type: ignore[return-value]

    recomputed = to_money(total - _tax_of(sale) - _cogs_of(sale), integer_currency)
    if _finite(stored) and abs(recomputed - stored) < epsilon(integer_currency):
        return stored, None  # type: ignore[return-value]
    return recomputed, ConsistencyWarning(
        PROFIT_RECOMPUTED,
        f"Profit for {sale.public_id} recomputed as {recomputed} (stored {stored}).",
        sale_id=sale.sale_id,
    )


def sell_through(units_sold: int, current_stock: int) -> Decimal:
    """Percent of available units sold: units / (units + stock) × 100."""
    available = units_sold + max(current_stock, 0)
    if available <= 0:
        return ZERO.quantize(_PCT)
    return (Decimal(units_sold) * HUNDRED / Decimal(available)).quantize(_PCT)


# -----------------------------
# Rollups
# -----------------------------

def product_performance(
    sales: Iterable[Sale],
    catalog: Iterable[Mapping] = (),
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    integer_currency: bool = False,
) -> list[ProductPerformance]:
    """
    Per product/variant over Sale records: units net of returns, revenue and
    cogs at line prices, margin as a percent of revenue. Highest revenue first.

    Every `catalog` row (product_id, variant_id, name, stock) is listed even
    with nothing sold, and its stock feeds the sell-through figure. Items sold
    but no longer in the catalog still report, with zero stock.
    """
    acc: dict[tuple, dict] = {}
    levels: dict[tuple, int] = {}
    for c in catalog:
        key = (c["product_id"], c["variant_id"])
        levels[key] = int(c["stock"])
        acc[key] = {"name": c["name"], "units": 0, "revenue": ZERO, "cogs": ZERO}

    for sale in sales:
        if not sale.is_sale or not in_range(sale, date_from, date_to):
            continue
        for it in sale.items:
            net = it.quantity - it.returned_quantity
            key = (it.product_id, it.variant_id)
            row = acc.setdefault(key, {"name": it.name, "units": 0, "revenue": ZERO, "cogs": ZERO})
            row["units"] += net
            row["revenue"] += it.unit_retail_price * net
            row["cogs"] += it.unit_cost_price * net

    out: list[ProductPerformance] = []
    for (pid, vid), row in acc.items():
        revenue = to_money(row["revenue"], integer_currency)
        cogs = to_money(row["cogs"], integer_currency)
        profit = revenue - cogs
        margin = (profit * HUNDRED / revenue).quantize(_PCT) if revenue > 0 else ZERO.quantize(_PCT)
        out.append(
            ProductPerformance(
                product_id=pid,
                variant_id=vid,
                name=row["name"],
                units_sold=row["units"],
                revenue=revenue,
                cogs=cogs,
                profit=profit,
                margin=margin,
                sell_through=sell_through(row["units"], levels.get((pid, vid), 0)),
            )
        )
    out.sort(key=lambda p: (-p.revenue, p.name))
    return out


def customer_metrics(
    sales: Iterable[Sale],
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    integer_currency: bool = False,
) -> dict[int, CustomerMetrics]:
    """
    Per customer: orders (Sale records), spend and profit net of returns,
    and the date of the latest sale.
    """
    acc: dict[int, dict] = {}
    for sale in sales:
        if sale.customer_id is None or not in_range(sale, date_from, date_to):
            continue
        row = acc.setdefault(
            sale.customer_id, {"orders": 0, "spent": ZERO, "profit": ZERO, "last": None}
        )
        profit, _ = reconcile_profit(sale, integer_currency)
        row["spent"] += _total_of(sale)
        row["profit"] += profit
        if sale.is_sale:
            row["orders"] += 1
            if row["last"] is None or sale.date > row["last"]:
                row["last"] = sale.date
    return {
        cid: CustomerMetrics(
            customer_id=cid,
            orders=row["orders"],
            total_spent=to_money(row["spent"], integer_currency),
            profit=to_money(row["profit"], integer_currency),
            last_visit=row["last"],
        )
        for cid, row in acc.items()
    }


def sales_summary(
    sales: Iterable[Sale],
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    integer_currency: bool = False,
) -> SalesSummary:
    """Net totals over Sales and Returns in range (returns subtract)."""
    total = tax = cogs = profit = ZERO
    n_sales = n_returns = 0
    warnings: list[ConsistencyWarning] = []
    for sale in sales:
        if not in_range(sale, date_from, date_to):
            continue
        p, w = reconcile_profit(sale, integer_currency)
        if w is not None:
            warnings.append(w)
        total += _total_of(sale)
        tax += _tax_of(sale)
        cogs += _cogs_of(sale)
        profit += p
        if sale.is_sale:
            n_sales += 1
        else:
            n_returns += 1
    return SalesSummary(
        total_sales=to_money(total, integer_currency),
        total_tax=to_money(tax, integer_currency),
        total_cogs=to_money(cogs, integer_currency),
        total_profit=to_money(profit, integer_currency),
        transaction_count=n_sales,
        return_count=n_returns,
        warnings=tuple(warnings),
    )


def low_stock(products: Iterable) -> list:
    """Products at or below their low-stock threshold, lowest stock first."""
    hits = [p for p in products if p.stock <= p.low_stock_threshold]
    return sorted(hits, key=lambda p: (p.stock, p.name))
