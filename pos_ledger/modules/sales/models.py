"""
Ledger records.

A Sale (type 'Sale' or 'Return') is frozen once created; the only field that
changes afterwards is the derived `status` of a Sale, which is replaced via
dataclasses.replace by the status deriver. Money is always Decimal.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from ...constants import PAYMENT_CASH, TYPE_RETURN, TYPE_SALE
from ...utils.money import ZERO


@dataclass(frozen=True)
class LineItem:
    line_id: str
    product_id: int
    variant_id: Optional[int]
    name: str
    sku: Optional[str]
    unit_retail_price: Decimal
    unit_cost_price: Decimal
    quantity: int
    returned_quantity: int = 0
    original_sale_id: Optional[str] = None

    @property
    def remaining(self) -> int:
        """Units still refundable on a Sale line."""
        return max(self.quantity - self.returned_quantity, 0)

    @property
    def line_total(self) -> Decimal:
        return self.unit_retail_price * self.quantity

    @property
    def line_cost(self) -> Decimal:
        return self.unit_cost_price * self.quantity


@dataclass(frozen=True)
class Payment:
    method: str
    amount: Decimal


@dataclass(frozen=True)
class Sale:
    sale_id: str
    public_id: str
    date: str
    type: str
    items: tuple[LineItem, ...]
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    cogs: Optional[Decimal]
    profit: Optional[Decimal]
    payments: tuple[Payment, ...] = ()
    status: Optional[str] = None
    original_sale_id: Optional[str] = None
    salesperson_id: Optional[int] = None
    salesperson_name: Optional[str] = None
    customer_id: Optional[int] = None
    # rounding mode the sale was priced in; its refunds reuse it
    integer_currency: bool = False

    @property
    def is_return(self) -> bool:
        return self.type == TYPE_RETURN

    @property
    def is_sale(self) -> bool:
        return self.type == TYPE_SALE

    @property
    def amount_paid(self) -> Decimal:
        return sum((p.amount for p in self.payments), ZERO)

    @property
    def change_due(self) -> Decimal:
        """Overpayment handed back to the customer; never negative."""
        if not self.is_sale:
            return ZERO
        return max(self.amount_paid - self.total, ZERO)

    @property
    def net_cash(self) -> Decimal:
        """Cash that stays in (Sale) or leaves (Return) the drawer."""
        cash = sum((p.amount for p in self.payments if p.method == PAYMENT_CASH), ZERO)
        if self.is_sale:
            return max(cash - self.change_due, ZERO)
        return cash

    def line(self, line_id: str) -> LineItem | None:
        return next((it for it in self.items if it.line_id == line_id), None)


@dataclass(frozen=True)
class InventoryAdjustment:
    adjustment_id: str
    product_id: int
    variant_id: Optional[int]
    date: str
    quantity_delta: int
    reason: str
    reference_id: Optional[str] = None


# ---- Input shapes ----

@dataclass(frozen=True)
class CartLine:
    """
    One requested line of a new transaction. Prices default to the catalog's
    current prices; cost always comes from the catalog.
    """
    product_id: int
    quantity: int
    variant_id: Optional[int] = None
    unit_retail_price: Optional[Decimal] = None


@dataclass(frozen=True)
class SaleCandidate:
    """
    A transaction before it has an id or a date. For type 'Return' the lines
    name what goes back and `original_sale_id` names the sale it reverses;
    quantities may be given positive or negative.
    """
    lines: tuple[CartLine, ...]
    payments: tuple[Payment, ...] = ()
    type: str = TYPE_SALE
    original_sale_id: Optional[str] = None
    customer_id: Optional[int] = None
    discount: Optional[Decimal] = None
    tax: Optional[Decimal] = None


@dataclass
class LedgerResult:
    sale: Sale
    warnings: list = field(default_factory=list)
    original: Optional[Sale] = None


@dataclass
class StockResult:
    adjustment: Optional[InventoryAdjustment]
    stock: int
    warnings: list = field(default_factory=list)


@dataclass(frozen=True)
class DeletionResult:
    deleted_sale_count: int
    deleted_return_count: int
    deleted_adjustment_count: int


@dataclass(frozen=True)
class HeldOrder:
    """A parked cart. Holding touches neither stock nor money."""
    held_id: str
    public_id: str
    date: str
    lines: tuple[CartLine, ...]
    customer_id: Optional[int] = None
    salesperson_id: Optional[int] = None
    note: Optional[str] = None

    def to_candidate(self, payments: tuple[Payment, ...] = ()) -> SaleCandidate:
        return SaleCandidate(lines=self.lines, payments=payments, customer_id=self.customer_id)
