"""
SalesLedger: the command surface for sales, refunds, deletions and stock.

Every public operation validates first and then writes inside a single
`with conn:` block, so a sale row, its stock deltas, their audit rows, the
status update on the referenced sale and the shift cash either all commit
or none do. Nothing is retried; a failed call leaves no trace.
"""
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import replace
from functools import wraps
import sqlite3
from typing import Callable, Iterable, Mapping, Optional, Sequence

from ...constants import (
    HELD_PUBLIC_ID_LENGTH,
    PUBLIC_ID_PREFIX_HELD,
    REASON_RETURN,
    REASON_SALE,
    REASON_STOCK_RECEIVED,
    STATUS_COMPLETED,
    TYPE_RETURN,
    TYPE_SALE,
)
from ...database.repositories.customers_repo import CustomersRepo
from ...database.repositories.held_orders_repo import HeldOrdersRepo
from ...database.repositories.inventory_repo import StockLedger
from ...database.repositories.products_repo import ProductsRepo
from ...database.repositories.sales_repo import SalesRepo
from ...database.repositories.settings_repo import Settings, SettingsRepo
from ...database.repositories.shifts_repo import ShiftsRepo
from ...errors import (
    ConsistencyWarning,
    DomainError,
    NotFoundError,
    ValidationError,
)
from ...utils.helpers import days_before, now_iso
from ...utils.ids import new_code, new_id, new_public_id
from ...utils.loggers import get_event_logger, get_logger, log_event
from ...utils.money import to_money
from ...utils.validators import parse_quantity, require_non_empty
from ..shifts.service import add_transaction_cash
from . import status as sale_status
from .commands import (
    AdjustStock,
    ClearSales,
    DeleteHeldOrder,
    DeleteSale,
    HoldOrder,
    ProcessSale,
    PruneSales,
    ReceiveStock,
    Refund,
    SetStockLevel,
)
from .models import (
    CartLine,
    DeletionResult,
    HeldOrder,
    LedgerResult,
    LineItem,
    Sale,
    SaleCandidate,
    StockResult,
)
from .refunds import build_return, match_return_lines, resolve_quantities
from .totals import normalize_payments, price_cart, validate_payments

_log = get_logger()


def _rejections_logged(op: str):
    """Log domain rejections as structured events, then re-raise."""
    def deco(fn):
        @wraps(fn)
        def wrapper(self, *args, **kwargs):
            try:
                return fn(self, *args, **kwargs)
            except DomainError as e:
                log_event(self._events, op, "rejected", str(e), {"error": type(e).__name__})
                raise
        return wrapper
    return deco


class SalesLedger:
    def __init__(
        self,
        conn: sqlite3.Connection,
        settings: Optional[Settings] = None,
        current_user: Optional[dict] = None,
        *,
        clock: Callable[[], str] = now_iso,
    ):
        """
        conn          open connection with the schema applied
        settings      fixed settings; None reads app_settings on every sale
        current_user  {"user_id": ..., "name": ...} stamped on each transaction
        clock         returns the ISO timestamp for new records
        """
        conn.row_factory = sqlite3.Row
        self.conn = conn
        self._settings = settings
        self.user = current_user
        self.clock = clock

        self.sales = SalesRepo(conn)
        self.products = ProductsRepo(conn)
        self.customers = CustomersRepo(conn)
        self.stock = StockLedger(conn)
        self.shifts = ShiftsRepo(conn)
        self.held = HeldOrdersRepo(conn)
        self._events = get_event_logger()

        self._handlers = {
            ProcessSale: lambda c: self.process_sale(c.candidate),
            Refund: lambda c: self.refund(c.sale_id, c.items, c.payments),
            DeleteSale: lambda c: self.delete_sale(c.sale_id),
            AdjustStock: lambda c: self.adjust_stock(c.product_id, c.delta, c.reason, c.variant_id),
            ReceiveStock: lambda c: self.receive_stock(c.product_id, c.quantity, c.variant_id),
            SetStockLevel: lambda c: self.set_stock_level(c.product_id, c.new_level, c.reason, c.variant_id),
            ClearSales: lambda c: self.clear_sales(c.statuses),
            PruneSales: lambda c: self.prune_sales(c.days, c.statuses),
            HoldOrder: lambda c: self.hold_order(c.lines, c.customer_id, c.note),
            DeleteHeldOrder: lambda c: self.delete_held_order(c.held_id),
        }

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------
    @property
    def settings(self) -> Settings:
        if self._settings is not None:
            return self._settings
        return SettingsRepo(self.conn).load()

    def execute(self, command):
        handler = self._handlers.get(type(command))
        if handler is None:
            raise ValidationError(f"Unsupported command: {type(command).__name__}")
        return handler(command)

    @contextmanager
    def _unit_of_work(self):
        try:
            with self.conn:
                yield
        except sqlite3.IntegrityError as e:
            raise ValidationError(f"Rejected by database constraint: {e}") from e

    def _salesperson(self) -> tuple[Optional[int], Optional[str]]:
        if not self.user:
            return None, None
        return self.user.get("user_id"), self.user.get("name")

    def _warn(self, warnings: Iterable[ConsistencyWarning]) -> None:
        for w in warnings:
            _log.warning("%s: %s", w.code, w.message)

    def _require_sale(self, sale_id: str) -> Sale:
        sale = self.sales.get(sale_id)
        if sale is None:
            raise NotFoundError(f"Sale {sale_id} not found.")
        return sale

    def _record_cash(self, sale: Sale, integer_currency: bool) -> None:
        shift = self.shifts.get_open()
        if shift is not None:
            self.shifts.update_cash(add_transaction_cash(shift, sale, integer_currency))

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------
    def _build_lines(self, lines: Sequence[CartLine], integer_currency: bool) -> list[LineItem]:
        if not lines:
            raise ValidationError("A transaction needs at least one line item.")
        items: list[LineItem] = []
        for cl in lines:
            qty = parse_quantity(cl.quantity)
            if qty == 0:
                raise ValidationError("Line items must have a non-zero quantity.")
            if qty < 0:
                raise ValidationError("Sale line quantities must be positive; use a refund to return goods.")
            product, variant = self.products.require(cl.product_id, cl.variant_id)
            if variant is None and self.products.has_variants(product.product_id):
                raise ValidationError(f"Choose a variant of {product.name}.")
            source = variant or product
            price = source.retail_price if cl.unit_retail_price is None else cl.unit_retail_price
            price = to_money(price, integer_currency)
            if price < 0:
                raise ValidationError(f"Negative price on {product.name}.")
            items.append(
                LineItem(
                    line_id=new_id(),
                    product_id=product.product_id,
                    variant_id=(variant.variant_id if variant else None),
                    name=(f"{product.name} - {variant.name}" if variant else product.name),
                    sku=source.sku,
                    unit_retail_price=price,
                    unit_cost_price=to_money(source.cost_price, integer_currency),
                    quantity=qty,
                )
            )
        return items

    @_rejections_logged("process_sale")
    def process_sale(self, candidate: SaleCandidate) -> LedgerResult:
        """
        Record a new transaction. A Sale decrements stock per line; a Return
        candidate is resolved against its original sale and handled like a
        refund (original prices and rates, original status re-derived).
        """
        if candidate.type == TYPE_RETURN:
            if not candidate.original_sale_id:
                raise ValidationError("A return must reference its original sale.")
            if candidate.discount is not None or candidate.tax is not None:
                raise ValidationError("A return is priced from its original sale; drop the discount/tax override.")
            if any(cl.unit_retail_price is not None for cl in candidate.lines):
                raise ValidationError("A return is priced from its original sale; drop the line price override.")
            original = self._require_sale(candidate.original_sale_id)
            quantities = match_return_lines(original, candidate.lines)
            return self._commit_return(
                original, quantities, candidate.payments or None, op="process_sale"
            )
        if candidate.type != TYPE_SALE:
            raise ValidationError(f"Unknown transaction type {candidate.type!r}.")
        if candidate.original_sale_id:
            raise ValidationError("Only returns may reference an original sale.")

        settings = self.settings
        ic = settings.integer_currency
        items = self._build_lines(candidate.lines, ic)
        totals = price_cart(items, settings, candidate.discount, candidate.tax)
        payments = normalize_payments(candidate.payments, ic)
        validate_payments(TYPE_SALE, totals.total, payments, settings)
        if candidate.customer_id is not None and self.customers.get(candidate.customer_id) is None:
            raise NotFoundError(f"Customer {candidate.customer_id} not found.")

        sp_id, sp_name = self._salesperson()
        sale = Sale(
            sale_id=new_id(),
            public_id=new_public_id(TYPE_SALE, self.sales.public_id_exists),
            date=self.clock(),
            type=TYPE_SALE,
            items=tuple(items),
            subtotal=totals.subtotal,
            discount=totals.discount,
            tax=totals.tax,
            total=totals.total,
            cogs=totals.cogs,
            profit=totals.profit,
            payments=payments,
            status=STATUS_COMPLETED,
            salesperson_id=sp_id,
            salesperson_name=sp_name,
            customer_id=candidate.customer_id,
            integer_currency=ic,
        )

        warnings: list[ConsistencyWarning] = []
        with self._unit_of_work():
            self.sales.insert(sale)
            for it in sale.items:
                _, _, w = self.stock.apply_delta(
                    it.product_id, it.variant_id, -it.quantity, REASON_SALE,
                    reference_id=sale.sale_id, date=sale.date,
                )
                warnings.extend(w)
            self._record_cash(sale, ic)

        self._warn(warnings)
        log_event(self._events, "process_sale", "commit", f"Sale {sale.public_id} recorded",
                  {"sale_id": sale.sale_id, "total": str(sale.total), "lines": len(sale.items)})
        return LedgerResult(sale=sale, warnings=warnings)

    @_rejections_logged("refund")
    def refund(
        self,
        sale_id: str,
        items: Optional[Mapping[str, int]] = None,
        payments: Optional[Sequence] = None,
    ) -> LedgerResult:
        """
        Refund units of a sale. `items` maps line_id -> units; None refunds
        everything still remaining. Returns the new Return record along with
        the original sale carrying its re-derived status.
        """
        original = self._require_sale(sale_id)
        quantities = resolve_quantities(original, items)
        return self._commit_return(original, quantities, payments, op="refund")

    def _commit_return(
        self,
        original: Sale,
        quantities: Mapping[str, int],
        payments: Optional[Sequence],
        *,
        op: str,
    ) -> LedgerResult:
        # refunds keep the original's precision even if the setting has changed since
        ic = original.integer_currency
        settings = replace(self.settings, integer_currency=ic)
        sp_id, sp_name = self._salesperson()

        ret = build_return(
            original,
            quantities,
            sale_id=new_id(),
            public_id=new_public_id(TYPE_RETURN, self.sales.public_id_exists),
            date=self.clock(),
            new_line_id=new_id,
            prior_returns=self.sales.list_returns_for(original.sale_id),
            payments=(None if payments is None else normalize_payments(payments, ic)),
            salesperson_id=sp_id,
            salesperson_name=sp_name,
            integer_currency=ic,
        )
        validate_payments(TYPE_RETURN, ret.total, ret.payments, settings)
        updated = sale_status.apply_return(original, quantities)

        warnings: list[ConsistencyWarning] = []
        with self._unit_of_work():
            self.sales.insert(ret)
            self.sales.update_returns(updated)
            for it in ret.items:
                _, _, w = self.stock.apply_delta(
                    it.product_id, it.variant_id, -it.quantity, REASON_RETURN,
                    reference_id=ret.sale_id, date=ret.date,
                )
                warnings.extend(w)
            self._record_cash(ret, ic)

        self._warn(warnings)
        log_event(self._events, op, "commit", f"Return {ret.public_id} against {original.public_id}",
                  {"sale_id": ret.sale_id, "original_sale_id": original.sale_id,
                   "total": str(ret.total), "status": updated.status})
        return LedgerResult(sale=ret, warnings=warnings, original=updated)

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------
    def _cascade(self, sale_id: str) -> DeletionResult:
        """Remove a sale, its returns and their audit rows. Stock is not touched."""
        returns = self.sales.list_returns_for(sale_id)
        refs = [sale_id] + [r.sale_id for r in returns]
        adjustments = self.stock.delete_for_references(refs)
        for r in returns:
            self.sales.delete(r.sale_id)
        deleted = self.sales.delete(sale_id)
        return DeletionResult(deleted, len(returns), adjustments)

    @_rejections_logged("delete_sale")
    def delete_sale(self, sale_id: str) -> DeletionResult:
        sale = self._require_sale(sale_id)
        if sale.is_return:
            raise ValidationError("Delete the original sale transaction, not the return.")
        with self._unit_of_work():
            result = self._cascade(sale.sale_id)
        log_event(self._events, "delete_sale", "commit", f"Sale {sale.public_id} deleted",
                  {"sale_id": sale.sale_id, "returns": result.deleted_return_count,
                   "adjustments": result.deleted_adjustment_count})
        return result

    def _bulk_delete(self, op: str, sale_ids: Sequence[str]) -> DeletionResult:
        sales = returns = adjustments = 0
        with self._unit_of_work():
            for sid in sale_ids:
                r = self._cascade(sid)
                sales += r.deleted_sale_count
                returns += r.deleted_return_count
                adjustments += r.deleted_adjustment_count
        result = DeletionResult(sales, returns, adjustments)
        log_event(self._events, op, "commit", f"{sales} sale(s) deleted",
                  {"sales": sales, "returns": returns, "adjustments": adjustments})
        return result

    @staticmethod
    def _statuses(statuses: Optional[Sequence[str]]) -> Optional[list[str]]:
        if statuses is None:
            return None
        return [sale_status.ensure_valid(s) for s in statuses]

    @_rejections_logged("clear_sales")
    def clear_sales(self, statuses: Optional[Sequence[str]] = None) -> DeletionResult:
        """Cascade-delete every sale, or only those whose status is listed."""
        ids = self.sales.list_sale_ids(statuses=self._statuses(statuses))
        return self._bulk_delete("clear_sales", ids)

    @_rejections_logged("prune_sales")
    def prune_sales(
        self,
        days: int,
        statuses: Optional[Sequence[str]] = None,
        *,
        today: Optional[str] = None,
    ) -> DeletionResult:
        """Cascade-delete sales dated more than `days` days before today."""
        days = parse_quantity(days, "days")
        if days < 1:
            raise ValidationError("days must be at least 1.")
        cutoff = days_before(today or self.clock()[:10], days)
        ids = self.sales.list_sale_ids(statuses=self._statuses(statuses), before=cutoff)
        return self._bulk_delete("prune_sales", ids)

    # ------------------------------------------------------------------
    # Stock
    # ------------------------------------------------------------------
    def _apply_stock(
        self, product_id: int, variant_id: Optional[int], delta: int, reason: str
    ) -> StockResult:
        product, _ = self.products.require(product_id, variant_id)
        if variant_id is None and self.products.has_variants(product.product_id):
            raise ValidationError(f"{product.name} has variants; adjust a variant instead.")
        with self._unit_of_work():
            adj, new_stock, warnings = self.stock.apply_delta(
                product_id, variant_id, delta, reason, date=self.clock()
            )
        self._warn(warnings)
        log_event(self._events, "adjust_stock", "commit", f"Stock {delta:+d} ({reason})",
                  {"product_id": product_id, "variant_id": variant_id, "stock": new_stock})
        return StockResult(adjustment=adj, stock=new_stock, warnings=warnings)

    @_rejections_logged("adjust_stock")
    def adjust_stock(
        self, product_id: int, delta: int, reason: str, variant_id: Optional[int] = None
    ) -> StockResult:
        """Manual signed adjustment with a free-text reason."""
        delta = parse_quantity(delta, "Stock change")
        if delta == 0:
            raise ValidationError("Stock change must be non-zero.")
        return self._apply_stock(product_id, variant_id, delta, require_non_empty(reason, "Reason"))

    @_rejections_logged("adjust_stock")
    def receive_stock(
        self, product_id: int, quantity: int, variant_id: Optional[int] = None
    ) -> StockResult:
        quantity = parse_quantity(quantity, "Received quantity")
        if quantity <= 0:
            raise ValidationError("Received quantity must be positive.")
        return self._apply_stock(product_id, variant_id, quantity, REASON_STOCK_RECEIVED)

    @_rejections_logged("adjust_stock")
    def set_stock_level(
        self, product_id: int, new_level: int, reason: str, variant_id: Optional[int] = None
    ) -> StockResult:
        """
        Stock count correction. Writes the difference as an ordinary delta;
        when the level is unchanged nothing is written and adjustment is None.
        """
        new_level = parse_quantity(new_level, "Stock level")
        reason = require_non_empty(reason, "Reason")
        current = self.stock.current_stock(product_id, variant_id)
        if new_level == current:
            return StockResult(adjustment=None, stock=current, warnings=[])
        return self._apply_stock(product_id, variant_id, new_level - current, reason)

    # ------------------------------------------------------------------
    # Held orders
    # ------------------------------------------------------------------
    @_rejections_logged("hold_order")
    def hold_order(
        self,
        lines: Sequence[CartLine],
        customer_id: Optional[int] = None,
        note: Optional[str] = None,
    ) -> HeldOrder:
        """Park a cart. Lines are checked like a sale's, but nothing is priced or stocked."""
        self._build_lines(lines, self.settings.integer_currency)
        if customer_id is not None and self.customers.get(customer_id) is None:
            raise NotFoundError(f"Customer {customer_id} not found.")
        sp_id, _ = self._salesperson()
        held = HeldOrder(
            held_id=new_id(),
            public_id=new_code(PUBLIC_ID_PREFIX_HELD, HELD_PUBLIC_ID_LENGTH, self.held.public_id_exists),
            date=self.clock(),
            lines=tuple(
                CartLine(cl.product_id, parse_quantity(cl.quantity), cl.variant_id, cl.unit_retail_price)
                for cl in lines
            ),
            customer_id=customer_id,
            salesperson_id=sp_id,
            note=(note.strip() or None) if note else None,
        )
        with self._unit_of_work():
            self.held.insert(held)
        log_event(self._events, "hold_order", "commit", f"Order {held.public_id} held",
                  {"held_id": held.held_id, "lines": len(held.lines)})
        return self.held.get(held.held_id)

    def list_held_orders(self) -> list[HeldOrder]:
        return self.held.list_held()

    @_rejections_logged("delete_held_order")
    def delete_held_order(self, held_id: str) -> None:
        with self._unit_of_work():
            removed = self.held.delete(held_id)
        if not removed:
            raise NotFoundError(f"Held order {held_id} not found.")
        log_event(self._events, "delete_held_order", "commit", "Held order deleted", {"held_id": held_id})
