"""
Purchase orders: create, receive (in part or in full), delete, prune.

Receiving is the only step that touches stock. Each received line is one
StockLedger delta whose audit row carries the PO id as reference_id, written
in the same transaction as the PO line counters and the new status.
"""
from __future__ import annotations

from dataclasses import replace
import sqlite3
from typing import Callable, Optional, Sequence

from ...constants import PO_PENDING, PO_PUBLIC_ID_LENGTH, PO_RECEIVED, PUBLIC_ID_PREFIX_PO
from ...database.repositories.inventory_repo import StockLedger
from ...database.repositories.products_repo import ProductsRepo
from ...database.repositories.purchase_orders_repo import PurchaseOrdersRepo
from ...errors import NotFoundError, ValidationError
from ...utils.helpers import days_before, now_iso
from ...utils.ids import new_code, new_id
from ...utils.loggers import get_event_logger, get_logger, log_event
from ...utils.money import ZERO, to_money
from ...utils.validators import parse_quantity, require_non_empty
from .models import POItem, POLine, PurchaseOrder, ReceiptResult, ReceiveLine, derive_po_status

_log = get_logger()


class PurchaseOrderService:
    def __init__(
        self,
        conn: sqlite3.Connection,
        current_user: Optional[dict] = None,
        *,
        clock: Callable[[], str] = now_iso,
        integer_currency: bool = False,
    ):
        self.conn = conn
        self.repo = PurchaseOrdersRepo(conn)
        self.products = ProductsRepo(conn)
        self.stock = StockLedger(conn)
        self.user = current_user
        self.clock = clock
        self.integer_currency = integer_currency
        self._events = get_event_logger()

    def _require(self, po_id: str) -> PurchaseOrder:
        po = self.repo.get(po_id)
        if po is None:
            raise NotFoundError(f"Purchase order {po_id} not found.")
        return po

    def list_purchase_orders(self, status: Optional[str] = None) -> list[PurchaseOrder]:
        return self.repo.list_orders(status)

    def add_purchase_order(
        self, supplier_name: str, lines: Sequence[POLine], notes: Optional[str] = None
    ) -> PurchaseOrder:
        supplier = require_non_empty(supplier_name, "Supplier")
        if not lines:
            raise ValidationError("A purchase order needs at least one line.")
        ic = self.integer_currency
        items: list[POItem] = []
        for ln in lines:
            qty = parse_quantity(ln.quantity, "Ordered quantity")
            if qty <= 0:
                raise ValidationError("Ordered quantities must be positive.")
            product, variant = self.products.require(ln.product_id, ln.variant_id)
            if variant is None and self.products.has_variants(product.product_id):
                raise ValidationError(f"Choose a variant of {product.name}.")
            source = variant or product
            cost = to_money(source.cost_price if ln.cost_price is None else ln.cost_price, ic)
            if cost < 0:
                raise ValidationError(f"Negative cost on {product.name}.")
            if any(it.product_id == product.product_id and it.variant_id == ln.variant_id for it in items):
                raise ValidationError(f"{product.name} appears twice; combine the lines.")
            items.append(
                POItem(
                    product_id=product.product_id,
                    variant_id=ln.variant_id,
                    name=(f"{product.name} - {variant.name}" if variant else product.name),
                    cost_price=cost,
                    quantity_ordered=qty,
                )
            )

        po = PurchaseOrder(
            po_id=new_id(),
            public_id=new_code(PUBLIC_ID_PREFIX_PO, PO_PUBLIC_ID_LENGTH, self.repo.public_id_exists),
            supplier_name=supplier,
            date_created=self.clock(),
            status=PO_PENDING,
            items=tuple(items),
            total_cost=to_money(sum((it.cost_price * it.quantity_ordered for it in items), ZERO), ic),
            notes=(notes.strip() or None) if notes else None,
            created_by=(self.user.get("user_id") if self.user else None),
        )
        with self.conn:
            self.repo.insert(po)
        log_event(self._events, "add_purchase_order", "commit",
                  f"PO {po.public_id} created for {supplier}",
                  {"po_id": po.po_id, "total_cost": str(po.total_cost), "lines": len(items)})
        return self._require(po.po_id)

    def receive_items(
        self, po_id: str, lines: Optional[Sequence[ReceiveLine]] = None
    ) -> ReceiptResult:
        """
        Book received units into stock. lines=None receives everything still
        outstanding. Receiving more than is outstanding on a line is rejected.
        """
        po = self._require(po_id)
        if po.status == PO_RECEIVED:
            raise ValidationError(f"PO {po.public_id} is already fully received.")

        if lines is None:
            wanted = {(it.product_id, it.variant_id): it.outstanding for it in po.items if it.outstanding}
        else:
            wanted = {}
            for ln in lines:
                qty = parse_quantity(ln.quantity, "Received quantity")
                if qty <= 0:
                    raise ValidationError("Received quantities must be positive.")
                key = (ln.product_id, ln.variant_id)
                if po.item_for(*key) is None:
                    raise NotFoundError(
                        f"Product {ln.product_id} (variant {ln.variant_id}) is not on PO {po.public_id}."
                    )
                wanted[key] = wanted.get(key, 0) + qty
        if not wanted:
            raise ValidationError("Nothing to receive.")

        updated_items = []
        for it in po.items:
            qty = wanted.get((it.product_id, it.variant_id), 0)
            if qty > it.outstanding:
                raise ValidationError(
                    f"Receiving {qty} of {it.name} exceeds the {it.outstanding} outstanding."
                )
            updated_items.append(replace(it, quantity_received=it.quantity_received + qty))
        updated = replace(po, items=tuple(updated_items), status=derive_po_status(updated_items))

        reason = f"Received from PO #{po.public_id}"
        date = self.clock()
        adjustments, warnings = [], []
        with self.conn:
            for it in po.items:
                qty = wanted.get((it.product_id, it.variant_id), 0)
                if not qty:
                    continue
                adj, _, w = self.stock.apply_delta(
                    it.product_id, it.variant_id, qty, reason, reference_id=po.po_id, date=date
                )
                adjustments.append(adj)
                warnings.extend(w)
            self.repo.update_receipts(updated)

        for w in warnings:
            _log.warning("%s: %s", w.code, w.message)
        log_event(self._events, "receive_po", "commit", f"PO {po.public_id} is {updated.status}",
                  {"po_id": po.po_id, "units": sum(wanted.values()), "status": updated.status})
        return ReceiptResult(purchase_order=self._require(po.po_id), adjustments=adjustments, warnings=warnings)

    def delete_purchase_order(self, po_id: str) -> None:
        po = self._require(po_id)
        if po.status != PO_PENDING:
            raise ValidationError("Only purchase orders with Pending status can be deleted.")
        with self.conn:
            self.repo.delete(po.po_id)
        log_event(self._events, "delete_purchase_order", "commit", f"PO {po.public_id} deleted",
                  {"po_id": po.po_id})

    def prune_purchase_orders(self, days: int, *, today: Optional[str] = None) -> int:
        """
        Delete POs created more than `days` days ago, whatever their status.
        Stock already received and its audit rows stay.
        """
        days = parse_quantity(days, "days")
        if days < 1:
            raise ValidationError("days must be at least 1.")
        cutoff = days_before(today or self.clock()[:10], days)
        ids = self.repo.list_ids_before(cutoff)
        with self.conn:
            removed = sum(self.repo.delete(i) for i in ids)
        log_event(self._events, "prune_purchase_orders", "commit", f"{removed} PO(s) pruned",
                  {"cutoff": cutoff, "removed": removed})
        return removed
