from __future__ import annotations
from decimal import Decimal
import sqlite3
from typing import Optional, Sequence

from ...modules.purchase.models import POItem, PurchaseOrder


class PurchaseOrdersRepo:
    """
    Purchase orders and their lines. Amounts are decimal text.
    No method commits; the PurchaseOrderService owns the transaction.
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ---------- Query ----------
    def get(self, po_id: str) -> PurchaseOrder | None:
        row = self.conn.execute("SELECT * FROM purchase_orders WHERE po_id=?", (po_id,)).fetchone()
        return self._hydrate([row])[0] if row else None

    def list_orders(self, status: Optional[str] = None) -> list[PurchaseOrder]:
        """Newest first."""
        if status is None:
            rows = self.conn.execute(
                "SELECT * FROM purchase_orders ORDER BY date_created DESC, rowid DESC"
            ).fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM purchase_orders WHERE status=? ORDER BY date_created DESC, rowid DESC",
                (status,),
            ).fetchall()
        return self._hydrate(rows)

    def public_id_exists(self, public_id: str) -> bool:
        return self.conn.execute(
            "SELECT 1 FROM purchase_orders WHERE public_id=?", (public_id,)
        ).fetchone() is not None

    def list_ids_before(self, cutoff: str) -> list[str]:
        rows = self.conn.execute(
            "SELECT po_id FROM purchase_orders WHERE DATE(date_created) < DATE(?)", (cutoff,)
        ).fetchall()
        return [r["po_id"] for r in rows]

    def _hydrate(self, rows: Sequence[sqlite3.Row]) -> list[PurchaseOrder]:
        out: list[PurchaseOrder] = []
        for r in rows:
            items = tuple(
                POItem(
                    po_item_id=int(i["po_item_id"]),
                    product_id=int(i["product_id"]),
                    variant_id=(None if i["variant_id"] is None else int(i["variant_id"])),
                    name=i["name"],
                    cost_price=Decimal(i["cost_price"]),
                    quantity_ordered=int(i["quantity_ordered"]),
                    quantity_received=int(i["quantity_received"]),
                )
                for i in self.conn.execute(
                    "SELECT * FROM purchase_order_items WHERE po_id=? ORDER BY position",
                    (r["po_id"],),
                ).fetchall()
            )
            out.append(
                PurchaseOrder(
                    po_id=r["po_id"],
                    public_id=r["public_id"],
                    supplier_name=r["supplier_name"],
                    date_created=r["date_created"],
                    status=r["status"],
                    items=items,
                    total_cost=Decimal(r["total_cost"]),
                    notes=r["notes"],
                    created_by=r["created_by"],
                )
            )
        return out

    # ---------- Write (no commit) ----------
    def insert(self, po: PurchaseOrder) -> None:
        self.conn.execute(
            """
            INSERT INTO purchase_orders (
                po_id, public_id, supplier_name, date_created, status, total_cost, notes, created_by
            ) VALUES (?,?,?,?,?,?,?,?)
            """,
            (
                po.po_id, po.public_id, po.supplier_name, po.date_created, po.status,
                str(po.total_cost), po.notes, po.created_by,
            ),
        )
        self.conn.executemany(
            """
            INSERT INTO purchase_order_items (
                po_id, position, product_id, variant_id, name, cost_price,
                quantity_ordered, quantity_received
            ) VALUES (?,?,?,?,?,?,?,?)
            """,
            [
                (
                    po.po_id, pos, it.product_id, it.variant_id, it.name, str(it.cost_price),
                    it.quantity_ordered, it.quantity_received,
                )
                for pos, it in enumerate(po.items)
            ],
        )

    def update_receipts(self, po: PurchaseOrder) -> None:
        self.conn.execute("UPDATE purchase_orders SET status=? WHERE po_id=?", (po.status, po.po_id))
        self.conn.executemany(
            "UPDATE purchase_order_items SET quantity_received=? WHERE po_item_id=?",
            [(it.quantity_received, it.po_item_id) for it in po.items],
        )

    def delete(self, po_id: str) -> int:
        cur = self.conn.execute("DELETE FROM purchase_orders WHERE po_id=?", (po_id,))
        return int(cur.rowcount)
