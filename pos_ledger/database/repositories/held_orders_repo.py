from __future__ import annotations
from decimal import Decimal
import sqlite3

from ...modules.sales.models import CartLine, HeldOrder


class HeldOrdersRepo:
    """Parked carts. No method commits."""

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    def public_id_exists(self, public_id: str) -> bool:
        return self.conn.execute(
            "SELECT 1 FROM held_orders WHERE public_id=?", (public_id,)
        ).fetchone() is not None

    def _lines(self, held_id: str) -> tuple[CartLine, ...]:
        rows = self.conn.execute(
            "SELECT * FROM held_order_lines WHERE held_id=? ORDER BY position", (held_id,)
        ).fetchall()
        return tuple(
            CartLine(
                product_id=int(r["product_id"]),
                quantity=int(r["quantity"]),
                variant_id=(None if r["variant_id"] is None else int(r["variant_id"])),
                unit_retail_price=(None if r["unit_retail_price"] is None else Decimal(r["unit_retail_price"])),
            )
            for r in rows
        )

    def _held(self, r: sqlite3.Row) -> HeldOrder:
        return HeldOrder(
            held_id=r["held_id"],
            public_id=r["public_id"],
            date=r["date"],
            lines=self._lines(r["held_id"]),
            customer_id=r["customer_id"],
            salesperson_id=r["salesperson_id"],
            note=r["note"],
        )

    def get(self, held_id: str) -> HeldOrder | None:
        r = self.conn.execute("SELECT * FROM held_orders WHERE held_id=?", (held_id,)).fetchone()
        return self._held(r) if r else None

    def list_held(self) -> list[HeldOrder]:
        """Newest first."""
        rows = self.conn.execute("SELECT * FROM held_orders ORDER BY date DESC, rowid DESC").fetchall()
        return [self._held(r) for r in rows]

    def insert(self, held: HeldOrder) -> None:
        self.conn.execute(
            """
            INSERT INTO held_orders (held_id, public_id, date, customer_id, salesperson_id, note)
            VALUES (?,?,?,?,?,?)
            """,
            (held.held_id, held.public_id, held.date, held.customer_id, held.salesperson_id, held.note),
        )
        self.conn.executemany(
            """
            INSERT INTO held_order_lines (held_id, position, product_id, variant_id, quantity, unit_retail_price)
            VALUES (?,?,?,?,?,?)
            """,
            [
                (
                    held.held_id, pos, ln.product_id, ln.variant_id, ln.quantity,
                    None if ln.unit_retail_price is None else str(ln.unit_retail_price),
                )
                for pos, ln in enumerate(held.lines)
            ],
        )

    def delete(self, held_id: str) -> int:
        cur = self.conn.execute("DELETE FROM held_orders WHERE held_id=?", (held_id,))
        return int(cur.rowcount)
