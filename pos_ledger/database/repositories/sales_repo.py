from __future__ import annotations
from decimal import Decimal, InvalidOperation
import sqlite3
from typing import Iterable, Optional, Sequence

from ...constants import TYPE_RETURN, TYPE_SALE
from ...modules.sales.models import LineItem, Payment, Sale


def _dec(value) -> Decimal | None:
    """Stored amount -> Decimal; None for missing or unreadable legacy values."""
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _amt(value) -> Decimal:
    d = _dec(value)
    return Decimal("0") if d is None else d


def _opt_int(value) -> int | None:
    return None if value is None else int(value)


class SalesRepo:
    """
    Sales + Returns repository.

    Key behavior:
      - A row with type='Sale' carries the derived status; type='Return' rows
        point at the sale they reverse via original_sale_id and have no status.
      - Amounts are stored as decimal text and read back as Decimal.
      - Core fields are immutable (schema triggers); the only updates are
        status and per-line returned_quantity.
      - No method commits. Callers own the transaction.
    """

    def __init__(self, conn: sqlite3.Connection):
        # ensure rows behave like dicts/tuples
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def get(self, sale_id: str) -> Sale | None:
        row = self.conn.execute("SELECT * FROM sales WHERE sale_id=?", (sale_id,)).fetchone()
        if row is None:
            return None
        return self._hydrate([row])[0]

    def public_id_exists(self, public_id: str) -> bool:
        row = self.conn.execute("SELECT 1 FROM sales WHERE public_id=?", (public_id,)).fetchone()
        return row is not None

    def list_returns_for(self, sale_id: str) -> list[Sale]:
        rows = self.conn.execute(
            "SELECT * FROM sales WHERE original_sale_id=? AND type=? ORDER BY date, rowid",
            (sale_id, TYPE_RETURN),
        ).fetchall()
        return self._hydrate(rows)

    def query_by_date(
        self,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        *,
        sale_type: Optional[str] = None,
        customer_id: Optional[int] = None,
    ) -> list[Sale]:
        """
        Sales and returns with DATE(date) inside the inclusive range, oldest first.
        """
        where: list[str] = []
        params: list = []
        if date_from:
            where.append("DATE(date) >= DATE(?)")
            params.append(date_from)
        if date_to:
            where.append("DATE(date) <= DATE(?)")
            params.append(date_to)
        if sale_type:
            where.append("type = ?")
            params.append(sale_type)
        if customer_id is not None:
            where.append("customer_id = ?")
            params.append(int(customer_id))
        sql = "SELECT * FROM sales"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY date, rowid"
        return self._hydrate(self.conn.execute(sql, params).fetchall())

    def list_sale_ids(
        self,
        *,
        statuses: Optional[Sequence[str]] = None,
        before: Optional[str] = None,
    ) -> list[str]:
        """Ids of Sale-type rows, optionally filtered by status and DATE(date) < before."""
        where = ["type = ?"]
        params: list = [TYPE_SALE]
        if statuses is not None:
            if not statuses:
                return []
            where.append(f"status IN ({','.join('?' for _ in statuses)})")
            params.extend(statuses)
        if before:
            where.append("DATE(date) < DATE(?)")
            params.append(before)
        sql = "SELECT sale_id FROM sales WHERE " + " AND ".join(where) + " ORDER BY date, rowid"
        return [r["sale_id"] for r in self.conn.execute(sql, params).fetchall()]

    def _hydrate(self, rows: Sequence[sqlite3.Row]) -> list[Sale]:
        if not rows:
            return []
        ids = [r["sale_id"] for r in rows]
        marks = ",".join("?" for _ in ids)
        items: dict[str, list[LineItem]] = {i: [] for i in ids}
        for r in self.conn.execute(
            f"SELECT * FROM sale_items WHERE sale_id IN ({marks}) ORDER BY sale_id, position", ids
        ).fetchall():
            items[r["sale_id"]].append(
                LineItem(
                    line_id=r["line_id"],
                    product_id=int(r["product_id"]),
                    variant_id=_opt_int(r["variant_id"]),
                    name=r["name"],
                    sku=r["sku"],
                    unit_retail_price=_amt(r["unit_retail_price"]),
                    unit_cost_price=_amt(r["unit_cost_price"]),
                    quantity=int(r["quantity"]),
                    returned_quantity=int(r["returned_quantity"]),
                    original_sale_id=r["original_sale_id"],
                )
            )
        payments: dict[str, list[Payment]] = {i: [] for i in ids}
        for r in self.conn.execute(
            f"SELECT * FROM sale_payments WHERE sale_id IN ({marks}) ORDER BY payment_id", ids
        ).fetchall():
            payments[r["sale_id"]].append(Payment(method=r["method"], amount=_amt(r["amount"])))

        return [
            Sale(
                sale_id=r["sale_id"],
                public_id=r["public_id"],
                date=r["date"],
                type=r["type"],
                items=tuple(items[r["sale_id"]]),
                subtotal=_amt(r["subtotal"]),
                discount=_amt(r["discount"]),
                tax=_amt(r["tax"]),
                total=_amt(r["total"]),
                cogs=_dec(r["cogs"]),
                profit=_dec(r["profit"]),
                payments=tuple(payments[r["sale_id"]]),
                status=r["status"],
                original_sale_id=r["original_sale_id"],
                salesperson_id=_opt_int(r["salesperson_id"]),
                salesperson_name=r["salesperson_name"],
                customer_id=_opt_int(r["customer_id"]),
                integer_currency=bool(r["integer_currency"]),
            )
            for r in rows
        ]

    # ---------------------------------------------------------------------
    # WRITE (no commit)
    # ---------------------------------------------------------------------
    def insert(self, sale: Sale) -> None:
        self.conn.execute(
            """
            INSERT INTO sales (
                sale_id, public_id, date, type, original_sale_id, status,
                subtotal, discount, tax, total, cogs, profit,
                salesperson_id, salesperson_name, customer_id, integer_currency
            )
            VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)
            """,
            (
                sale.sale_id,
                sale.public_id,
                sale.date,
                sale.type,
                sale.original_sale_id,
                sale.status,
                str(sale.subtotal),
                str(sale.discount),
                str(sale.tax),
                str(sale.total),
                str(sale.cogs),
                None if sale.profit is None else str(sale.profit),
                sale.salesperson_id,
                sale.salesperson_name,
                sale.customer_id,
                1 if sale.integer_currency else 0,
            ),
        )
        self._insert_items(sale.sale_id, sale.items)
        self.conn.executemany(
            "INSERT INTO sale_payments (sale_id, method, amount) VALUES (?,?,?)",
            [(sale.sale_id, p.method, str(p.amount)) for p in sale.payments],
        )

    def _insert_items(self, sale_id: str, items: Iterable[LineItem]) -> None:
        self.conn.executemany(
            """
            INSERT INTO sale_items (
                line_id, sale_id, position, product_id, variant_id, name, sku,
                unit_retail_price, unit_cost_price, quantity, returned_quantity,
                original_sale_id
            ) VALUES (?,?,?,?,?,?,?,?,?,?,?,?)
            """,
            [
                (
                    it.line_id, sale_id, pos, it.product_id, it.variant_id, it.name, it.sku,
                    str(it.unit_retail_price), str(it.unit_cost_price), it.quantity,
                    it.returned_quantity, it.original_sale_id,
                )
                for pos, it in enumerate(items)
            ],
        )

    def update_returns(self, sale: Sale) -> None:
        """Persist the derived status and per-line returned_quantity of a Sale."""
        self.conn.execute(
            "UPDATE sales SET status=? WHERE sale_id=?", (sale.status, sale.sale_id)
        )
        self.conn.executemany(
            "UPDATE sale_items SET returned_quantity=? WHERE line_id=? AND sale_id=?",
            [(it.returned_quantity, it.line_id, sale.sale_id) for it in sale.items],
        )

    def delete(self, sale_id: str) -> int:
        """Delete one row (items/payments cascade). Returns rows removed."""
        cur = self.conn.execute("DELETE FROM sales WHERE sale_id=?", (sale_id,))
        return int(cur.rowcount)
