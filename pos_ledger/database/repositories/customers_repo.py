from __future__ import annotations
from dataclasses import dataclass
import sqlite3

from ...utils.validators import require_non_empty


@dataclass
class Customer:
    customer_id: int | None
    name: str
    contact_info: str | None


class CustomersRepo:
    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    @staticmethod
    def _normalize_text(s: str | None) -> str | None:
        if s is None:
            return None
        return s.strip() or None

    def list_customers(self) -> list[Customer]:
        rows = self.conn.execute(
            "SELECT customer_id, name, contact_info FROM customers ORDER BY customer_id DESC"
        ).fetchall()
        return [Customer(**r) for r in rows]

    def get(self, customer_id: int) -> Customer | None:
        r = self.conn.execute(
            "SELECT customer_id, name, contact_info FROM customers WHERE customer_id=?",
            (customer_id,),
        ).fetchone()
        return Customer(**r) if r else None

    def create(self, name: str, contact_info: str | None = None) -> int:
        name = require_non_empty(name, "Customer name")
        with self.conn:
            cur = self.conn.execute(
                "INSERT INTO customers (name, contact_info) VALUES (?, ?)",
                (name, self._normalize_text(contact_info)),
            )
        return int(cur.lastrowid)
