from __future__ import annotations

import sqlite3
from typing import Optional

from ...modules.sales.models import Sale
from .sales_repo import SalesRepo


class ReportingRepo:
    """
    Read-only queries feeding the reporting aggregations.

    Notes on date handling:
      • Callers pass ISO 'YYYY-MM-DD'; comparisons use DATE(date) so stored
        timestamps match whole days.
      • Nothing here writes. Rows are returned as domain records and the
        arithmetic lives in modules/reporting/aggregations.py.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self.conn.row_factory = sqlite3.Row
        self._sales = SalesRepo(conn)

    def transactions_between(
        self,
        date_from: Optional[str],
        date_to: Optional[str],
        customer_id: Optional[int] = None,
    ) -> list[Sale]:
        return self._sales.query_by_date(date_from, date_to, customer_id=customer_id)

    def catalog_items(self) -> list[dict]:
        """
        One row per sellable item with its current stock: each variant of a
        product that has variants, otherwise the product itself.
        """
        sql = """
        SELECT p.product_id, NULL AS variant_id, p.name, p.stock
          FROM products p
         WHERE NOT EXISTS (SELECT 1 FROM product_variants v WHERE v.product_id = p.product_id)
        UNION ALL
        SELECT v.product_id, v.variant_id, p.name || ' - ' || v.name AS name, v.stock
          FROM product_variants v
          JOIN products p ON p.product_id = v.product_id
         ORDER BY 1, 2
        """
        return [dict(r) for r in self.conn.execute(sql).fetchall()]
