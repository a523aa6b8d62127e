"""
Stock ledger: the only writer of products.stock / product_variants.stock.

Every change is one signed delta paired with one append-only row in
inventory_adjustments. Methods here never commit; callers wrap them in a
`with conn:` block together with the rest of their unit of work so the
stock write, the audit row and the owning sale land (or roll back) together.

Conventions:
- Products with variants: variant stock is authoritative and the product's
  stock is re-totalled to Σ variant stock after every variant delta.
- Negative stock is allowed. It is reported as a ConsistencyWarning, never
  rejected.
- Date strings are ISO timestamps.
"""

from __future__ import annotations

import sqlite3
from typing import List, Optional, Sequence

from ...errors import (
    ConsistencyWarning,
    LOW_STOCK,
    NEGATIVE_STOCK,
    NotFoundError,
    OUT_OF_STOCK,
    ValidationError,
)
from ...modules.sales.models import InventoryAdjustment
from ...utils.helpers import now_iso
from ...utils.ids import new_id
from ...utils.validators import parse_quantity, require_non_empty


def _adjustment(r: sqlite3.Row) -> InventoryAdjustment:
    return InventoryAdjustment(
        adjustment_id=r["adjustment_id"],
        product_id=int(r["product_id"]),
        variant_id=(None if r["variant_id"] is None else int(r["variant_id"])),
        date=r["date"],
        quantity_delta=int(r["quantity_delta"]),
        reason=r["reason"],
        reference_id=r["reference_id"],
    )


def stock_warnings(
    old: int,
    new: int,
    threshold: int,
    *,
    product_id: int,
    variant_id: Optional[int],
    label: str,
) -> list[ConsistencyWarning]:
    """
    Alerts for a stock move old -> new:
      OUT_OF_STOCK   crossed from > 0 to <= 0
      LOW_STOCK      crossed from > threshold to <= threshold while still > 0
      NEGATIVE_STOCK ended below zero (oversold)
    """
    out: list[ConsistencyWarning] = []
    if old > 0 and new <= 0:
        out.append(ConsistencyWarning(
            OUT_OF_STOCK, f"{label} is out of stock.", product_id, variant_id,
        ))
    elif old > threshold and 0 < new <= threshold:
        out.append(ConsistencyWarning(
            LOW_STOCK, f"{label} is low on stock ({new} left).", product_id, variant_id,
        ))
    if new < 0:
        out.append(ConsistencyWarning(
            NEGATIVE_STOCK, f"{label} stock is negative ({new}); check physical inventory.",
            product_id, variant_id,
        ))
    return out


class StockLedger:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def _target(self, product_id: int, variant_id: Optional[int]) -> sqlite3.Row:
        p = self.conn.execute(
            "SELECT product_id, name, stock, low_stock_threshold FROM products WHERE product_id=?",
            (product_id,),
        ).fetchone()
        if p is None:
            raise NotFoundError(f"Product {product_id} not found.")
        if variant_id is None:
            return p
        v = self.conn.execute(
            """
            SELECT v.variant_id, p.name || ' - ' || v.name AS name, v.stock,
                   p.low_stock_threshold
              FROM product_variants v
              JOIN products p ON p.product_id = v.product_id
             WHERE v.variant_id=? AND v.product_id=?
            """,
            (variant_id, product_id),
        ).fetchone()
        if v is None:
            raise NotFoundError(f"Variant {variant_id} of product {product_id} not found.")
        return v

    def current_stock(self, product_id: int, variant_id: Optional[int] = None) -> int:
        return int(self._target(product_id, variant_id)["stock"])

    def list_adjustments(
        self,
        *,
        product_id: Optional[int] = None,
        variant_id: Optional[int] = None,
        reference_id: Optional[str] = None,
    ) -> List[InventoryAdjustment]:
        """Audit rows, oldest first, filtered by whichever arguments are given."""
        where: List[str] = []
        params: List = []
        if product_id is not None:
            where.append("product_id = ?")
            params.append(int(product_id))
        if variant_id is not None:
            where.append("variant_id = ?")
            params.append(int(variant_id))
        if reference_id is not None:
            where.append("reference_id = ?")
            params.append(reference_id)
        sql = "SELECT * FROM inventory_adjustments"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY date, rowid"
        return [_adjustment(r) for r in self.conn.execute(sql, params).fetchall()]

    # ------------------------------------------------------------------
    # Writes (no commit)
    # ------------------------------------------------------------------
    def apply_delta(
        self,
        product_id: int,
        variant_id: Optional[int],
        delta: int,
        reason: str,
        *,
        reference_id: Optional[str] = None,
        date: Optional[str] = None,
    ) -> tuple[InventoryAdjustment, int, list[ConsistencyWarning]]:
        """
        Adjust stock by `delta` and append the audit row.
        Returns (adjustment, new_stock, warnings).
        """
        delta = parse_quantity(delta, "Stock change")
        if delta == 0:
            raise ValidationError("Stock change must be non-zero.")
        reason = require_non_empty(reason, "Reason")

        target = self._target(product_id, variant_id)
        old = int(target["stock"])
        new = old + delta

        if variant_id is None:
            self.conn.execute(
                "UPDATE products SET stock = stock + ? WHERE product_id=?",
                (delta, product_id),
            )
        else:
            self.conn.execute(
                "UPDATE product_variants SET stock = stock + ? WHERE variant_id=?",
                (delta, variant_id),
            )
            self._sync_product_total(product_id)

        adj = InventoryAdjustment(
            adjustment_id=new_id(),
            product_id=int(product_id),
            variant_id=variant_id,
            date=date or now_iso(),
            quantity_delta=delta,
            reason=reason,
            reference_id=reference_id,
        )
        self.conn.execute(
            """
            INSERT INTO inventory_adjustments (
                adjustment_id, product_id, variant_id, date, quantity_delta, reason, reference_id
            ) VALUES (?,?,?,?,?,?,?)
            """,
            (
                adj.adjustment_id,
                adj.product_id,
                adj.variant_id,
                adj.date,
                adj.quantity_delta,
                adj.reason,
                adj.reference_id,
            ),
        )

        warnings = stock_warnings(
            old, new, int(target["low_stock_threshold"]),
            product_id=int(product_id), variant_id=variant_id, label=target["name"],
        )
        return adj, new, warnings

    def _sync_product_total(self, product_id: int) -> None:
        self.conn.execute(
            """
            UPDATE products
               SET stock = (SELECT COALESCE(SUM(stock), 0) FROM product_variants WHERE product_id=?)
             WHERE product_id=?
            """,
            (product_id, product_id),
        )

    def delete_for_references(self, reference_ids: Sequence[str]) -> int:
        """
        Drop the audit rows produced by the given transactions. Stock counts
        are not touched. Returns the number of rows removed.
        """
        ids = [r for r in reference_ids if r]
        if not ids:
            return 0
        marks = ",".join("?" for _ in ids)
        cur = self.conn.execute(
            f"DELETE FROM inventory_adjustments WHERE reference_id IN ({marks})", ids
        )
        return int(cur.rowcount)
