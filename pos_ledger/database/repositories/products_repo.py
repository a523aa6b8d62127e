from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
import sqlite3

from ...constants import DEFAULT_LOW_STOCK_THRESHOLD
from ...errors import NotFoundError, ValidationError
from ...utils.money import to_money
from ...utils.validators import parse_quantity, require_non_empty


@dataclass
class Product:
    product_id: int | None
    name: str
    sku: str | None
    retail_price: Decimal
    cost_price: Decimal
    stock: int
    low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD


@dataclass
class Variant:
    variant_id: int | None
    product_id: int
    name: str
    sku: str | None
    retail_price: Decimal
    cost_price: Decimal
    stock: int


def _product(r: sqlite3.Row) -> Product:
    return Product(
        product_id=int(r["product_id"]),
        name=r["name"],
        sku=r["sku"],
        retail_price=Decimal(r["retail_price"]),
        cost_price=Decimal(r["cost_price"]),
        stock=int(r["stock"]),
        low_stock_threshold=int(r["low_stock_threshold"]),
    )


def _variant(r: sqlite3.Row) -> Variant:
    return Variant(
        variant_id=int(r["variant_id"]),
        product_id=int(r["product_id"]),
        name=r["name"],
        sku=r["sku"],
        retail_price=Decimal(r["retail_price"]),
        cost_price=Decimal(r["cost_price"]),
        stock=int(r["stock"]),
    )


class ProductsRepo:
    """
    Catalog reads plus creation. Opening stock is written once at creation;
    every later change to `stock` goes through the StockLedger.
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ---- Queries ----------------------------------------------------------

    def get(self, product_id: int) -> Product | None:
        r = self.conn.execute("SELECT * FROM products WHERE product_id=?", (product_id,)).fetchone()
        return _product(r) if r else None

    def get_variant(self, variant_id: int) -> Variant | None:
        r = self.conn.execute(
            "SELECT * FROM product_variants WHERE variant_id=?", (variant_id,)
        ).fetchone()
        return _variant(r) if r else None

    def list_products(self) -> list[Product]:
        rows = self.conn.execute("SELECT * FROM products ORDER BY name, product_id").fetchall()
        return [_product(r) for r in rows]

    def list_variants(self, product_id: int) -> list[Variant]:
        rows = self.conn.execute(
            "SELECT * FROM product_variants WHERE product_id=? ORDER BY variant_id",
            (product_id,),
        ).fetchall()
        return [_variant(r) for r in rows]

    def has_variants(self, product_id: int) -> bool:
        r = self.conn.execute(
            "SELECT 1 FROM product_variants WHERE product_id=? LIMIT 1", (product_id,)
        ).fetchone()
        return r is not None

    def require(self, product_id: int, variant_id: int | None = None) -> tuple[Product, Variant | None]:
        """Product (and variant) or NotFoundError; the variant must belong to the product."""
        product = self.get(product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found.")
        if variant_id is None:
            return product, None
        variant = self.get_variant(variant_id)
        if variant is None or variant.product_id != product.product_id:
            raise NotFoundError(f"Variant {variant_id} of product {product_id} not found.")
        return product, variant

    # ---- Writes -----------------------------------------------------------

    def create(
        self,
        name: str,
        sku: str | None,
        retail_price,
        cost_price,
        stock: int = 0,
        low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD,
    ) -> int:
        name = require_non_empty(name, "Product name")
        retail = to_money(retail_price)
        cost = to_money(cost_price)
        if retail < 0 or cost < 0:
            raise ValidationError("Prices cannot be negative.")
        threshold = parse_quantity(low_stock_threshold, "Low stock threshold")
        if threshold < 0:
            raise ValidationError("Low stock threshold cannot be negative.")
        with self.conn:
            cur = self.conn.execute(
                """
                INSERT INTO products (name, sku, retail_price, cost_price, stock, low_stock_threshold)
                VALUES (?,?,?,?,?,?)
                """,
                (name, sku, str(retail), str(cost), parse_quantity(stock, "Stock"), threshold),
            )
        return int(cur.lastrowid)

    def add_variant(
        self,
        product_id: int,
        name: str,
        sku: str | None,
        retail_price,
        cost_price,
        stock: int = 0,
    ) -> int:
        """
        Add a variant. Once a product has variants its own stock is the sum of
        theirs, so the product row is re-totalled here. A product holding stock
        of its own must be counted down to zero through the StockLedger first.
        """
        product = self.get(product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found.")
        if product.stock != 0 and not self.has_variants(product_id):
            raise ValidationError(
                f"{product.name} still holds {product.stock} unit(s); "
                "set its stock to 0 before adding variants."
            )
        name = require_non_empty(name, "Variant name")
        retail = to_money(retail_price)
        cost = to_money(cost_price)
        if retail < 0 or cost < 0:
            raise ValidationError("Prices cannot be negative.")
        with self.conn:
            cur = self.conn.execute(
                """
                INSERT INTO product_variants (product_id, name, sku, retail_price, cost_price, stock)
                VALUES (?,?,?,?,?,?)
                """,
                (product_id, name, sku, str(retail), str(cost), parse_quantity(stock, "Stock")),
            )
            self.conn.execute(
                """
                UPDATE products
                   SET stock = (SELECT COALESCE(SUM(stock), 0) FROM product_variants WHERE product_id=?)
                 WHERE product_id=?
                """,
                (product_id, product_id),
            )
        return int(cur.lastrowid)
