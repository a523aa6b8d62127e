# tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - Every test gets its own in-memory SQLite DB with the full schema
# - conn.row_factory = sqlite3.Row, PRAGMA foreign_keys=ON
# - A small catalog (two products, one product with variants, a customer)
# - A deterministic clock so dates and ordering are predictable
# ---------------------------------------------------------------------

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
import sqlite3

import pytest

from pos_ledger.database import configure
from pos_ledger.database.schema import init_schema_on
from pos_ledger.database.repositories.customers_repo import CustomersRepo
from pos_ledger.database.repositories.products_repo import ProductsRepo
from pos_ledger.database.repositories.settings_repo import Settings
from pos_ledger.modules.sales.service import SalesLedger


class FakeClock:
    """Returns ISO timestamps one minute apart, starting at `start`."""

    def __init__(self, start: str = "2025-03-01T10:00:00"):
        self.current = datetime.fromisoformat(start)

    def set(self, iso: str) -> None:
        self.current = datetime.fromisoformat(iso)

    def __call__(self) -> str:
        value = self.current.isoformat(timespec="seconds")
        self.current += timedelta(minutes=1)
        return value


@pytest.fixture()
def conn():
    con = sqlite3.connect(":memory:")
    configure(con)
    init_schema_on(con)
    try:
        yield con
    finally:
        con.close()


@pytest.fixture()
def current_user():
    return {"user_id": 7, "name": "Test Cashier"}


@pytest.fixture()
def settings():
    """8% tax, no discount, change due allowed."""
    return Settings(tax_enabled=True, tax_rate=Decimal("8"))


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def catalog(conn):
    """
    widget: 10.00 / cost 6.00, stock 20, low-stock threshold 5
    gadget: 25.00 / cost 15.00, stock 10
    shirt:  variants S (stock 4) and M (stock 6), 20.00 / cost 8.00
    alice:  a customer
    """
    products = ProductsRepo(conn)
    widget = products.create("Widget", "W-1", "10.00", "6.00", stock=20, low_stock_threshold=5)
    gadget = products.create("Gadget", "G-1", "25.00", "15.00", stock=10)
    shirt = products.create("Shirt", "S-0", "20.00", "8.00")
    shirt_s = products.add_variant(shirt, "S", "S-S", "20.00", "8.00", stock=4)
    shirt_m = products.add_variant(shirt, "M", "S-M", "20.00", "8.00", stock=6)
    alice = CustomersRepo(conn).create("Alice", "555-0100")
    return {
        "widget": widget,
        "gadget": gadget,
        "shirt": shirt,
        "shirt_s": shirt_s,
        "shirt_m": shirt_m,
        "alice": alice,
    }


@pytest.fixture()
def ledger(conn, settings, current_user, clock, catalog):
    return SalesLedger(conn, settings, current_user, clock=clock)


def stock_of(conn, product_id, variant_id=None) -> int:
    if variant_id is None:
        row = conn.execute("SELECT stock FROM products WHERE product_id=?", (product_id,)).fetchone()
    else:
        row = conn.execute(
            "SELECT stock FROM product_variants WHERE variant_id=?", (variant_id,)
        ).fetchone()
    return int(row[0])


def count(conn, table: str) -> int:
    return int(conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0])
