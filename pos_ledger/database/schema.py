from pathlib import Path
import sqlite3
import sys

SQL = r"""
PRAGMA foreign_keys = ON;

/* ======================== CATALOG ======================== */

/* -------- products -------- */
CREATE TABLE IF NOT EXISTS products (
    product_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    name                TEXT NOT NULL,
    sku                 TEXT UNIQUE,
    retail_price        TEXT NOT NULL DEFAULT '0',
    cost_price          TEXT NOT NULL DEFAULT '0',
    stock               INTEGER NOT NULL DEFAULT 0,
    low_stock_threshold INTEGER NOT NULL DEFAULT 5 CHECK (low_stock_threshold >= 0)
);

/* -------- variants: stock here is authoritative when present -------- */
CREATE TABLE IF NOT EXISTS product_variants (
    variant_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id    INTEGER NOT NULL,
    name          TEXT NOT NULL,
    sku           TEXT UNIQUE,
    retail_price  TEXT NOT NULL DEFAULT '0',
    cost_price    TEXT NOT NULL DEFAULT '0',
    stock         INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY (product_id) REFERENCES products(product_id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_variants_product ON product_variants(product_id);

/* -------- customers -------- */
CREATE TABLE IF NOT EXISTS customers (
    customer_id  INTEGER PRIMARY KEY AUTOINCREMENT,
    name         TEXT NOT NULL,
    contact_info TEXT
);

/* ======================== LEDGER ======================== */

/* -------- sales & returns (money stored as decimal text) -------- */
CREATE TABLE IF NOT EXISTS sales (
    sale_id          TEXT PRIMARY KEY,
    public_id        TEXT NOT NULL UNIQUE,
    date             TEXT NOT NULL,
    type             TEXT NOT NULL CHECK (type IN ('Sale','Return')),
    original_sale_id TEXT,
    status           TEXT,
    subtotal         TEXT NOT NULL,
    discount         TEXT NOT NULL,
    tax              TEXT NOT NULL,
    total            TEXT NOT NULL,
    cogs             TEXT NOT NULL,
    profit           TEXT,
    salesperson_id   INTEGER,
    salesperson_name TEXT,
    customer_id      INTEGER,
    integer_currency INTEGER NOT NULL DEFAULT 0 CHECK (integer_currency IN (0, 1)),
    CHECK (
        (type = 'Sale'   AND original_sale_id IS NULL
                         AND status IN ('Completed','Partially Refunded','Refunded'))
     OR (type = 'Return' AND original_sale_id IS NOT NULL AND status IS NULL)
    ),
    FOREIGN KEY (original_sale_id) REFERENCES sales(sale_id) ON DELETE RESTRICT,
    FOREIGN KEY (customer_id) REFERENCES customers(customer_id) ON DELETE SET NULL
);
CREATE INDEX IF NOT EXISTS idx_sales_date     ON sales(date);
CREATE INDEX IF NOT EXISTS idx_sales_original ON sales(original_sale_id);
CREATE INDEX IF NOT EXISTS idx_sales_customer ON sales(customer_id);

CREATE TABLE IF NOT EXISTS sale_items (
    line_id           TEXT PRIMARY KEY,
    sale_id           TEXT NOT NULL,
    position          INTEGER NOT NULL,
    product_id        INTEGER NOT NULL,
    variant_id        INTEGER,
    name              TEXT NOT NULL,
    sku               TEXT,
    unit_retail_price TEXT NOT NULL,
    unit_cost_price   TEXT NOT NULL,
    quantity          INTEGER NOT NULL CHECK (quantity <> 0),
    returned_quantity INTEGER NOT NULL DEFAULT 0,
    original_sale_id  TEXT,
    CHECK (
        (quantity > 0 AND returned_quantity BETWEEN 0 AND quantity)
     OR (quantity < 0 AND returned_quantity = 0)
    ),
    FOREIGN KEY (sale_id) REFERENCES sales(sale_id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_sale_items_sale ON sale_items(sale_id);

CREATE TABLE IF NOT EXISTS sale_payments (
    payment_id INTEGER PRIMARY KEY AUTOINCREMENT,
    sale_id    TEXT NOT NULL,
    method     TEXT NOT NULL CHECK (method IN ('Cash','Card','Other')),
    amount     TEXT NOT NULL,
    FOREIGN KEY (sale_id) REFERENCES sales(sale_id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_sale_payments_sale ON sale_payments(sale_id);

/* -------- stock audit trail (append-only) -------- */
CREATE TABLE IF NOT EXISTS inventory_adjustments (
    adjustment_id  TEXT PRIMARY KEY,
    product_id     INTEGER NOT NULL,
    variant_id     INTEGER,
    date           TEXT NOT NULL,
    quantity_delta INTEGER NOT NULL CHECK (quantity_delta <> 0),
    reason         TEXT NOT NULL,
    reference_id   TEXT
);
CREATE INDEX IF NOT EXISTS idx_inv_adj_product   ON inventory_adjustments(product_id, variant_id);
CREATE INDEX IF NOT EXISTS idx_inv_adj_reference ON inventory_adjustments(reference_id);

/* -------- cash shifts -------- */
CREATE TABLE IF NOT EXISTS shifts (
    shift_id      INTEGER PRIMARY KEY AUTOINCREMENT,
    status        TEXT NOT NULL CHECK (status IN ('Open','Closed')),
    opened_at     TEXT NOT NULL,
    opened_by     INTEGER,
    start_float   TEXT NOT NULL,
    cash_sales    TEXT NOT NULL DEFAULT '0',
    cash_refunds  TEXT NOT NULL DEFAULT '0',
    closed_at     TEXT,
    expected_cash TEXT,
    actual_cash   TEXT,
    difference    TEXT,
    notes         TEXT
);
/* at most one open shift */
CREATE UNIQUE INDEX IF NOT EXISTS idx_shifts_one_open
ON shifts(status) WHERE status = 'Open';

/* ======================== PROCUREMENT ======================== */

CREATE TABLE IF NOT EXISTS purchase_orders (
    po_id         TEXT PRIMARY KEY,
    public_id     TEXT NOT NULL UNIQUE,
    supplier_name TEXT NOT NULL,
    date_created  TEXT NOT NULL,
    status        TEXT NOT NULL DEFAULT 'Pending'
                  CHECK (status IN ('Pending','Partial','Received')),
    total_cost    TEXT NOT NULL,
    notes         TEXT,
    created_by    INTEGER
);
CREATE INDEX IF NOT EXISTS idx_purchase_orders_date ON purchase_orders(date_created);

CREATE TABLE IF NOT EXISTS purchase_order_items (
    po_item_id        INTEGER PRIMARY KEY AUTOINCREMENT,
    po_id             TEXT NOT NULL,
    position          INTEGER NOT NULL,
    product_id        INTEGER NOT NULL,
    variant_id        INTEGER,
    name              TEXT NOT NULL,
    cost_price        TEXT NOT NULL,
    quantity_ordered  INTEGER NOT NULL CHECK (quantity_ordered > 0),
    quantity_received INTEGER NOT NULL DEFAULT 0
                      CHECK (quantity_received BETWEEN 0 AND quantity_ordered),
    FOREIGN KEY (po_id) REFERENCES purchase_orders(po_id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_po_items_po ON purchase_order_items(po_id);

/* -------- parked carts (no stock or money effect) -------- */
CREATE TABLE IF NOT EXISTS held_orders (
    held_id        TEXT PRIMARY KEY,
    public_id      TEXT NOT NULL UNIQUE,
    date           TEXT NOT NULL,
    customer_id    INTEGER,
    salesperson_id INTEGER,
    note           TEXT,
    FOREIGN KEY (customer_id) REFERENCES customers(customer_id) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS held_order_lines (
    held_id           TEXT NOT NULL,
    position          INTEGER NOT NULL,
    product_id        INTEGER NOT NULL,
    variant_id        INTEGER,
    quantity          INTEGER NOT NULL CHECK (quantity > 0),
    unit_retail_price TEXT,
    PRIMARY KEY (held_id, position),
    FOREIGN KEY (held_id) REFERENCES held_orders(held_id) ON DELETE CASCADE
);

/* -------- settings -------- */
CREATE TABLE IF NOT EXISTS app_settings (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

/* ======================== GUARDS ======================== */

/* Sales are immutable after creation except for the derived status. */
DROP TRIGGER IF EXISTS trg_sales_immutable;
CREATE TRIGGER trg_sales_immutable
BEFORE UPDATE ON sales
FOR EACH ROW
WHEN NEW.sale_id IS NOT OLD.sale_id
  OR NEW.public_id IS NOT OLD.public_id
  OR NEW.date IS NOT OLD.date
  OR NEW.type IS NOT OLD.type
  OR NEW.original_sale_id IS NOT OLD.original_sale_id
  OR NEW.subtotal IS NOT OLD.subtotal
  OR NEW.discount IS NOT OLD.discount
  OR NEW.tax IS NOT OLD.tax
  OR NEW.total IS NOT OLD.total
  OR NEW.cogs IS NOT OLD.cogs
  OR NEW.profit IS NOT OLD.profit
  OR NEW.salesperson_id IS NOT OLD.salesperson_id
  OR NEW.customer_id IS NOT OLD.customer_id
  OR NEW.integer_currency IS NOT OLD.integer_currency
BEGIN
  SELECT RAISE(ABORT, 'Sale records are immutable; only status may change');
END;

/* Line items: only returned_quantity may change, and only upward. */
DROP TRIGGER IF EXISTS trg_sale_items_immutable;
CREATE TRIGGER trg_sale_items_immutable
BEFORE UPDATE ON sale_items
FOR EACH ROW
WHEN NEW.line_id IS NOT OLD.line_id
  OR NEW.sale_id IS NOT OLD.sale_id
  OR NEW.product_id IS NOT OLD.product_id
  OR NEW.variant_id IS NOT OLD.variant_id
  OR NEW.unit_retail_price IS NOT OLD.unit_retail_price
  OR NEW.unit_cost_price IS NOT OLD.unit_cost_price
  OR NEW.quantity IS NOT OLD.quantity
  OR NEW.returned_quantity < OLD.returned_quantity
BEGIN
  SELECT RAISE(ABORT, 'Sale items are immutable; returned_quantity may only increase');
END;

DROP TRIGGER IF EXISTS trg_sale_payments_immutable;
CREATE TRIGGER trg_sale_payments_immutable
BEFORE UPDATE ON sale_payments
FOR EACH ROW
BEGIN
  SELECT RAISE(ABORT, 'Payments are immutable');
END;

DROP TRIGGER IF EXISTS trg_inventory_adjustments_append_only;
CREATE TRIGGER trg_inventory_adjustments_append_only
BEFORE UPDATE ON inventory_adjustments
FOR EACH ROW
BEGIN
  SELECT RAISE(ABORT, 'Inventory adjustments are append-only');
END;

/* PO lines: only quantity_received may change, and only upward. */
DROP TRIGGER IF EXISTS trg_po_items_receive_only;
CREATE TRIGGER trg_po_items_receive_only
BEFORE UPDATE ON purchase_order_items
FOR EACH ROW
WHEN NEW.po_id IS NOT OLD.po_id
  OR NEW.product_id IS NOT OLD.product_id
  OR NEW.variant_id IS NOT OLD.variant_id
  OR NEW.cost_price IS NOT OLD.cost_price
  OR NEW.quantity_ordered IS NOT OLD.quantity_ordered
  OR NEW.quantity_received < OLD.quantity_received
BEGIN
  SELECT RAISE(ABORT, 'PO items are fixed; quantity_received may only increase');
END;
"""


def init_schema_on(conn: sqlite3.Connection) -> None:
    """Apply the (idempotent) schema to an open connection."""
    conn.executescript(SQL)


def init_schema(db_path: Path | str = "pos_ledger.db") -> None:
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_path) as conn:
        conn.execute("PRAGMA journal_mode=WAL;")
        init_schema_on(conn)
        conn.commit()


if __name__ == "__main__":
    target = sys.argv[1] if len(sys.argv) > 1 else Path(__file__).resolve().parents[2] / "data" / "pos_ledger.db"
    init_schema(target)
    print(f"✓ DB applied to {target}")
