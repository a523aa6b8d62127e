# pos_ledger/constants.py

# ---- Storage ----
DATA_DIR = "data"
DB_FILE_NAME = "pos_ledger.db"
LOG_FILE_NAME = "ledger_events.log"

TABLE_SCHEMA_VERSION = "schema_version"
SCHEMA_VERSION = "1.0.0"

# ---- Transaction types ----
TYPE_SALE = "Sale"
TYPE_RETURN = "Return"
TRANSACTION_TYPES = (TYPE_SALE, TYPE_RETURN)

# ---- Sale status ----
STATUS_COMPLETED = "Completed"
STATUS_PARTIALLY_REFUNDED = "Partially Refunded"
STATUS_REFUNDED = "Refunded"

# ---- Payments ----
PAYMENT_CASH = "Cash"
PAYMENT_CARD = "Card"
PAYMENT_OTHER = "Other"
PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_CARD, PAYMENT_OTHER)

# ---- Stock reasons ----
REASON_SALE = "Sale"
REASON_RETURN = "Return"
REASON_STOCK_RECEIVED = "Stock Received"

# ---- Public ids ----
PUBLIC_ID_PREFIX_SALE = "TRX-"
PUBLIC_ID_PREFIX_RETURN = "RET-"
PUBLIC_ID_ALPHABET = "23456789ABCDEFGHJKLMNPQRSTUVWXYZ"
PUBLIC_ID_LENGTH = 8

# ---- Shifts ----
SHIFT_OPEN = "Open"
SHIFT_CLOSED = "Closed"

DEFAULT_LOW_STOCK_THRESHOLD = 5

# ---- Purchase orders ----
PO_PENDING = "Pending"
PO_PARTIAL = "Partial"
PO_RECEIVED = "Received"
PO_STATUSES = (PO_PENDING, PO_PARTIAL, PO_RECEIVED)
PUBLIC_ID_PREFIX_PO = "PO-"
PO_PUBLIC_ID_LENGTH = 6

# ---- Held orders ----
PUBLIC_ID_PREFIX_HELD = "HLD-"
HELD_PUBLIC_ID_LENGTH = 4
