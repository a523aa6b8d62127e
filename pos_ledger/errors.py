"""
Error taxonomy for ledger operations.

Exceptions abort an operation before anything is written. A
ConsistencyWarning is not raised; it rides along on a successful result so
the caller can show it without blocking the transaction.
"""
from __future__ import annotations

from dataclasses import dataclass


class DomainError(Exception):
    """Domain-level error suitable for surfacing to the UI."""
    pass


class ValidationError(DomainError):
    """Malformed command or candidate transaction."""


class NotFoundError(DomainError):
    """A referenced sale, product or variant does not exist."""


class NothingToRefundError(DomainError):
    """The refund would return zero units, or the sale is already fully refunded."""


# ---- Non-fatal warnings ----

NEGATIVE_STOCK = "NEGATIVE_STOCK"
LOW_STOCK = "LOW_STOCK"
OUT_OF_STOCK = "OUT_OF_STOCK"
PROFIT_RECOMPUTED = "PROFIT_RECOMPUTED"


@dataclass(frozen=True)
class ConsistencyWarning:
    code: str
    message: str
    product_id: int | None = None
    variant_id: int | None = None
    sale_id: str | None = None


__all__ = [
    "DomainError",
    "ValidationError",
    "NotFoundError",
    "NothingToRefundError",
    "ConsistencyWarning",
    "NEGATIVE_STOCK",
    "LOW_STOCK",
    "OUT_OF_STOCK",
    "PROFIT_RECOMPUTED",
]
