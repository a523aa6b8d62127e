"""
Ledger commands.

Each command is a frozen request object checked on construction; the
SalesLedger dispatches it to a handler by type. Checks here are
shape-only (non-empty ids, non-zero quantities); anything that needs the
database happens in the handler.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from ...errors import ValidationError
from ...utils.validators import parse_quantity
from .models import SaleCandidate


@dataclass(frozen=True)
class ProcessSale:
    """Record a new Sale (or a Return given as a candidate)."""
    candidate: SaleCandidate

    def __post_init__(self):
        if not self.candidate.lines:
            raise ValidationError("A transaction needs at least one line item.")


@dataclass(frozen=True)
class Refund:
    """Refund some or all remaining units of a sale. items=None means everything."""
    sale_id: str
    items: Optional[Mapping[str, int]] = None
    payments: Optional[Sequence] = None

    def __post_init__(self):
        if not self.sale_id:
            raise ValidationError("sale_id must be non-empty.")


@dataclass(frozen=True)
class DeleteSale:
    """Delete a sale, its returns and their stock history. Stock counts stay as they are."""
    sale_id: str

    def __post_init__(self):
        if not self.sale_id:
            raise ValidationError("sale_id must be non-empty.")


@dataclass(frozen=True)
class AdjustStock:
    product_id: int
    delta: int
    reason: str
    variant_id: Optional[int] = None

    def __post_init__(self):
        if parse_quantity(self.delta, "Stock change") == 0:
            raise ValidationError("Stock change must be non-zero.")
        if not self.reason or not self.reason.strip():
            raise ValidationError("Reason cannot be empty.")


@dataclass(frozen=True)
class ReceiveStock:
    product_id: int
    quantity: int
    variant_id: Optional[int] = None

    def __post_init__(self):
        if parse_quantity(self.quantity, "Received quantity") <= 0:
            raise ValidationError("Received quantity must be positive.")


@dataclass(frozen=True)
class SetStockLevel:
    """Count correction: set stock to an absolute level."""
    product_id: int
    new_level: int
    reason: str
    variant_id: Optional[int] = None

    def __post_init__(self):
        if not self.reason or not self.reason.strip():
            raise ValidationError("Reason cannot be empty.")


@dataclass(frozen=True)
class ClearSales:
    statuses: Optional[Sequence[str]] = None


@dataclass(frozen=True)
class PruneSales:
    days: int
    statuses: Optional[Sequence[str]] = None

    def __post_init__(self):
        if parse_quantity(self.days, "days") < 1:
            raise ValidationError("days must be at least 1.")


@dataclass(frozen=True)
class HoldOrder:
    """Park a cart for later."""
    lines: tuple
    customer_id: Optional[int] = None
    note: Optional[str] = None

    def __post_init__(self):
        if not self.lines:
            raise ValidationError("A held order needs at least one line item.")


@dataclass(frozen=True)
class DeleteHeldOrder:
    held_id: str

    def __post_init__(self):
        if not self.held_id:
            raise ValidationError("held_id must be non-empty.")


__all__ = [
    "ProcessSale",
    "Refund",
    "DeleteSale",
    "AdjustStock",
    "ReceiveStock",
    "SetStockLevel",
    "ClearSales",
    "PruneSales",
    "HoldOrder",
    "DeleteHeldOrder",
]
