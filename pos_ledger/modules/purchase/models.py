"""
Purchase order records.

A PO is written once with its lines; afterwards only the per-line
quantity_received and the derived status move, and both only forward:

    Pending  -> nothing received yet
    Partial  -> some units received
    Received -> every line received in full
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional

from ...constants import PO_PARTIAL, PO_PENDING, PO_RECEIVED


@dataclass(frozen=True)
class POItem:
    product_id: int
    variant_id: Optional[int]
    name: str
    cost_price: Decimal
    quantity_ordered: int
    quantity_received: int = 0
    po_item_id: Optional[int] = None

    @property
    def outstanding(self) -> int:
        return max(self.quantity_ordered - self.quantity_received, 0)


@dataclass(frozen=True)
class PurchaseOrder:
    po_id: str
    public_id: str
    supplier_name: str
    date_created: str
    status: str
    items: tuple[POItem, ...]
    total_cost: Decimal
    notes: Optional[str] = None
    created_by: Optional[int] = None

    def item_for(self, product_id: int, variant_id: Optional[int]) -> POItem | None:
        return next(
            (it for it in self.items if it.product_id == product_id and it.variant_id == variant_id),
            None,
        )


@dataclass(frozen=True)
class POLine:
    """One requested line of a new PO; cost defaults to the catalog cost."""
    product_id: int
    quantity: int
    variant_id: Optional[int] = None
    cost_price: Optional[Decimal] = None


@dataclass(frozen=True)
class ReceiveLine:
    product_id: int
    quantity: int
    variant_id: Optional[int] = None


@dataclass
class ReceiptResult:
    purchase_order: PurchaseOrder
    adjustments: list = field(default_factory=list)
    warnings: list = field(default_factory=list)


def derive_po_status(items: Iterable[POItem]) -> str:
    items = list(items)
    if items and all(it.outstanding == 0 for it in items):
        return PO_RECEIVED
    if any(it.quantity_received > 0 for it in items):
        return PO_PARTIAL
    return PO_PENDING
