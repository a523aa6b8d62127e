from __future__ import annotations
from dataclasses import replace
from typing import Iterable, Mapping, Optional

from ...constants import STATUS_COMPLETED, STATUS_PARTIALLY_REFUNDED, STATUS_REFUNDED
from ...errors import NothingToRefundError, ValidationError
from .models import LineItem, Sale

# ---------- Canonical set & order ----------
VALID_STATES: tuple[str, ...] = (STATUS_COMPLETED, STATUS_PARTIALLY_REFUNDED, STATUS_REFUNDED)
STATE_ORDER: dict[str, int] = {s: i for i, s in enumerate(VALID_STATES)}  # Completed=0,...,Refunded=2


# ---------- API ----------

def normalize(state: Optional[str]) -> Optional[str]:
    """Match case-insensitively against the canonical names; None if unknown or empty."""
    if state is None:
        return None
    s = " ".join(str(state).split()).lower()
    for canonical in VALID_STATES:
        if canonical.lower() == s or canonical.replace(" ", "").lower() == s:
            return canonical
    return None


def ensure_valid(state: str) -> str:
    """
    Return the canonical state if valid; raise ValidationError if not.
    """
    s = normalize(state)
    if s is None:
        raise ValidationError("status must be one of: Completed, Partially Refunded, Refunded")
    return s


def sort_key(state: str) -> int:
    """Stable sort key using STATE_ORDER; unknown states sort after known ones."""
    return STATE_ORDER.get(normalize(state) or "", 999)


# ---------- Derivation ----------

def derive_status(items: Iterable[LineItem]) -> str:
    """
    Completed          when nothing has been returned
    Partially Refunded when 0 < returned < sold
    Refunded           when every unit is back
    """
    items = list(items)
    sold = sum(it.quantity for it in items)
    returned = sum(it.returned_quantity for it in items)
    if returned <= 0:
        return STATUS_COMPLETED
    if returned >= sold:
        return STATUS_REFUNDED
    return STATUS_PARTIALLY_REFUNDED


def ensure_forward(current: str, new: str) -> str:
    """Status only ever moves Completed -> Partially Refunded -> Refunded."""
    if sort_key(new) < sort_key(current):
        raise ValidationError(f"Sale status cannot move from {current} back to {new}.")
    return new


def apply_return(sale: Sale, returned: Mapping[str, int]) -> Sale:
    """
    Return a copy of `sale` with returned_quantity incremented per line and
    the status recomputed. Rejects anything that would push a line past its
    sold quantity, and any return against a sale that is already Refunded.
    """
    if not sale.is_sale:
        raise ValidationError("Returns can only be applied to Sale transactions.")
    if normalize(sale.status) == STATUS_REFUNDED:
        raise NothingToRefundError(f"Sale {sale.public_id} is already fully refunded.")

    unknown = set(returned) - {it.line_id for it in sale.items}
    if unknown:
        raise ValidationError(f"Unknown line(s) for sale {sale.public_id}: {sorted(unknown)}")

    items = []
    for it in sale.items:
        qty = int(returned.get(it.line_id, 0))
        if qty < 0:
            raise ValidationError("Returned quantity cannot be negative.")
        if qty > it.remaining:
            raise ValidationError(
                f"Return qty exceeds remaining for {it.name}: remaining {it.remaining}, requested {qty}."
            )
        items.append(replace(it, returned_quantity=it.returned_quantity + qty) if qty else it)

    new_status = ensure_forward(sale.status or STATUS_COMPLETED, derive_status(items))
    return replace(sale, items=tuple(items), status=new_status)
