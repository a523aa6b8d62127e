# utils/validators.py
from decimal import Decimal, InvalidOperation

from ..errors import ValidationError


def non_empty(text: str) -> bool:
    """
    True if `text` is not None/empty after stripping whitespace.
    """
    return bool(text and str(text).strip())


def require_non_empty(text: str, field_label: str) -> str:
    if not non_empty(text):
        raise ValidationError(f"{field_label} cannot be empty.")
    return str(text).strip()


# ---- Numeric parsing & validators ----

def try_parse_int(x):
    """
    Best-effort parse to a whole number.

    Returns:
        (ok: bool, value: int|None)

    Booleans and fractional values are rejected ("2.5" is not a quantity).
    """
    if isinstance(x, bool):
        return False, None
    try:
        d = Decimal(str(x).strip())
    except (InvalidOperation, ValueError):
        return False, None
    if not d.is_finite() or d != d.to_integral_value():
        return False, None
    return True, int(d)


def parse_quantity(x, field_label: str = "Quantity") -> int:
    """
    Strict parse to int; raises ValidationError with a clear message on failure.
    """
    ok, val = try_parse_int(x)
    if not ok:
        raise ValidationError(f"{field_label} must be a whole number, got {x!r}.")
    return val  # type: ignore[return-value]


def require_percent(x: Decimal, field_label: str) -> Decimal:
    if x < 0 or x > 100:
        raise ValidationError(f"{field_label} must be between 0 and 100.")
    return x
