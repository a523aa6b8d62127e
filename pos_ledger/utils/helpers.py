# utils/helpers.py
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
import logging
from typing import Union, Optional

NumberLike = Union[Decimal, float, int, str]

_log = logging.getLogger(__name__)


def today_str() -> str:
    """Return today's date as ISO string (YYYY-MM-DD)."""
    return date.today().isoformat()


def now_iso() -> str:
    """Local timestamp with second precision, e.g. 2025-03-01T14:05:09."""
    return datetime.now().isoformat(timespec="seconds")


def days_before(day: str, days: int) -> str:
    """ISO date `days` days before the ISO date `day`."""
    return (date.fromisoformat(day[:10]) - timedelta(days=days)).isoformat()


def fmt_money(
    v: NumberLike,
    places: int = 2,
    *,
    strict: bool = False,
    sentinel: Optional[str] = None,
) -> str:
    """
    Format an amount with thousands separators and a fixed number of decimals.

    Decimals are formatted as-is; other values are parsed through Decimal(str(v)).
    On parse failure returns str(v), or `sentinel` when given, or raises
    ValueError when strict=True.
    """
    try:
        x = v if isinstance(v, Decimal) else Decimal(str(v))
        if not x.is_finite():
            raise InvalidOperation
    except (InvalidOperation, ValueError) as e:
        _log.debug("fmt_money: failed to parse %r as a number: %s", v, e)
        if strict:
            raise ValueError(f"Could not parse {v!r} as a number.") from e
        return str(sentinel) if sentinel is not None else str(v)
    return f"{x:,.{places}f}"
