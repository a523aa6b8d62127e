"""
Cash-drawer shifts.

A shift opens with a float; while it is open every Sale adds its net cash
and every Return adds its cash refund. Closing compares the counted cash
with what the drawer should hold:

    expected   = start_float + cash_sales − cash_refunds
    difference = actual_cash − expected
"""
from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
import sqlite3
from typing import Callable, Optional

from ...database.repositories.shifts_repo import Shift, ShiftsRepo
from ...errors import NotFoundError, ValidationError
from ...utils.helpers import now_iso
from ...utils.loggers import get_event_logger, get_logger, log_event
from ...utils.money import to_money
from ..sales.models import Sale

_log = get_logger()


def add_transaction_cash(shift: Shift, sale: Sale, integer_currency: bool = False) -> Shift:
    """Fold a committed Sale or Return's cash into the shift totals."""
    cash = sale.net_cash
    if not cash:
        return shift
    if sale.is_sale:
        return replace(shift, cash_sales=to_money(shift.cash_sales + cash, integer_currency))
    return replace(shift, cash_refunds=to_money(shift.cash_refunds + abs(cash), integer_currency))


def expected_cash(shift: Shift) -> Decimal:
    return shift.start_float + shift.cash_sales - shift.cash_refunds


class ShiftService:
    def __init__(
        self,
        conn: sqlite3.Connection,
        current_user: Optional[dict] = None,
        *,
        clock: Callable[[], str] = now_iso,
        integer_currency: bool = False,
    ):
        self.conn = conn
        self.repo = ShiftsRepo(conn)
        self.user = current_user
        self.clock = clock
        self.integer_currency = integer_currency
        self._events = get_event_logger()

    def current(self) -> Shift | None:
        return self.repo.get_open()

    def open_shift(self, start_float) -> Shift:
        amount = to_money(start_float, self.integer_currency)
        if amount < 0:
            raise ValidationError("Starting float cannot be negative.")
        if self.repo.get_open() is not None:
            raise ValidationError("A shift is already open. Close it before opening another.")
        with self.conn:
            shift_id = self.repo.insert_open(
                self.clock(), (self.user["user_id"] if self.user else None), amount
            )
        shift = self.repo.get(shift_id)
        log_event(self._events, "open_shift", "commit", f"Shift {shift_id} opened",
                  {"shift_id": shift_id, "start_float": str(amount)})
        return shift

    def close_shift(self, actual_cash, notes: Optional[str] = None) -> Shift:
        shift = self.repo.get_open()
        if shift is None:
            raise NotFoundError("No open shift to close.")
        actual = to_money(actual_cash, self.integer_currency)
        if actual < 0:
            raise ValidationError("Counted cash cannot be negative.")
        expected = to_money(expected_cash(shift), self.integer_currency)
        closed = replace(
            shift,
            closed_at=self.clock(),
            expected_cash=expected,
            actual_cash=actual,
            difference=actual - expected,
            notes=(notes.strip() or None) if notes else None,
        )
        with self.conn:
            self.repo.close(closed)
        if closed.difference:
            _log.warning("Shift %s closed with a cash difference of %s", shift.shift_id, closed.difference)
        log_event(self._events, "close_shift", "commit", f"Shift {shift.shift_id} closed",
                  {"shift_id": shift.shift_id, "expected": str(expected),
                   "actual": str(actual), "difference": str(closed.difference)})
        return self.repo.get(shift.shift_id)
