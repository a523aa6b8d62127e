from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
import sqlite3

from ...constants import SHIFT_CLOSED, SHIFT_OPEN


@dataclass
class Shift:
    shift_id: int
    status: str
    opened_at: str
    opened_by: int | None
    start_float: Decimal
    cash_sales: Decimal
    cash_refunds: Decimal
    closed_at: str | None = None
    expected_cash: Decimal | None = None
    actual_cash: Decimal | None = None
    difference: Decimal | None = None
    notes: str | None = None


def _opt_dec(v) -> Decimal | None:
    return None if v is None else Decimal(v)


def _shift(r: sqlite3.Row) -> Shift:
    return Shift(
        shift_id=int(r["shift_id"]),
        status=r["status"],
        opened_at=r["opened_at"],
        opened_by=r["opened_by"],
        start_float=Decimal(r["start_float"]),
        cash_sales=Decimal(r["cash_sales"]),
        cash_refunds=Decimal(r["cash_refunds"]),
        closed_at=r["closed_at"],
        expected_cash=_opt_dec(r["expected_cash"]),
        actual_cash=_opt_dec(r["actual_cash"]),
        difference=_opt_dec(r["difference"]),
        notes=r["notes"],
    )


class ShiftsRepo:
    """Cash-drawer shifts. Writes do not commit; the caller owns the transaction."""

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    def get(self, shift_id: int) -> Shift | None:
        r = self.conn.execute("SELECT * FROM shifts WHERE shift_id=?", (shift_id,)).fetchone()
        return _shift(r) if r else None

    def get_open(self) -> Shift | None:
        r = self.conn.execute(
            "SELECT * FROM shifts WHERE status=? ORDER BY shift_id DESC LIMIT 1", (SHIFT_OPEN,)
        ).fetchone()
        return _shift(r) if r else None

    def list_shifts(self) -> list[Shift]:
        rows = self.conn.execute("SELECT * FROM shifts ORDER BY shift_id DESC").fetchall()
        return [_shift(r) for r in rows]

    def insert_open(self, opened_at: str, opened_by: int | None, start_float: Decimal) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO shifts (status, opened_at, opened_by, start_float, cash_sales, cash_refunds)
            VALUES (?, ?, ?, ?, '0', '0')
            """,
            (SHIFT_OPEN, opened_at, opened_by, str(start_float)),
        )
        return int(cur.lastrowid)

    def update_cash(self, shift: Shift) -> None:
        self.conn.execute(
            "UPDATE shifts SET cash_sales=?, cash_refunds=? WHERE shift_id=?",
            (str(shift.cash_sales), str(shift.cash_refunds), shift.shift_id),
        )

    def close(self, shift: Shift) -> None:
        self.conn.execute(
            """
            UPDATE shifts
               SET status=?, closed_at=?, expected_cash=?, actual_cash=?, difference=?, notes=?
             WHERE shift_id=?
            """,
            (
                SHIFT_CLOSED,
                shift.closed_at,
                str(shift.expected_cash),
                str(shift.actual_cash),
                str(shift.difference),
                shift.notes,
                shift.shift_id,
            ),
        )
