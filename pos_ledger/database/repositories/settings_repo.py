from __future__ import annotations
from dataclasses import dataclass, fields, replace
from decimal import Decimal
import sqlite3

from ...errors import ValidationError
from ...utils.money import parse_decimal
from ...utils.validators import require_percent


@dataclass(frozen=True)
class Settings:
    """
    Checkout configuration. Read when a sale is priced; existing sales keep
    whatever rates they were created with.
    """
    tax_enabled: bool = False
    tax_rate: Decimal = Decimal("0")
    discount_enabled: bool = False
    discount_rate: Decimal = Decimal("0")
    discount_threshold: Decimal = Decimal("100")
    change_due_enabled: bool = True
    integer_currency: bool = False
    split_payment_enabled: bool = False

    def validated(self) -> "Settings":
        tax_rate = require_percent(parse_decimal(self.tax_rate), "Tax rate")
        discount_rate = require_percent(parse_decimal(self.discount_rate), "Discount rate")
        threshold = parse_decimal(self.discount_threshold)
        if threshold < 0:
            raise ValidationError("Discount threshold cannot be negative.")
        return replace(
            self,
            tax_rate=tax_rate,
            discount_rate=discount_rate,
            discount_threshold=threshold,
        )


_BOOL_KEYS = {f.name for f in fields(Settings) if f.type in ("bool", bool)}


def _encode(name: str, value) -> str:
    if name in _BOOL_KEYS:
        return "1" if value else "0"
    return str(value)


def _decode(name: str, raw: str):
    if name in _BOOL_KEYS:
        return raw.strip().lower() in ("1", "true", "yes", "on")
    return parse_decimal(raw)


class SettingsRepo:
    """Key/value persistence for Settings in app_settings."""

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    def load(self) -> Settings:
        known = {f.name for f in fields(Settings)}
        values = {}
        for r in self.conn.execute("SELECT key, value FROM app_settings").fetchall():
            if r["key"] in known:
                values[r["key"]] = _decode(r["key"], r["value"])
        return Settings(**values).validated()

    def save(self, settings: Settings) -> Settings:
        settings = settings.validated()
        with self.conn:
            self.conn.executemany(
                """
                INSERT INTO app_settings (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                [(f.name, _encode(f.name, getattr(settings, f.name))) for f in fields(Settings)],
            )
        return settings
