from decimal import Decimal

import pytest

from pos_ledger.database.repositories.settings_repo import Settings, SettingsRepo
from pos_ledger.errors import ValidationError


def test_defaults_when_nothing_is_stored(conn):
    assert SettingsRepo(conn).load() == Settings()


def test_round_trip(conn):
    repo = SettingsRepo(conn)
    saved = repo.save(
        Settings(
            tax_enabled=True,
            tax_rate="7.5",
            discount_enabled=True,
            discount_rate=Decimal("10"),
            discount_threshold=Decimal("250"),
            integer_currency=True,
            split_payment_enabled=True,
        )
    )
    assert saved.tax_rate == Decimal("7.5")
    loaded = repo.load()
    assert loaded == saved
    assert loaded.integer_currency is True
    assert loaded.change_due_enabled is True


@pytest.mark.parametrize(
    "bad",
    [
        Settings(tax_rate=Decimal("101")),
        Settings(discount_rate=Decimal("-1")),
        Settings(discount_threshold=Decimal("-5")),
        Settings(tax_rate="eight"),
    ],
)
def test_invalid_settings_are_rejected(conn, bad):
    with pytest.raises(ValidationError):
        SettingsRepo(conn).save(bad)
    assert conn.execute("SELECT COUNT(*) FROM app_settings").fetchone()[0] == 0
