from decimal import Decimal

import pytest

from pos_ledger.database.repositories.settings_repo import Settings
from pos_ledger.errors import ValidationError
from pos_ledger.modules.sales.models import LineItem, Payment
from pos_ledger.modules.sales.totals import (
    derive_totals,
    normalize_payments,
    price_cart,
    validate_payments,
)


def _line(price, qty, cost="0", line_id="L1"):
    return LineItem(
        line_id=line_id,
        product_id=1,
        variant_id=None,
        name="Item",
        sku=None,
        unit_retail_price=Decimal(price),
        unit_cost_price=Decimal(cost),
        quantity=qty,
    )


def test_price_cart_tax_on_subtotal():
    """2 × 10.00 at 8% tax, cost 6.00: total 21.60 and profit 8.00."""
    t = price_cart([_line("10.00", 2, "6.00")], Settings(tax_enabled=True, tax_rate=Decimal("8")))
    assert t.subtotal == Decimal("20.00")
    assert t.tax == Decimal("1.60")
    assert t.total == Decimal("21.60")
    assert t.cogs == Decimal("12.00")
    assert t.profit == Decimal("8.00")


def test_discount_applies_only_at_threshold_and_tax_uses_discounted_base():
    s = Settings(
        tax_enabled=True, tax_rate=Decimal("8"),
        discount_enabled=True, discount_rate=Decimal("10"), discount_threshold=Decimal("100"),
    )
    below = price_cart([_line("99.99", 1)], s)
    assert below.discount == Decimal("0.00")

    at = price_cart([_line("50.00", 1, line_id="a"), _line("50.00", 1, line_id="b")], s)
    assert at.discount == Decimal("10.00")
    assert at.tax == Decimal("7.20")
    assert at.total == Decimal("97.20")


def test_explicit_discount_and_tax_override_settings():
    s = Settings(tax_enabled=True, tax_rate=Decimal("8"))
    t = price_cart([_line("10.00", 3)], s, discount="5", tax="0")
    assert (t.discount, t.tax, t.total) == (Decimal("5.00"), Decimal("0.00"), Decimal("25.00"))
    with pytest.raises(ValidationError):
        price_cart([_line("10.00", 1)], s, discount="11")


def test_integer_currency_mode():
    s = Settings(tax_enabled=True, tax_rate=Decimal("8"), integer_currency=True)
    t = price_cart([_line("10", 2)], s)
    assert t.tax == Decimal("2")
    assert t.total == Decimal("22")


def test_return_totals_are_sign_consistent():
    t = derive_totals([_line("10.00", -1, "6.00")], Decimal("-0.50"), Decimal("-0.76"))
    assert t.subtotal == Decimal("-10.00")
    assert t.total == Decimal("-10.26")
    assert t.cogs == Decimal("-6.00")
    assert t.profit == t.total - t.tax - t.cogs


def test_payments_must_match_total_without_change_due():
    s = Settings(change_due_enabled=False)
    validate_payments("Sale", Decimal("21.60"), [Payment("Cash", Decimal("21.60"))], s)
    with pytest.raises(ValidationError):
        validate_payments("Sale", Decimal("21.60"), [Payment("Cash", Decimal("25.00"))], s)
    with pytest.raises(ValidationError):
        validate_payments("Sale", Decimal("21.60"), [Payment("Cash", Decimal("21.00"))], s)


def test_change_due_allows_overpayment_only():
    s = Settings(change_due_enabled=True)
    validate_payments("Sale", Decimal("21.60"), [Payment("Cash", Decimal("50.00"))], s)
    with pytest.raises(ValidationError):
        validate_payments("Sale", Decimal("21.60"), [Payment("Cash", Decimal("20.00"))], s)


def test_returns_must_refund_exactly_with_negative_amounts():
    s = Settings(change_due_enabled=True)
    validate_payments("Return", Decimal("-10.80"), [Payment("Card", Decimal("-10.80"))], s)
    with pytest.raises(ValidationError):
        validate_payments("Return", Decimal("-10.80"), [Payment("Card", Decimal("-12.00"))], s)
    with pytest.raises(ValidationError):
        validate_payments("Return", Decimal("-10.80"), [Payment("Card", Decimal("10.80"))], s)


def test_split_payments_need_the_setting():
    pays = [Payment("Cash", Decimal("10.00")), Payment("Card", Decimal("11.60"))]
    with pytest.raises(ValidationError):
        validate_payments("Sale", Decimal("21.60"), pays, Settings())
    validate_payments("Sale", Decimal("21.60"), pays, Settings(split_payment_enabled=True))


def test_normalize_payments_checks_method_and_rounds():
    out = normalize_payments([("Cash", "10.005"), Payment("Card", Decimal("1"))])
    assert out == (Payment("Cash", Decimal("10.01")), Payment("Card", Decimal("1.00")))
    with pytest.raises(ValidationError):
        normalize_payments([("Bitcoin", "1")])
