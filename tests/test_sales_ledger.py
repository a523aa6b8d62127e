"""
SalesLedger end to end on an in-memory database: recording sales, refunds
through both entry points, payment rules, atomicity and command dispatch.
"""
from decimal import Decimal
import re

import pytest

from conftest import count, stock_of
from pos_ledger.database.repositories.inventory_repo import StockLedger
from pos_ledger.database.repositories.settings_repo import Settings, SettingsRepo
from pos_ledger.errors import NotFoundError, NothingToRefundError, ValidationError
from pos_ledger.modules.sales.commands import (
    AdjustStock,
    DeleteSale,
    ProcessSale,
    PruneSales,
    ReceiveStock,
    Refund,
)
from pos_ledger.modules.sales.models import CartLine, Payment, SaleCandidate
from pos_ledger.modules.sales.service import SalesLedger

D = Decimal
PUBLIC_ID = re.compile(r"^TRX-[23456789ABCDEFGHJKLMNPQRSTUVWXYZ]{8}$")


def _sell(ledger, *lines, pay, method="Cash", customer_id=None):
    cand = SaleCandidate(
        lines=tuple(CartLine(product_id=p, quantity=q) for p, q in lines),
        payments=(Payment(method, D(pay)),),
        customer_id=customer_id,
    )
    return ledger.process_sale(cand).sale


def test_sale_scenario_totals_stock_and_audit(ledger, conn, catalog, current_user):
    """2 × 10.00 at 8%: 21.60 total, 8.00 profit, stock 20 -> 18, one 'Sale' audit row."""
    res = ledger.process_sale(
        SaleCandidate(
            lines=(CartLine(product_id=catalog["widget"], quantity=2),),
            payments=(Payment("Cash", D("21.60")),),
        )
    )
    sale = res.sale
    assert (sale.subtotal, sale.discount, sale.tax, sale.total) == (
        D("20.00"), D("0.00"), D("1.60"), D("21.60"),
    )
    assert sale.cogs == D("12.00")
    assert sale.profit == D("8.00")
    assert sale.status == "Completed"
    assert sale.date == "2025-03-01T10:00:00"
    assert PUBLIC_ID.match(sale.public_id)
    assert sale.salesperson_id == current_user["user_id"]
    assert sale.salesperson_name == "Test Cashier"
    assert res.warnings == []

    assert stock_of(conn, catalog["widget"]) == 18
    (adj,) = StockLedger(conn).list_adjustments(reference_id=sale.sale_id)
    assert (adj.quantity_delta, adj.reason) == (-2, "Sale")

    stored = ledger.sales.get(sale.sale_id)
    assert stored == sale


def test_refund_scenario_partially_refunds_and_restocks(ledger, conn, catalog):
    sale = _sell(ledger, (catalog["widget"], 2), pay="21.60")
    res = ledger.refund(sale.sale_id, {sale.items[0].line_id: 1})

    ret = res.sale
    assert ret.type == "Return" and ret.original_sale_id == sale.sale_id
    assert ret.public_id.startswith("RET-")
    assert (ret.subtotal, ret.tax, ret.total) == (D("-10.00"), D("-0.80"), D("-10.80"))
    assert ret.cogs == D("-6.00")
    assert ret.payments == (Payment("Cash", D("-10.80")),)

    assert res.original.status == "Partially Refunded"
    reloaded = ledger.sales.get(sale.sale_id)
    assert reloaded.status == "Partially Refunded"
    assert reloaded.items[0].returned_quantity == 1

    assert stock_of(conn, catalog["widget"]) == 19
    (adj,) = StockLedger(conn).list_adjustments(reference_id=ret.sale_id)
    assert (adj.quantity_delta, adj.reason) == (1, "Return")


def test_refund_uses_original_rates_not_current_settings(conn, clock, catalog):
    """A sale of 100 with 10% discount and 8% tax; refunding 50 worth after tax is switched off."""
    at_sale = Settings(
        tax_enabled=True, tax_rate=D("8"),
        discount_enabled=True, discount_rate=D("10"), discount_threshold=D("100"),
    )
    ledger = SalesLedger(conn, at_sale, clock=clock)
    sale = _sell(ledger, (catalog["widget"], 5), (catalog["gadget"], 2), pay="97.20")
    assert (sale.discount, sale.tax, sale.total) == (D("10.00"), D("7.20"), D("97.20"))

    later = SalesLedger(conn, Settings(), clock=clock)
    widget_line = next(it for it in sale.items if it.product_id == catalog["widget"])
    ret = later.refund(sale.sale_id, {widget_line.line_id: 5}).sale
    assert (ret.subtotal, ret.discount, ret.tax, ret.total) == (
        D("-50.00"), D("-5.00"), D("-3.60"), D("-48.60"),
    )


def test_full_refund_then_further_refund_is_rejected(ledger, conn, catalog):
    sale = _sell(ledger, (catalog["widget"], 2), (catalog["gadget"], 1), pay="48.60")
    res = ledger.refund(sale.sale_id)
    assert res.original.status == "Refunded"
    assert res.sale.total == D("-48.60")
    assert stock_of(conn, catalog["widget"]) == 20
    assert stock_of(conn, catalog["gadget"]) == 10

    before = (count(conn, "sales"), count(conn, "inventory_adjustments"))
    with pytest.raises(NothingToRefundError):
        ledger.refund(sale.sale_id)
    assert (count(conn, "sales"), count(conn, "inventory_adjustments")) == before


def test_refund_over_remaining_changes_nothing(ledger, conn, catalog):
    sale = _sell(ledger, (catalog["widget"], 2), pay="21.60")
    line_id = sale.items[0].line_id
    ledger.refund(sale.sale_id, {line_id: 1})

    with pytest.raises(ValidationError):
        ledger.refund(sale.sale_id, {line_id: 2})
    assert count(conn, "sales") == 2
    assert stock_of(conn, catalog["widget"]) == 19
    assert ledger.sales.get(sale.sale_id).items[0].returned_quantity == 1


def test_refund_of_unknown_sale_or_of_a_return(ledger, catalog):
    with pytest.raises(NotFoundError):
        ledger.refund("missing")
    sale = _sell(ledger, (catalog["widget"], 2), pay="21.60")
    ret = ledger.refund(sale.sale_id, {sale.items[0].line_id: 1}).sale
    with pytest.raises(ValidationError):
        ledger.refund(ret.sale_id)


def test_conservation_over_sequential_refunds(ledger, catalog):
    """However a sale is refunded, returns net to exactly its total."""
    sale = _sell(ledger, (catalog["widget"], 3), (catalog["gadget"], 1), pay="59.40")
    w, g = sale.items
    totals = [
        ledger.refund(sale.sale_id, {w.line_id: 1}).sale.total,
        ledger.refund(sale.sale_id, {g.line_id: 1}).sale.total,
        ledger.refund(sale.sale_id, {w.line_id: 2}).sale.total,
    ]
    assert sale.total + sum(totals) == D("0.00")
    final = ledger.sales.get(sale.sale_id)
    assert final.status == "Refunded"
    assert all(it.returned_quantity == it.quantity for it in final.items)


def test_return_candidate_through_process_sale(ledger, conn, catalog):
    sale = _sell(ledger, (catalog["widget"], 2), pay="21.60", method="Card")
    res = ledger.process_sale(
        SaleCandidate(
            lines=(CartLine(product_id=catalog["widget"], quantity=-1),),
            type="Return",
            original_sale_id=sale.sale_id,
        )
    )
    assert res.sale.total == D("-10.80")
    assert res.sale.payments == (Payment("Card", D("-10.80")),)
    assert res.original.status == "Partially Refunded"
    assert stock_of(conn, catalog["widget"]) == 19

    with pytest.raises(NotFoundError):
        ledger.process_sale(
            SaleCandidate(
                lines=(CartLine(product_id=catalog["widget"], quantity=-1),),
                type="Return",
                original_sale_id="nope",
            )
        )


def test_explicit_refund_payments_must_match(ledger, catalog):
    sale = _sell(ledger, (catalog["widget"], 2), pay="21.60")
    with pytest.raises(ValidationError):
        ledger.refund(sale.sale_id, None, payments=[("Cash", "-5.00")])
    res = ledger.refund(sale.sale_id, None, payments=[("Cash", "-1.60"), ("Card", "-20.00")])
    assert res.sale.total == D("-21.60")


@pytest.mark.parametrize(
    "candidate, error",
    [
        (SaleCandidate(lines=()), ValidationError),
        (SaleCandidate(lines=(CartLine(product_id=1, quantity=0),)), ValidationError),
        (SaleCandidate(lines=(CartLine(product_id=1, quantity=-1),)), ValidationError),
        (SaleCandidate(lines=(CartLine(product_id=999, quantity=1),)), NotFoundError),
        (
            SaleCandidate(
                lines=(CartLine(product_id=1, quantity=1, unit_retail_price=D("-1")),),
                payments=(Payment("Cash", D("0")),),
            ),
            ValidationError,
        ),
        (
            SaleCandidate(
                lines=(CartLine(product_id=1, quantity=1),),
                payments=(Payment("Cash", D("5.00")),),
            ),
            ValidationError,
        ),
        (
            SaleCandidate(
                lines=(CartLine(product_id=1, quantity=1),),
                payments=(Payment("Cash", D("10.80")),),
                customer_id=404,
            ),
            NotFoundError,
        ),
    ],
)
def test_rejected_candidates_write_nothing(ledger, conn, catalog, candidate, error):
    assert catalog["widget"] == 1
    with pytest.raises(error):
        ledger.process_sale(candidate)
    assert count(conn, "sales") == 0
    assert count(conn, "inventory_adjustments") == 0
    assert stock_of(conn, catalog["widget"]) == 20


def test_variant_sale_requires_a_variant_and_decrements_it(ledger, conn, catalog):
    with pytest.raises(ValidationError):
        _sell(ledger, (catalog["shirt"], 1), pay="21.60")

    cand = SaleCandidate(
        lines=(CartLine(product_id=catalog["shirt"], variant_id=catalog["shirt_m"], quantity=2),),
        payments=(Payment("Cash", D("43.20")),),
    )
    sale = ledger.process_sale(cand).sale
    assert sale.items[0].name == "Shirt - M"
    assert stock_of(conn, catalog["shirt"], catalog["shirt_m"]) == 4
    assert stock_of(conn, catalog["shirt"]) == 8


def test_failure_mid_transaction_rolls_everything_back(ledger, conn, catalog, monkeypatch):
    real = ledger.stock.apply_delta
    calls = []

    def flaky(*args, **kwargs):
        calls.append(args)
        if len(calls) == 2:
            raise RuntimeError("disk full")
        return real(*args, **kwargs)

    monkeypatch.setattr(ledger.stock, "apply_delta", flaky)
    with pytest.raises(RuntimeError):
        _sell(ledger, (catalog["widget"], 2), (catalog["gadget"], 1), pay="48.60")

    assert count(conn, "sales") == 0
    assert count(conn, "sale_items") == 0
    assert count(conn, "inventory_adjustments") == 0
    assert stock_of(conn, catalog["widget"]) == 20


def test_oversell_is_allowed_with_warnings(ledger, conn, catalog):
    res = ledger.process_sale(
        SaleCandidate(
            lines=(CartLine(product_id=catalog["gadget"], quantity=12),),
            payments=(Payment("Cash", D("324.00")),),
        )
    )
    codes = [w.code for w in res.warnings]
    assert codes == ["OUT_OF_STOCK", "NEGATIVE_STOCK"]
    assert stock_of(conn, catalog["gadget"]) == -2


def test_settings_are_read_from_the_store_when_not_given(conn, clock, catalog):
    SettingsRepo(conn).save(Settings(tax_enabled=True, tax_rate=D("8")))
    ledger = SalesLedger(conn, clock=clock)
    sale = _sell(ledger, (catalog["widget"], 2), pay="21.60")
    assert sale.tax == D("1.60")
    assert sale.salesperson_id is None


def test_commands_dispatch(ledger, conn, catalog):
    res = ledger.execute(
        ProcessSale(
            SaleCandidate(
                lines=(CartLine(product_id=catalog["widget"], quantity=1),),
                payments=(Payment("Cash", D("10.80")),),
            )
        )
    )
    ret = ledger.execute(Refund(res.sale.sale_id))
    assert ret.original.status == "Refunded"
    adj = ledger.execute(AdjustStock(catalog["gadget"], -1, "Damaged"))
    assert adj.stock == 9
    deleted = ledger.execute(DeleteSale(res.sale.sale_id))
    assert deleted.deleted_return_count == 1

    with pytest.raises(ValidationError):
        ProcessSale(SaleCandidate(lines=()))
    with pytest.raises(ValidationError):
        AdjustStock(catalog["gadget"], 0, "nothing")
    with pytest.raises(ValidationError):
        ledger.execute(object())


def test_refund_keeps_the_sale_precision_after_integer_currency_is_enabled(
    conn, clock, current_user, catalog
):
    """A 10.50 sale refunded after switching to whole-unit currency still refunds 10.50."""
    before = SalesLedger(conn, Settings(), current_user, clock=clock)
    sale = before.process_sale(
        SaleCandidate(
            lines=(CartLine(catalog["widget"], 1, unit_retail_price=D("10.50")),),
            payments=(Payment("Cash", D("10.50")),),
        )
    ).sale
    assert sale.integer_currency is False

    after = SalesLedger(conn, Settings(integer_currency=True), current_user, clock=clock)
    res = after.refund(sale.sale_id)
    assert res.sale.total == D("-10.50")
    assert res.sale.payments == (Payment("Cash", D("-10.50")),)
    assert sale.total + res.sale.total == 0
    assert res.original.status == "Refunded"
    assert after.sales.get(sale.sale_id).integer_currency is False


def test_sale_remembers_integer_currency(conn, clock, catalog):
    ledger = SalesLedger(conn, Settings(integer_currency=True), clock=clock)
    sale = _sell(ledger, (catalog["widget"], 1), pay="10")
    assert sale.integer_currency is True
    assert ledger.sales.get(sale.sale_id).integer_currency is True


@pytest.mark.parametrize(
    "overrides, line_price",
    [
        ({"discount": D("1")}, None),
        ({"tax": D("0")}, None),
        ({}, D("5.00")),
    ],
)
def test_return_candidate_rejects_price_overrides(ledger, conn, catalog, overrides, line_price):
    sale = _sell(ledger, (catalog["widget"], 2), pay="21.60")
    returns_before = count(conn, "sales")
    with pytest.raises(ValidationError):
        ledger.process_sale(
            SaleCandidate(
                lines=(CartLine(catalog["widget"], -1, unit_retail_price=line_price),),
                type="Return",
                original_sale_id=sale.sale_id,
                **overrides,
            )
        )
    assert count(conn, "sales") == returns_before
    assert stock_of(conn, catalog["widget"]) == 18
    assert ledger.sales.get(sale.sale_id).status == "Completed"


def test_commands_reject_non_numeric_quantities(catalog):
    with pytest.raises(ValidationError):
        PruneSales("abc")
    with pytest.raises(ValidationError):
        ReceiveStock(catalog["widget"], "x")
    with pytest.raises(ValidationError):
        AdjustStock(catalog["widget"], "x", "Recount")
    assert ReceiveStock(catalog["widget"], "3").quantity == "3"
