from decimal import Decimal

import pytest

from conftest import count, stock_of
from pos_ledger.database.repositories.inventory_repo import StockLedger
from pos_ledger.errors import NotFoundError, ValidationError
from pos_ledger.modules.sales.models import CartLine, DeletionResult, Payment, SaleCandidate

D = Decimal


def _sell(ledger, product_id, qty, pay):
    return ledger.process_sale(
        SaleCandidate(
            lines=(CartLine(product_id=product_id, quantity=qty),),
            payments=(Payment("Cash", D(pay)),),
        )
    ).sale


def test_deletion_leaves_stock_untouched(ledger, conn, catalog):
    """Stock went 20 -> 15 on the sale and stays 15 after the sale is deleted."""
    sale = _sell(ledger, catalog["widget"], 5, "54.00")
    assert stock_of(conn, catalog["widget"]) == 15

    result = ledger.delete_sale(sale.sale_id)
    assert result == DeletionResult(1, 0, 1)
    assert stock_of(conn, catalog["widget"]) == 15
    assert StockLedger(conn).list_adjustments(reference_id=sale.sale_id) == []
    assert count(conn, "sale_items") == 0
    assert count(conn, "sale_payments") == 0


def test_deleting_twice_is_not_found_and_never_touches_stock(ledger, conn, catalog):
    sale = _sell(ledger, catalog["widget"], 5, "54.00")
    ledger.delete_sale(sale.sale_id)
    with pytest.raises(NotFoundError):
        ledger.delete_sale(sale.sale_id)
    assert stock_of(conn, catalog["widget"]) == 15


def test_cascade_removes_returns_and_their_history(ledger, conn, catalog):
    sale = _sell(ledger, catalog["widget"], 3, "32.40")
    ledger.refund(sale.sale_id, {sale.items[0].line_id: 1})
    ledger.refund(sale.sale_id, {sale.items[0].line_id: 1})
    manual = ledger.adjust_stock(catalog["widget"], 4, "Cycle count")
    assert stock_of(conn, catalog["widget"]) == 23

    result = ledger.delete_sale(sale.sale_id)
    assert result == DeletionResult(1, 2, 3)
    assert count(conn, "sales") == 0
    assert stock_of(conn, catalog["widget"]) == 23
    remaining = StockLedger(conn).list_adjustments(product_id=catalog["widget"])
    assert remaining == [manual.adjustment]


def test_deleting_a_return_directly_is_rejected(ledger, conn, catalog):
    sale = _sell(ledger, catalog["widget"], 2, "21.60")
    ret = ledger.refund(sale.sale_id).sale
    with pytest.raises(ValidationError):
        ledger.delete_sale(ret.sale_id)
    assert count(conn, "sales") == 2


def test_clear_sales_by_status(ledger, conn, catalog):
    kept = _sell(ledger, catalog["widget"], 1, "10.80")
    refunded = _sell(ledger, catalog["gadget"], 1, "27.00")
    ledger.refund(refunded.sale_id)

    result = ledger.clear_sales(["refunded"])
    assert result == DeletionResult(1, 1, 2)
    assert ledger.sales.get(kept.sale_id) is not None
    assert ledger.sales.get(refunded.sale_id) is None

    with pytest.raises(ValidationError):
        ledger.clear_sales(["Void"])

    everything = ledger.clear_sales()
    assert everything.deleted_sale_count == 1
    assert count(conn, "sales") == 0
    assert stock_of(conn, catalog["widget"]) == 19
    assert stock_of(conn, catalog["gadget"]) == 10


def test_prune_sales_older_than_cutoff(ledger, clock, conn, catalog):
    clock.set("2025-01-10T09:00:00")
    old = _sell(ledger, catalog["widget"], 1, "10.80")
    clock.set("2025-03-01T09:00:00")
    recent = _sell(ledger, catalog["widget"], 1, "10.80")

    result = ledger.prune_sales(30, ["Completed"], today="2025-03-05")
    assert result.deleted_sale_count == 1
    assert ledger.sales.get(old.sale_id) is None
    assert ledger.sales.get(recent.sale_id) is not None

    with pytest.raises(ValidationError):
        ledger.prune_sales(0)


def test_prune_sales_defaults_today_to_the_ledger_clock(ledger, clock, conn, catalog):
    clock.set("2025-01-10T09:00:00")
    old = _sell(ledger, catalog["widget"], 1, "10.80")
    clock.set("2025-03-01T09:00:00")
    recent = _sell(ledger, catalog["widget"], 1, "10.80")

    # clock now reads 2025-03-01, so the cutoff is 2025-01-30
    result = ledger.prune_sales(30)
    assert result.deleted_sale_count == 1
    assert ledger.sales.get(old.sale_id) is None
    assert ledger.sales.get(recent.sale_id) is not None
