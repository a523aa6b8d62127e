from decimal import Decimal
import re

import pytest

from conftest import count, stock_of
from pos_ledger.errors import NotFoundError, ValidationError
from pos_ledger.modules.sales.commands import DeleteHeldOrder, HoldOrder
from pos_ledger.modules.sales.models import CartLine, Payment

D = Decimal
HELD_ID = re.compile(r"^HLD-[23456789ABCDEFGHJKLMNPQRSTUVWXYZ]{4}$")


@pytest.fixture()
def cart(catalog):
    """Two widgets and a small shirt at a marked-down 18.00."""
    return (
        CartLine(catalog["widget"], 2),
        CartLine(catalog["shirt"], 1, catalog["shirt_s"], D("18.00")),
    )


def test_hold_order_touches_neither_stock_nor_sales(ledger, conn, catalog, cart):
    held = ledger.hold_order(cart, customer_id=catalog["alice"], note=" back at 3pm ")
    assert HELD_ID.match(held.public_id)
    assert held.lines == cart
    assert held.customer_id == catalog["alice"]
    assert held.salesperson_id == 7
    assert held.note == "back at 3pm"

    assert stock_of(conn, catalog["widget"]) == 20
    assert stock_of(conn, catalog["shirt"], catalog["shirt_s"]) == 4
    assert count(conn, "sales") == 0
    assert count(conn, "inventory_adjustments") == 0


def test_resume_a_held_order_at_checkout(ledger, conn, catalog, cart):
    held = ledger.hold_order(cart)
    res = ledger.process_sale(held.to_candidate((Payment("Card", D("41.04")),)))
    assert res.sale.total == D("41.04")
    assert stock_of(conn, catalog["widget"]) == 18

    ledger.delete_held_order(held.held_id)
    assert ledger.list_held_orders() == []
    assert count(conn, "held_order_lines") == 0


def test_list_held_orders_newest_first(ledger, catalog):
    first = ledger.hold_order((CartLine(catalog["widget"], 1),))
    second = ledger.hold_order((CartLine(catalog["gadget"], 1),))
    assert [h.held_id for h in ledger.list_held_orders()] == [second.held_id, first.held_id]


@pytest.mark.parametrize(
    "lines",
    [
        (),
        (CartLine(1, 0),),
        (CartLine(1, -2),),
    ],
)
def test_invalid_carts_are_not_held(ledger, conn, lines):
    with pytest.raises(ValidationError):
        ledger.hold_order(lines)
    assert count(conn, "held_orders") == 0


def test_hold_order_checks_catalog_and_customer(ledger, conn, catalog):
    with pytest.raises(ValidationError):
        ledger.hold_order((CartLine(catalog["shirt"], 1),))
    with pytest.raises(NotFoundError):
        ledger.hold_order((CartLine(9999, 1),))
    with pytest.raises(NotFoundError):
        ledger.hold_order((CartLine(catalog["widget"], 1),), customer_id=9999)
    assert count(conn, "held_orders") == 0


def test_delete_missing_held_order(ledger):
    with pytest.raises(NotFoundError):
        ledger.delete_held_order("nope")


def test_held_order_commands(ledger, catalog, cart):
    held = ledger.execute(HoldOrder(cart, note="phone order"))
    assert held.note == "phone order"
    ledger.execute(DeleteHeldOrder(held.held_id))
    assert ledger.list_held_orders() == []

    with pytest.raises(ValidationError):
        HoldOrder(())
    with pytest.raises(ValidationError):
        DeleteHeldOrder("")
