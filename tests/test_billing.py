from datetime import timedelta
from decimal import Decimal


def approve(portal, menu, user_id, quantity, approved_quantity=None):
    order = portal.engine.place_order(menu["menu_id"], user_id, quantity)
    return portal.engine.approve_order(order["order_id"], approved_quantity)


def test_live_bill_prices_holding_orders(portal, make_menu, clock):
    lunch = make_menu(price="42.50")
    dinner = make_menu(title="Biryani", meal_type="dinner", price=80,
                       menu_date=(clock.now + timedelta(days=2)).date())
    approve(portal, lunch, "student-1", 2)
    approve(portal, dinner, "student-1", 1)
    # pending and other students' orders do not count
    portal.engine.place_order(make_menu()["menu_id"], "student-1", 4)
    approve(portal, lunch, "student-2", 3)

    bill = portal.billing.live_bill("student-1")

    assert bill["total_quantity"] == 3
    assert bill["total_amount"] == Decimal("165.00")
    assert [line["menu"]["title"] for line in bill["lines"]] == ["Biryani", "Veg Thali"]
    assert bill["lines"][1]["amount"] == Decimal("85.00")


def test_live_bill_keeps_requested_cancellations(portal, make_menu):
    menu = make_menu(price=30)
    order = approve(portal, menu, "student-1", 2)
    portal.engine.request_cancellation(order["order_id"], user_id="student-1")

    assert portal.billing.live_bill("student-1")["total_amount"] == 60

    portal.engine.approve_cancellation(order["order_id"])
    assert portal.billing.live_bill("student-1")["lines"] == []


def test_live_bill_empty(portal):
    bill = portal.billing.live_bill("nobody")
    assert bill["lines"] == []
    assert bill["total_amount"] == 0
    assert bill["total_quantity"] == 0


def test_bill_history_uses_approved_quantity(portal, make_menu):
    menu = make_menu(price="12.5")
    approve(portal, menu, "student-1", 4, approved_quantity=3)

    history = portal.billing.bill_history("student-1")

    [bill] = history["bills"]
    assert bill["quantity"] == 3
    assert bill["unit_price"] == Decimal("12.5")
    assert bill["total_amount"] == Decimal("37.5")
    assert bill["menu"]["menu_id"] == menu["menu_id"]
    assert bill["refunded"] is False
    assert history["count"] == 1
    assert history["total_amount"] == Decimal("37.5")


def test_bill_history_flags_refunds(portal, make_menu, clock):
    first = make_menu(price=50)
    second = make_menu(title="Dosa", meal_type="breakfast", price=20)
    kept = approve(portal, first, "student-1", 1)
    clock.advance(minutes=1)
    refunded = approve(portal, second, "student-1", 2)
    portal.engine.request_cancellation(refunded["order_id"], user_id="student-1")
    portal.engine.approve_cancellation(refunded["order_id"])

    history = portal.billing.bill_history("student-1")

    assert [b["order_id"] for b in history["bills"]] == [refunded["order_id"], kept["order_id"]]
    assert [b["refunded"] for b in history["bills"]] == [True, False]
    assert history["count"] == 2
    assert history["total_amount"] == Decimal("50")


def test_bill_history_for_everyone(portal, make_menu):
    menu = make_menu(price=10)
    approve(portal, menu, "student-1", 1)
    approve(portal, menu, "student-2", 2)

    assert portal.billing.bill_history()["total_amount"] == Decimal("30")
    assert portal.billing.bill_history("student-2")["count"] == 1
