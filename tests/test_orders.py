import pytest

from canteen.errors import NotFoundError


def test_list_orders_newest_first(portal, make_menu, clock):
    menu = make_menu()
    first = portal.engine.place_order(menu["menu_id"], "student-1", 1)
    clock.advance(minutes=1)
    second = portal.engine.place_order(menu["menu_id"], "student-2", 1)
    portal.engine.reject_order(first["order_id"])

    assert [o["order_id"] for o in portal.ledger.list_orders()] == [second["order_id"], first["order_id"]]
    assert [o["order_id"] for o in portal.ledger.list_orders(status="rejected")] == [first["order_id"]]
    assert portal.ledger.list_orders(menu_id="other") == []


def test_orders_for_user_carry_menu(portal, make_menu):
    menu = make_menu()
    portal.engine.place_order(menu["menu_id"], "student-1", 2)
    portal.engine.place_order(menu["menu_id"], "student-2", 1)

    [mine] = portal.ledger.orders_for_user("student-1")
    assert mine["menu"]["title"] == "Veg Thali"
    assert mine["quantity"] == 2


def test_orders_of_deleted_menu_keep_their_menu(portal, make_menu):
    menu = make_menu()
    portal.engine.place_order(menu["menu_id"], "student-1", 2)
    portal.menus.delete_menu(menu["menu_id"])

    [mine] = portal.ledger.orders_for_user("student-1")
    assert mine["status"] == "rejected"
    assert mine["menu"]["deleted_at"]


def test_order_for_user_menu_skips_tombstones(portal, make_menu):
    menu = make_menu()
    withdrawn = portal.engine.place_order(menu["menu_id"], "student-1", 1)
    portal.ledger.withdraw_order(withdrawn["order_id"], "student-1")
    assert portal.ledger.order_for_user_menu("student-1", menu["menu_id"]) is None

    live = portal.engine.place_order(menu["menu_id"], "student-1", 1)
    assert portal.ledger.order_for_user_menu("student-1", menu["menu_id"])["order_id"] == live["order_id"]


def test_orders_with_profiles(portal, make_menu):
    menu = make_menu()
    portal.profiles.sync("student-1", name="Asha", email="asha@uni.test")
    portal.engine.place_order(menu["menu_id"], "student-1", 1)
    portal.engine.place_order(menu["menu_id"], "student-2", 1)

    listed = {o["user_id"]: o for o in portal.ledger.orders_with_profiles()}
    assert listed["student-1"]["profile"]["email"] == "asha@uni.test"
    assert listed["student-2"]["profile"] is None


def test_profile_sync_writes_on_change(portal, clock):
    created = portal.profiles.sync("student-1", name="Asha", email="asha@uni.test")
    clock.advance(hours=1)

    assert portal.profiles.sync("student-1", name="Asha", email="asha@uni.test") == created
    # blank headers keep what is stored
    assert portal.profiles.sync("student-1") == created

    renamed = portal.profiles.sync("student-1", name="Asha K")
    assert renamed["email"] == "asha@uni.test"
    assert renamed["created_at"] == created["created_at"]
    assert renamed["updated_at"] > created["updated_at"]


def test_unknown_profile(portal):
    with pytest.raises(NotFoundError):
        portal.profiles.get_profile("nobody")
