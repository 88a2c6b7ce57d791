import json

import pytest
from django.test import Client

from canteen import views

ADMIN = {"HTTP_X_USER_ID": "admin-1", "HTTP_X_USER_ROLE": "admin"}
STUDENT = {
    "HTTP_X_USER_ID": "student-1",
    "HTTP_X_USER_ROLE": "student",
    "HTTP_X_USER_NAME": "Asha",
    "HTTP_X_USER_EMAIL": "asha@uni.test",
}


@pytest.fixture
def api(portal, monkeypatch):
    monkeypatch.setattr(views, "get_portal", lambda: portal)
    return Client()


def post(api, url, data=None, headers=STUDENT):
    return api.post(url, data=json.dumps(data or {}), content_type="application/json", **headers)


def menu_payload(**overrides):
    data = {
        "title": "Veg Thali",
        "menu_date": "2026-10-18",
        "meal_type": "lunch",
        "order_deadline": "2026-10-17T10:00:00Z",
        "total_quantity": 10,
        "price": "50.00",
    }
    data.update(overrides)
    return data


def test_create_menu_as_admin(api):
    response = post(api, "/api/menus/", menu_payload(), headers=ADMIN)

    assert response.status_code == 201
    menu = response.json()["menu"]
    assert menu["remaining_quantity"] == 10
    assert menu["status"] == "open"
    assert menu["created_by"] == "admin-1"
    assert menu["order_deadline"] == "2026-10-17T10:00:00.000000Z"


def test_create_menu_needs_identity_and_role(api):
    assert post(api, "/api/menus/", menu_payload(), headers={}).status_code == 401
    assert post(api, "/api/menus/", menu_payload(), headers=STUDENT).status_code == 403


def test_create_menu_form_errors(api):
    response = post(api, "/api/menus/", menu_payload(meal_type="brunch", total_quantity=-2), headers=ADMIN)

    assert response.status_code == 400
    assert set(response.json()["fields"]) == {"meal_type", "total_quantity"}


def test_malformed_json(api):
    response = api.post("/api/menus/", data="{nope", content_type="application/json", **ADMIN)
    assert response.status_code == 400


def test_list_and_detail(api, make_menu):
    menu = make_menu()
    make_menu(title="Poha", meal_type="breakfast", status="closed")

    listed = api.get("/api/menus/").json()["menus"]
    assert len(listed) == 2
    available = api.get("/api/menus/?available=1").json()["menus"]
    assert [m["menu_id"] for m in available] == [menu["menu_id"]]
    assert api.get("/api/menus/?meal_type=breakfast").json()["menus"][0]["title"] == "Poha"

    assert api.get(f"/api/menus/{menu['menu_id']}/").json()["menu"]["title"] == "Veg Thali"
    assert api.get("/api/menus/unknown/").status_code == 404


def test_edit_menu_partial(api, make_menu):
    menu = make_menu()

    response = post(api, f"/api/menus/{menu['menu_id']}/edit/", {"total_quantity": 12}, headers=ADMIN)

    assert response.status_code == 200
    edited = response.json()["menu"]
    assert (edited["total_quantity"], edited["remaining_quantity"]) == (12, 12)
    assert edited["title"] == "Veg Thali"


def test_delete_menu(api, make_menu):
    menu = make_menu()

    assert post(api, f"/api/menus/{menu['menu_id']}/delete/", headers=STUDENT).status_code == 403
    assert post(api, f"/api/menus/{menu['menu_id']}/delete/", headers=ADMIN).status_code == 200
    assert api.get(f"/api/menus/{menu['menu_id']}/").status_code == 404


def test_place_order_syncs_profile(api, portal, make_menu):
    menu = make_menu()

    response = post(api, "/api/orders/", {"menu_id": menu["menu_id"], "quantity": 2})

    assert response.status_code == 201
    assert response.json()["order"]["status"] == "pending"
    assert portal.profiles.get_profile("student-1")["email"] == "asha@uni.test"


def test_duplicate_order_is_a_conflict(api, make_menu):
    menu = make_menu()
    post(api, "/api/orders/", {"menu_id": menu["menu_id"], "quantity": 1})

    response = post(api, "/api/orders/", {"menu_id": menu["menu_id"], "quantity": 1})

    assert response.status_code == 409
    assert response.json() == {"error": "You already have an order for this menu"}


def test_place_order_validation(api, make_menu):
    menu = make_menu()
    response = post(api, "/api/orders/", {"menu_id": menu["menu_id"], "quantity": 0})
    assert response.status_code == 400
    assert "quantity" in response.json()["fields"]


def test_order_listing_is_admin_only(api, make_menu):
    menu = make_menu()
    post(api, "/api/orders/", {"menu_id": menu["menu_id"], "quantity": 1})

    assert api.get("/api/orders/", **STUDENT).status_code == 403
    [order] = api.get("/api/orders/?status=pending", **ADMIN).json()["orders"]
    assert order["profile"]["name"] == "Asha"
    assert order["menu"]["menu_id"] == menu["menu_id"]


def test_approval_flow(api, make_menu):
    menu = make_menu(price=40)
    order = post(api, "/api/orders/", {"menu_id": menu["menu_id"], "quantity": 3}).json()["order"]

    assert post(api, f"/api/orders/{order['order_id']}/approve/", {"approved_quantity": 2}).status_code == 403
    response = post(api, f"/api/orders/{order['order_id']}/approve/", {"approved_quantity": 2}, headers=ADMIN)
    assert response.status_code == 200
    approved = response.json()["order"]
    assert approved["quantity"] == 2
    token = approved["token"]

    mine = api.get("/api/orders/mine/", **STUDENT).json()["orders"]
    assert mine[0]["token"] == token
    assert mine[0]["menu"]["remaining_quantity"] == 8

    bills = api.get("/api/bills/mine/", **STUDENT).json()
    assert bills["history"]["count"] == 1
    assert bills["live"]["total_quantity"] == 2

    looked_up = api.get(f"/api/tokens/{token.lower()}/", **ADMIN)
    assert looked_up.status_code == 200
    assert looked_up.json()["order"]["order_id"] == order["order_id"]

    assert post(api, f"/api/tokens/{token}/fulfil/", headers=ADMIN).json()["order"]["is_fulfilled"] is True
    assert post(api, f"/api/tokens/{token}/fulfil/", headers=ADMIN).status_code == 409


def test_bad_token_format(api):
    response = api.get("/api/tokens/abc/", **ADMIN)
    assert response.status_code == 400
    assert "token" in response.json()["fields"]


def test_cancellation_flow(api, make_menu):
    menu = make_menu()
    order = post(api, "/api/orders/", {"menu_id": menu["menu_id"], "quantity": 4}).json()["order"]
    post(api, f"/api/orders/{order['order_id']}/approve/", headers=ADMIN)

    other = dict(STUDENT, HTTP_X_USER_ID="student-2")
    assert post(api, f"/api/orders/{order['order_id']}/cancel/", headers=other).status_code == 404
    assert post(api, f"/api/orders/{order['order_id']}/cancel/").json()["order"]["status"] == "cancellation_requested"

    response = post(api, f"/api/orders/{order['order_id']}/cancellation/approve/", headers=ADMIN)
    assert response.json()["order"]["status"] == "cancelled"
    assert api.get(f"/api/menus/{menu['menu_id']}/").json()["menu"]["remaining_quantity"] == 10


def test_withdraw_and_reject(api, make_menu):
    menu = make_menu()
    first = post(api, "/api/orders/", {"menu_id": menu["menu_id"], "quantity": 1}).json()["order"]
    assert post(api, f"/api/orders/{first['order_id']}/withdraw/").json()["order"]["status"] == "withdrawn"

    second = post(api, "/api/orders/", {"menu_id": menu["menu_id"], "quantity": 1}).json()["order"]
    response = post(api, f"/api/orders/{second['order_id']}/reject/", headers=ADMIN)
    assert response.json()["order"]["status"] == "rejected"
    assert post(api, f"/api/orders/{second['order_id']}/reject/", headers=ADMIN).status_code == 409


def test_statistics_and_dashboard(api, make_menu):
    menu = make_menu()
    post(api, "/api/orders/", {"menu_id": menu["menu_id"], "quantity": 2})

    stats = api.get("/api/statistics/", **ADMIN).json()
    assert stats["totalOrders"] == 1
    assert stats["pendingCount"] == 1
    assert api.get("/api/dashboard/", **ADMIN).json()["pending_orders"] == 1
    assert api.get("/api/statistics/", **STUDENT).status_code == 403


def test_all_bills_admin_only(api):
    assert api.get("/api/bills/", **STUDENT).status_code == 403
    assert api.get("/api/bills/", **ADMIN).json()["count"] == 0


def test_wrong_method(api):
    assert api.get("/api/orders/x/approve/", **ADMIN).status_code == 405


def test_unexpected_errors_become_500(api, portal, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(portal.menus, "list_menus", broken)
    response = api.get("/api/menus/")

    assert response.status_code == 500
    assert "disk" not in response.json()["error"]


def test_release_tokens_is_admin_only(api):
    assert post(api, "/api/tokens/release/").status_code == 403
    response = post(api, "/api/tokens/release/", headers=ADMIN)
    assert response.status_code == 200
    assert response.json() == {"released": [], "count": 0}
