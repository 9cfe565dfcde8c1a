import pytest
from conftest import open_transaction, order_payload


@pytest.fixture
def paid_order(client, seeded):
    order = client.post("/api/orders", json=order_payload()).json()
    open_transaction(order, "REF123")
    client.post("/api/paystack/verify", json={"reference": "REF123", "orderId": order["id"]})
    return client.get(f"/api/orders/{order['id']}").json()


BUSINESS_FIELDS = [
    "orderNumber", "customerName", "customerEmail", "customerPhone", "shippingAddress", "items",
    "shippingMethod", "shippingCost", "subtotal", "total", "paymentStatus", "paymentReference",
]


def test_status_update_changes_only_status(client, paid_order, admin_headers):
    response = client.put(f"/api/orders/{paid_order['id']}", json={"status": "shipped"}, headers=admin_headers)

    assert response.status_code == 200
    updated = response.json()
    assert updated["status"] == "shipped"
    for field in BUSINESS_FIELDS:
        assert updated[field] == paid_order[field]


def test_fulfillment_path_to_delivered(client, paid_order, admin_headers):
    url = f"/api/orders/{paid_order['id']}"

    assert client.put(url, json={"status": "shipped"}, headers=admin_headers).json()["status"] == "shipped"
    delivered = client.put(url, json={"status": "delivered"}, headers=admin_headers).json()

    assert delivered["status"] == "delivered"
    assert delivered["paymentStatus"] == "completed"


@pytest.mark.parametrize("current,target", [
    ("processing", "delivered"),
    ("processing", "pending"),
])
def test_illegal_transition_is_refused(client, paid_order, admin_headers, current, target):
    assert paid_order["status"] == current

    response = client.put(f"/api/orders/{paid_order['id']}", json={"status": target}, headers=admin_headers)

    assert response.status_code == 409
    assert client.get(f"/api/orders/{paid_order['id']}").json()["status"] == current


def test_terminal_states_need_override(client, paid_order, admin_headers):
    url = f"/api/orders/{paid_order['id']}"
    client.put(url, json={"status": "cancelled"}, headers=admin_headers)

    refused = client.put(url, json={"status": "processing"}, headers=admin_headers)
    forced = client.put(url, json={"status": "processing", "override": True}, headers=admin_headers)

    assert refused.status_code == 409
    assert forced.status_code == 200
    assert forced.json()["status"] == "processing"


def test_pending_order_can_be_cancelled(client, seeded, admin_headers):
    order = client.post("/api/orders", json=order_payload()).json()

    response = client.put(f"/api/orders/{order['id']}", json={"status": "cancelled"}, headers=admin_headers)

    assert response.json()["status"] == "cancelled"
    assert response.json()["paymentStatus"] == "pending"


def test_same_status_is_a_no_op(client, paid_order, admin_headers):
    response = client.put(f"/api/orders/{paid_order['id']}", json={"status": "processing"}, headers=admin_headers)

    assert response.status_code == 200


def test_unknown_status_value_is_rejected(client, paid_order, admin_headers):
    response = client.put(f"/api/orders/{paid_order['id']}", json={"status": "lost"}, headers=admin_headers)

    assert response.status_code == 422


def test_status_update_requires_admin(client, paid_order):
    response = client.put(f"/api/orders/{paid_order['id']}", json={"status": "shipped"})

    assert response.status_code == 401
    assert client.get(f"/api/orders/{paid_order['id']}").json()["status"] == "processing"


def test_status_update_unknown_order(client, seeded, admin_headers):
    response = client.put("/api/orders/nope", json={"status": "shipped"}, headers=admin_headers)

    assert response.status_code == 404


def test_admin_gate_closed_without_configured_key(client, paid_order, monkeypatch):
    from storefront_orders.config import settings

    monkeypatch.setattr(settings, "ADMIN_API_KEY", None)

    response = client.put(f"/api/orders/{paid_order['id']}", json={"status": "shipped"}, headers={"X-Admin-Key": ""})

    assert response.status_code == 401
