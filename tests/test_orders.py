from conftest import order_payload, stock_of

from storefront_orders import repository
from storefront_orders.models import NewOrderRequest
from storefront_orders.repository import OrderNumberGenerator
from storefront_orders.tables import Product


def test_create_order_starts_pending_and_totals_add_up(client, seeded):
    response = client.post("/api/orders", json=order_payload())

    assert response.status_code == 201
    order = response.json()
    assert order["id"]
    assert order["orderNumber"].startswith("MH-")
    assert order["status"] == "pending"
    assert order["paymentStatus"] == "pending"
    assert order["paymentReference"] is None
    assert order["total"] == order["subtotal"] + order["shippingCost"] == 4500
    assert order["items"] == [{"productId": "P1", "productName": "Silk Wig", "quantity": 2, "price": 2000}]


def test_create_order_does_not_touch_stock(client, seeded, session_factory):
    client.post("/api/orders", json=order_payload())

    assert stock_of(session_factory, "P1") == 10


def test_order_numbers_are_unique(client, seeded):
    numbers = [client.post("/api/orders", json=order_payload()).json()["orderNumber"] for _ in range(5)]

    assert len(set(numbers)) == 5


def test_order_number_generator_is_monotonic_within_one_millisecond():
    generator = OrderNumberGenerator(clock=lambda: 1700000000.0)

    numbers = [generator.next() for _ in range(3)]

    assert numbers == ["MH-1700000000000", "MH-1700000000001", "MH-1700000000002"]


def test_line_items_are_snapshots(client, seeded, session_factory):
    order = client.post("/api/orders", json=order_payload()).json()
    with session_factory() as session:
        product = session.get(Product, "P1")
        product.price = 9999
        product.name = "Renamed Wig"
        session.commit()

    fetched = client.get(f"/api/orders/{order['id']}").json()
    assert fetched["items"][0]["price"] == 2000
    assert fetched["items"][0]["productName"] == "Silk Wig"


def test_item_without_product_reference_is_accepted(client):
    items = [{"productName": "Gift wrap", "price": 300, "quantity": 1}]
    response = client.post("/api/orders", json=order_payload(items=items, subtotal=300, total=800))

    assert response.status_code == 201
    assert response.json()["items"][0]["productId"] is None


def test_rejects_total_that_does_not_add_up(client):
    response = client.post("/api/orders", json=order_payload(total=4000))

    assert response.status_code == 422
    assert "Total" in response.json()["error"]


def test_rejects_subtotal_that_does_not_match_items(client):
    response = client.post("/api/orders", json=order_payload(subtotal=100, total=600))

    assert response.status_code == 422
    assert "Subtotal" in response.json()["error"]


def test_rejects_empty_cart_and_non_positive_quantity(client):
    assert client.post("/api/orders", json=order_payload(items=[], subtotal=0, total=500)).status_code == 422

    bad_item = [{"productId": "P1", "productName": "Silk Wig", "price": 2000, "quantity": 0}]
    assert client.post("/api/orders", json=order_payload(items=bad_item, subtotal=0, total=500)).status_code == 422


def test_order_number_collision_surfaces_as_creation_failure(client, seeded, monkeypatch):
    monkeypatch.setattr(repository.order_numbers, "next", lambda: "MH-1")

    assert client.post("/api/orders", json=order_payload()).status_code == 201
    response = client.post("/api/orders", json=order_payload())

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to create order"}


def test_get_order_and_not_found(client, seeded):
    order = client.post("/api/orders", json=order_payload()).json()

    assert client.get(f"/api/orders/{order['id']}").json()["orderNumber"] == order["orderNumber"]

    missing = client.get("/api/orders/does-not-exist")
    assert missing.status_code == 404
    assert missing.json() == {"error": "Order not found"}


def test_list_orders_requires_admin(client, seeded):
    client.post("/api/orders", json=order_payload())

    assert client.get("/api/orders").status_code == 401
    assert client.get("/api/orders", headers={"X-Admin-Key": "wrong"}).status_code == 401


def test_list_orders_paginates_newest_first(client, seeded, admin_headers):
    created = [client.post("/api/orders", json=order_payload()).json()["orderNumber"] for _ in range(3)]

    first = client.get("/api/orders?page=1&limit=2", headers=admin_headers).json()
    second = client.get("/api/orders?page=2&limit=2", headers=admin_headers).json()

    assert first["total"] == 3
    assert first["pages"] == 2
    assert first["currentPage"] == 1
    listed = [o["orderNumber"] for o in first["orders"] + second["orders"]]
    assert listed == list(reversed(created))


def test_repository_create_order_persists_items_in_cart_order(db):
    request = NewOrderRequest(**order_payload(
        items=[
            {"productId": "P2", "productName": "Lace Closure", "price": 1500, "quantity": 1},
            {"productId": "P1", "productName": "Silk Wig", "price": 2000, "quantity": 1},
        ],
        subtotal=3500,
        total=4000,
    ))

    order = repository.create_order(db, request)

    assert [item.product_id for item in order.items] == ["P2", "P1"]
