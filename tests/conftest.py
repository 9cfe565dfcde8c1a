"""
Shared fixtures: an in-memory database, the mock gateway and mail service
mounted as httpx transports, and a TestClient wired to all three.
"""

import os

os.environ.setdefault("LOG_FILE", "")
os.environ.setdefault("NOTIFICATION_RETRY_INTERVAL", "0")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from mock_services import mock_paystack, mock_resend
from storefront_orders import main
from storefront_orders.clients import PaystackClient, ResendClient
from storefront_orders.config import settings
from storefront_orders.database import init_db, make_engine
from storefront_orders.tables import Product, ShippingMethod

ADMIN_KEY = "test-admin-key"


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://", poolclass=StaticPool)
    init_db(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def seeded(session_factory):
    """Catalog with one wig, one closure without images and the Lagos shipping method."""
    with session_factory() as session:
        session.add_all([
            Product(id="P1", name="Silk Wig", price=2000, stock=10, images=["https://cdn.test/silk-1.jpg", "https://cdn.test/silk-2.jpg"]),
            Product(id="P2", name="Lace Closure", price=1500, stock=5, images=[]),
            ShippingMethod(id="lagos", name="Lagos", price=500, description="Within Lagos", estimated_days=2),
            ShippingMethod(id="abuja", name="Abuja", price=1500, description="Abuja and environs", estimated_days=4),
        ])
        session.commit()


@pytest.fixture
def paystack():
    mock_paystack.TRANSACTIONS.clear()
    http = TestClient(mock_paystack.app, base_url="http://paystack.test")
    return PaystackClient("sk_test_secret", "http://paystack.test", http_client=http)


@pytest.fixture
def mailer():
    mock_resend.SENT.clear()
    http = TestClient(mock_resend.app, base_url="http://resend.test")
    return ResendClient("re_test_key", "http://resend.test", http_client=http)


@pytest.fixture
def client(session_factory, paystack, mailer, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_API_KEY", ADMIN_KEY)
    monkeypatch.setattr(settings, "ADMIN_EMAIL", None)

    def override_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    main.app.dependency_overrides[main.get_db] = override_db
    main.app.dependency_overrides[main.get_payment_gateway] = lambda: paystack
    main.app.dependency_overrides[main.get_mailer] = lambda: mailer
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return {"X-Admin-Key": ADMIN_KEY}


def order_payload(**overrides):
    """The checkout payload for two Silk Wigs shipped to Lagos."""
    payload = {
        "customerName": "Ada Obi",
        "customerEmail": "ada@example.com",
        "customerPhone": "+2348000000000",
        "shippingAddress": "12 Admiralty Way, Lekki, Lagos 105102",
        "items": [{"productId": "P1", "productName": "Silk Wig", "price": 2000, "quantity": 2}],
        "shippingMethod": "Lagos",
        "shippingCost": 500,
        "subtotal": 4000,
        "total": 4500,
    }
    payload.update(overrides)
    return payload


def open_transaction(order, reference, amount=None, currency="NGN", order_id=None):
    """
    Registers a gateway transaction for `order` as the checkout widget would,
    tagged with the order id. `order_id` tags it for a different order.
    """
    http = TestClient(mock_paystack.app, base_url="http://paystack.test")
    response = http.post(
        "/transaction/initialize",
        json={
            "email": order["customerEmail"],
            "amount": amount if amount is not None else round(order["total"] * 100),
            "currency": currency,
            "reference": reference,
            "metadata": {"orderId": order_id or order["id"], "orderNumber": order["orderNumber"]},
        },
        headers={"Authorization": "Bearer sk_test_secret"},
    )
    assert response.status_code == 200
    return reference


def stock_of(session_factory, product_id):
    with session_factory() as session:
        return session.get(Product, product_id).stock
