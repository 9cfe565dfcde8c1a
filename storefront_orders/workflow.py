"""
workflow.py — Core Orchestration Logic for the Order Lifecycle

This module coordinates the order from checkout to settlement:

Workflow Overview:
1. Create a pending order from a validated cart snapshot (no stock, no charge)
2. Open a gateway transaction for the order's total
3. On the gateway callback, verify the reference with the gateway
4. Settle: confirm payment, decrement stock, queue customer/admin emails
5. Admin status changes along the fulfillment transition table

Settlement (step 4) is gated by one conditional UPDATE on the payment status,
so replayed or concurrent callbacks decrement stock at most once.
"""

import logging
from typing import Dict, List, NamedTuple, Optional, Set

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import catalog, notifications, repository
from .config import settings
from .errors import (
    IllegalStatusTransition,
    InvalidOrderRequest,
    PaymentConfigurationError,
    PaymentNotAllowed,
    PaymentVerificationFailed,
    ShippingMethodNotFound,
)
from .models import NewOrderRequest, OrderStatus, PaymentStatus
from .tables import Order

log = logging.getLogger(__name__)

# Rounding slack when comparing client-computed money values
AMOUNT_TOLERANCE = 0.01

ALLOWED_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}


class ShippingQuote(NamedTuple):
    method_name: Optional[str]
    shipping_cost: float
    subtotal: float

    @property
    def total(self) -> float:
        return self.subtotal + self.shipping_cost


def to_minor_units(amount: float) -> int:
    """Converts a naira amount to kobo, the gateway's unit."""
    return int(round(amount * 100))


def resolve_shipping_cost(db: Session, method_id: str, items: List) -> ShippingQuote:
    """
    Looks up the selected shipping method's price. An empty cart ships for
    free whatever method is selected.

    Args:
        items (list): Cart items with `price` and `quantity`.

    Raises:
        ShippingMethodNotFound: The cart is not empty and the method does not exist.
    """
    if not items:
        return ShippingQuote(method_name=None, shipping_cost=0.0, subtotal=0.0)

    method = catalog.get_shipping_method(db, method_id)
    if method is None:
        raise ShippingMethodNotFound(method_id)

    subtotal = sum(item.price * item.quantity for item in items)
    return ShippingQuote(method_name=method.name, shipping_cost=method.price, subtotal=subtotal)


def create_order(db: Session, request: NewOrderRequest) -> Order:
    """
    Creates an order in (pending, pending) from a checkout payload.

    Stock is not touched and nothing is charged here; both happen only after
    the gateway confirms payment.

    Raises:
        InvalidOrderRequest: subtotal/total do not add up.
        OrderCreationError: The order could not be persisted. Not retried.
    """
    items_total = sum(item.price * item.quantity for item in request.items)
    if abs(items_total - request.subtotal) > AMOUNT_TOLERANCE:
        raise InvalidOrderRequest(
            f"Subtotal {request.subtotal} does not match line items ({items_total})"
        )
    if abs(request.subtotal + request.shippingCost - request.total) > AMOUNT_TOLERANCE:
        raise InvalidOrderRequest(
            f"Total {request.total} does not equal subtotal {request.subtotal} + shipping {request.shippingCost}"
        )

    order = repository.create_order(db, request)
    log.info(f"[Order: {order.id}] Created {order.order_number} for {order.customer_email}, total {order.total}.")
    return order


def initialize_payment(db: Session, gateway, order_id: str, callback_url: Optional[str] = None) -> dict:
    """
    Opens a gateway transaction for the order's total in kobo.

    Raises:
        PaymentConfigurationError: No gateway credential configured.
        OrderNotFound: Unknown order id.
        PaymentNotAllowed: The order is already paid.
        httpx.HTTPError: Gateway call failed.
    """
    if gateway is None:
        raise PaymentConfigurationError("Missing PAYSTACK_SECRET_KEY")

    order = repository.get_order(db, order_id)
    if order.payment_status == PaymentStatus.COMPLETED.value:
        raise PaymentNotAllowed(f"Order {order.order_number} is already paid")

    data = gateway.initialize_transaction(
        email=order.customer_email,
        amount=to_minor_units(order.total),
        currency=settings.CURRENCY,
        metadata={"orderId": order.id, "orderNumber": order.order_number},
        callback_url=callback_url,
    )
    log.info(f"[Order: {order.id}] Gateway transaction {data.get('reference')} opened.")
    return {
        "authorizationUrl": data.get("authorization_url"),
        "accessCode": data.get("access_code"),
        "reference": data.get("reference"),
    }


def _reject(db: Session, order: Order, reason: str, transport_error: bool = False):
    log_prefix = f"[Order: {order.id}]"
    if repository.mark_failed(db, order.id):
        log.warning(f"{log_prefix} Payment verification failed ({reason}). Order cancelled.")
    else:
        log.warning(f"{log_prefix} Payment verification failed ({reason}); order was no longer pending, left unchanged.")
    db.refresh(order)
    raise PaymentVerificationFailed(
        "Verification error" if transport_error else "Verification failed",
        transport_error=transport_error,
    )


def _decrement_stock(db: Session, order: Order):
    """Best effort: each item in its own savepoint, failures are logged and skipped."""
    log_prefix = f"[Order: {order.id}]"
    for item in order.items:
        if not item.product_id:
            continue
        try:
            with db.begin_nested():
                found = catalog.decrement_stock(db, item.product_id, item.quantity)
        except SQLAlchemyError as e:
            log.error(f"{log_prefix} Stock decrement for product {item.product_id} failed: {e!r}. Needs manual reconciliation.")
            continue
        if not found:
            log.warning(f"{log_prefix} Product {item.product_id} no longer in catalog, stock not decremented.")


def _queue_notifications(db: Session, order: Order, customer_name: Optional[str] = None,
                         customer_email: Optional[str] = None):
    try:
        with db.begin_nested():
            admin_email = catalog.admin_notification_email(db)
            notifications.enqueue_order_notifications(
                db, order, admin_email, customer_name=customer_name, customer_email=customer_email,
            )
    except SQLAlchemyError as e:
        log.error(f"[Order: {order.id}] Could not queue order notifications: {e!r}")


def verify_payment(db: Session, gateway, mailer, reference: Optional[str], order_id: Optional[str],
                   customer_name: Optional[str] = None, customer_email: Optional[str] = None) -> Order:
    """
    Verifies a gateway callback and settles the order.

    Steps:
        1. Reject a missing reference or order id before anything else.
        2. Ask the gateway about the reference. Anything other than a
           successful transaction for that reference, opened for this
           order in the store currency and paying at least the order total,
           moves a pending order to (cancelled, failed).
        3. Conditionally set (processing, completed) and the reference.
        4. Only for the call that performed step 3: decrement stock per line
           item and queue the customer and admin emails, all in the same
           transaction as step 3.
        5. After commit, try to deliver the queued emails. Failures stay in
           the outbox for the retry worker.

    Returns:
        Order: The settled order (unchanged if it was already settled).

    Raises:
        InvalidOrderRequest: reference or order id missing.
        PaymentConfigurationError: No gateway credential configured.
        OrderNotFound: Unknown order id.
        PaymentVerificationFailed: Gateway did not confirm the payment.
    """
    if not reference or not order_id:
        raise InvalidOrderRequest("Missing reference or orderId")
    if gateway is None:
        raise PaymentConfigurationError("Missing PAYSTACK_SECRET_KEY")

    order = repository.get_order(db, order_id)
    log_prefix = f"[Order: {order.id}]"
    log.info(f"{log_prefix} Verifying payment reference {reference}...")

    try:
        transaction = gateway.verify_transaction(reference)
    except httpx.HTTPStatusError as e:
        _reject(db, order, f"gateway HTTP {e.response.status_code}")
    except httpx.RequestError as e:
        _reject(db, order, f"gateway unreachable: {e!r}", transport_error=True)
    except ValueError as e:
        _reject(db, order, f"unreadable gateway response: {e}")

    if not transaction.succeeded:
        _reject(db, order, f"gateway status '{transaction.status}'")
    if transaction.reference != reference:
        _reject(db, order, f"gateway answered for reference '{transaction.reference}'")

    paid_for = transaction.metadata.get("orderId")
    if paid_for != order.id:
        _reject(db, order, f"transaction belongs to order '{paid_for}'")
    if transaction.currency != settings.CURRENCY:
        _reject(db, order, f"currency mismatch: paid in '{transaction.currency}', expected {settings.CURRENCY}")

    expected = to_minor_units(order.total)
    if transaction.amount < expected:
        _reject(db, order, f"amount mismatch: paid {transaction.amount}, expected {expected}")

    if not repository.mark_paid(db, order.id, reference):
        db.rollback()
        db.refresh(order)
        log.info(f"{log_prefix} Already settled (reference {order.payment_reference}), nothing to do.")
        return order

    _decrement_stock(db, order)
    _queue_notifications(db, order, customer_name, customer_email)
    db.commit()
    db.refresh(order)
    log.info(f"{log_prefix} Payment {reference} confirmed, order {order.order_number} is processing.")

    try:
        notifications.dispatch_pending(db, mailer, order_id=order.id)
    except Exception as e:
        db.rollback()
        log.error(f"{log_prefix} Notification dispatch failed: {e!r}. Outbox worker will retry.")

    return order


def update_order_status(db: Session, order_id: str, status: OrderStatus, override: bool = False) -> Order:
    """
    Changes an order's fulfillment status. Payment status and all other
    fields are left as they are.

    Raises:
        OrderNotFound: Unknown order id.
        IllegalStatusTransition: Not in ALLOWED_TRANSITIONS and `override` not set.
    """
    order = repository.get_order(db, order_id)
    current = OrderStatus(order.status)

    if status != current and status not in ALLOWED_TRANSITIONS[current]:
        if not override:
            raise IllegalStatusTransition(current.value, status.value)
        log.warning(f"[Order: {order.id}] Admin override: {current.value} -> {status.value}.")

    order = repository.set_status(db, order, status)
    log.info(f"[Order: {order.id}] Status set to {order.status}.")
    return order
