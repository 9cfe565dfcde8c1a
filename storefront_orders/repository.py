"""
Persistence for orders.

Besides plain create/fetch/list, this module owns the two conditional
payment-status updates used by settlement. Each is one UPDATE statement, so
two concurrent callbacks for the same order cannot both observe the order as
unpaid.
"""

import logging
import threading
import time
from typing import List, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import OrderCreationError, OrderNotFound
from .models import NewOrderRequest, OrderStatus, PaymentStatus
from .tables import Order, OrderItem

log = logging.getLogger(__name__)


class OrderNumberGenerator:
    """
    Issues human-readable order numbers of the form `MH-<epoch millis>`.

    Within one process the numbers strictly increase even when several orders
    are created in the same millisecond. Collisions across processes are
    caught by the unique constraint on orders.order_number.
    """

    def __init__(self, prefix="MH", clock=time.time):
        self.prefix = prefix
        self.clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> str:
        with self._lock:
            millis = int(self.clock() * 1000)
            if millis <= self._last:
                millis = self._last + 1
            self._last = millis
            return f"{self.prefix}-{millis}"


order_numbers = OrderNumberGenerator()


def create_order(db: Session, request: NewOrderRequest) -> Order:
    order = Order(
        order_number=order_numbers.next(),
        customer_name=request.customerName,
        customer_email=request.customerEmail,
        customer_phone=request.customerPhone,
        shipping_address=request.shippingAddress,
        shipping_method=request.shippingMethod,
        shipping_cost=request.shippingCost,
        subtotal=request.subtotal,
        total=request.total,
        status=OrderStatus.PENDING.value,
        payment_status=PaymentStatus.PENDING.value,
        items=[
            OrderItem(
                position=position,
                product_id=item.productId,
                product_name=item.productName,
                quantity=item.quantity,
                price=item.price,
            )
            for position, item in enumerate(request.items)
        ],
    )
    try:
        db.add(order)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log.error(f"Persisting order {order.order_number} failed: {e}")
        raise OrderCreationError("Failed to create order") from e
    db.refresh(order)
    return order


def get_order(db: Session, order_id: str) -> Order:
    order = db.get(Order, order_id)
    if order is None:
        raise OrderNotFound(order_id)
    return order


def list_orders(db: Session, page: int = 1, limit: int = 10) -> Tuple[List[Order], int]:
    total = db.scalar(select(func.count()).select_from(Order))
    orders = db.scalars(
        select(Order)
        .order_by(Order.created_at.desc(), Order.order_number.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(orders), total


def mark_paid(db: Session, order_id: str, reference: str) -> bool:
    """
    Moves an order to (processing, completed) and stamps the reference, but
    only if its payment is not completed yet. Does not commit.

    Returns:
        bool: True for the single caller that performed the transition.
    """
    result = db.execute(
        update(Order)
        .where(Order.id == order_id, Order.payment_status != PaymentStatus.COMPLETED.value)
        .values(
            status=OrderStatus.PROCESSING.value,
            payment_status=PaymentStatus.COMPLETED.value,
            payment_reference=reference,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def mark_failed(db: Session, order_id: str) -> bool:
    """Moves a still-pending order to (cancelled, failed) and commits."""
    result = db.execute(
        update(Order)
        .where(Order.id == order_id, Order.payment_status == PaymentStatus.PENDING.value)
        .values(status=OrderStatus.CANCELLED.value, payment_status=PaymentStatus.FAILED.value)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def set_status(db: Session, order: Order, status: OrderStatus) -> Order:
    order.status = status.value
    db.commit()
    db.refresh(order)
    return order
