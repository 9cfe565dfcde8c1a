"""
Order emails through a transactional outbox.

Settlement writes the customer confirmation and the admin alert into
`notification_outbox` inside its own transaction. Delivery happens after
commit, inline and then from a background retry thread, so a mail outage
never affects the recorded payment.
"""

import html
import logging
import threading
from datetime import datetime, timezone
from typing import List, Optional

import httpx
from sqlalchemy import select
from sqlalchemy.orm import Session

from . import catalog
from .config import settings
from .database import SessionLocal
from .tables import Order, OutboxMessage

log = logging.getLogger(__name__)

KIND_CUSTOMER = "customer_confirmation"
KIND_ADMIN = "admin_alert"


def build_order_data(db: Session, order: Order, customer_name: Optional[str] = None,
                     customer_email: Optional[str] = None) -> dict:
    """
    Order snapshot for the templates, with one catalog image per item.
    `customer_name` and `customer_email` fill in when the stored order lacks them.
    """
    return {
        "orderId": order.id,
        "orderNumber": order.order_number,
        "customerName": order.customer_name or customer_name or "Customer",
        "customerEmail": order.customer_email or customer_email or "",
        "customerPhone": order.customer_phone,
        "items": [
            {
                "productName": item.product_name,
                "quantity": item.quantity,
                "price": item.price,
                "image": catalog.representative_image(db, item.product_id),
            }
            for item in order.items
        ],
        "subtotal": order.subtotal,
        "shippingCost": order.shipping_cost,
        "total": order.total,
        "shippingMethod": order.shipping_method or "",
        "shippingAddress": order.shipping_address or "",
    }


def _money(amount) -> str:
    return f"₦{amount:,.2f}"


def _items_html(items: List[dict]) -> str:
    rows = []
    for item in items:
        image = ""
        if item["image"]:
            image = f'<img src="{html.escape(item["image"])}" width="64" alt="" /> '
        rows.append(
            f"<li>{image}{html.escape(item['productName'])} x{item['quantity']}"
            f" - {_money(item['price'])}</li>"
        )
    return "<ul>" + "".join(rows) + "</ul>"


def _totals_html(data: dict) -> str:
    return (
        f"<p>Subtotal: {_money(data['subtotal'])}</p>"
        f"<p>Shipping ({html.escape(data['shippingMethod'])}): {_money(data['shippingCost'])}</p>"
        f"<p><strong>Total: {_money(data['total'])}</strong></p>"
    )


def render_customer_confirmation(data: dict):
    subject = f"Order Confirmation - {data['orderNumber']}"
    body = (
        f"<h2>Thank you for your order, {html.escape(data['customerName'])}!</h2>"
        f"<p>Order Number: {html.escape(data['orderNumber'])}</p>"
        "<h3>Order Summary:</h3>"
        f"{_items_html(data['items'])}"
        f"{_totals_html(data)}"
        f"<p>Shipping to: {html.escape(data['shippingAddress'])}</p>"
    )
    return subject, body


def render_admin_alert(data: dict):
    subject = f"New Order - {data['orderNumber']}"
    dashboard = f"{settings.APP_URL.rstrip('/')}/admin/dashboard"
    body = (
        "<h2>New Order Received</h2>"
        f"<p>Customer: {html.escape(data['customerName'])}</p>"
        f"<p>Email: {html.escape(data['customerEmail'])}</p>"
        f"<p>Phone: {html.escape(data['customerPhone'])}</p>"
        f"<p>Order Number: {html.escape(data['orderNumber'])}</p>"
        "<h3>Order Summary:</h3>"
        f"{_items_html(data['items'])}"
        f"{_totals_html(data)}"
        f"<p>Ship to: {html.escape(data['shippingAddress'])}</p>"
        f'<p><a href="{html.escape(dashboard)}">View Order in Dashboard</a></p>'
    )
    return subject, body


def enqueue_order_notifications(db: Session, order: Order, admin_email: str, customer_name: Optional[str] = None,
                                customer_email: Optional[str] = None) -> List[OutboxMessage]:
    """Adds the customer and admin messages to the session. Does not commit."""
    data = build_order_data(db, order, customer_name=customer_name, customer_email=customer_email)
    messages = []
    for kind, recipient, renderer in (
        (KIND_CUSTOMER, data["customerEmail"], render_customer_confirmation),
        (KIND_ADMIN, admin_email, render_admin_alert),
    ):
        if not recipient:
            log.warning(f"[Order: {order.id}] No recipient for {kind}, skipped.")
            continue
        subject, body = renderer(data)
        message = OutboxMessage(order_id=order.id, kind=kind, recipient=recipient, subject=subject, html=body)
        db.add(message)
        messages.append(message)
    return messages


def dispatch_pending(db: Session, mailer, order_id: Optional[str] = None,
                     max_attempts: Optional[int] = None) -> int:
    """
    Sends pending outbox messages, optionally only those of one order.

    Each message is committed individually. A failed send increments
    `attempts` and keeps the message pending until `max_attempts`, after which
    it is marked failed.

    Returns:
        int: Number of messages delivered in this pass.
    """
    if max_attempts is None:
        max_attempts = settings.NOTIFICATION_MAX_ATTEMPTS

    query = select(OutboxMessage).where(OutboxMessage.status == "pending").order_by(OutboxMessage.id)
    if order_id is not None:
        query = query.where(OutboxMessage.order_id == order_id)
    pending = list(db.scalars(query))
    if not pending:
        return 0

    if mailer is None:
        log.warning(f"RESEND_API_KEY not configured, {len(pending)} notification(s) left pending.")
        return 0

    sent = 0
    for message in pending:
        log_prefix = f"[Order: {message.order_id}]"
        try:
            mailer.send_email(settings.MAIL_FROM, message.recipient, message.subject, message.html)
        except (httpx.HTTPError, ValueError) as e:
            message.attempts += 1
            message.last_error = repr(e)
            if message.attempts >= max_attempts:
                message.status = "failed"
                log.critical(f"{log_prefix} {message.kind} to {message.recipient} gave up after {message.attempts} attempts: {e!r}")
            else:
                log.error(f"{log_prefix} {message.kind} to {message.recipient} failed (attempt {message.attempts}): {e!r}")
        else:
            message.attempts += 1
            message.status = "sent"
            message.sent_at = datetime.now(timezone.utc)
            message.last_error = None
            sent += 1
            log.info(f"{log_prefix} {message.kind} sent to {message.recipient}.")
        db.commit()
    return sent


# --- Outbox retry worker ---
_stop = threading.Event()
_thread = None


def _run(interval: int, mailer_factory):
    log.info("Notification outbox worker started.")
    while not _stop.wait(interval):
        mailer = mailer_factory()
        db = SessionLocal()
        try:
            dispatch_pending(db, mailer)
        except Exception as e:
            db.rollback()
            log.error(f"Notification outbox pass failed: {e!r}. Retrying in {interval}s.")
        finally:
            db.close()
            if mailer is not None:
                mailer.close()
    log.info("Notification outbox worker stopped.")


def start(interval: int, mailer_factory):
    """Starts the daemon thread that re-sends pending outbox messages."""
    global _thread
    if _thread and _thread.is_alive():
        return
    _stop.clear()
    _thread = threading.Thread(target=_run, args=(interval, mailer_factory), daemon=True)
    _thread.start()


def stop():
    _stop.set()
