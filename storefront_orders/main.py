"""
main.py — FastAPI Entry Point for the Storefront Order Service

REST interface between the storefront (checkout page, admin console) and the
order workflow.

Responsibilities:
    • Create orders from checkout payloads and serve them back
    • Open and verify gateway payments, settling orders on success
    • Admin-gated order listing and status updates
    • Shipping method lookup and shipping quotes
    • Start the notification outbox worker
"""

import secrets
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from . import catalog, notifications, repository, workflow
from .clients import PaystackClient, ResendClient
from .config import settings
from .database import get_db, init_db
from .errors import (
    IllegalStatusTransition,
    InvalidOrderRequest,
    OrderCreationError,
    OrderNotFound,
    PaymentConfigurationError,
    PaymentNotAllowed,
    PaymentVerificationFailed,
    ShippingMethodNotFound,
)
from .logging_config import get_logger, setup_logging
from .models import (
    InitializePaymentRequest,
    NewOrderRequest,
    ShippingQuoteRequest,
    StatusUpdateRequest,
    VerifyPaymentRequest,
    order_to_dict,
    shipping_method_to_dict,
)

# Initialization
setup_logging()
log = get_logger(__name__)


def build_mailer() -> Optional[ResendClient]:
    if not settings.RESEND_API_KEY:
        return None
    return ResendClient(settings.RESEND_API_KEY, settings.RESEND_BASE_URL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info("Order service starting...")
    init_db()
    if settings.NOTIFICATION_RETRY_INTERVAL > 0:
        notifications.start(settings.NOTIFICATION_RETRY_INTERVAL, build_mailer)
    yield
    notifications.stop()
    log.info("Order service stopped.")


app = FastAPI(title="Storefront Order Service", lifespan=lifespan)


# Dependencies
def get_payment_gateway():
    if not settings.PAYSTACK_SECRET_KEY:
        yield None
        return
    gateway = PaystackClient(settings.PAYSTACK_SECRET_KEY, settings.PAYSTACK_BASE_URL)
    try:
        yield gateway
    finally:
        gateway.close()


def get_mailer():
    mailer = build_mailer()
    try:
        yield mailer
    finally:
        if mailer is not None:
            mailer.close()


def require_admin(x_admin_key: Optional[str] = Header(default=None, alias="X-Admin-Key")):
    expected = settings.ADMIN_API_KEY
    if not expected or not x_admin_key or not secrets.compare_digest(x_admin_key, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")
    return True


# Error mapping for the order endpoints
@app.exception_handler(OrderNotFound)
async def _order_not_found(request: Request, exc: OrderNotFound):
    return JSONResponse(status_code=404, content={"error": "Order not found"})


@app.exception_handler(InvalidOrderRequest)
async def _invalid_order(request: Request, exc: InvalidOrderRequest):
    return JSONResponse(status_code=422, content={"error": str(exc)})


@app.exception_handler(OrderCreationError)
async def _creation_failed(request: Request, exc: OrderCreationError):
    return JSONResponse(status_code=500, content={"error": "Failed to create order"})


@app.exception_handler(IllegalStatusTransition)
async def _illegal_transition(request: Request, exc: IllegalStatusTransition):
    return JSONResponse(status_code=409, content={"error": str(exc)})


@app.exception_handler(ShippingMethodNotFound)
async def _shipping_not_found(request: Request, exc: ShippingMethodNotFound):
    return JSONResponse(status_code=404, content={"error": "Shipping method not found"})


# Orders
@app.post("/api/orders", status_code=201)
def create_order(payload: NewOrderRequest, db: Session = Depends(get_db)):
    """
    Creates a pending order from the checkout payload.

    Returns:
        dict: The stored order including `id` and `orderNumber`.
    """
    order = workflow.create_order(db, payload)
    return order_to_dict(order)


@app.get("/api/orders")
def list_orders(
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=100),
        db: Session = Depends(get_db),
        _=Depends(require_admin),
):
    orders, total = repository.list_orders(db, page, limit)
    return {
        "orders": [order_to_dict(o) for o in orders],
        "total": total,
        "pages": (total + limit - 1) // limit,
        "currentPage": page,
    }


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, db: Session = Depends(get_db)):
    return order_to_dict(repository.get_order(db, order_id))


@app.put("/api/orders/{order_id}")
def update_order(
        order_id: str,
        payload: StatusUpdateRequest,
        db: Session = Depends(get_db),
        _=Depends(require_admin),
):
    """
    Admin status change. Transitions outside the fulfillment table are
    refused with 409 unless `override` is set.
    """
    order = workflow.update_order_status(db, order_id, payload.status, override=payload.override)
    return order_to_dict(order)


# Payments
@app.post("/api/paystack/initialize")
def initialize_payment(
        payload: InitializePaymentRequest,
        db: Session = Depends(get_db),
        gateway=Depends(get_payment_gateway),
):
    try:
        return workflow.initialize_payment(db, gateway, payload.orderId, payload.callbackUrl)
    except PaymentConfigurationError as e:
        raise HTTPException(status_code=500, detail=str(e))
    except PaymentNotAllowed as e:
        raise HTTPException(status_code=409, detail=str(e))
    except httpx.HTTPError:
        raise HTTPException(status_code=502, detail="Payment gateway unavailable")


@app.post("/api/paystack/verify")
def verify_payment(
        payload: VerifyPaymentRequest,
        db: Session = Depends(get_db),
        gateway=Depends(get_payment_gateway),
        mailer=Depends(get_mailer),
):
    """
    Gateway callback relayed by the checkout page.

    Returns:
        {success: true, order} once the order is settled, otherwise
        {success: false, message} with 400 (missing input, rejected payment),
        404 (unknown order), 500 (no gateway credential) or 502 (gateway
        unreachable).
    """
    try:
        order = workflow.verify_payment(
            db, gateway, mailer, payload.reference, payload.orderId,
            customer_name=payload.customerName, customer_email=payload.customerEmail,
        )
    except InvalidOrderRequest as e:
        return JSONResponse(status_code=400, content={"success": False, "message": str(e)})
    except PaymentConfigurationError as e:
        log.critical(f"Payment verification refused: {e}")
        return JSONResponse(status_code=500, content={"success": False, "message": str(e)})
    except OrderNotFound:
        return JSONResponse(status_code=404, content={"success": False, "message": "Order not found"})
    except PaymentVerificationFailed as e:
        status_code = 502 if e.transport_error else 400
        return JSONResponse(status_code=status_code, content={"success": False, "message": str(e)})
    except Exception as e:
        log.critical(f"[Order: {payload.orderId}] Unexpected verification error: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"success": False, "message": "Verification error"})

    return {"success": True, "order": order_to_dict(order)}


# Shipping
@app.get("/api/shipping-methods")
def list_shipping_methods(db: Session = Depends(get_db)):
    return [shipping_method_to_dict(m) for m in catalog.list_shipping_methods(db)]


@app.post("/api/shipping/quote")
def shipping_quote(payload: ShippingQuoteRequest, db: Session = Depends(get_db)):
    quote = workflow.resolve_shipping_cost(db, payload.shippingMethodId, payload.items)
    return {
        "shippingMethod": quote.method_name,
        "shippingCost": quote.shipping_cost,
        "subtotal": quote.subtotal,
        "total": quote.total,
    }


# Health Check Endpoint
@app.get("/health")
def health_check():
    return {"status": "ok"}
