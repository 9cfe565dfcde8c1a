"""
models.py — API Data Models for the Order Workflow

Pydantic models for the JSON payloads exchanged with the storefront. Field
names follow the storefront's camelCase wire format.

Models:
    - OrderStatus / PaymentStatus: the two independent status enums.
    - OrderItemIn: one line item snapshot in a creation request.
    - NewOrderRequest: checkout payload that creates a pending order.
    - VerifyPaymentRequest: gateway callback forwarded by the checkout page.
    - InitializePaymentRequest: opens a gateway transaction for an order.
    - StatusUpdateRequest: admin status change.
    - CartItem / ShippingQuoteRequest: cart snapshot for shipping resolution.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class OrderItemIn(BaseModel):
    """
    A single line item as captured from the cart at checkout.

    Attributes:
        productId (str | None): Catalog product id. Optional, the reference is weak.
        productName (str): Product name snapshot.
        quantity (int): Units ordered. Must be greater than zero.
        price (float): Unit price snapshot.
    """
    productId: Optional[str] = None
    productName: str
    quantity: int = Field(..., gt=0)
    price: float = Field(..., ge=0)


class NewOrderRequest(BaseModel):
    """
    Checkout payload. Creates an order in (pending, pending).

    Contact fields are free text and are not checked against address formats.
    """
    customerName: str
    customerEmail: str
    customerPhone: str = ""
    shippingAddress: str
    items: List[OrderItemIn] = Field(..., min_length=1)
    shippingMethod: str = ""
    shippingCost: float = Field(0, ge=0)
    subtotal: float = Field(..., ge=0)
    total: float = Field(..., ge=0)


class VerifyPaymentRequest(BaseModel):
    # reference and orderId are checked by the workflow so that a missing
    # value gets the storefront's {success: false, message} shape
    reference: Optional[str] = None
    orderId: Optional[str] = None
    customerEmail: Optional[str] = None
    customerName: Optional[str] = None


class InitializePaymentRequest(BaseModel):
    orderId: str
    callbackUrl: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    """
    Admin status change.

    Attributes:
        status (OrderStatus): New fulfillment status.
        override (bool): Skip the transition table and overwrite unconditionally.
    """
    status: OrderStatus
    override: bool = False


class CartItem(BaseModel):
    productId: Optional[str] = None
    name: str = ""
    price: float = Field(..., ge=0)
    quantity: int = Field(..., gt=0)


class ShippingQuoteRequest(BaseModel):
    shippingMethodId: str
    items: List[CartItem] = []


def order_to_dict(order) -> dict:
    """Serializes an ORM order into the storefront's JSON shape."""
    return {
        "id": order.id,
        "orderNumber": order.order_number,
        "customerName": order.customer_name,
        "customerEmail": order.customer_email,
        "customerPhone": order.customer_phone,
        "shippingAddress": order.shipping_address,
        "items": [
            {
                "productId": item.product_id,
                "productName": item.product_name,
                "quantity": item.quantity,
                "price": item.price,
            }
            for item in order.items
        ],
        "shippingMethod": order.shipping_method,
        "shippingCost": order.shipping_cost,
        "subtotal": order.subtotal,
        "total": order.total,
        "status": order.status,
        "paymentStatus": order.payment_status,
        "paymentReference": order.payment_reference,
        "createdAt": order.created_at.isoformat() if order.created_at else None,
        "updatedAt": order.updated_at.isoformat() if order.updated_at else None,
    }


def shipping_method_to_dict(method) -> dict:
    return {
        "id": method.id,
        "name": method.name,
        "price": method.price,
        "description": method.description,
        "estimatedDays": method.estimated_days,
    }
