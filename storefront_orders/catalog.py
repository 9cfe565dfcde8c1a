"""
Read/decrement access to the catalog collaborator.

The order workflow only reads prices, images, shipping methods and the admin
notification address from here, and decrements stock after a confirmed
payment. Catalog CRUD lives elsewhere.
"""

import logging
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .config import DEFAULT_ADMIN_EMAIL, settings
from .tables import AdminSettings, Product, ShippingMethod

log = logging.getLogger(__name__)


def get_product(db: Session, product_id: str) -> Optional[Product]:
    return db.get(Product, product_id)


def decrement_stock(db: Session, product_id: str, quantity: int) -> bool:
    """
    Decrements a product's stock by abs(quantity) in a single UPDATE.

    Returns:
        bool: False when no product with that id exists.
    """
    result = db.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock - abs(quantity))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def representative_image(db: Session, product_id: Optional[str]) -> Optional[str]:
    if not product_id:
        return None
    product = db.get(Product, product_id)
    if product is None or not product.images:
        return None
    return product.images[0]


def list_shipping_methods(db: Session) -> List[ShippingMethod]:
    return list(db.scalars(select(ShippingMethod).order_by(ShippingMethod.created_at.desc())))


def get_shipping_method(db: Session, method_id: str) -> Optional[ShippingMethod]:
    return db.get(ShippingMethod, method_id)


def admin_notification_email(db: Session) -> str:
    """Persisted admin address, then ADMIN_EMAIL, then the built-in default."""
    stored = db.scalars(select(AdminSettings).order_by(AdminSettings.id).limit(1)).first()
    if stored is not None and stored.admin_email:
        return stored.admin_email
    return settings.ADMIN_EMAIL or DEFAULT_ADMIN_EMAIL
