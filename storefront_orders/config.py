"""
Environment-driven settings for the storefront order service.

All values are read once at import time. Secrets have no default so that a
missing credential is detected where it is used (e.g. payment verification
fails closed without PAYSTACK_SECRET_KEY).
"""

from pydantic import BaseModel
from typing import Optional
import os


class Settings(BaseModel):
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./storefront.db")

    # Payment gateway (Paystack)
    PAYSTACK_SECRET_KEY: Optional[str] = os.getenv("PAYSTACK_SECRET_KEY") or None
    PAYSTACK_BASE_URL: str = os.getenv("PAYSTACK_BASE_URL", "https://api.paystack.co")
    CURRENCY: str = os.getenv("CURRENCY", "NGN")

    # Mail (Resend)
    RESEND_API_KEY: Optional[str] = os.getenv("RESEND_API_KEY") or None
    RESEND_BASE_URL: str = os.getenv("RESEND_BASE_URL", "https://api.resend.com")
    MAIL_FROM: str = os.getenv("MAIL_FROM", "orders@metahair.com")
    ADMIN_EMAIL: Optional[str] = os.getenv("ADMIN_EMAIL") or None
    APP_URL: str = os.getenv("APP_URL", "http://localhost:3000")

    # Admin gate
    ADMIN_API_KEY: Optional[str] = os.getenv("ADMIN_API_KEY") or None

    # Outbox retry loop
    NOTIFICATION_RETRY_INTERVAL: int = int(os.getenv("NOTIFICATION_RETRY_INTERVAL", "60"))
    NOTIFICATION_MAX_ATTEMPTS: int = int(os.getenv("NOTIFICATION_MAX_ATTEMPTS", "5"))

    LOG_FILE: str = os.getenv("LOG_FILE", "order_processing.log")


DEFAULT_ADMIN_EMAIL = "admin@metahair.com"

settings = Settings()
