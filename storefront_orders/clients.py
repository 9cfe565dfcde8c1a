"""
This module provides communication clients for the external systems used by the order workflow:
- Payment gateway (Paystack REST API): transaction initialization and verification
- Mail service (Resend REST API): transactional order emails
Each class encapsulates its protocol logic, error handling, and connection management.
"""

import logging
from typing import Optional
from urllib.parse import quote

import httpx
from pydantic import BaseModel

log = logging.getLogger(__name__)


class GatewayTransaction(BaseModel):
    """
    Outcome of a verification call, as reported by the gateway.

    Attributes:
        reference (str): The reference the gateway resolved.
        status (str): Gateway transaction status ('success', 'failed', 'abandoned', ...).
        amount (int): Amount paid in the smallest currency unit (kobo).
        currency (str): ISO currency code.
        metadata (dict): Metadata attached at initialization (carries orderId).
    """
    reference: str
    status: str
    amount: int = 0
    currency: str = ""
    metadata: dict = {}

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


# --- Payment Gateway Client (REST) ---
class PaystackClient:
    """
    Client for the Paystack transaction API.
    Authenticates with the secret key on every request.
    """
    def __init__(self, secret_key: str, base_url: str, http_client: Optional[httpx.Client] = None):
        """
        Args:
            secret_key (str): Gateway secret key (sk_...).
            base_url (str): API root, e.g. https://api.paystack.co.
            http_client (httpx.Client | None): Preconfigured client; when given, the
                caller owns it and `close()` leaves it open.
        """
        self.secret_key = secret_key
        self._owns_client = http_client is None
        if http_client is None:
            timeout_config = httpx.Timeout(5.0, read=10.0)
            http_client = httpx.Client(base_url=base_url, timeout=timeout_config)
        self.client = http_client

    def close(self):
        if self._owns_client:
            self.client.close()

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.secret_key}"}

    def verify_transaction(self, reference: str) -> GatewayTransaction:
        """
        Asks the gateway for the final state of a transaction.
        Args:
            reference (str): Gateway payment reference from the checkout callback.
        Returns:
            GatewayTransaction: Status and amount reported for that reference.
        Raises:
            httpx.HTTPStatusError: Gateway answered 4xx/5xx (unknown reference, bad key).
            httpx.RequestError: Gateway unreachable or timed out.
            ValueError: Response body is not the expected JSON document.
        """
        try:
            response = self.client.get(
                f"/transaction/verify/{quote(reference, safe='')}",
                headers=self._headers(),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            log.warning(f"[Payment: {reference}] Gateway rejected verification (HTTP {e.response.status_code}).")
            raise
        except httpx.RequestError as e:
            log.error(f"[Payment: {reference}] Gateway unreachable during verification: {e!r}")
            raise

        body = response.json()
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected verification payload for {reference}: {body!r}")

        metadata = data.get("metadata") or {}
        if not isinstance(metadata, dict):
            metadata = {}

        return GatewayTransaction(
            reference=str(data.get("reference") or ""),
            status=str(data.get("status") or ""),
            amount=int(data.get("amount") or 0),
            currency=str(data.get("currency") or ""),
            metadata=metadata,
        )

    def initialize_transaction(self, email: str, amount: int, currency: str,
                               metadata: Optional[dict] = None, callback_url: Optional[str] = None) -> dict:
        """
        Opens a gateway transaction for the checkout page to complete.
        Args:
            email (str): Customer email the gateway sends its receipt to.
            amount (int): Amount in the smallest currency unit.
            currency (str): ISO currency code (e.g. 'NGN').
            metadata (dict | None): Echoed back by the gateway on verification.
            callback_url (str | None): Where the gateway redirects after payment.
        Returns:
            dict: `authorization_url`, `access_code` and `reference` from the gateway.
        Raises:
            httpx.HTTPStatusError / httpx.RequestError: As for verify_transaction.
        """
        payload = {"email": email, "amount": amount, "currency": currency}
        if metadata:
            payload["metadata"] = metadata
        if callback_url:
            payload["callback_url"] = callback_url

        try:
            response = self.client.post("/transaction/initialize", json=payload, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPError as e:
            log.error(f"Gateway transaction initialization failed for {email}: {e!r}")
            raise
        return response.json()["data"]


# --- Mail Client (REST) ---
class ResendClient:
    """
    Client for the Resend email API.
    """
    def __init__(self, api_key: str, base_url: str, http_client: Optional[httpx.Client] = None):
        self.api_key = api_key
        self._owns_client = http_client is None
        if http_client is None:
            http_client = httpx.Client(base_url=base_url, timeout=httpx.Timeout(5.0, read=10.0))
        self.client = http_client

    def close(self):
        if self._owns_client:
            self.client.close()

    def send_email(self, sender: str, to: str, subject: str, html: str) -> str:
        """
        Sends one HTML email.
        Returns:
            str: Message id assigned by the mail service.
        Raises:
            httpx.HTTPStatusError: Mail service refused the message (e.g. 422 invalid recipient).
            httpx.RequestError: Mail service unreachable.
            ValueError: Reply body is not JSON.
        """
        payload = {"from": sender, "to": [to], "subject": subject, "html": html}
        response = self.client.post(
            "/emails",
            json=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        response.raise_for_status()
        return response.json().get("id", "")
