"""
mock_paystack.py — Mock Implementation of the Paystack Transaction API

This module provides a simulated payment gateway for local runs and tests of
the order workflow. It exposes a small FastAPI application that mimics the two
gateway calls the service makes.

Simulation Scenarios (by reference prefix):
    • ref_decline_*    → transaction status 'failed'
    • ref_abandoned_*  → transaction status 'abandoned'
    • ref_timeout_*    → slow answer (client read timeout)
    • any other known reference → status 'success' for the initialized amount
    • unknown reference → HTTP 400 "Transaction reference not found"

Endpoints:
    POST /transaction/initialize
    GET  /transaction/verify/{reference}

Port:
    Default: 8002 (HTTP)
"""

from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel
from typing import Optional
import logging
import time
import uuid

app = FastAPI(title="Mock Paystack")
logging.basicConfig(level=logging.INFO)

# reference -> initialized transaction
TRANSACTIONS = {}


class InitializeRequest(BaseModel):
    """
    Transaction initialization payload.

    Attributes:
        email (str): Customer email.
        amount (int): Amount in the smallest currency unit (kobo).
        currency (str): ISO 4217 currency code.
        reference (str | None): Caller-chosen reference; generated when absent.
        metadata (dict | None): Echoed back on verification.
    """
    email: str
    amount: int
    currency: str = "NGN"
    reference: Optional[str] = None
    metadata: Optional[dict] = None
    callback_url: Optional[str] = None


def _check_key(authorization: Optional[str]):
    if not authorization or not authorization.startswith("Bearer sk_"):
        raise HTTPException(status_code=401, detail={"status": False, "message": "Invalid key"})


@app.post("/transaction/initialize")
def initialize(request: InitializeRequest, authorization: Optional[str] = Header(default=None)):
    _check_key(authorization)
    reference = request.reference or f"ref_{uuid.uuid4().hex[:12]}"
    TRANSACTIONS[reference] = {
        "email": request.email,
        "amount": request.amount,
        "currency": request.currency,
        "metadata": request.metadata or {},
    }
    logging.info(f"[PAYSTACK] Transaction {reference} initialized for {request.email} ({request.amount}).")
    return {
        "status": True,
        "message": "Authorization URL created",
        "data": {
            "authorization_url": f"https://checkout.paystack.test/{reference}",
            "access_code": uuid.uuid4().hex[:16],
            "reference": reference,
        },
    }


@app.get("/transaction/verify/{reference}")
def verify(reference: str, authorization: Optional[str] = Header(default=None)):
    """
    Reports the final state of a transaction.

    Raises:
        HTTPException(401): Missing or non-secret key.
        HTTPException(400): Reference was never initialized.
    """
    _check_key(authorization)
    logging.info(f"[PAYSTACK] Verification request for {reference}")

    transaction = TRANSACTIONS.get(reference)
    if transaction is None:
        raise HTTPException(status_code=400, detail={"status": False, "message": "Transaction reference not found"})

    if reference.startswith("ref_timeout_"):
        logging.info(f"[PAYSTACK] Simulating slow verification for {reference}...")
        time.sleep(15)

    if reference.startswith("ref_decline_"):
        status = "failed"
    elif reference.startswith("ref_abandoned_"):
        status = "abandoned"
    else:
        status = "success"

    return {
        "status": True,
        "message": "Verification successful",
        "data": {
            "reference": reference,
            "status": status,
            "amount": transaction["amount"],
            "currency": transaction["currency"],
            "customer": {"email": transaction["email"]},
            "metadata": transaction["metadata"],
            "paid_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()) if status == "success" else None,
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8002)
