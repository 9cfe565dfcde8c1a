"""
mock_resend.py — Mock Implementation of the Resend Email API

Accepts the order emails the service sends and keeps them in memory so they
can be inspected. Recipients containing "bounce" are refused with 422 to
exercise the notification retry path.

Endpoints:
    POST /emails — Accepts one email.
    GET  /emails — Lists accepted emails.

Port:
    Default: 8003 (HTTP)
"""

from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel, Field
from typing import List, Optional
import logging
import uuid

app = FastAPI(title="Mock Resend")
logging.basicConfig(level=logging.INFO)

SENT = []


class Email(BaseModel):
    sender: str = Field(..., alias="from")
    to: List[str]
    subject: str
    html: str


@app.post("/emails")
def send(email: Email, authorization: Optional[str] = Header(default=None)):
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail={"name": "missing_api_key"})

    if any("bounce" in recipient for recipient in email.to):
        logging.warning(f"[RESEND] Refusing mail to {email.to}.")
        raise HTTPException(status_code=422, detail={"name": "validation_error", "message": "Invalid `to` field."})

    message_id = str(uuid.uuid4())
    SENT.append({"id": message_id, "from": email.sender, "to": email.to, "subject": email.subject, "html": email.html})
    logging.info(f"[RESEND] Mail '{email.subject}' to {email.to} accepted ({message_id}).")
    return {"id": message_id}


@app.get("/emails")
def list_sent():
    return {"data": SENT}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8003)
