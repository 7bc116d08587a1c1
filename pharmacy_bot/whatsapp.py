"""
WhatsApp messaging via Twilio.

Sends real messages via Twilio when configured, falls back to logging in mock
mode. Every outbound message is recorded in the ``messages`` table so the
dashboard can show the full conversation and Twilio status callbacks can be
matched back to it.

Environment variables (see config.py):
- TWILIO_ACCOUNT_SID: Twilio Account SID (starts with AC)
- TWILIO_AUTH_TOKEN: Twilio Auth Token
- TWILIO_WHATSAPP_NUMBER: WhatsApp-enabled sender number (e.g., +14155238886)
"""

import logging
import uuid
from typing import Optional

import phonenumbers
from sqlalchemy.orm import Session

from . import config
from .models import Message

logger = logging.getLogger(__name__)

WHATSAPP_PREFIX = "whatsapp:"


def is_twilio_configured() -> bool:
    """Check if Twilio is properly configured."""
    return all([config.TWILIO_ACCOUNT_SID, config.TWILIO_AUTH_TOKEN, config.TWILIO_WHATSAPP_NUMBER])


def normalize_phone_number(phone: str, region: Optional[str] = None) -> str:
    """
    Normalize a phone number to E.164.

    Examples (region "IN"):
        "98765 43210" -> "+919876543210"
        "whatsapp:+919876543210" -> "+919876543210"
        "+1 732 555 0101" -> "+17325550101"
    """
    raw = from_whatsapp_address(phone or "")
    try:
        parsed = phonenumbers.parse(raw, region or config.DEFAULT_PHONE_REGION)
        return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)
    except phonenumbers.NumberParseException:
        digits = "".join(c for c in raw if c.isdigit())
        return "+" + digits if digits else raw


def to_whatsapp_address(phone: str) -> str:
    return f"{WHATSAPP_PREFIX}{normalize_phone_number(phone)}"


def from_whatsapp_address(address: str) -> str:
    address = (address or "").strip()
    if address.lower().startswith(WHATSAPP_PREFIX):
        return address[len(WHATSAPP_PREFIX):]
    return address


def send_whatsapp(to: str, body: str, media_url: Optional[str] = None) -> dict:
    """
    Send one WhatsApp message.

    Never raises; failures come back as ``{"status": "error", ...}``.

    Returns:
        dict with status, sid (Twilio MessageSid or a MOCK- id) and mock flag
    """
    recipient = normalize_phone_number(to)

    if not is_twilio_configured():
        sid = f"MOCK-{uuid.uuid4().hex[:24]}"
        logger.info("MOCK WhatsApp message %s: %s", sid, body)
        logger.debug("MOCK WhatsApp recipient: %s", recipient)
        return {"status": "sent", "sid": sid, "to": recipient, "mock": True}

    try:
        from twilio.rest import Client

        client = Client(config.TWILIO_ACCOUNT_SID, config.TWILIO_AUTH_TOKEN)

        kwargs = {
            "body": body,
            "from_": to_whatsapp_address(config.TWILIO_WHATSAPP_NUMBER),
            "to": to_whatsapp_address(recipient),
            "status_callback": config.get_status_callback_url(),
        }
        if media_url:
            kwargs["media_url"] = [media_url]

        message = client.messages.create(**kwargs)

        logger.info("WhatsApp message sent (SID: %s)", message.sid)
        return {"status": "sent", "sid": message.sid, "to": recipient, "mock": False}

    except Exception as e:
        logger.error("Failed to send WhatsApp message: %s", str(e))
        return {"status": "error", "sid": None, "to": recipient, "mock": False, "error": str(e)}


def send_whatsapp_message(
    db: Session,
    to: str,
    body: str,
    order_id: Optional[int] = None,
    customer_id: Optional[int] = None,
    pharmacy_id: Optional[int] = None,
    media_url: Optional[str] = None,
) -> dict:
    """
    Send a message and record it in the outbound message log.

    Commits the session; call only after the caller's own writes are committed.
    """
    result = send_whatsapp(to, body, media_url=media_url)

    db.add(Message(
        order_id=order_id,
        customer_id=customer_id,
        pharmacy_id=pharmacy_id,
        direction="outbound",
        transport_message_id=result.get("sid"),
        from_number=config.TWILIO_WHATSAPP_NUMBER,
        to_number=result.get("to"),
        body=body,
        media_url=media_url,
        delivery_status="sent" if result["status"] == "sent" else "failed",
    ))
    db.commit()
    return result
