"""
Webhook Routes for Pharmacy Bot
===============================

Inbound callbacks from the chat transport (Twilio WhatsApp) and the courier.

Endpoints:
----------
- POST /webhooks/twilio/incoming: Customer message; replies with TwiML
- POST /webhooks/twilio/status: Outbound message delivery status
- POST /webhooks/courier: Courier order status change

Twilio Signatures:
------------------
When TWILIO_VALIDATE_SIGNATURE is on (the default in production) every Twilio
request must carry a valid ``X-Twilio-Signature`` computed over
``BASE_URL + path`` and the form parameters. Missing or invalid signatures
get 403.

Courier Callbacks:
------------------
When COURIER_CALLBACK_SECRET is set, the raw body must be signed with
HMAC-SHA256 in the ``X-DV-Signature`` header. A correctly signed callback is
always acknowledged with ``{"ok": true}``, including unknown orders and
unrecognized statuses, so the courier does not keep retrying.

Rate Limiting:
--------------
The incoming message webhook is limited per sender (RATE_LIMIT_WEBHOOK,
default "60 per minute").
"""

import hashlib
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form, HTTPException, Request, Response
from pydantic import ValidationError
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session
from twilio.request_validator import RequestValidator
from twilio.twiml.messaging_response import MessagingResponse

from .. import config
from ..config import RATE_LIMIT_ENABLED, get_rate_limit_webhook
from ..db import get_db
from ..message_processor import MessageProcessor, record_delivery_status
from ..schemas.deliveries import CourierWebhookPayload
from ..services.delivery import DeliveryOrchestrator
from ..services.intents import InboundMessage


logger = logging.getLogger(__name__)

webhooks_router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


def get_sender_or_ip(request: Request) -> str:
    """Rate limit key: the WhatsApp sender when known, else the client IP."""
    sender = getattr(request.state, "sender", None)
    if sender:
        return f"sender:{sender}"
    return get_remote_address(request)


limiter = Limiter(key_func=get_sender_or_ip, enabled=RATE_LIMIT_ENABLED)


# =============================================================================
# Request Verification
# =============================================================================

async def verify_twilio_signature(request: Request) -> None:
    """
    Dependency that checks the Twilio request signature.

    Also records the sender on ``request.state`` for rate limiting.
    """
    form = await request.form()
    request.state.sender = form.get("From")

    if not config.TWILIO_VALIDATE_SIGNATURE:
        return

    signature = request.headers.get("X-Twilio-Signature")
    if not signature:
        logger.warning("Missing Twilio signature on %s", request.url.path)
        raise HTTPException(status_code=403, detail="Missing signature")

    url = f"{config.BASE_URL}{request.url.path}"
    if request.url.query:
        url = f"{url}?{request.url.query}"

    validator = RequestValidator(config.TWILIO_AUTH_TOKEN or "")
    if not validator.validate(url, dict(form), signature):
        logger.warning("Invalid Twilio signature on %s", request.url.path)
        raise HTTPException(status_code=403, detail="Invalid signature")


async def verify_courier_signature(request: Request) -> bytes:
    """Dependency that checks the courier HMAC signature and returns the raw body."""
    body = await request.body()
    if not config.COURIER_CALLBACK_SECRET:
        return body

    expected = hmac.new(
        config.COURIER_CALLBACK_SECRET.encode("utf-8"), body, hashlib.sha256,
    ).hexdigest()
    received = request.headers.get("X-DV-Signature", "")
    if not hmac.compare_digest(expected, received):
        logger.warning("Invalid courier callback signature")
        raise HTTPException(status_code=403, detail="Invalid signature")
    return body


def _twiml(reply: str) -> Response:
    response = MessagingResponse()
    response.message(reply)
    return Response(content=str(response), media_type="application/xml")


# =============================================================================
# Twilio Endpoints
# =============================================================================

@webhooks_router.post("/twilio/incoming", dependencies=[Depends(verify_twilio_signature)])
@limiter.limit(get_rate_limit_webhook)
def twilio_incoming(
    request: Request,
    From: str = Form(...),
    To: str = Form(...),
    MessageSid: str = Form(...),
    Body: str = Form(""),
    NumMedia: int = Form(0),
    MediaUrl0: Optional[str] = Form(None),
    MediaContentType0: Optional[str] = Form(None),
    ProfileName: Optional[str] = Form(None),
    db: Session = Depends(get_db),
) -> Response:
    """
    Handle one inbound WhatsApp message and reply synchronously.

    A retried delivery of the same MessageSid gets the original reply back.
    """
    message = InboundMessage(
        sender=From,
        recipient=To,
        body=Body or "",
        transport_message_id=MessageSid,
        num_media=NumMedia,
        media_url=MediaUrl0,
        media_type=MediaContentType0,
        profile_name=ProfileName,
    )
    result = MessageProcessor(db).process(message)
    if result.intent:
        logger.info("Message %s handled as %s (order=%s)", MessageSid, result.intent, result.order_id)
    return _twiml(result.reply)


@webhooks_router.post("/twilio/status", dependencies=[Depends(verify_twilio_signature)])
def twilio_status(
    MessageSid: str = Form(...),
    MessageStatus: str = Form(...),
    db: Session = Depends(get_db),
) -> Response:
    """Record the delivery status of an outbound message."""
    record_delivery_status(db, MessageSid, MessageStatus)
    return Response(status_code=204)


# =============================================================================
# Courier Endpoint
# =============================================================================

@webhooks_router.post("/courier")
def courier_callback(
    body: bytes = Depends(verify_courier_signature),
    db: Session = Depends(get_db),
) -> dict:
    """
    Apply a courier status change to the matching delivery.

    Always acknowledged once the signature has been accepted.
    """
    try:
        payload = CourierWebhookPayload.model_validate_json(body)
    except ValidationError as e:
        logger.warning("Malformed courier callback: %s", e.errors())
        return {"ok": True}

    logger.info("Courier callback for provider order %s: %s", payload.order_id, payload.new_status)
    courier = payload.courier.model_dump() if payload.courier else None

    try:
        DeliveryOrchestrator(db).apply_provider_status(str(payload.order_id), payload.new_status, courier)
    except Exception:
        logger.exception("Failed to apply courier callback for provider order %s", payload.order_id)
        db.rollback()

    return {"ok": True}
