"""
Processing of inbound WhatsApp messages.

This module provides a MessageProcessor class that handles the complete
lifecycle of one inbound message:
- Duplicate suppression for transport retries (same MessageSid)
- Pharmacy resolution from the recipient number
- Customer lookup / creation
- Audit logging of the inbound message
- Intent resolution under the per-conversation lock

The webhook route only converts the form payload into an ``InboundMessage``
and the reply into TwiML.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from .models import Message
from .services.conversation import conversation_lock, load_conversation
from .services.customers import find_or_create_customer, get_pharmacy_by_whatsapp_number
from .services.intents import InboundMessage, IntentResolver
from .services.notifications import PHARMACY_NOT_REGISTERED, PROCESSING_ERROR_REPLY
from .whatsapp import normalize_phone_number

logger = logging.getLogger(__name__)


@dataclass
class ProcessingResult:
    """Output from message processing."""
    reply: str
    order_id: Optional[int] = None
    intent: Optional[str] = None
    duplicate: bool = False
    error: bool = False


class MessageProcessor:
    """
    Usage:
        processor = MessageProcessor(db)
        result = processor.process(InboundMessage(
            sender="whatsapp:+919876543210",
            recipient="whatsapp:+919812345678",
            body="Paracetamol x10",
            transport_message_id="SM123",
        ))
    """

    def __init__(self, db: Session):
        self.db = db

    def process(self, message: InboundMessage) -> ProcessingResult:
        """
        Process a message and return the reply.

        Any unexpected error rolls back the session and yields the generic
        apology reply.
        """
        try:
            return self._process(message)
        except Exception:
            logger.exception("Failed to process inbound message %s", message.transport_message_id)
            self.db.rollback()
            return ProcessingResult(reply=PROCESSING_ERROR_REPLY, error=True)

    def _process(self, message: InboundMessage) -> ProcessingResult:
        customer_phone = normalize_phone_number(message.sender)
        logger.info(
            "Incoming message %s (media=%d)", message.transport_message_id, message.num_media,
        )
        logger.debug("Incoming message from %s to %s", customer_phone, message.recipient)

        pharmacy = get_pharmacy_by_whatsapp_number(self.db, message.recipient)
        if pharmacy is None:
            logger.warning("No active pharmacy for WhatsApp number %s", message.recipient)
            return ProcessingResult(reply=PHARMACY_NOT_REGISTERED)

        with conversation_lock(customer_phone, pharmacy.id):
            inbound = self._find_inbound(message.transport_message_id)
            if inbound is not None and inbound.reply_body:
                logger.info("Duplicate webhook for %s, replaying reply", message.transport_message_id)
                return ProcessingResult(
                    reply=inbound.reply_body, order_id=inbound.order_id, duplicate=True,
                )

            customer = find_or_create_customer(self.db, customer_phone, message.profile_name)

            if inbound is None:
                inbound = Message(
                    customer_id=customer.id,
                    pharmacy_id=pharmacy.id,
                    direction="inbound",
                    transport_message_id=message.transport_message_id,
                    from_number=customer_phone,
                    to_number=pharmacy.whatsapp_number,
                    body=message.body,
                    media_url=message.media_url,
                    media_type=message.media_type,
                    delivery_status="received",
                )
                self.db.add(inbound)
                self.db.commit()

            state = load_conversation(self.db, customer, pharmacy)
            decision, reply = IntentResolver(self.db).resolve(message, state, inbound)

            inbound.reply_body = reply
            self.db.commit()

            return ProcessingResult(
                reply=reply, order_id=inbound.order_id, intent=decision.intent.value,
            )

    def _find_inbound(self, transport_message_id: Optional[str]) -> Optional[Message]:
        if not transport_message_id:
            return None
        return (
            self.db.query(Message)
            .filter(
                Message.transport_message_id == transport_message_id,
                Message.direction == "inbound",
            )
            .first()
        )


def record_delivery_status(db: Session, transport_message_id: str, status: str) -> bool:
    """Apply a transport status callback to the message log. No order side effects."""
    message = (
        db.query(Message)
        .filter(Message.transport_message_id == transport_message_id)
        .first()
    )
    if message is None:
        logger.debug("Status callback for unknown message %s", transport_message_id)
        return False
    message.delivery_status = status
    db.commit()
    return True
