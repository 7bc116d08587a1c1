"""
Intent Resolution for Inbound Chat Messages
===========================================

Decides what an inbound WhatsApp message means, given the customer's open
orders at the pharmacy, and carries it out.

Priority Order:
---------------
The first matching branch wins:

1. ATTACH_PRESCRIPTION - message has media and an order is awaiting_rx.
   Stores the prescription and fires RX_UPLOADED.
2. REUSE_ADDRESS - an affirmation ("yes", "same address") while the customer
   has a saved address and an order (confirmed / payment_confirmed /
   ready_for_pickup) has no delivery address yet. Copies the saved address.
3. NEW_ADDRESS - the text looks like a postal address and such an order
   exists. Stores it on the order and as the customer's last-used address.
4. PAYMENT_ACK - "paid" / "done" while an order is awaiting_payment.
   Acknowledges only: the pharmacist confirms payment from the dashboard.
5. APPEND_TO_ORDER - any other open order. The message is attributed to it.
6. NEW_ORDER - items are extracted and a pending order is created.

``classify`` is a pure decision over a ``ConversationState`` snapshot;
``IntentResolver.resolve`` performs the action. Status changes go through
``OrderLifecycle``; this module never writes ``Order.status``.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from .. import config
from ..models import Message, Order, Prescription
from ..parsers import (
    format_items_for_display,
    is_affirmation,
    is_payment_ack,
    looks_like_address,
    parse_order_message,
)
from ..state_machine import EventType, OrderEvent, OrderStatus
from . import notifications as templates
from . import orders as order_repo
from .conversation import ConversationState
from .lifecycle import OrderLifecycle

logger = logging.getLogger(__name__)


class Intent(str, Enum):
    ATTACH_PRESCRIPTION = "attach_prescription"
    REUSE_ADDRESS = "reuse_address"
    NEW_ADDRESS = "new_address"
    PAYMENT_ACK = "payment_ack"
    APPEND_TO_ORDER = "append_to_order"
    NEW_ORDER = "new_order"


@dataclass(frozen=True)
class InboundMessage:
    """One inbound chat message as delivered by the transport webhook."""
    sender: str
    recipient: str
    body: str = ""
    transport_message_id: Optional[str] = None
    num_media: int = 0
    media_url: Optional[str] = None
    media_type: Optional[str] = None
    profile_name: Optional[str] = None

    @property
    def has_media(self) -> bool:
        return self.num_media > 0 and bool(self.media_url)


@dataclass(frozen=True)
class IntentDecision:
    intent: Intent
    order: Optional[Order] = None


def classify(message: InboundMessage, state: ConversationState) -> IntentDecision:
    body = message.body or ""

    if message.has_media:
        order = state.awaiting_rx_order()
        if order is not None:
            return IntentDecision(Intent.ATTACH_PRESCRIPTION, order)

    address_order = state.order_needing_address()

    if address_order is not None and state.last_known_address and is_affirmation(body):
        return IntentDecision(Intent.REUSE_ADDRESS, address_order)

    if address_order is not None and looks_like_address(body, config.MIN_ADDRESS_LENGTH):
        return IntentDecision(Intent.NEW_ADDRESS, address_order)

    if is_payment_ack(body):
        order = state.awaiting_payment_order()
        if order is not None:
            return IntentDecision(Intent.PAYMENT_ACK, order)

    order = state.latest_open_order()
    if order is not None:
        return IntentDecision(Intent.APPEND_TO_ORDER, order)

    return IntentDecision(Intent.NEW_ORDER)


class IntentResolver:
    """
    Usage:
        resolver = IntentResolver(db)
        decision, reply = resolver.resolve(message, state, inbound_record)
    """

    def __init__(self, db: Session, lifecycle: Optional[OrderLifecycle] = None):
        self.db = db
        self.lifecycle = lifecycle or OrderLifecycle(db)
        self._handlers = {
            Intent.ATTACH_PRESCRIPTION: self._attach_prescription,
            Intent.REUSE_ADDRESS: self._reuse_address,
            Intent.NEW_ADDRESS: self._save_new_address,
            Intent.PAYMENT_ACK: self._acknowledge_payment,
            Intent.APPEND_TO_ORDER: self._append_to_order,
            Intent.NEW_ORDER: self._create_order,
        }

    def resolve(self, message: InboundMessage, state: ConversationState, inbound: Message):
        """Classify, act, attribute the inbound message and return (decision, reply)."""
        decision = classify(message, state)
        logger.info("Inbound message %s classified as %s", message.transport_message_id, decision.intent.value)

        order, reply = self._handlers[decision.intent](message, state, decision.order)

        inbound.order_id = order.id
        self.db.commit()
        return decision, reply

    # -------------------------------------------------------------------------
    # Branch handlers: each returns (order, reply)
    # -------------------------------------------------------------------------

    def _attach_prescription(self, message, state, order):
        self.db.add(Prescription(
            order_id=order.id,
            customer_id=state.customer.id,
            media_url=message.media_url,
            media_type=message.media_type,
        ))
        # committed together with the transition
        self.lifecycle.transition(
            order.id,
            OrderEvent(EventType.RX_UPLOADED),
            actor=None,
            notify=False,
            expected_status=OrderStatus.AWAITING_RX,
        )
        return order, templates.rx_received(order.order_number)

    def _reuse_address(self, message, state, order):
        address = state.last_known_address
        order.delivery_address = address
        self.db.commit()
        logger.info("Order %s: saved address reused", order.order_number)
        return order, templates.address_reused(order.order_number, address)

    def _save_new_address(self, message, state, order):
        address = message.body.strip()
        order.delivery_address = address
        state.customer.address = address
        self.db.commit()
        logger.info("Order %s: delivery address saved", order.order_number)
        return order, templates.address_saved(order.order_number)

    def _acknowledge_payment(self, message, state, order):
        # No transition: the pharmacist verifies and confirms the payment
        logger.info("Order %s: customer reported payment", order.order_number)
        return order, templates.payment_acknowledged(order.order_number)

    def _append_to_order(self, message, state, order):
        return order, templates.message_received(order.order_number)

    def _create_order(self, message, state, order):
        extraction = parse_order_message(message.body)
        order = order_repo.create_order(
            self.db,
            pharmacy_id=state.pharmacy.id,
            customer_id=state.customer.id,
            raw_message=message.body,
            extraction=extraction,
        )
        reply = templates.order_received(
            order.order_number,
            format_items_for_display(extraction.items),
            extraction.requires_rx,
            customer_name=message.profile_name or state.customer.name,
        )
        return order, reply
