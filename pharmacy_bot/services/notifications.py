"""
Customer Notification Service
=============================

Maps order transitions and delivery updates to WhatsApp messages and sends
them after the triggering change is committed.

Templates:
----------
Plain functions returning message text. ``messages_for_transition`` picks the
templates for a target status; every ``OrderStatus`` has an entry in
``_TRANSITION_RENDERERS`` (some render nothing).

Sending:
--------
``NotificationDispatcher`` is fire-and-forget: a failed send is logged and
never raised to the caller, so it cannot undo a committed transition.

Idempotency:
------------
Automatic notifications carry a key (order id + target status + the history
row that produced it, or delivery id + delivery status). The key is claimed in
``notification_log`` before sending; a key that is already present is skipped.
A failed send releases its claim.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Callable, List, Mapping, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import whatsapp
from ..delivery_state import DeliveryStatus
from ..models import Delivery, NotificationLog, Order, Pharmacy
from ..state_machine import OrderStatus, PaymentMethod

logger = logging.getLogger(__name__)


class DeliveryOutcome(str, Enum):
    """What happened to courier booking when an order became ready."""
    BOOKED = "booked"
    PENDING = "pending"              # attempted or needed, not booked
    NOT_ATTEMPTED = "not_attempted"


@dataclass(frozen=True)
class OutboundNotification:
    kind: str
    body: str


# =============================================================================
# Message Templates
# =============================================================================

def _money(amount) -> str:
    return f"Rs. {Decimal(str(amount)):.2f}"


def order_received(order_number: str, items_display: str, requires_rx: bool,
                   customer_name: Optional[str] = None) -> str:
    greeting = f"Hi {customer_name}!" if customer_name else "Hi!"
    text = f"{greeting} We received your order.\n\n{items_display}\n\nOrder #{order_number}"
    if requires_rx:
        return text + "\n\n*Note:* Some items may require a prescription. We will confirm shortly."
    return text + "\n\nWe will review and confirm shortly."


def rx_required(order_number: str) -> str:
    return (
        f"Order #{order_number}: Some items require a prescription.\n\n"
        "Please reply with a photo of your valid prescription."
    )


def rx_received(order_number: str) -> str:
    return (
        f"Thank you! We received your prescription for Order #{order_number}.\n\n"
        "Our pharmacist will review it shortly."
    )


def order_confirmed(order_number: str, total, payment_method: PaymentMethod) -> str:
    if payment_method == PaymentMethod.UPI:
        payment_info = "Please complete the UPI payment (details below) to proceed."
    else:
        payment_info = "Payment will be collected on delivery."
    return f"Order #{order_number} is confirmed!\n\nTotal: {_money(total)}\n\n{payment_info}"


def payment_instructions(upi_id: str, total, order_number: str) -> str:
    return (
        f"Payment Details:\n\nUPI ID: {upi_id}\nAmount: {_money(total)}\nNote: {order_number}\n\n"
        "Please reply \"PAID\" once you've completed the payment."
    )


def payment_acknowledged(order_number: str) -> str:
    return (
        f"Thank you for your payment confirmation for Order #{order_number}.\n\n"
        "The pharmacist will verify and confirm shortly."
    )


def payment_received(order_number: str) -> str:
    return f"Payment confirmed for Order #{order_number}!\n\nWe're preparing your order now."


def order_ready(order_number: str) -> str:
    return (
        f"Order #{order_number} is ready!\n\n"
        "Please coordinate with the pharmacy for pickup or delivery."
    )


def order_ready_delivery_pending(order_number: str) -> str:
    return (
        f"Order #{order_number} is ready!\n\n"
        "We're arranging a delivery partner and will share tracking details shortly."
    )


def delivery_booked(order_number: str, tracking_url: Optional[str]) -> str:
    text = f"Order #{order_number} is ready and a delivery partner has been booked!"
    if tracking_url:
        text += f"\n\nTrack your delivery: {tracking_url}"
    return text


def courier_assigned(order_number: str, courier_name: str, courier_phone: Optional[str]) -> str:
    text = f"Order #{order_number}: {courier_name} is on the way to pick up your medicines."
    if courier_phone:
        text += f"\n\nCourier phone: {courier_phone}"
    return text


def order_delivered(order_number: str) -> str:
    return (
        f"Order #{order_number} has been delivered.\n\n"
        "Thank you for ordering with us! Get well soon."
    )


def order_under_review(order_number: str) -> str:
    return f"Order #{order_number}: Your order is being reviewed by the pharmacist."


def order_completed(order_number: str) -> str:
    return f"Order #{order_number}: Order completed. Thank you for choosing us!"


def order_cancelled(order_number: str, reason: Optional[str] = None) -> str:
    reason_text = f"\n\nReason: {reason}" if reason else ""
    return (
        f"Order #{order_number} has been cancelled.{reason_text}\n\n"
        "Please contact us if you have any questions."
    )


def custom_message(order_number: str, message: str) -> str:
    return f"Regarding Order #{order_number}:\n\n{message}"


def request_address(order_number: str) -> str:
    return (
        f"Order #{order_number}: Please share your full delivery address "
        "(house/flat number, street, area and PIN code)."
    )


def request_address_with_previous(order_number: str, previous_address: str) -> str:
    return (
        f"Order #{order_number}: Should we deliver to your previous address?\n\n"
        f"{previous_address}\n\n"
        "Reply YES to confirm, or send a new address."
    )


def address_saved(order_number: str) -> str:
    return (
        "Thank you! Your delivery address has been saved.\n\n"
        f"We'll book the delivery for Order #{order_number} shortly."
    )


def address_reused(order_number: str, address: str) -> str:
    return (
        f"Thank you! We'll deliver Order #{order_number} to your saved address:\n\n{address}"
    )


def message_received(order_number: str) -> str:
    return f"Message received for Order #{order_number}.\n\nThe pharmacist will respond shortly."


PHARMACY_NOT_REGISTERED = "Sorry, this pharmacy is not registered. Please contact support."
PROCESSING_ERROR_REPLY = "Sorry, we encountered an error processing your message. Please try again."


# =============================================================================
# Transition -> Messages
# =============================================================================

_Renderer = Callable[[Order, Optional[Pharmacy], Optional[str], DeliveryOutcome], List[OutboundNotification]]


def _nothing(order, pharmacy, reason, outcome) -> List[OutboundNotification]:
    return []


def _render_awaiting_rx(order, pharmacy, reason, outcome):
    return [OutboundNotification("rx_required", rx_required(order.order_number))]


def _render_rx_received(order, pharmacy, reason, outcome):
    return [OutboundNotification("rx_received", rx_received(order.order_number))]


def _render_under_review(order, pharmacy, reason, outcome):
    return [OutboundNotification("order_under_review", order_under_review(order.order_number))]


def _render_confirmed(order, pharmacy, reason, outcome):
    return [OutboundNotification(
        "order_confirmed",
        order_confirmed(order.order_number, order.total_amount, PaymentMethod.COD),
    )]


def _render_awaiting_payment(order, pharmacy, reason, outcome):
    messages = [OutboundNotification(
        "order_confirmed",
        order_confirmed(order.order_number, order.total_amount, PaymentMethod.UPI),
    )]
    if pharmacy is not None and pharmacy.upi_id:
        messages.append(OutboundNotification(
            "payment_instructions",
            payment_instructions(pharmacy.upi_id, order.total_amount, order.order_number),
        ))
    return messages


def _render_payment_confirmed(order, pharmacy, reason, outcome):
    return [OutboundNotification("payment_received", payment_received(order.order_number))]


def _render_ready(order, pharmacy, reason, outcome):
    if outcome == DeliveryOutcome.BOOKED:
        # the delivery service already sent the tracking link
        return []
    if outcome == DeliveryOutcome.PENDING and order.delivery_address:
        return [OutboundNotification(
            "order_ready_delivery_pending", order_ready_delivery_pending(order.order_number),
        )]
    return [OutboundNotification("order_ready", order_ready(order.order_number))]


def _render_completed(order, pharmacy, reason, outcome):
    return [OutboundNotification("order_completed", order_completed(order.order_number))]


def _render_cancelled(order, pharmacy, reason, outcome):
    return [OutboundNotification("order_cancelled", order_cancelled(order.order_number, reason))]


_TRANSITION_RENDERERS: Mapping[OrderStatus, _Renderer] = MappingProxyType({
    OrderStatus.PENDING: _nothing,
    OrderStatus.AWAITING_RX: _render_awaiting_rx,
    OrderStatus.RX_RECEIVED: _render_rx_received,
    OrderStatus.UNDER_REVIEW: _render_under_review,
    OrderStatus.CONFIRMED: _render_confirmed,
    OrderStatus.AWAITING_PAYMENT: _render_awaiting_payment,
    OrderStatus.PAYMENT_CONFIRMED: _render_payment_confirmed,
    OrderStatus.READY_FOR_PICKUP: _render_ready,
    OrderStatus.COMPLETED: _render_completed,
    OrderStatus.CANCELLED: _render_cancelled,
})


def messages_for_transition(
    order: Order,
    status: OrderStatus,
    pharmacy: Optional[Pharmacy] = None,
    reason: Optional[str] = None,
    delivery_outcome: DeliveryOutcome = DeliveryOutcome.NOT_ATTEMPTED,
) -> List[OutboundNotification]:
    """Messages to send after ``order`` reached ``status``. Pure."""
    renderer = _TRANSITION_RENDERERS[OrderStatus(status)]
    return renderer(order, pharmacy, reason, delivery_outcome)


def messages_for_delivery(
    order: Order,
    delivery: Delivery,
    status: DeliveryStatus,
) -> List[OutboundNotification]:
    status = DeliveryStatus(status)
    if status == DeliveryStatus.BOOKED:
        return [OutboundNotification(
            "delivery_booked", delivery_booked(order.order_number, delivery.tracking_url),
        )]
    if status == DeliveryStatus.COURIER_ASSIGNED and delivery.courier_name:
        return [OutboundNotification(
            "courier_assigned",
            courier_assigned(order.order_number, delivery.courier_name, delivery.courier_phone),
        )]
    if status == DeliveryStatus.DELIVERED:
        return [OutboundNotification("order_delivered", order_delivered(order.order_number))]
    return []


# =============================================================================
# Dispatcher
# =============================================================================

class NotificationDispatcher:
    """
    Sends customer notifications through the WhatsApp transport.

    Usage:
        dispatcher = NotificationDispatcher(db)
        dispatcher.notify_transition(order, OrderStatus.CANCELLED, history_id=42, reason="Out of stock")
    """

    def __init__(self, db: Session):
        self.db = db

    def notify_transition(
        self,
        order: Order,
        status: OrderStatus,
        history_id: Optional[int],
        reason: Optional[str] = None,
        delivery_outcome: DeliveryOutcome = DeliveryOutcome.NOT_ATTEMPTED,
    ) -> List[dict]:
        notifications = messages_for_transition(
            order, status, order.pharmacy, reason=reason, delivery_outcome=delivery_outcome,
        )
        results = []
        for note in notifications:
            key = f"order:{order.id}:{OrderStatus(status).value}:h{history_id}:{note.kind}"
            results.append(self.send(order, note, idempotency_key=key))
        return results

    def notify_delivery(self, order: Order, delivery: Delivery, status: DeliveryStatus) -> List[dict]:
        results = []
        for note in messages_for_delivery(order, delivery, status):
            key = f"delivery:{delivery.id}:{DeliveryStatus(status).value}:{note.kind}"
            results.append(self.send(order, note, idempotency_key=key))
        return results

    def send(
        self,
        order: Order,
        notification: OutboundNotification,
        idempotency_key: Optional[str] = None,
    ) -> dict:
        """Send one notification. Never raises."""
        claim = None
        try:
            if idempotency_key:
                claim = self._claim(order, notification, idempotency_key)
                if claim is None:
                    logger.info("Notification %s already sent, skipping", idempotency_key)
                    return {"status": "skipped", "kind": notification.kind}

            result = whatsapp.send_whatsapp_message(
                self.db,
                to=order.customer.phone,
                body=notification.body,
                order_id=order.id,
                customer_id=order.customer_id,
                pharmacy_id=order.pharmacy_id,
            )

            if result.get("status") != "sent":
                logger.warning(
                    "Notification %s for order %s failed: %s",
                    notification.kind, order.order_number, result.get("error"),
                )
                self._release(claim)
            elif claim is not None:
                claim.transport_message_id = result.get("sid")
                self.db.commit()

            return dict(result, kind=notification.kind)

        except Exception as e:
            logger.exception("Notification %s for order %s failed", notification.kind, order.order_number)
            self.db.rollback()
            self._release(claim)
            return {"status": "error", "kind": notification.kind, "error": str(e)}

    def _claim(self, order: Order, notification: OutboundNotification, key: str) -> Optional[NotificationLog]:
        if self.db.query(NotificationLog.id).filter(NotificationLog.idempotency_key == key).first():
            return None
        claim = NotificationLog(idempotency_key=key, order_id=order.id, kind=notification.kind)
        self.db.add(claim)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return None
        return claim

    def _release(self, claim: Optional[NotificationLog]) -> None:
        if claim is None:
            return
        try:
            self.db.delete(claim)
            self.db.commit()
        except Exception:
            logger.exception("Could not release notification claim %s", claim.idempotency_key)
            self.db.rollback()
