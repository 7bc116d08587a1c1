"""
Order Status State Machine
==========================

Pure transition logic for the order lifecycle. Nothing in this module touches
the database; the lifecycle service in ``services/lifecycle.py`` wraps it with
persistence, audit history and notifications.

Lifecycle:
----------
    pending ──RX_REQUIRED──> awaiting_rx ──RX_UPLOADED──> rx_received
       │                                                      │
       └──────────────START_REVIEW──────> under_review <──────┘
                                               │
                  CONFIRM_AVAILABILITY (cod) ──┼── CONFIRM_AVAILABILITY (upi)
                          │                    │             │
                      confirmed                │      awaiting_payment
                          │                    │             │ PAYMENT_RECEIVED
                          │                    │      payment_confirmed
                          └──MARK_READY──> ready_for_pickup <──MARK_READY
                                               │ MARK_COMPLETED
                                           completed

Every non-terminal status also accepts CANCEL. ``completed`` and ``cancelled``
are terminal.

CONFIRM_AVAILABILITY is the only event whose destination depends on the event
payload (the payment method) instead of the current status alone.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Callable, List, Mapping, Optional, Union


class OrderStatus(str, Enum):
    PENDING = "pending"
    AWAITING_RX = "awaiting_rx"
    RX_RECEIVED = "rx_received"
    UNDER_REVIEW = "under_review"
    CONFIRMED = "confirmed"
    AWAITING_PAYMENT = "awaiting_payment"
    PAYMENT_CONFIRMED = "payment_confirmed"
    READY_FOR_PICKUP = "ready_for_pickup"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EventType(str, Enum):
    RX_REQUIRED = "RX_REQUIRED"
    RX_UPLOADED = "RX_UPLOADED"
    START_REVIEW = "START_REVIEW"
    CONFIRM_AVAILABILITY = "CONFIRM_AVAILABILITY"
    ITEMS_UNAVAILABLE = "ITEMS_UNAVAILABLE"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    MARK_READY = "MARK_READY"
    MARK_COMPLETED = "MARK_COMPLETED"
    CANCEL = "CANCEL"


class PaymentMethod(str, Enum):
    UPI = "upi"
    COD = "cod"


@dataclass(frozen=True)
class OrderEvent:
    """An event applied to an order, with the payload some events carry."""
    type: EventType
    total_amount: Optional[Decimal] = None
    payment_method: Optional[PaymentMethod] = None
    reason: Optional[str] = None

    @classmethod
    def confirm_availability(
        cls, total_amount: Decimal, payment_method: PaymentMethod
    ) -> "OrderEvent":
        return cls(
            EventType.CONFIRM_AVAILABILITY,
            total_amount=total_amount,
            payment_method=payment_method,
        )

    @classmethod
    def items_unavailable(cls, reason: Optional[str] = None) -> "OrderEvent":
        return cls(EventType.ITEMS_UNAVAILABLE, reason=reason)

    @classmethod
    def cancel(cls, reason: Optional[str] = None) -> "OrderEvent":
        return cls(EventType.CANCEL, reason=reason)


TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})

# Statuses in which an order may still receive a delivery address
ADDRESS_ELIGIBLE_STATUSES = (
    OrderStatus.READY_FOR_PICKUP,
    OrderStatus.PAYMENT_CONFIRMED,
    OrderStatus.CONFIRMED,
)

# Statuses at or after pricing confirmation; total amount may only be set here
PRICED_STATUSES = frozenset({
    OrderStatus.CONFIRMED,
    OrderStatus.AWAITING_PAYMENT,
    OrderStatus.PAYMENT_CONFIRMED,
    OrderStatus.READY_FOR_PICKUP,
    OrderStatus.COMPLETED,
})


def _resolve_confirmation(event: OrderEvent) -> OrderStatus:
    if event.payment_method == PaymentMethod.UPI:
        return OrderStatus.AWAITING_PAYMENT
    return OrderStatus.CONFIRMED


_Target = Union[OrderStatus, Callable[[OrderEvent], OrderStatus]]


def _freeze(table) -> Mapping[OrderStatus, Mapping[EventType, _Target]]:
    return MappingProxyType({
        status: MappingProxyType(dict(events)) for status, events in table.items()
    })


TRANSITIONS: Mapping[OrderStatus, Mapping[EventType, _Target]] = _freeze({
    OrderStatus.PENDING: {
        EventType.RX_REQUIRED: OrderStatus.AWAITING_RX,
        EventType.START_REVIEW: OrderStatus.UNDER_REVIEW,
        EventType.CANCEL: OrderStatus.CANCELLED,
    },
    OrderStatus.AWAITING_RX: {
        EventType.RX_UPLOADED: OrderStatus.RX_RECEIVED,
        EventType.CANCEL: OrderStatus.CANCELLED,
    },
    OrderStatus.RX_RECEIVED: {
        EventType.START_REVIEW: OrderStatus.UNDER_REVIEW,
        EventType.CANCEL: OrderStatus.CANCELLED,
    },
    OrderStatus.UNDER_REVIEW: {
        EventType.CONFIRM_AVAILABILITY: _resolve_confirmation,
        EventType.ITEMS_UNAVAILABLE: OrderStatus.CANCELLED,
        EventType.RX_REQUIRED: OrderStatus.AWAITING_RX,
        EventType.CANCEL: OrderStatus.CANCELLED,
    },
    OrderStatus.CONFIRMED: {
        EventType.MARK_READY: OrderStatus.READY_FOR_PICKUP,
        EventType.CANCEL: OrderStatus.CANCELLED,
    },
    OrderStatus.AWAITING_PAYMENT: {
        EventType.PAYMENT_RECEIVED: OrderStatus.PAYMENT_CONFIRMED,
        EventType.CANCEL: OrderStatus.CANCELLED,
    },
    OrderStatus.PAYMENT_CONFIRMED: {
        EventType.MARK_READY: OrderStatus.READY_FOR_PICKUP,
        EventType.CANCEL: OrderStatus.CANCELLED,
    },
    OrderStatus.READY_FOR_PICKUP: {
        EventType.MARK_COMPLETED: OrderStatus.COMPLETED,
        EventType.CANCEL: OrderStatus.CANCELLED,
    },
    OrderStatus.COMPLETED: {},
    OrderStatus.CANCELLED: {},
})


# Dashboard requests name a target status; this is the event that reaches it.
EVENT_FOR_TARGET: Mapping[OrderStatus, EventType] = MappingProxyType({
    OrderStatus.AWAITING_RX: EventType.RX_REQUIRED,
    OrderStatus.UNDER_REVIEW: EventType.START_REVIEW,
    OrderStatus.CONFIRMED: EventType.CONFIRM_AVAILABILITY,
    OrderStatus.AWAITING_PAYMENT: EventType.CONFIRM_AVAILABILITY,
    OrderStatus.PAYMENT_CONFIRMED: EventType.PAYMENT_RECEIVED,
    OrderStatus.READY_FOR_PICKUP: EventType.MARK_READY,
    OrderStatus.COMPLETED: EventType.MARK_COMPLETED,
    OrderStatus.CANCELLED: EventType.CANCEL,
})


STATUS_LABELS: Mapping[OrderStatus, str] = MappingProxyType({
    OrderStatus.PENDING: "New Order",
    OrderStatus.AWAITING_RX: "Awaiting Prescription",
    OrderStatus.RX_RECEIVED: "Prescription Received",
    OrderStatus.UNDER_REVIEW: "Under Review",
    OrderStatus.CONFIRMED: "Confirmed",
    OrderStatus.AWAITING_PAYMENT: "Awaiting Payment",
    OrderStatus.PAYMENT_CONFIRMED: "Payment Confirmed",
    OrderStatus.READY_FOR_PICKUP: "Ready for Pickup",
    OrderStatus.COMPLETED: "Completed",
    OrderStatus.CANCELLED: "Cancelled",
})


def get_next_status(current: OrderStatus, event: OrderEvent) -> Optional[OrderStatus]:
    """
    Return the status reached by applying ``event`` to ``current``.

    Returns None when the event is not allowed in the current status. The
    caller decides how to surface the rejection; this function never raises
    for an illegal pair.
    """
    target = TRANSITIONS.get(OrderStatus(current), MappingProxyType({})).get(event.type)
    if target is None:
        return None
    if callable(target):
        return target(event)
    return target


def describe_rejection(current: OrderStatus, event_type: EventType) -> str:
    return (
        f"Invalid transition: Cannot apply {EventType(event_type).value} "
        f"to order in {OrderStatus(current).value} status"
    )


def valid_events(current: OrderStatus) -> List[EventType]:
    """Events that are legal from ``current``, in table order."""
    return list(TRANSITIONS.get(OrderStatus(current), {}).keys())


def is_terminal(status: OrderStatus) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES
