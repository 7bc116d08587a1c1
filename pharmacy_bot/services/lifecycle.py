"""
Order Lifecycle Service
=======================

The only writer of ``Order.status``. Both the chat path (intent resolver) and
the dashboard path call into ``OrderLifecycle``.

Transition Steps:
-----------------
1. Re-read the order's current status from the database.
2. If the caller passed ``expected_status`` and it no longer matches, reject
   with ``ConcurrentTransitionError``.
3. Ask the state machine for the next status; reject with
   ``InvalidTransitionError`` if the event is not allowed.
4. Write with a conditional UPDATE (``WHERE status = <observed>``). Zero rows
   updated means another writer got there first: ``ConcurrentTransitionError``.
5. Append the status history row and commit.
6. Side effects, after commit: courier booking on ``ready_for_pickup``, then
   customer notifications. Neither can undo the committed transition.

Dashboard Targets:
------------------
The dashboard names a target status instead of an event.
``transition_to_status`` maps it through ``EVENT_FOR_TARGET`` and validates
the payload (total amount and payment method for confirmation, a default
reason for cancellation).
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from .. import config
from ..errors import ConcurrentTransitionError, InvalidTransitionError, OrderValidationError
from ..models import Order, OrderStatusHistory
from ..state_machine import (
    EVENT_FOR_TARGET,
    EventType,
    OrderEvent,
    OrderStatus,
    PaymentMethod,
    get_next_status,
    is_terminal,
)
from . import orders as order_repo
from .notifications import DeliveryOutcome, NotificationDispatcher

logger = logging.getLogger(__name__)

# Events whose reason is kept on the history row
_REASON_EVENTS = frozenset({EventType.CANCEL, EventType.ITEMS_UNAVAILABLE})


@dataclass
class TransitionOutcome:
    order: Order
    from_status: OrderStatus
    to_status: OrderStatus
    history_id: int
    delivery_outcome: DeliveryOutcome = DeliveryOutcome.NOT_ATTEMPTED
    notifications: List[dict] = field(default_factory=list)


class OrderLifecycle:
    """
    Applies events to orders with persistence, audit and side effects.

    Usage:
        lifecycle = OrderLifecycle(db)
        lifecycle.transition(order.id, OrderEvent(EventType.START_REVIEW), actor="admin")
    """

    def __init__(self, db: Session, dispatcher: Optional[NotificationDispatcher] = None, delivery=None):
        self.db = db
        self.dispatcher = dispatcher or NotificationDispatcher(db)
        self._delivery = delivery

    @property
    def delivery(self):
        if self._delivery is None:
            from .delivery import DeliveryOrchestrator
            self._delivery = DeliveryOrchestrator(self.db, dispatcher=self.dispatcher, lifecycle=self)
        return self._delivery

    # -------------------------------------------------------------------------
    # Core transition
    # -------------------------------------------------------------------------

    def transition(
        self,
        order_id: int,
        event: OrderEvent,
        actor: Optional[str] = None,
        notify: bool = True,
        expected_status: Optional[OrderStatus] = None,
    ) -> TransitionOutcome:
        order = order_repo.get_order(self.db, order_id)
        self.db.refresh(order)
        observed = OrderStatus(order.status)

        if expected_status is not None and observed != OrderStatus(expected_status):
            raise ConcurrentTransitionError(order_id, expected_status, observed)

        next_status = get_next_status(observed, event)
        if next_status is None:
            logger.info(
                "Rejected %s on order %s in %s", event.type.value, order.order_number, observed.value,
            )
            raise InvalidTransitionError(observed, event.type)

        values = {"status": next_status}
        if event.type == EventType.CONFIRM_AVAILABILITY:
            values["total_amount"] = event.total_amount
            values["payment_method"] = event.payment_method
        reason = event.reason if event.type in _REASON_EVENTS else None

        history = self._apply(order, observed, next_status, values, actor, reason)

        logger.info(
            "Order %s: %s -> %s (%s, actor=%s)",
            order.order_number, observed.value, next_status.value, event.type.value, actor or "chat",
        )
        return self._after_commit(order, observed, next_status, history, reason, notify)

    def _apply(self, order: Order, observed: OrderStatus, next_status: OrderStatus,
               values: dict, actor: Optional[str], reason: Optional[str]) -> OrderStatusHistory:
        """Conditional write plus history row, committed together."""
        result = self.db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status == observed)
            .values(updated_at=func.now(), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            self.db.refresh(order)
            logger.warning(
                "Concurrent change on order %s: expected %s, found %s",
                order.order_number, observed.value, order.status,
            )
            raise ConcurrentTransitionError(order.id, observed, OrderStatus(order.status))

        history = OrderStatusHistory(
            order_id=order.id,
            from_status=observed,
            to_status=next_status,
            changed_by=actor,
            reason=reason,
        )
        self.db.add(history)
        self.db.commit()
        self.db.refresh(order)
        return history

    def _after_commit(self, order: Order, observed: OrderStatus, next_status: OrderStatus,
                      history: OrderStatusHistory, reason: Optional[str], notify: bool) -> TransitionOutcome:
        outcome = TransitionOutcome(
            order=order,
            from_status=observed,
            to_status=next_status,
            history_id=history.id,
        )

        if next_status == OrderStatus.READY_FOR_PICKUP:
            outcome.delivery_outcome = self.delivery.book_for_ready_order(order, notify=notify)

        if notify:
            outcome.notifications = self.dispatcher.notify_transition(
                order,
                next_status,
                history_id=history.id,
                reason=reason,
                delivery_outcome=outcome.delivery_outcome,
            )
        return outcome

    # -------------------------------------------------------------------------
    # Dashboard entry point
    # -------------------------------------------------------------------------

    def transition_to_status(
        self,
        order_id: int,
        target: OrderStatus,
        actor: Optional[str] = None,
        total_amount: Optional[Decimal] = None,
        payment_method: Optional[PaymentMethod] = None,
        reason: Optional[str] = None,
        notify: bool = True,
        expected_status: Optional[OrderStatus] = None,
    ) -> TransitionOutcome:
        target = OrderStatus(target)
        event_type = EVENT_FOR_TARGET.get(target)
        if event_type is None:
            raise OrderValidationError(f"Orders cannot be moved to {target.value} from the dashboard")

        if event_type == EventType.CONFIRM_AVAILABILITY:
            if total_amount is None or Decimal(total_amount) <= 0:
                raise OrderValidationError("Total amount is required")
            implied = PaymentMethod.UPI if target == OrderStatus.AWAITING_PAYMENT else PaymentMethod.COD
            if payment_method is None:
                payment_method = implied
            elif PaymentMethod(payment_method) != implied:
                raise OrderValidationError(
                    f"Payment method {PaymentMethod(payment_method).value} "
                    f"cannot move an order to {target.value}"
                )
            event = OrderEvent.confirm_availability(Decimal(total_amount), PaymentMethod(payment_method))
        elif event_type == EventType.CANCEL:
            event = OrderEvent.cancel(reason or config.DEFAULT_CANCEL_REASON)
        else:
            event = OrderEvent(event_type)

        return self.transition(
            order_id, event, actor=actor, notify=notify, expected_status=expected_status,
        )

    # -------------------------------------------------------------------------
    # Courier-driven completion
    # -------------------------------------------------------------------------

    def complete_delivered_order(self, order_id: int, actor: str = "courier") -> Optional[TransitionOutcome]:
        """
        Move an order to completed because its delivery was delivered.

        Uses MARK_COMPLETED where the table allows it; any other non-terminal
        status is forced to completed. Terminal orders are left alone.
        No notification is sent; the delivery confirmation covers it.
        """
        order = order_repo.get_order(self.db, order_id)
        self.db.refresh(order)
        observed = OrderStatus(order.status)

        if is_terminal(observed):
            logger.info("Order %s already %s, delivery completion ignored", order.order_number, observed.value)
            return None

        if get_next_status(observed, OrderEvent(EventType.MARK_COMPLETED)) is not None:
            return self.transition(order_id, OrderEvent(EventType.MARK_COMPLETED), actor=actor, notify=False)

        logger.warning(
            "Order %s delivered while %s; forcing completed", order.order_number, observed.value,
        )
        history = self._apply(
            order, observed, OrderStatus.COMPLETED, {"status": OrderStatus.COMPLETED},
            actor, "Delivered by courier",
        )
        return TransitionOutcome(
            order=order,
            from_status=observed,
            to_status=OrderStatus.COMPLETED,
            history_id=history.id,
        )
