"""
Delivery Orchestration Service
==============================

The only writer of ``Delivery.status``. Books couriers when an order becomes
ready, prices deliveries for the dashboard, cancels bookings and applies
courier status callbacks.

Failure Handling:
-----------------
Every courier call is wrapped. A ``CourierError`` (timeouts included) marks
the delivery ``failed`` with the error text and is logged; it is never raised
into the order lifecycle. A delivery is never left in ``calculating`` after
a call returns or fails.

Callbacks:
----------
Courier status strings are mapped through ``PROVIDER_STATUS_MAP``. Unknown
statuses, unknown provider order ids and callbacks for deliveries that are
already delivered or cancelled are logged and ignored.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from .. import config
from ..courier import CourierClient, CourierError, CourierPoint, get_courier_client
from ..delivery_state import (
    BOOKABLE,
    FINAL,
    PROVIDER_CANCELLABLE,
    DeliveryStatus,
    map_provider_status,
    next_dispatch_step,
)
from ..errors import NotFoundError, OrderValidationError
from ..models import Delivery, Order
from .notifications import DeliveryOutcome, NotificationDispatcher

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DeliveryOrchestrator:
    """
    Usage:
        orchestrator = DeliveryOrchestrator(db)
        outcome = orchestrator.book_for_ready_order(order)
        orchestrator.apply_provider_status("123456", "performer_found", {"name": "Ravi"})
    """

    def __init__(
        self,
        db: Session,
        dispatcher: Optional[NotificationDispatcher] = None,
        client_factory: Callable[[], CourierClient] = None,
        lifecycle=None,
    ):
        self.db = db
        self.dispatcher = dispatcher or NotificationDispatcher(db)
        self._client_factory = client_factory or get_courier_client
        self._lifecycle = lifecycle

    @property
    def lifecycle(self):
        if self._lifecycle is None:
            from .lifecycle import OrderLifecycle
            self._lifecycle = OrderLifecycle(self.db, dispatcher=self.dispatcher, delivery=self)
        return self._lifecycle

    @staticmethod
    def is_enabled() -> bool:
        return config.is_courier_enabled()

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    def get_for_order(self, order_id: int) -> Optional[Delivery]:
        return self.db.query(Delivery).filter(Delivery.order_id == order_id).first()

    def ensure_delivery(self, order: Order) -> Delivery:
        """Existing delivery for the order, or a new pending one."""
        delivery = self.get_for_order(order.id)
        if delivery is not None:
            return delivery

        if not order.delivery_address:
            raise OrderValidationError("Order has no delivery address")
        pharmacy = order.pharmacy
        pickup_address = pharmacy.pickup_address or pharmacy.address
        if not pickup_address:
            raise OrderValidationError("Pharmacy pickup address not configured")

        delivery = Delivery(
            order_id=order.id,
            pharmacy_id=order.pharmacy_id,
            customer_id=order.customer_id,
            provider=config.COURIER_PROVIDER_NAME,
            status=DeliveryStatus.PENDING,
            pickup_address=pickup_address,
            pickup_phone=pharmacy.phone or pharmacy.whatsapp_number,
            pickup_contact_name=pharmacy.contact_name or pharmacy.name,
            delivery_address=order.delivery_address,
            delivery_phone=order.customer.phone,
            delivery_contact_name=order.customer.name,
        )
        self.db.add(delivery)
        self.db.commit()
        self.db.refresh(delivery)
        logger.info("Delivery %d created for order %s", delivery.id, order.order_number)
        return delivery

    @staticmethod
    def _points(delivery: Delivery):
        pickup = CourierPoint(
            address=delivery.pickup_address,
            phone=delivery.pickup_phone,
            name=delivery.pickup_contact_name,
        )
        drop = CourierPoint(
            address=delivery.delivery_address,
            phone=delivery.delivery_phone,
            name=delivery.delivery_contact_name,
        )
        return pickup, drop

    def _mark_failed(self, delivery: Delivery, error: Exception) -> None:
        self.db.rollback()
        delivery.status = DeliveryStatus.FAILED
        delivery.error_message = str(error)
        self.db.commit()
        logger.error("Delivery %d failed: %s", delivery.id, error)

    # -------------------------------------------------------------------------
    # Pricing
    # -------------------------------------------------------------------------

    def estimate_price(self, order: Order) -> Delivery:
        """pending -> calculating -> quoted, or failed. No provider order is created."""
        if not self.is_enabled():
            raise OrderValidationError("Courier delivery is not enabled")

        delivery = self.ensure_delivery(order)
        if DeliveryStatus(delivery.status) not in BOOKABLE:
            raise OrderValidationError(f"Delivery already {DeliveryStatus(delivery.status).value}")

        delivery.status = DeliveryStatus.CALCULATING
        delivery.error_message = None
        self.db.commit()

        pickup, drop = self._points(delivery)
        try:
            price = self._client_factory().calculate_price(pickup, drop)
        except CourierError as e:
            self._mark_failed(delivery, e)
            return delivery
        except Exception as e:
            self._mark_failed(delivery, e)
            raise

        delivery.estimated_price = price
        delivery.status = next_dispatch_step(DeliveryStatus.CALCULATING)
        self.db.commit()
        self.db.refresh(delivery)
        logger.info("Delivery %d quoted at %s", delivery.id, price)
        return delivery

    # -------------------------------------------------------------------------
    # Booking
    # -------------------------------------------------------------------------

    def book_for_ready_order(self, order: Order, notify: bool = True) -> DeliveryOutcome:
        """
        Best-effort booking when an order reaches ready_for_pickup.

        Never raises. The outcome decides which "ready" message the customer gets.
        """
        if not self.is_enabled() or not order.delivery_address:
            return DeliveryOutcome.NOT_ATTEMPTED

        try:
            delivery = self.book_delivery(order, notify=notify)
        except OrderValidationError as e:
            logger.warning("Delivery not booked for order %s: %s", order.order_number, e.message)
            return DeliveryOutcome.PENDING
        except Exception:
            logger.exception("Unexpected error booking delivery for order %s", order.order_number)
            self.db.rollback()
            return DeliveryOutcome.PENDING

        if DeliveryStatus(delivery.status) == DeliveryStatus.FAILED:
            return DeliveryOutcome.PENDING
        return DeliveryOutcome.BOOKED

    def book_delivery(self, order: Order, notify: bool = True) -> Delivery:
        """
        Book a courier for the order, reusing its delivery record.

        An already booked (or later) delivery is returned unchanged. On courier
        failure the delivery is returned with status ``failed``.
        """
        if not self.is_enabled():
            raise OrderValidationError("Courier delivery is not enabled")

        delivery = self.ensure_delivery(order)
        if DeliveryStatus(delivery.status) not in BOOKABLE:
            logger.info(
                "Delivery %d already %s, not rebooking", delivery.id, DeliveryStatus(delivery.status).value,
            )
            return delivery

        pickup, drop = self._points(delivery)
        try:
            booking = self._client_factory().create_order(pickup, drop, reference=order.order_number)
        except CourierError as e:
            self._mark_failed(delivery, e)
            return delivery
        except Exception as e:
            self._mark_failed(delivery, e)
            raise

        delivery.provider_order_id = booking.provider_order_id
        delivery.provider_order_number = booking.provider_order_number
        delivery.tracking_url = booking.tracking_url
        if delivery.final_price is None:
            delivery.final_price = booking.price
        delivery.status = DeliveryStatus.BOOKED
        delivery.booked_at = _now()
        delivery.error_message = None
        self.db.commit()
        self.db.refresh(delivery)

        logger.info(
            "Delivery %d booked for order %s (provider order %s)",
            delivery.id, order.order_number, booking.provider_order_id,
        )

        if notify:
            self.dispatcher.notify_delivery(order, delivery, DeliveryStatus.BOOKED)
        return delivery

    # -------------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------------

    def cancel_delivery(self, order: Order) -> Delivery:
        """
        Cancel the order's delivery. A booked delivery is also cancelled with
        the courier; a provider failure is logged and the local cancel stands.
        """
        delivery = self.get_for_order(order.id)
        if delivery is None:
            raise NotFoundError("Delivery not found")

        current = DeliveryStatus(delivery.status)
        if current == DeliveryStatus.CANCELLED:
            return delivery
        if current == DeliveryStatus.DELIVERED:
            raise OrderValidationError("Delivery already delivered")

        if current in PROVIDER_CANCELLABLE and delivery.provider_order_id:
            try:
                self._client_factory().cancel_order(delivery.provider_order_id)
            except CourierError as e:
                logger.warning(
                    "Courier cancel failed for delivery %d, cancelling locally: %s", delivery.id, e,
                )

        delivery.status = DeliveryStatus.CANCELLED
        self.db.commit()
        self.db.refresh(delivery)
        logger.info("Delivery %d cancelled", delivery.id)
        return delivery

    # -------------------------------------------------------------------------
    # Courier callbacks
    # -------------------------------------------------------------------------

    def apply_provider_status(
        self,
        provider_order_id: str,
        provider_status: Optional[str],
        courier: Optional[Dict[str, str]] = None,
    ) -> Optional[Delivery]:
        """Apply a courier status update. Returns the delivery if it changed."""
        delivery = (
            self.db.query(Delivery)
            .filter(Delivery.provider_order_id == str(provider_order_id))
            .first()
        )
        if delivery is None:
            logger.warning("Courier update for unknown provider order %s", provider_order_id)
            return None

        new_status = map_provider_status(provider_status)
        if new_status is None:
            logger.info("Ignoring unrecognized courier status %r for delivery %d", provider_status, delivery.id)
            return None

        current = DeliveryStatus(delivery.status)
        if current in FINAL:
            logger.info(
                "Delivery %d already %s, ignoring courier status %s",
                delivery.id, current.value, new_status.value,
            )
            return None

        courier = courier or {}
        courier_changed = bool(courier.get("name")) and (
            courier.get("name") != delivery.courier_name or courier.get("phone") != delivery.courier_phone
        )
        if new_status == current and not courier_changed:
            return None

        delivery.status = new_status
        if courier.get("name"):
            delivery.courier_name = courier.get("name")
            delivery.courier_phone = courier.get("phone")
        if new_status == DeliveryStatus.IN_TRANSIT and delivery.picked_up_at is None:
            delivery.picked_up_at = _now()
        if new_status == DeliveryStatus.DELIVERED:
            delivery.delivered_at = _now()
        if new_status == DeliveryStatus.FAILED:
            delivery.error_message = f"Courier reported {provider_status}"
        self.db.commit()
        self.db.refresh(delivery)

        logger.info("Delivery %d: %s -> %s", delivery.id, current.value, new_status.value)

        order = delivery.order
        if new_status in (DeliveryStatus.COURIER_ASSIGNED, DeliveryStatus.DELIVERED):
            self.dispatcher.notify_delivery(order, delivery, new_status)
        if new_status == DeliveryStatus.DELIVERED:
            self.lifecycle.complete_delivered_order(order.id)
        return delivery

    def refresh_from_provider(self, order: Order) -> Delivery:
        """Pull the latest status from the courier for a booked delivery."""
        delivery = self.get_for_order(order.id)
        if delivery is None:
            raise NotFoundError("Delivery not found")
        if not delivery.provider_order_id:
            raise OrderValidationError("Delivery has not been booked")

        info = self._client_factory().get_order(delivery.provider_order_id)
        if info.tracking_url and info.tracking_url != delivery.tracking_url:
            delivery.tracking_url = info.tracking_url
            self.db.commit()
        self.apply_provider_status(delivery.provider_order_id, info.status, info.courier)
        self.db.refresh(delivery)
        return delivery
