"""
Admin Delivery Routes for Pharmacy Bot
======================================

Dashboard endpoints for courier delivery of orders.

Endpoints:
----------
- GET /admin/deliveries/config: Whether courier delivery is enabled
- GET /admin/deliveries/order/{order_id}: Delivery for an order
- POST /admin/deliveries/book: Book a courier for a ready order
- POST /admin/deliveries/order/{order_id}/estimate: Price a delivery
- POST /admin/deliveries/order/{order_id}/cancel: Cancel a delivery
- POST /admin/deliveries/order/{order_id}/refresh: Pull status from the courier

Courier Failures:
-----------------
Booking and pricing failures are stored on the delivery (status ``failed``,
``error_message``) and reported with 502. The order itself is never changed
by a failed courier call.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import config
from ..auth import verify_admin_credentials
from ..courier import CourierError
from ..db import get_db
from ..delivery_state import DeliveryStatus
from ..errors import OrderValidationError
from ..schemas.deliveries import (
    DeliveryBookRequest,
    DeliveryConfigOut,
    DeliveryEstimateOut,
    DeliveryOut,
)
from ..services import orders as order_repo
from ..services.delivery import DeliveryOrchestrator
from ..state_machine import OrderStatus


logger = logging.getLogger(__name__)

admin_deliveries_router = APIRouter(prefix="/admin/deliveries", tags=["Admin - Deliveries"])


@admin_deliveries_router.get("/config", response_model=DeliveryConfigOut)
def get_delivery_config(
    _admin: str = Depends(verify_admin_credentials),
) -> DeliveryConfigOut:
    return DeliveryConfigOut(
        enabled=DeliveryOrchestrator.is_enabled(),
        provider=config.COURIER_PROVIDER_NAME,
    )


@admin_deliveries_router.get("/order/{order_id}", response_model=DeliveryOut)
def get_order_delivery(
    order_id: int,
    db: Session = Depends(get_db),
    _admin: str = Depends(verify_admin_credentials),
) -> DeliveryOut:
    order_repo.get_order(db, order_id)
    delivery = DeliveryOrchestrator(db).get_for_order(order_id)
    if delivery is None:
        raise HTTPException(status_code=404, detail="Delivery not found")
    return DeliveryOut.model_validate(delivery)


@admin_deliveries_router.post("/book", response_model=DeliveryOut)
def book_delivery(
    payload: DeliveryBookRequest,
    db: Session = Depends(get_db),
    _admin: str = Depends(verify_admin_credentials),
) -> DeliveryOut:
    """
    Book a courier manually, e.g. after the customer sent an address for an
    order that was already ready for pickup, or to retry a failed booking.
    """
    order = order_repo.get_order(db, payload.order_id)
    if OrderStatus(order.status) != OrderStatus.READY_FOR_PICKUP:
        raise OrderValidationError("Order must be ready for pickup to book delivery")

    delivery = DeliveryOrchestrator(db).book_delivery(order)
    if DeliveryStatus(delivery.status) == DeliveryStatus.FAILED:
        raise HTTPException(status_code=502, detail=delivery.error_message or "Courier booking failed")
    return DeliveryOut.model_validate(delivery)


@admin_deliveries_router.post("/order/{order_id}/estimate", response_model=DeliveryEstimateOut)
def estimate_delivery(
    order_id: int,
    db: Session = Depends(get_db),
    _admin: str = Depends(verify_admin_credentials),
) -> DeliveryEstimateOut:
    order = order_repo.get_order(db, order_id)
    delivery = DeliveryOrchestrator(db).estimate_price(order)
    if DeliveryStatus(delivery.status) == DeliveryStatus.FAILED:
        raise HTTPException(status_code=502, detail=delivery.error_message or "Courier pricing failed")

    return DeliveryEstimateOut(
        delivery_id=delivery.id,
        status=delivery.status,
        estimated_price=delivery.estimated_price,
        currency=delivery.currency,
    )


@admin_deliveries_router.post("/order/{order_id}/cancel", response_model=DeliveryOut)
def cancel_delivery(
    order_id: int,
    db: Session = Depends(get_db),
    _admin: str = Depends(verify_admin_credentials),
) -> DeliveryOut:
    order = order_repo.get_order(db, order_id)
    delivery = DeliveryOrchestrator(db).cancel_delivery(order)
    return DeliveryOut.model_validate(delivery)


@admin_deliveries_router.post("/order/{order_id}/refresh", response_model=DeliveryOut)
def refresh_delivery(
    order_id: int,
    db: Session = Depends(get_db),
    _admin: str = Depends(verify_admin_credentials),
) -> DeliveryOut:
    order = order_repo.get_order(db, order_id)
    try:
        delivery = DeliveryOrchestrator(db).refresh_from_provider(order)
    except CourierError as e:
        logger.error("Courier refresh failed for order %s: %s", order.order_number, e.message)
        raise HTTPException(status_code=502, detail=e.message)
    return DeliveryOut.model_validate(delivery)
