"""
Admin Orders Routes for Pharmacy Bot
====================================

Dashboard endpoints for reviewing and progressing customer orders.

Endpoints:
----------
- GET /admin/orders: List orders with pagination, status filter and search
- GET /admin/orders/{id}: Order detail
- PATCH /admin/orders/{id}/status: Move the order to a target status
- PATCH /admin/orders/{id}: Edit extracted items, notes and total
- POST /admin/orders/{id}/request-rx: Ask the customer for a prescription
- POST /admin/orders/{id}/items-unavailable: Cancel because items are unavailable
- POST /admin/orders/{id}/send-payment: Re-send UPI payment details
- GET /admin/orders/{id}/messages: Conversation history
- POST /admin/orders/{id}/messages: Send a custom message to the customer
- POST /admin/orders/{id}/request-address: Ask the customer for a delivery address
- PATCH /admin/orders/{id}/prescriptions/{rx_id}: Mark a prescription valid/invalid

Authentication:
---------------
All endpoints require admin authentication via HTTP Basic Auth. The admin
username is recorded as the actor on status history.

Errors:
-------
- 400: Invalid transition or business rule (message names status and event)
- 404: Order / prescription not found
- 409: Order changed since the pharmacist loaded it (``expected_status``)
- 422: Malformed request body

Usage:
------
    # Confirm an order for cash on delivery
    PATCH /admin/orders/12/status
    {"status": "confirmed", "total_amount": 245.50, "payment_method": "cod"}

    # Search by order number, phone or name
    GET /admin/orders?search=PH-7KQ&page=1&page_size=20
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth import verify_admin_credentials
from ..db import get_db
from ..errors import OrderValidationError
from ..models import Message, Order, Prescription
from ..schemas.orders import (
    ItemsUnavailableRequest,
    MessageOut,
    OrderDeliverySummary,
    OrderDetailOut,
    OrderListResponse,
    OrderStatusUpdateRequest,
    OrderSummaryOut,
    OrderUpdateRequest,
    PrescriptionOut,
    PrescriptionReviewRequest,
    SendMessageRequest,
    SendMessageResponse,
    StatusHistoryOut,
)
from ..services import notifications as templates
from ..services import orders as order_repo
from ..services.lifecycle import OrderLifecycle
from ..services.notifications import NotificationDispatcher, OutboundNotification
from ..state_machine import STATUS_LABELS, EventType, OrderEvent, OrderStatus, valid_events


logger = logging.getLogger(__name__)

# Router definition
admin_orders_router = APIRouter(prefix="/admin/orders", tags=["Admin - Orders"])


# =============================================================================
# Helper Functions
# =============================================================================

def _summary_fields(order: Order) -> dict:
    status = OrderStatus(order.status)
    return dict(
        id=order.id,
        order_number=order.order_number,
        status=status,
        status_label=STATUS_LABELS[status],
        customer_name=order.customer.name,
        customer_phone=order.customer.phone,
        requires_rx=order.requires_rx,
        rx_verified=order.rx_verified,
        payment_method=order.payment_method,
        total_amount=order.total_amount,
        delivery_address=order.delivery_address,
        created_at=order.created_at,
    )


def _detail(order: Order) -> OrderDetailOut:
    return OrderDetailOut(
        **_summary_fields(order),
        raw_message=order.raw_message,
        parsed_items=order.parsed_items or [],
        notes=order.notes,
        customer_address=order.customer.address,
        prescriptions=[PrescriptionOut.model_validate(p) for p in order.prescriptions],
        delivery=OrderDeliverySummary.model_validate(order.delivery) if order.delivery else None,
        history=[StatusHistoryOut.model_validate(h) for h in order.status_history],
        valid_events=valid_events(OrderStatus(order.status)),
        updated_at=order.updated_at,
    )


def _send(db: Session, order: Order, kind: str, body: str) -> dict:
    """Pharmacist-initiated message; not de-duplicated."""
    return NotificationDispatcher(db).send(order, OutboundNotification(kind, body))


# =============================================================================
# Order Endpoints
# =============================================================================

@admin_orders_router.get("", response_model=OrderListResponse)
def list_orders(
    db: Session = Depends(get_db),
    _admin: str = Depends(verify_admin_credentials),
    status: Optional[OrderStatus] = Query(None, description="Filter by status"),
    search: Optional[str] = Query(None, description="Order number, phone or customer name"),
    pharmacy_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> OrderListResponse:
    """
    Return a paginated list of orders, newest first.
    """
    orders, total = order_repo.list_orders(
        db, status=status, search=search, pharmacy_id=pharmacy_id, page=page, page_size=page_size,
    )
    items = [OrderSummaryOut(**_summary_fields(o)) for o in orders]
    offset = (page - 1) * page_size

    return OrderListResponse(
        items=items,
        page=page,
        page_size=page_size,
        total=total,
        has_next=offset + len(items) < total,
    )


@admin_orders_router.get("/{order_id}", response_model=OrderDetailOut)
def get_order_detail(
    order_id: int,
    db: Session = Depends(get_db),
    _admin: str = Depends(verify_admin_credentials),
) -> OrderDetailOut:
    """
    Full order including prescriptions, delivery, status history and the
    events that are currently allowed.
    """
    return _detail(order_repo.get_order(db, order_id))


@admin_orders_router.patch("/{order_id}/status", response_model=OrderDetailOut)
def update_order_status(
    order_id: int,
    payload: OrderStatusUpdateRequest,
    db: Session = Depends(get_db),
    admin: str = Depends(verify_admin_credentials),
) -> OrderDetailOut:
    """
    Move an order to a new status.

    Confirmation needs ``total_amount``; the payment method decides between
    confirmed (cod) and awaiting_payment (upi). Reaching ready_for_pickup
    books a courier when delivery is enabled and the order has an address.
    """
    outcome = OrderLifecycle(db).transition_to_status(
        order_id,
        payload.status,
        actor=admin,
        total_amount=payload.total_amount,
        payment_method=payload.payment_method,
        reason=payload.reason,
        notify=payload.notify_customer,
        expected_status=payload.expected_status,
    )
    return _detail(outcome.order)


@admin_orders_router.patch("/{order_id}", response_model=OrderDetailOut)
def update_order(
    order_id: int,
    payload: OrderUpdateRequest,
    db: Session = Depends(get_db),
    _admin: str = Depends(verify_admin_credentials),
) -> OrderDetailOut:
    """Edit extracted items, notes or (once confirmed) the total."""
    order = order_repo.get_order(db, order_id)
    items = None
    if payload.parsed_items is not None:
        items = [item.model_dump() for item in payload.parsed_items]
    order = order_repo.update_order_details(
        db, order, parsed_items=items, notes=payload.notes, total_amount=payload.total_amount,
    )
    return _detail(order)


@admin_orders_router.post("/{order_id}/request-rx", response_model=OrderDetailOut)
def request_prescription(
    order_id: int,
    db: Session = Depends(get_db),
    admin: str = Depends(verify_admin_credentials),
) -> OrderDetailOut:
    """RX_REQUIRED; the customer is asked for a prescription photo."""
    outcome = OrderLifecycle(db).transition(
        order_id, OrderEvent(EventType.RX_REQUIRED), actor=admin, notify=True,
    )
    return _detail(outcome.order)


@admin_orders_router.post("/{order_id}/items-unavailable", response_model=OrderDetailOut)
def mark_items_unavailable(
    order_id: int,
    payload: ItemsUnavailableRequest,
    db: Session = Depends(get_db),
    admin: str = Depends(verify_admin_credentials),
) -> OrderDetailOut:
    """Cancel an order under review because items are not available."""
    reason = payload.reason or "Some items are currently unavailable"
    outcome = OrderLifecycle(db).transition(
        order_id,
        OrderEvent.items_unavailable(reason),
        actor=admin,
        notify=payload.notify_customer,
    )
    return _detail(outcome.order)


@admin_orders_router.post("/{order_id}/send-payment", response_model=SendMessageResponse)
def send_payment_details(
    order_id: int,
    db: Session = Depends(get_db),
    _admin: str = Depends(verify_admin_credentials),
) -> SendMessageResponse:
    """Re-send UPI payment instructions for a confirmed order."""
    order = order_repo.get_order(db, order_id)
    if order.total_amount is None:
        raise OrderValidationError("Order total amount not set")
    if not order.pharmacy.upi_id:
        raise OrderValidationError("Pharmacy UPI ID not configured")

    result = _send(
        db, order, "payment_instructions",
        templates.payment_instructions(order.pharmacy.upi_id, order.total_amount, order.order_number),
    )
    return SendMessageResponse(status=result["status"], message_id=result.get("sid"))


@admin_orders_router.get("/{order_id}/messages", response_model=List[MessageOut])
def list_order_messages(
    order_id: int,
    db: Session = Depends(get_db),
    _admin: str = Depends(verify_admin_credentials),
) -> List[MessageOut]:
    """Inbound and outbound messages attributed to the order, oldest first."""
    order_repo.get_order(db, order_id)
    messages = (
        db.query(Message)
        .filter(Message.order_id == order_id)
        .order_by(Message.created_at.asc(), Message.id.asc())
        .all()
    )
    return [MessageOut.model_validate(m) for m in messages]


@admin_orders_router.post("/{order_id}/messages", response_model=SendMessageResponse)
def send_order_message(
    order_id: int,
    payload: SendMessageRequest,
    db: Session = Depends(get_db),
    _admin: str = Depends(verify_admin_credentials),
) -> SendMessageResponse:
    """Send a free-text message from the pharmacist."""
    order = order_repo.get_order(db, order_id)
    result = _send(db, order, "custom_message", templates.custom_message(order.order_number, payload.message))
    if result["status"] == "error":
        raise HTTPException(status_code=502, detail="Failed to send message")
    return SendMessageResponse(status=result["status"], message_id=result.get("sid"))


@admin_orders_router.post("/{order_id}/request-address", response_model=SendMessageResponse)
def request_delivery_address(
    order_id: int,
    db: Session = Depends(get_db),
    _admin: str = Depends(verify_admin_credentials),
) -> SendMessageResponse:
    """
    Ask the customer for a delivery address. When the customer has a saved
    address they are offered it and can reply YES.
    """
    order = order_repo.get_order(db, order_id)
    if order.delivery_address:
        raise OrderValidationError("Order already has a delivery address")

    previous = (order.customer.address or "").strip()
    if previous:
        body = templates.request_address_with_previous(order.order_number, previous)
    else:
        body = templates.request_address(order.order_number)

    result = _send(db, order, "request_address", body)
    return SendMessageResponse(status=result["status"], message_id=result.get("sid"))


@admin_orders_router.patch("/{order_id}/prescriptions/{prescription_id}", response_model=PrescriptionOut)
def review_prescription(
    order_id: int,
    prescription_id: int,
    payload: PrescriptionReviewRequest,
    db: Session = Depends(get_db),
    admin: str = Depends(verify_admin_credentials),
) -> PrescriptionOut:
    """Record the pharmacist's verdict on a prescription."""
    order = order_repo.get_order(db, order_id)
    prescription = (
        db.query(Prescription)
        .filter(Prescription.id == prescription_id, Prescription.order_id == order_id)
        .first()
    )
    if not prescription:
        raise HTTPException(status_code=404, detail="Prescription not found")

    prescription.is_valid = payload.is_valid
    prescription.verified_by = admin
    prescription.verified_at = datetime.now(timezone.utc)
    order.rx_verified = any(p.is_valid for p in order.prescriptions)
    db.commit()
    db.refresh(prescription)

    logger.info(
        "Prescription %d on order %s marked %s", prescription.id, order.order_number,
        "valid" if payload.is_valid else "invalid",
    )
    return PrescriptionOut.model_validate(prescription)
