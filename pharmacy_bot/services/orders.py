"""
Order Repository Service
========================

Database reads and writes for orders that are not status changes. Status is
written only by ``services/lifecycle.py``.

Key Functions:
--------------
- generate_order_number: Human-facing order number (PH-XXXXXX)
- create_order: Insert a new pending order from an extraction result
- find_open_orders: Non-terminal orders for one customer at one pharmacy
- list_orders: Dashboard listing with status/search filters and pagination
- update_order_details: Pharmacist edits (items, notes, total)

Order Numbers:
--------------
Six characters from an alphabet without 0/O/1/I so numbers can be read out
over the phone. Collisions are checked before insert and the unique index
on ``orders.order_number`` is the final guard.
"""

import logging
import secrets
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..errors import NotFoundError, OrderValidationError
from ..models import Customer, Order, OrderStatusHistory
from ..parsers import ExtractionResult
from ..state_machine import PRICED_STATUSES, TERMINAL_STATUSES, OrderStatus

logger = logging.getLogger(__name__)

ORDER_NUMBER_PREFIX = "PH-"
ORDER_NUMBER_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ORDER_NUMBER_LENGTH = 6
MAX_ORDER_NUMBER_ATTEMPTS = 10


def generate_order_number() -> str:
    suffix = "".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(ORDER_NUMBER_LENGTH))
    return f"{ORDER_NUMBER_PREFIX}{suffix}"


def _unique_order_number(db: Session) -> str:
    for _ in range(MAX_ORDER_NUMBER_ATTEMPTS):
        number = generate_order_number()
        if not db.query(Order.id).filter(Order.order_number == number).first():
            return number
        logger.warning("Order number collision on %s, retrying", number)
    raise RuntimeError("Could not allocate a unique order number")


def create_order(
    db: Session,
    pharmacy_id: int,
    customer_id: int,
    raw_message: str,
    extraction: ExtractionResult,
) -> Order:
    """Insert a pending order plus its initial history row, and commit."""
    order = Order(
        order_number=_unique_order_number(db),
        pharmacy_id=pharmacy_id,
        customer_id=customer_id,
        status=OrderStatus.PENDING,
        raw_message=raw_message,
        parsed_items=[{"name": i.name, "quantity": i.quantity} for i in extraction.items],
        requires_rx=extraction.requires_rx,
    )
    db.add(order)
    db.flush()

    db.add(OrderStatusHistory(
        order_id=order.id,
        from_status=None,
        to_status=OrderStatus.PENDING,
        changed_by=None,
    ))
    db.commit()
    db.refresh(order)

    logger.info(
        "Order created: %s (id=%d, pharmacy=%d, items=%d, requires_rx=%s)",
        order.order_number, order.id, pharmacy_id, len(extraction.items), extraction.requires_rx,
    )
    return order


def get_order(db: Session, order_id: int) -> Order:
    order = db.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    return order


def find_open_orders(db: Session, customer_id: int, pharmacy_id: int) -> List[Order]:
    """Non-terminal orders, newest first."""
    return (
        db.query(Order)
        .filter(
            Order.customer_id == customer_id,
            Order.pharmacy_id == pharmacy_id,
            Order.status.notin_(list(TERMINAL_STATUSES)),
        )
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def list_orders(
    db: Session,
    status: Optional[OrderStatus] = None,
    search: Optional[str] = None,
    pharmacy_id: Optional[int] = None,
    page: int = 1,
    page_size: int = 20,
) -> Tuple[List[Order], int]:
    query = db.query(Order).join(Customer, Order.customer_id == Customer.id)

    if pharmacy_id is not None:
        query = query.filter(Order.pharmacy_id == pharmacy_id)
    if status is not None:
        query = query.filter(Order.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Order.order_number.ilike(pattern),
            Customer.phone.ilike(pattern),
            Customer.name.ilike(pattern),
        ))

    total = query.count()
    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return orders, total


def update_order_details(
    db: Session,
    order: Order,
    parsed_items: Optional[List[Dict[str, Any]]] = None,
    notes: Optional[str] = None,
    total_amount: Optional[Decimal] = None,
) -> Order:
    """
    Apply pharmacist edits that are not status changes.

    The total can only be edited once the order has been priced by the
    confirmation transition.
    """
    if total_amount is not None:
        if OrderStatus(order.status) not in PRICED_STATUSES:
            raise OrderValidationError(
                "Total amount can only be changed after the order is confirmed"
            )
        order.total_amount = total_amount

    if parsed_items is not None:
        order.parsed_items = parsed_items
    if notes is not None:
        order.notes = notes

    db.commit()
    db.refresh(order)
    logger.info("Order %s details updated", order.order_number)
    return order
