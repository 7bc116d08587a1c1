"""
Order Schemas for Pharmacy Bot
==============================

Pydantic models for the dashboard order endpoints.

Endpoint Coverage:
------------------
- GET /admin/orders: List orders with status filter, search and pagination
- GET /admin/orders/{id}: Order detail with prescriptions, delivery and history
- PATCH /admin/orders/{id}/status: Lifecycle transition by target status
- PATCH /admin/orders/{id}: Edit extracted items, notes and total
- POST /admin/orders/{id}/items-unavailable: Cancel as unavailable
- GET/POST /admin/orders/{id}/messages: Conversation history / custom message
- PATCH /admin/orders/{id}/prescriptions/{rx_id}: Prescription review

Amounts:
--------
Requests take ``Decimal`` amounts (must be positive). Responses return
floats for the dashboard.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..delivery_state import DeliveryStatus
from ..state_machine import EventType, OrderStatus, PaymentMethod


class OrderItem(BaseModel):
    """One extracted line item: ``{"name": "Paracetamol 500mg", "quantity": 10}``."""
    name: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1, le=100)


class PrescriptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    media_url: str
    media_type: Optional[str] = None
    is_valid: Optional[bool] = None
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class StatusHistoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    from_status: Optional[OrderStatus] = None
    to_status: OrderStatus
    changed_by: Optional[str] = None
    reason: Optional[str] = None
    created_at: Optional[datetime] = None


class OrderDeliverySummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: DeliveryStatus
    tracking_url: Optional[str] = None
    courier_name: Optional[str] = None
    courier_phone: Optional[str] = None


class OrderSummaryOut(BaseModel):
    """
    Response model for the order list.

    Attributes:
        id: Database primary key
        order_number: Pharmacist-facing number (PH-XXXXXX)
        status: Current lifecycle status
        status_label: Human readable status
        customer_name / customer_phone: From the customer record
        requires_rx: Items matched a prescription keyword
        total_amount: Set once the order is confirmed
        delivery_address: Per-order delivery address, if any
    """
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_number: str
    status: OrderStatus
    status_label: str
    customer_name: Optional[str] = None
    customer_phone: str
    requires_rx: bool
    rx_verified: bool
    payment_method: Optional[PaymentMethod] = None
    total_amount: Optional[float] = None
    delivery_address: Optional[str] = None
    created_at: Optional[datetime] = None


class OrderDetailOut(OrderSummaryOut):
    raw_message: Optional[str] = None
    parsed_items: List[OrderItem] = Field(default_factory=list)
    notes: Optional[str] = None
    customer_address: Optional[str] = None
    prescriptions: List[PrescriptionOut] = Field(default_factory=list)
    delivery: Optional[OrderDeliverySummary] = None
    history: List[StatusHistoryOut] = Field(default_factory=list)
    valid_events: List[EventType] = Field(default_factory=list)
    updated_at: Optional[datetime] = None


class OrderListResponse(BaseModel):
    items: List[OrderSummaryOut]
    page: int
    page_size: int
    total: int
    has_next: bool


class OrderStatusUpdateRequest(BaseModel):
    """
    Request model for a lifecycle transition from the dashboard.

    ``total_amount`` is required when the target is confirmed or
    awaiting_payment. ``expected_status`` is the status the pharmacist was
    looking at; the request fails with 409 if the order has moved on.
    """
    status: OrderStatus
    total_amount: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    payment_method: Optional[PaymentMethod] = None
    reason: Optional[str] = Field(None, max_length=500)
    notify_customer: bool = True
    expected_status: Optional[OrderStatus] = None


class OrderUpdateRequest(BaseModel):
    parsed_items: Optional[List[OrderItem]] = None
    notes: Optional[str] = Field(None, max_length=2000)
    total_amount: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)


class ItemsUnavailableRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)
    notify_customer: bool = True


class SendMessageRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=1600)

    @field_validator("message")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("message must not be blank")
        return v.strip()


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    direction: str
    body: Optional[str] = None
    media_url: Optional[str] = None
    delivery_status: Optional[str] = None
    created_at: Optional[datetime] = None


class SendMessageResponse(BaseModel):
    status: str
    message_id: Optional[str] = None


class PrescriptionReviewRequest(BaseModel):
    is_valid: bool
