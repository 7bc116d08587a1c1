"""
Delivery Schemas for Pharmacy Bot
=================================

Pydantic models for the dashboard delivery endpoints and the courier status
webhook.
"""

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict

from ..delivery_state import DeliveryStatus


class DeliveryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    provider: str
    provider_order_id: Optional[str] = None
    provider_order_number: Optional[str] = None
    tracking_url: Optional[str] = None
    status: DeliveryStatus
    pickup_address: str
    delivery_address: str
    estimated_price: Optional[float] = None
    final_price: Optional[float] = None
    currency: str
    courier_name: Optional[str] = None
    courier_phone: Optional[str] = None
    error_message: Optional[str] = None
    booked_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class DeliveryConfigOut(BaseModel):
    enabled: bool
    provider: str


class DeliveryBookRequest(BaseModel):
    order_id: int


class DeliveryEstimateOut(BaseModel):
    delivery_id: int
    status: DeliveryStatus
    estimated_price: Optional[float] = None
    currency: str = "INR"
    error_message: Optional[str] = None


class CourierContact(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None


class CourierWebhookPayload(BaseModel):
    """Courier status callback: ``{"order_id": 123, "new_status": "active", "courier": {...}}``."""
    model_config = ConfigDict(extra="ignore")

    order_id: Union[int, str]
    new_status: Optional[str] = None
    courier: Optional[CourierContact] = None
