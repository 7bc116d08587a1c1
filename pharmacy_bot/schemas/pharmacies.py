"""
Pharmacy Schemas for Pharmacy Bot
=================================

Pharmacy settings shown and edited in the dashboard. The WhatsApp number
identifies the pharmacy on inbound messages, so it is stored in E.164.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PharmacyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    phone: Optional[str] = None
    whatsapp_number: str
    address: Optional[str] = None
    pickup_address: Optional[str] = None
    contact_name: Optional[str] = None
    upi_id: Optional[str] = None
    is_active: bool


class PharmacyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = Field(None, max_length=500)
    pickup_address: Optional[str] = Field(None, max_length=500)
    contact_name: Optional[str] = Field(None, max_length=100)
    upi_id: Optional[str] = Field(None, max_length=100, pattern=r"^[\w.\-]+@[\w.\-]+$")
    is_active: Optional[bool] = None
