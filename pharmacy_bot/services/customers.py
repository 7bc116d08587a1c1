"""
Customer and pharmacy lookups for inbound chat messages.
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import Customer, Pharmacy
from ..whatsapp import normalize_phone_number

logger = logging.getLogger(__name__)


def get_pharmacy_by_whatsapp_number(db: Session, number: str) -> Optional[Pharmacy]:
    """Active pharmacy whose WhatsApp number matches (format-insensitive)."""
    normalized = normalize_phone_number(number)
    return (
        db.query(Pharmacy)
        .filter(Pharmacy.whatsapp_number == normalized, Pharmacy.is_active.is_(True))
        .first()
    )


def find_or_create_customer(db: Session, phone: str, profile_name: Optional[str] = None) -> Customer:
    """
    Return the customer for ``phone`` (E.164), creating it on first contact.

    The WhatsApp profile name is stored only when the customer has no name yet.
    """
    normalized = normalize_phone_number(phone)
    customer = db.query(Customer).filter(Customer.phone == normalized).first()

    if customer is None:
        customer = Customer(phone=normalized, name=profile_name or None)
        db.add(customer)
        try:
            db.commit()
        except IntegrityError:
            # Same number created by a message to another pharmacy
            db.rollback()
            customer = db.query(Customer).filter(Customer.phone == normalized).one()
        else:
            logger.info("New customer created (id=%d)", customer.id)
            return customer

    if profile_name and not customer.name:
        customer.name = profile_name
        db.commit()

    return customer
