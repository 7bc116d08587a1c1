"""
Admin Pharmacy Routes for Pharmacy Bot
======================================

Pharmacy settings used by the chat flow: pickup address for couriers, UPI id
for payment instructions and the WhatsApp number that identifies the pharmacy.

Endpoints:
----------
- GET /admin/pharmacies: List pharmacies
- GET /admin/pharmacies/{id}: Pharmacy settings
- PATCH /admin/pharmacies/{id}: Update settings
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth import verify_admin_credentials
from ..db import get_db
from ..models import Pharmacy
from ..schemas.pharmacies import PharmacyOut, PharmacyUpdate


logger = logging.getLogger(__name__)

admin_pharmacies_router = APIRouter(prefix="/admin/pharmacies", tags=["Admin - Pharmacies"])


def _get_pharmacy(db: Session, pharmacy_id: int) -> Pharmacy:
    pharmacy = db.query(Pharmacy).filter(Pharmacy.id == pharmacy_id).first()
    if not pharmacy:
        raise HTTPException(status_code=404, detail="Pharmacy not found")
    return pharmacy


@admin_pharmacies_router.get("", response_model=List[PharmacyOut])
def list_pharmacies(
    db: Session = Depends(get_db),
    _admin: str = Depends(verify_admin_credentials),
) -> List[PharmacyOut]:
    return db.query(Pharmacy).order_by(Pharmacy.name.asc()).all()


@admin_pharmacies_router.get("/{pharmacy_id}", response_model=PharmacyOut)
def get_pharmacy(
    pharmacy_id: int,
    db: Session = Depends(get_db),
    _admin: str = Depends(verify_admin_credentials),
) -> PharmacyOut:
    return _get_pharmacy(db, pharmacy_id)


@admin_pharmacies_router.patch("/{pharmacy_id}", response_model=PharmacyOut)
def update_pharmacy(
    pharmacy_id: int,
    payload: PharmacyUpdate,
    db: Session = Depends(get_db),
    _admin: str = Depends(verify_admin_credentials),
) -> PharmacyOut:
    """Partial update; only fields present in the body are changed."""
    pharmacy = _get_pharmacy(db, pharmacy_id)

    update_data = payload.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(pharmacy, field, value)

    db.commit()
    db.refresh(pharmacy)
    logger.info("Pharmacy %d updated: %s", pharmacy.id, ", ".join(sorted(update_data)))
    return pharmacy
