"""
Script to create (or update) a pharmacy so inbound WhatsApp messages to its
number are accepted.

The WhatsApp number is stored in E.164; "whatsapp:" prefixes and local
formats are normalized.

Run with:
    DATABASE_URL="postgresql+psycopg://..." python scripts/seed_pharmacy.py \
        --name "City Care Pharmacy" --whatsapp "+14155238886" \
        --address "12 MG Road, Bengaluru 560001" --upi-id citycare@okaxis
"""

import argparse
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from pharmacy_bot.db import SessionLocal
from pharmacy_bot.models import Pharmacy
from pharmacy_bot.whatsapp import normalize_phone_number


def seed_pharmacy(name, whatsapp, address=None, pickup_address=None, phone=None,
                  contact_name=None, upi_id=None):
    db = SessionLocal()
    number = normalize_phone_number(whatsapp)

    try:
        pharmacy = db.query(Pharmacy).filter(Pharmacy.whatsapp_number == number).first()
        if pharmacy:
            print(f"Updating pharmacy {pharmacy.id} ({number})")
        else:
            pharmacy = Pharmacy(whatsapp_number=number, is_active=True)
            db.add(pharmacy)
            print(f"Creating pharmacy for {number}")

        pharmacy.name = name
        if address is not None:
            pharmacy.address = address
        if pickup_address is not None:
            pharmacy.pickup_address = pickup_address
        if phone is not None:
            pharmacy.phone = normalize_phone_number(phone)
        if contact_name is not None:
            pharmacy.contact_name = contact_name
        if upi_id is not None:
            pharmacy.upi_id = upi_id

        db.commit()
        print(f"Done! Pharmacy '{pharmacy.name}' has id {pharmacy.id}.")
        return 0

    except Exception as e:
        print(f"Error: {e}")
        db.rollback()
        return 1
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(description="Create or update a pharmacy.")
    parser.add_argument("--name", default="Demo Pharmacy")
    parser.add_argument("--whatsapp", required=True, help="WhatsApp number customers message")
    parser.add_argument("--address")
    parser.add_argument("--pickup-address", help="Courier pickup address if different")
    parser.add_argument("--phone")
    parser.add_argument("--contact-name")
    parser.add_argument("--upi-id")
    args = parser.parse_args()

    return seed_pharmacy(
        name=args.name,
        whatsapp=args.whatsapp,
        address=args.address,
        pickup_address=args.pickup_address,
        phone=args.phone,
        contact_name=args.contact_name,
        upi_id=args.upi_id,
    )


if __name__ == "__main__":
    sys.exit(main())
