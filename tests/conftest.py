import os

# Must be set before pharmacy_bot.db / routes are imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["RATE_LIMIT_ENABLED"] = "false"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import pharmacy_bot.config as config_mod
import pharmacy_bot.db as db
import pharmacy_bot.whatsapp as whatsapp_mod
from pharmacy_bot.courier import CourierBooking, CourierError, CourierOrderInfo
from pharmacy_bot.main import app
from pharmacy_bot.models import Base, Customer, Pharmacy
from pharmacy_bot.parsers import parse_order_message
from pharmacy_bot.services import orders as order_repo
from pharmacy_bot.state_machine import OrderStatus, PaymentMethod

# Test admin credentials
TEST_ADMIN_USERNAME = "testadmin"
TEST_ADMIN_PASSWORD = "testpassword123"

PHARMACY_WHATSAPP = "+919812345678"
CUSTOMER_PHONE = "+919876543210"


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """Mock chat transport, courier off, no signatures, known admin credentials."""
    monkeypatch.setattr(config_mod, "TWILIO_ACCOUNT_SID", None)
    monkeypatch.setattr(config_mod, "TWILIO_AUTH_TOKEN", None)
    monkeypatch.setattr(config_mod, "TWILIO_WHATSAPP_NUMBER", None)
    monkeypatch.setattr(config_mod, "TWILIO_VALIDATE_SIGNATURE", False)
    monkeypatch.setattr(config_mod, "COURIER_ENABLED", False)
    monkeypatch.setattr(config_mod, "COURIER_AUTH_TOKEN", "")
    monkeypatch.setattr(config_mod, "COURIER_CALLBACK_SECRET", "")
    monkeypatch.setattr(config_mod, "ADMIN_USERNAME", TEST_ADMIN_USERNAME)
    monkeypatch.setattr(config_mod, "ADMIN_PASSWORD", TEST_ADMIN_PASSWORD)


@pytest.fixture
def engine():
    """In-memory SQLite shared by every connection (StaticPool)."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(engine, session_factory, monkeypatch):
    """Shared FastAPI TestClient using the in-memory SQLite DB."""
    monkeypatch.setattr(db, "engine", engine)
    monkeypatch.setattr(db, "SessionLocal", session_factory)

    def override_get_db():
        db_sess = session_factory()
        try:
            yield db_sess
        finally:
            db_sess.close()

    app.dependency_overrides[db.get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def admin_auth():
    """Returns HTTP Basic Auth tuple for admin endpoints."""
    return (TEST_ADMIN_USERNAME, TEST_ADMIN_PASSWORD)


# =============================================================================
# Seed data
# =============================================================================

@pytest.fixture
def pharmacy(db_session):
    pharmacy = Pharmacy(
        name="City Care Pharmacy",
        phone="+919812345670",
        whatsapp_number=PHARMACY_WHATSAPP,
        address="12 MG Road, Bengaluru 560001",
        contact_name="Ravi",
        upi_id="citycare@okaxis",
        is_active=True,
    )
    db_session.add(pharmacy)
    db_session.commit()
    db_session.refresh(pharmacy)
    return pharmacy


@pytest.fixture
def customer(db_session):
    customer = Customer(phone=CUSTOMER_PHONE, name="Asha")
    db_session.add(customer)
    db_session.commit()
    db_session.refresh(customer)
    return customer


@pytest.fixture
def order_factory(db_session, pharmacy, customer):
    """
    Create an order and place it directly in ``status`` (test setup only;
    application code moves status through the lifecycle service).
    """
    def _make(message="Paracetamol 500mg x 10", status=OrderStatus.PENDING,
              delivery_address=None, total_amount=None, payment_method=None):
        order = order_repo.create_order(
            db_session,
            pharmacy_id=pharmacy.id,
            customer_id=customer.id,
            raw_message=message,
            extraction=parse_order_message(message),
        )
        order.status = status
        order.delivery_address = delivery_address
        if total_amount is not None:
            order.total_amount = Decimal(str(total_amount))
        if payment_method is not None:
            order.payment_method = PaymentMethod(payment_method)
        db_session.commit()
        db_session.refresh(order)
        return order

    return _make


# =============================================================================
# Collaborator fakes
# =============================================================================

@pytest.fixture
def sent_messages(monkeypatch):
    """Capture outbound WhatsApp sends instead of using the transport."""
    sent = []

    def fake_send(to, body, media_url=None):
        sid = f"SM{len(sent) + 1:032d}"
        sent.append({"to": to, "body": body, "media_url": media_url, "sid": sid})
        return {"status": "sent", "sid": sid, "to": to, "mock": True}

    monkeypatch.setattr(whatsapp_mod, "send_whatsapp", fake_send)
    return sent


class FakeCourierClient:
    """In-memory stand-in for CourierClient."""

    def __init__(self):
        self.calls = []
        self.error = None
        self.cancel_error = None
        self.quote = Decimal("45.00")
        self.next_id = 1001
        self.order_info = None

    def calculate_price(self, pickup, drop):
        self.calls.append(("calculate_price", pickup.address, drop.address))
        if self.error:
            raise self.error
        return self.quote

    def create_order(self, pickup, drop, reference):
        self.calls.append(("create_order", reference))
        if self.error:
            raise self.error
        provider_id = str(self.next_id)
        self.next_id += 1
        return CourierBooking(
            provider_order_id=provider_id,
            provider_order_number=f"BZ-{provider_id}",
            tracking_url=f"https://track.example.com/{provider_id}",
            price=Decimal("52.00"),
            status="new",
        )

    def cancel_order(self, provider_order_id):
        self.calls.append(("cancel_order", provider_order_id))
        if self.cancel_error:
            raise self.cancel_error

    def get_order(self, provider_order_id):
        self.calls.append(("get_order", provider_order_id))
        if self.error:
            raise self.error
        return self.order_info or CourierOrderInfo(status="available")

    def count(self, name):
        return sum(1 for call in self.calls if call[0] == name)


@pytest.fixture
def courier(monkeypatch):
    """Enable courier delivery backed by FakeCourierClient."""
    fake = FakeCourierClient()
    monkeypatch.setattr(config_mod, "COURIER_ENABLED", True)
    monkeypatch.setattr(config_mod, "COURIER_AUTH_TOKEN", "test-courier-token")
    monkeypatch.setattr("pharmacy_bot.services.delivery.get_courier_client", lambda: fake)
    return fake


@pytest.fixture
def courier_error():
    return CourierError("Courier request timed out: /create-order")
