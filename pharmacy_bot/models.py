from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    Boolean,
    JSON,
    DateTime,
    ForeignKey,
    Text,
    Index,
    Enum as SAEnum,
    func,
)
from sqlalchemy.orm import declarative_base, relationship

from .delivery_state import DeliveryStatus
from .state_machine import OrderStatus, PaymentMethod

Base = declarative_base()


def _enum_column_type(enum_cls, name: str) -> SAEnum:
    """Stores enum values (not member names) in a plain VARCHAR column."""
    return SAEnum(
        enum_cls,
        name=name,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class Pharmacy(Base):
    __tablename__ = "pharmacies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    whatsapp_number = Column(String, nullable=False, unique=True, index=True)  # E.164, no "whatsapp:" prefix
    address = Column(Text, nullable=True)
    pickup_address = Column(Text, nullable=True)  # falls back to address when empty
    contact_name = Column(String, nullable=True)
    upi_id = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    orders = relationship("Order", back_populates="pharmacy")


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    phone = Column(String, nullable=False, unique=True, index=True)  # E.164
    name = Column(String, nullable=True)
    address = Column(Text, nullable=True)  # last-used delivery address, a default only
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    orders = relationship("Order", back_populates="customer")


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(16), nullable=False, unique=True, index=True)  # e.g. PH-7KQ2MZ
    pharmacy_id = Column(Integer, ForeignKey("pharmacies.id"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    status = Column(
        _enum_column_type(OrderStatus, "order_status"),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
    )
    raw_message = Column(Text, nullable=True)
    parsed_items = Column(JSON, nullable=True)  # [{"name": ..., "quantity": ...}]
    requires_rx = Column(Boolean, nullable=False, default=False)
    rx_verified = Column(Boolean, nullable=False, default=False)
    payment_method = Column(_enum_column_type(PaymentMethod, "payment_method"), nullable=True)
    total_amount = Column(Numeric(10, 2), nullable=True)
    delivery_address = Column(Text, nullable=True)  # set once per order
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    pharmacy = relationship("Pharmacy", back_populates="orders")
    customer = relationship("Customer", back_populates="orders")
    status_history = relationship(
        "OrderStatusHistory",
        back_populates="order",
        order_by="OrderStatusHistory.id",
        cascade="all, delete-orphan",
    )
    prescriptions = relationship(
        "Prescription",
        back_populates="order",
        order_by="Prescription.id",
        cascade="all, delete-orphan",
    )
    delivery = relationship("Delivery", back_populates="order", uselist=False)

    # Conversation lookups: open orders for one customer at one pharmacy
    __table_args__ = (
        Index("ix_orders_customer_pharmacy_status", "customer_id", "pharmacy_id", "status"),
        Index("ix_orders_status_created_at", "status", "created_at"),
    )


class OrderStatusHistory(Base):
    """Append-only audit trail; one row per successful transition."""
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    from_status = Column(_enum_column_type(OrderStatus, "order_status"), nullable=True)
    to_status = Column(_enum_column_type(OrderStatus, "order_status"), nullable=False)
    changed_by = Column(String, nullable=True)  # None for chat-driven transitions
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    order = relationship("Order", back_populates="status_history")


class Prescription(Base):
    __tablename__ = "prescriptions"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    media_url = Column(Text, nullable=False)
    media_type = Column(String, nullable=True)
    is_valid = Column(Boolean, nullable=True)  # None until reviewed
    verified_by = Column(String, nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    order = relationship("Order", back_populates="prescriptions")


class Delivery(Base):
    __tablename__ = "deliveries"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, unique=True)
    pharmacy_id = Column(Integer, ForeignKey("pharmacies.id"), nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)

    provider = Column(String, nullable=False, default="borzo")
    provider_order_id = Column(String, nullable=True, index=True)
    provider_order_number = Column(String, nullable=True)
    tracking_url = Column(Text, nullable=True)
    status = Column(
        _enum_column_type(DeliveryStatus, "delivery_status"),
        nullable=False,
        default=DeliveryStatus.PENDING,
        index=True,
    )

    pickup_address = Column(Text, nullable=False)
    pickup_phone = Column(String, nullable=False)
    pickup_contact_name = Column(String, nullable=True)
    delivery_address = Column(Text, nullable=False)
    delivery_phone = Column(String, nullable=False)
    delivery_contact_name = Column(String, nullable=True)

    estimated_price = Column(Numeric(10, 2), nullable=True)
    final_price = Column(Numeric(10, 2), nullable=True)  # written once, at booking
    currency = Column(String(3), nullable=False, default="INR")

    courier_name = Column(String, nullable=True)
    courier_phone = Column(String, nullable=True)
    error_message = Column(Text, nullable=True)

    booked_at = Column(DateTime(timezone=True), nullable=True)
    picked_up_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    order = relationship("Order", back_populates="delivery")


class Message(Base):
    """Every inbound and outbound chat message."""
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)  # attributed after classification
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True, index=True)
    pharmacy_id = Column(Integer, ForeignKey("pharmacies.id"), nullable=True)
    direction = Column(String(8), nullable=False)  # "inbound" / "outbound"
    transport_message_id = Column(String, nullable=True, unique=True)  # Twilio MessageSid
    from_number = Column(String, nullable=True)
    to_number = Column(String, nullable=True)
    body = Column(Text, nullable=True)
    media_url = Column(Text, nullable=True)
    media_type = Column(String, nullable=True)
    delivery_status = Column(String, nullable=True)  # received/queued/sent/delivered/read/failed
    reply_body = Column(Text, nullable=True)  # reply returned for an inbound message
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)


class NotificationLog(Base):
    """One row per customer notification already sent, keyed for de-duplication."""
    __tablename__ = "notification_log"

    id = Column(Integer, primary_key=True, index=True)
    idempotency_key = Column(String, nullable=False, unique=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)
    kind = Column(String, nullable=False)
    transport_message_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
