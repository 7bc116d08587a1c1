"""
Tests for inbound message handling: intent priority, the action taken for
each intent, duplicate suppression and message attribution.
"""

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from pharmacy_bot.message_processor import MessageProcessor, record_delivery_status
from pharmacy_bot.models import Customer, Message, Order, OrderStatusHistory, Prescription
from pharmacy_bot.services.conversation import ConversationState, active_lock_count
from pharmacy_bot.services.intents import InboundMessage, Intent, classify
from pharmacy_bot.services.notifications import PHARMACY_NOT_REGISTERED, PROCESSING_ERROR_REPLY
from pharmacy_bot.state_machine import OrderStatus


PHARMACY_ADDRESS = "whatsapp:+919812345678"
SENDER = "whatsapp:+919876543210"
ADDRESS = "Flat 4B, Lake View Apartments, Indiranagar 560038"

_sid_counter = iter(range(1, 10_000))


def inbound(body="", sid=None, **kwargs):
    return InboundMessage(
        sender=kwargs.pop("sender", SENDER),
        recipient=kwargs.pop("recipient", PHARMACY_ADDRESS),
        body=body,
        transport_message_id=sid or f"SMin{next(_sid_counter)}",
        **kwargs,
    )


def photo(sid=None):
    return inbound(
        "", sid=sid, num_media=1,
        media_url="https://api.twilio.com/media/ME1", media_type="image/jpeg",
    )


def process(db_session, message):
    return MessageProcessor(db_session).process(message)


def orders_in(db_session):
    db_session.expire_all()
    return db_session.query(Order).order_by(Order.id).all()


# =============================================================================
# classify: priority order over a state snapshot
# =============================================================================

def _state(*orders, address=None):
    customer = SimpleNamespace(id=1, address=address)
    return ConversationState(customer=customer, pharmacy=SimpleNamespace(id=1), open_orders=list(orders))


def _o(status, delivery_address=None):
    return SimpleNamespace(status=status, delivery_address=delivery_address)


class TestClassify:
    def test_no_open_orders_is_new_order(self):
        assert classify(inbound("Crocin x 2"), _state()).intent == Intent.NEW_ORDER

    def test_photo_with_awaiting_rx(self):
        order = _o(OrderStatus.AWAITING_RX)
        decision = classify(photo(), _state(_o(OrderStatus.PENDING), order))
        assert decision.intent == Intent.ATTACH_PRESCRIPTION
        assert decision.order is order

    def test_photo_without_awaiting_rx_is_appended(self):
        assert classify(photo(), _state(_o(OrderStatus.PENDING))).intent == Intent.APPEND_TO_ORDER

    def test_prescription_beats_address_reuse(self):
        state = _state(_o(OrderStatus.CONFIRMED), _o(OrderStatus.AWAITING_RX), address=ADDRESS)
        message = inbound("yes", num_media=1, media_url="https://api.twilio.com/media/ME1")
        assert classify(message, state).intent == Intent.ATTACH_PRESCRIPTION

    def test_affirmation_reuses_saved_address(self):
        state = _state(_o(OrderStatus.CONFIRMED), address=ADDRESS)
        assert classify(inbound("Yes"), state).intent == Intent.REUSE_ADDRESS

    def test_affirmation_without_saved_address_is_appended(self):
        assert classify(inbound("Yes"), _state(_o(OrderStatus.CONFIRMED))).intent == Intent.APPEND_TO_ORDER

    def test_affirmation_when_order_has_address_is_appended(self):
        state = _state(_o(OrderStatus.CONFIRMED, delivery_address=ADDRESS), address=ADDRESS)
        assert classify(inbound("Yes"), state).intent == Intent.APPEND_TO_ORDER

    def test_reply_starting_with_yes_is_not_affirmation(self):
        order = _o(OrderStatus.CONFIRMED)
        decision = classify(inbound("Yes I also need Crocin x2"), _state(order, address=ADDRESS))
        assert decision.intent == Intent.APPEND_TO_ORDER
        assert decision.order is order

    def test_address_beats_append(self):
        state = _state(_o(OrderStatus.PAYMENT_CONFIRMED))
        assert classify(inbound(ADDRESS), state).intent == Intent.NEW_ADDRESS

    def test_address_ignored_before_confirmation(self):
        assert classify(inbound(ADDRESS), _state(_o(OrderStatus.UNDER_REVIEW))).intent == Intent.APPEND_TO_ORDER

    def test_address_targets_eligible_order_not_newest(self):
        eligible = _o(OrderStatus.READY_FOR_PICKUP)
        decision = classify(inbound(ADDRESS), _state(_o(OrderStatus.PENDING), eligible))
        assert decision.intent == Intent.NEW_ADDRESS
        assert decision.order is eligible

    def test_payment_ack(self):
        order = _o(OrderStatus.AWAITING_PAYMENT)
        decision = classify(inbound("Paid!"), _state(_o(OrderStatus.PENDING), order))
        assert decision.intent == Intent.PAYMENT_ACK
        assert decision.order is order

    def test_payment_ack_without_awaiting_payment(self):
        assert classify(inbound("paid"), _state(_o(OrderStatus.CONFIRMED))).intent == Intent.APPEND_TO_ORDER

    def test_append_goes_to_newest(self):
        newest = _o(OrderStatus.UNDER_REVIEW)
        decision = classify(inbound("also need Vicks"), _state(newest, _o(OrderStatus.PENDING)))
        assert decision.order is newest


# =============================================================================
# MessageProcessor: end to end against the database
# =============================================================================

class TestNewOrder:
    def test_creates_pending_order(self, db_session, pharmacy):
        result = process(db_session, inbound("Paracetamol x10, Vitamin C x2", profile_name="Asha"))

        [order] = orders_in(db_session)
        assert result.intent == "new_order"
        assert result.order_id == order.id
        assert order.status == OrderStatus.PENDING
        assert order.parsed_items == [
            {"name": "Paracetamol", "quantity": 10},
            {"name": "Vitamin C", "quantity": 2},
        ]
        assert order.requires_rx is False
        assert order.order_number.startswith("PH-")
        assert result.reply.startswith("Hi Asha! We received your order.")
        assert "1. Paracetamol x 10\n2. Vitamin C x 2" in result.reply
        assert f"Order #{order.order_number}" in result.reply

    def test_customer_created_with_profile_name(self, db_session, pharmacy):
        process(db_session, inbound("Crocin", profile_name="Asha"))
        customer = db_session.query(Customer).one()
        assert customer.phone == "+919876543210"
        assert customer.name == "Asha"

    def test_rx_items_flagged(self, db_session, pharmacy):
        result = process(db_session, inbound("Azithromycin 500mg x 3"))
        assert orders_in(db_session)[0].requires_rx is True
        assert "may require a prescription" in result.reply

    def test_insulin_order_needs_prescription(self, db_session, pharmacy):
        result = process(db_session, inbound("Crocin x2, Insulin x1"))

        [order] = orders_in(db_session)
        assert order.status == OrderStatus.PENDING
        assert order.requires_rx is True
        assert order.parsed_items == [
            {"name": "Crocin", "quantity": 2},
            {"name": "Insulin", "quantity": 1},
        ]
        assert f"Order #{order.order_number}" in result.reply
        assert "Some items may require a prescription" in result.reply

    def test_initial_history_row(self, db_session, pharmacy):
        result = process(db_session, inbound("Crocin"))
        [row] = db_session.query(OrderStatusHistory).filter_by(order_id=result.order_id).all()
        assert (row.from_status, row.to_status, row.changed_by) == (None, OrderStatus.PENDING, None)

    def test_unknown_pharmacy(self, db_session, pharmacy):
        result = process(db_session, inbound("Crocin", recipient="whatsapp:+911111111111"))
        assert result.reply == PHARMACY_NOT_REGISTERED
        assert orders_in(db_session) == []

    def test_inactive_pharmacy(self, db_session, pharmacy):
        pharmacy.is_active = False
        db_session.commit()
        assert process(db_session, inbound("Crocin")).reply == PHARMACY_NOT_REGISTERED

    def test_terminal_orders_do_not_receive_messages(self, db_session, order_factory):
        order_factory(status=OrderStatus.COMPLETED)
        result = process(db_session, inbound("Dolo 650"))
        assert result.intent == "new_order"
        assert len(orders_in(db_session)) == 2


class TestAppendToOrder:
    def test_follow_up_attaches_to_open_order(self, db_session, order_factory):
        order = order_factory(status=OrderStatus.UNDER_REVIEW)

        result = process(db_session, inbound("Also add Vicks"))

        assert result.intent == "append_to_order"
        assert result.order_id == order.id
        assert result.reply.startswith(f"Message received for Order #{order.order_number}")
        assert len(orders_in(db_session)) == 1
        stored = db_session.query(Message).filter_by(direction="inbound").one()
        assert stored.order_id == order.id
        assert stored.body == "Also add Vicks"


class TestPrescriptionUpload:
    def test_photo_moves_order_to_rx_received(self, db_session, order_factory, sent_messages):
        order = order_factory(message="Azithromycin 500mg x 3", status=OrderStatus.AWAITING_RX)

        result = process(db_session, photo())

        assert result.intent == "attach_prescription"
        assert result.reply.startswith("Thank you! We received your prescription")
        assert orders_in(db_session)[0].status == OrderStatus.RX_RECEIVED
        rx = db_session.query(Prescription).one()
        assert rx.order_id == order.id
        assert rx.media_type == "image/jpeg"
        assert rx.is_valid is None
        # reply comes back in the webhook response only
        assert sent_messages == []

    def test_second_photo_is_appended(self, db_session, order_factory):
        order_factory(status=OrderStatus.AWAITING_RX)
        process(db_session, photo())
        result = process(db_session, photo())
        assert result.intent == "append_to_order"
        assert db_session.query(Prescription).count() == 1


class TestAddressCapture:
    def test_new_address_saved_on_order_and_customer(self, db_session, order_factory, customer):
        order = order_factory(status=OrderStatus.CONFIRMED, total_amount=100)

        result = process(db_session, inbound(ADDRESS))

        assert result.intent == "new_address"
        assert result.reply.startswith("Thank you! Your delivery address has been saved.")
        db_session.expire_all()
        assert db_session.get(Order, order.id).delivery_address == ADDRESS
        assert db_session.get(Customer, customer.id).address == ADDRESS

    def test_affirmation_reuses_saved_address(self, db_session, order_factory, customer):
        customer.address = ADDRESS
        db_session.commit()
        order = order_factory(status=OrderStatus.READY_FOR_PICKUP, total_amount=100)

        result = process(db_session, inbound("Same address"))

        assert result.intent == "reuse_address"
        assert ADDRESS in result.reply
        db_session.expire_all()
        assert db_session.get(Order, order.id).delivery_address == ADDRESS

    def test_follow_up_starting_with_yes_keeps_order_without_address(self, db_session, order_factory, customer):
        customer.address = ADDRESS
        db_session.commit()
        order = order_factory(status=OrderStatus.CONFIRMED, total_amount=100)

        result = process(db_session, inbound("Yes I also need Crocin x2"))

        assert result.intent == "append_to_order"
        db_session.expire_all()
        assert db_session.get(Order, order.id).delivery_address is None

    def test_address_is_not_overwritten(self, db_session, order_factory):
        order = order_factory(status=OrderStatus.CONFIRMED, delivery_address=ADDRESS)
        result = process(db_session, inbound("House 9, 2nd Main Road, Jayanagar 560041"))
        assert result.intent == "append_to_order"
        db_session.expire_all()
        assert db_session.get(Order, order.id).delivery_address == ADDRESS

    def test_address_after_ready_does_not_book(self, db_session, order_factory, courier):
        order_factory(status=OrderStatus.READY_FOR_PICKUP, total_amount=100)
        process(db_session, inbound(ADDRESS))
        assert courier.calls == []


class TestPaymentAck:
    def test_acknowledged_without_transition(self, db_session, order_factory):
        order = order_factory(status=OrderStatus.AWAITING_PAYMENT, total_amount=100, payment_method="upi")

        result = process(db_session, inbound("paid"))

        assert result.intent == "payment_ack"
        assert result.reply.startswith("Thank you for your payment confirmation")
        db_session.expire_all()
        assert db_session.get(Order, order.id).status == OrderStatus.AWAITING_PAYMENT


class TestRetriesAndErrors:
    def test_same_message_sid_is_processed_once(self, db_session, pharmacy):
        first = process(db_session, inbound("Crocin x 2", sid="SMretry1"))
        second = process(db_session, inbound("Crocin x 2", sid="SMretry1"))

        assert second.duplicate is True
        assert second.reply == first.reply
        assert second.order_id == first.order_id
        assert len(orders_in(db_session)) == 1
        assert db_session.query(Message).filter_by(direction="inbound").count() == 1

    def test_unexpected_error_returns_apology(self, db_session, pharmacy):
        with patch("pharmacy_bot.message_processor.IntentResolver.resolve", side_effect=RuntimeError("boom")):
            result = process(db_session, inbound("Crocin"))

        assert result.error is True
        assert result.reply == PROCESSING_ERROR_REPLY
        assert active_lock_count() == 0

    def test_failed_message_can_be_retried(self, db_session, pharmacy):
        with patch("pharmacy_bot.message_processor.IntentResolver.resolve", side_effect=RuntimeError("boom")):
            process(db_session, inbound("Crocin", sid="SMflaky"))

        result = process(db_session, inbound("Crocin", sid="SMflaky"))

        assert result.duplicate is False
        assert result.intent == "new_order"


class TestRecordDeliveryStatus:
    def test_updates_outbound_message(self, db_session, order_factory, sent_messages):
        from pharmacy_bot.whatsapp import send_whatsapp_message

        order = order_factory()
        sent = send_whatsapp_message(db_session, order.customer.phone, "Hello", order_id=order.id)

        assert record_delivery_status(db_session, sent["sid"], "delivered") is True
        stored = db_session.query(Message).filter_by(transport_message_id=sent["sid"]).one()
        assert stored.delivery_status == "delivered"
        assert orders_in(db_session)[0].status == OrderStatus.PENDING

    def test_unknown_sid(self, db_session):
        assert record_delivery_status(db_session, "SMnope", "read") is False


@pytest.mark.parametrize("status", [OrderStatus.CANCELLED, OrderStatus.COMPLETED])
def test_customer_with_only_closed_orders_starts_fresh(db_session, order_factory, status):
    order_factory(status=status, total_amount=Decimal("10"))
    assert process(db_session, inbound("Vicks")).intent == "new_order"
