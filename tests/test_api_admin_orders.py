"""
API tests for the pharmacist order dashboard endpoints.
"""

from decimal import Decimal

import pytest

from pharmacy_bot.models import Message, Order, OrderStatusHistory, Prescription
from pharmacy_bot.state_machine import OrderStatus


BASE = "/admin/orders"
ADDRESS = "Flat 4B, Lake View Apartments, Indiranagar 560038"


def _reload(db_session, order_id):
    db_session.expire_all()
    return db_session.get(Order, order_id)


class TestAuth:
    def test_requires_credentials(self, client):
        assert client.get(BASE).status_code == 401

    def test_wrong_password(self, client):
        assert client.get(BASE, auth=("testadmin", "nope")).status_code == 401

    def test_unconfigured_password_fails_closed(self, client, admin_auth, monkeypatch):
        from pharmacy_bot import config
        monkeypatch.setattr(config, "ADMIN_PASSWORD", "")
        assert client.get(BASE, auth=admin_auth).status_code == 503


class TestListOrders:
    def test_lists_newest_first(self, client, admin_auth, order_factory):
        first = order_factory("Crocin")
        second = order_factory("Vicks")

        response = client.get(BASE, auth=admin_auth)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert [o["id"] for o in data["items"]] == [second.id, first.id]
        assert data["items"][0]["status_label"] == "New Order"
        assert data["items"][0]["customer_phone"] == "+919876543210"
        assert data["has_next"] is False

    def test_status_filter(self, client, admin_auth, order_factory):
        order_factory()
        review = order_factory(status=OrderStatus.UNDER_REVIEW)

        data = client.get(BASE, params={"status": "under_review"}, auth=admin_auth).json()

        assert [o["id"] for o in data["items"]] == [review.id]

    def test_search_by_order_number_and_name(self, client, admin_auth, order_factory):
        order = order_factory()
        order_factory()

        by_number = client.get(BASE, params={"search": order.order_number.lower()}, auth=admin_auth).json()
        by_name = client.get(BASE, params={"search": "ash"}, auth=admin_auth).json()

        assert [o["id"] for o in by_number["items"]] == [order.id]
        assert by_name["total"] == 2

    def test_pagination(self, client, admin_auth, order_factory):
        for _ in range(3):
            order_factory()

        data = client.get(BASE, params={"page": 1, "page_size": 2}, auth=admin_auth).json()

        assert len(data["items"]) == 2
        assert data["total"] == 3
        assert data["has_next"] is True

    def test_invalid_status_filter(self, client, admin_auth):
        assert client.get(BASE, params={"status": "shipped"}, auth=admin_auth).status_code == 422


class TestOrderDetail:
    def test_detail(self, client, admin_auth, order_factory):
        order = order_factory("Azithromycin 500mg x 2 strips, Crocin")

        response = client.get(f"{BASE}/{order.id}", auth=admin_auth)

        assert response.status_code == 200
        data = response.json()
        assert data["order_number"] == order.order_number
        assert data["requires_rx"] is True
        assert data["parsed_items"] == [
            {"name": "Azithromycin 500mg", "quantity": 2},
            {"name": "Crocin", "quantity": 1},
        ]
        assert data["valid_events"] == ["RX_REQUIRED", "START_REVIEW", "CANCEL"]
        assert data["history"][0]["to_status"] == "pending"
        assert data["delivery"] is None

    def test_not_found(self, client, admin_auth):
        response = client.get(f"{BASE}/999", auth=admin_auth)
        assert response.status_code == 404
        assert response.json() == {"detail": "Order not found"}


class TestStatusUpdate:
    def test_start_review(self, client, admin_auth, order_factory, db_session):
        order = order_factory()

        response = client.patch(f"{BASE}/{order.id}/status", json={"status": "under_review"}, auth=admin_auth)

        assert response.status_code == 200
        assert response.json()["status"] == "under_review"
        history = db_session.query(OrderStatusHistory).filter_by(order_id=order.id).all()
        assert history[-1].changed_by == "testadmin"

    def test_confirm_cod(self, client, admin_auth, order_factory, sent_messages):
        order = order_factory(status=OrderStatus.UNDER_REVIEW)

        response = client.patch(f"{BASE}/{order.id}/status", json={
            "status": "confirmed", "total_amount": 245.5, "payment_method": "cod",
        }, auth=admin_auth)

        data = response.json()
        assert data["status"] == "confirmed"
        assert data["total_amount"] == 245.5
        assert data["payment_method"] == "cod"
        assert "Total: Rs. 245.50" in sent_messages[0]["body"]

    def test_confirm_upi_sends_payment_details(self, client, admin_auth, order_factory, sent_messages):
        order = order_factory(status=OrderStatus.UNDER_REVIEW)

        response = client.patch(f"{BASE}/{order.id}/status", json={
            "status": "awaiting_payment", "total_amount": "99.00",
        }, auth=admin_auth)

        assert response.json()["payment_method"] == "upi"
        assert len(sent_messages) == 2

    def test_confirm_without_total(self, client, admin_auth, order_factory):
        order = order_factory(status=OrderStatus.UNDER_REVIEW)
        response = client.patch(f"{BASE}/{order.id}/status", json={"status": "confirmed"}, auth=admin_auth)
        assert response.status_code == 400
        assert response.json()["detail"] == "Total amount is required"

    def test_negative_total(self, client, admin_auth, order_factory):
        order = order_factory(status=OrderStatus.UNDER_REVIEW)
        response = client.patch(f"{BASE}/{order.id}/status", json={
            "status": "confirmed", "total_amount": -5,
        }, auth=admin_auth)
        assert response.status_code == 422

    def test_invalid_transition_message(self, client, admin_auth, order_factory, db_session):
        order = order_factory()

        response = client.patch(f"{BASE}/{order.id}/status", json={"status": "completed"}, auth=admin_auth)

        assert response.status_code == 400
        assert response.json()["detail"] == (
            "Invalid transition: Cannot apply MARK_COMPLETED to order in pending status"
        )
        assert _reload(db_session, order.id).status == OrderStatus.PENDING

    def test_stale_expected_status(self, client, admin_auth, order_factory):
        order = order_factory(status=OrderStatus.UNDER_REVIEW)

        response = client.patch(f"{BASE}/{order.id}/status", json={
            "status": "cancelled", "expected_status": "pending",
        }, auth=admin_auth)

        assert response.status_code == 409

    def test_cancel_with_reason(self, client, admin_auth, order_factory, sent_messages):
        order = order_factory(status=OrderStatus.CONFIRMED, total_amount=50)

        client.patch(f"{BASE}/{order.id}/status", json={
            "status": "cancelled", "reason": "Customer asked to cancel",
        }, auth=admin_auth)

        assert "Reason: Customer asked to cancel" in sent_messages[0]["body"]

    def test_silent_update(self, client, admin_auth, order_factory, sent_messages):
        order = order_factory(status=OrderStatus.UNDER_REVIEW)
        client.patch(f"{BASE}/{order.id}/status", json={
            "status": "cancelled", "notify_customer": False,
        }, auth=admin_auth)
        assert sent_messages == []

    def test_ready_books_courier(self, client, admin_auth, order_factory, courier, sent_messages):
        order = order_factory(status=OrderStatus.CONFIRMED, total_amount=50, delivery_address=ADDRESS)

        response = client.patch(f"{BASE}/{order.id}/status", json={"status": "ready_for_pickup"}, auth=admin_auth)

        data = response.json()
        assert data["status"] == "ready_for_pickup"
        assert data["delivery"]["status"] == "booked"
        assert data["delivery"]["tracking_url"] == "https://track.example.com/1001"
        [message] = sent_messages
        assert message["body"].startswith(f"Order #{order.order_number} is ready and a delivery partner")

    def test_complete_notifies_customer(self, client, admin_auth, order_factory, sent_messages):
        order = order_factory(status=OrderStatus.READY_FOR_PICKUP, total_amount=50, delivery_address=ADDRESS)

        response = client.patch(f"{BASE}/{order.id}/status", json={"status": "completed"}, auth=admin_auth)

        assert response.json()["status"] == "completed"
        [message] = sent_messages
        assert message["body"] == f"Order #{order.order_number}: Order completed. Thank you for choosing us!"


class TestOrderEdits:
    def test_edit_items_and_notes(self, client, admin_auth, order_factory):
        order = order_factory()

        response = client.patch(f"{BASE}/{order.id}", json={
            "parsed_items": [{"name": "Crocin Advance", "quantity": 3}],
            "notes": "Customer prefers generic",
        }, auth=admin_auth)

        data = response.json()
        assert data["parsed_items"] == [{"name": "Crocin Advance", "quantity": 3}]
        assert data["notes"] == "Customer prefers generic"
        assert data["status"] == "pending"

    def test_total_only_after_confirmation(self, client, admin_auth, order_factory):
        pending = order_factory()
        confirmed = order_factory(status=OrderStatus.CONFIRMED, total_amount=50)

        rejected = client.patch(f"{BASE}/{pending.id}", json={"total_amount": 80}, auth=admin_auth)
        accepted = client.patch(f"{BASE}/{confirmed.id}", json={"total_amount": 80}, auth=admin_auth)

        assert rejected.status_code == 400
        assert accepted.json()["total_amount"] == 80.0

    def test_item_quantity_bounds(self, client, admin_auth, order_factory):
        order = order_factory()
        response = client.patch(f"{BASE}/{order.id}", json={
            "parsed_items": [{"name": "Crocin", "quantity": 0}],
        }, auth=admin_auth)
        assert response.status_code == 422


class TestOrderActions:
    def test_request_rx(self, client, admin_auth, order_factory, sent_messages):
        order = order_factory(status=OrderStatus.UNDER_REVIEW)

        response = client.post(f"{BASE}/{order.id}/request-rx", auth=admin_auth)

        assert response.json()["status"] == "awaiting_rx"
        assert "photo of your valid prescription" in sent_messages[0]["body"]

    def test_items_unavailable(self, client, admin_auth, order_factory, sent_messages, db_session):
        order = order_factory(status=OrderStatus.UNDER_REVIEW)

        response = client.post(f"{BASE}/{order.id}/items-unavailable", json={}, auth=admin_auth)

        assert response.json()["status"] == "cancelled"
        assert "Reason: Some items are currently unavailable" in sent_messages[0]["body"]

    def test_items_unavailable_only_under_review(self, client, admin_auth, order_factory):
        order = order_factory()
        response = client.post(f"{BASE}/{order.id}/items-unavailable", json={"reason": "x"}, auth=admin_auth)
        assert response.status_code == 400

    def test_send_payment(self, client, admin_auth, order_factory, sent_messages):
        order = order_factory(status=OrderStatus.AWAITING_PAYMENT, total_amount=99, payment_method="upi")

        response = client.post(f"{BASE}/{order.id}/send-payment", auth=admin_auth)

        assert response.json()["status"] == "sent"
        assert "UPI ID: citycare@okaxis" in sent_messages[0]["body"]

    def test_send_payment_without_total(self, client, admin_auth, order_factory):
        order = order_factory()
        response = client.post(f"{BASE}/{order.id}/send-payment", auth=admin_auth)
        assert response.status_code == 400
        assert response.json()["detail"] == "Order total amount not set"

    def test_request_address_offers_previous(self, client, admin_auth, order_factory, customer,
                                             db_session, sent_messages):
        customer.address = ADDRESS
        db_session.commit()
        order = order_factory(status=OrderStatus.CONFIRMED, total_amount=50)

        client.post(f"{BASE}/{order.id}/request-address", auth=admin_auth)

        assert "deliver to your previous address" in sent_messages[0]["body"]
        assert ADDRESS in sent_messages[0]["body"]

    def test_request_address_when_already_set(self, client, admin_auth, order_factory):
        order = order_factory(status=OrderStatus.CONFIRMED, delivery_address=ADDRESS)
        response = client.post(f"{BASE}/{order.id}/request-address", auth=admin_auth)
        assert response.status_code == 400


class TestMessages:
    def test_send_and_list(self, client, admin_auth, order_factory, sent_messages):
        order = order_factory()

        sent = client.post(f"{BASE}/{order.id}/messages", json={"message": "  Is generic OK?  "}, auth=admin_auth)
        listed = client.get(f"{BASE}/{order.id}/messages", auth=admin_auth)

        assert sent.json()["status"] == "sent"
        assert sent_messages[0]["body"] == f"Regarding Order #{order.order_number}:\n\nIs generic OK?"
        [message] = listed.json()
        assert message["direction"] == "outbound"

    def test_blank_message_rejected(self, client, admin_auth, order_factory):
        order = order_factory()
        response = client.post(f"{BASE}/{order.id}/messages", json={"message": "   "}, auth=admin_auth)
        assert response.status_code == 422

    def test_transport_failure_is_502(self, client, admin_auth, order_factory, monkeypatch):
        from pharmacy_bot import whatsapp

        monkeypatch.setattr(whatsapp, "send_whatsapp", lambda to, body, media_url=None: {
            "status": "error", "sid": None, "to": to, "error": "63016",
        })
        order = order_factory()

        response = client.post(f"{BASE}/{order.id}/messages", json={"message": "Hello"}, auth=admin_auth)

        assert response.status_code == 502

    def test_conversation_includes_inbound(self, client, admin_auth, pharmacy, db_session):
        client.post("/webhooks/twilio/incoming", data={
            "From": "whatsapp:+919876543210", "To": "whatsapp:+919812345678",
            "MessageSid": "SMconv1", "Body": "Crocin x 2",
        })
        order = db_session.query(Order).one()

        [message] = client.get(f"{BASE}/{order.id}/messages", auth=admin_auth).json()

        assert message["direction"] == "inbound"
        assert message["body"] == "Crocin x 2"


class TestPrescriptionReview:
    @pytest.fixture
    def rx(self, db_session, order_factory, customer):
        order = order_factory("Azithromycin 500mg", status=OrderStatus.RX_RECEIVED)
        prescription = Prescription(order_id=order.id, customer_id=customer.id,
                                    media_url="https://api.twilio.com/media/ME1")
        db_session.add(prescription)
        db_session.commit()
        return order, prescription

    def test_mark_valid(self, client, admin_auth, rx, db_session):
        order, prescription = rx

        response = client.patch(f"{BASE}/{order.id}/prescriptions/{prescription.id}",
                                json={"is_valid": True}, auth=admin_auth)

        assert response.status_code == 200
        data = response.json()
        assert data["is_valid"] is True
        assert data["verified_by"] == "testadmin"
        assert _reload(db_session, order.id).rx_verified is True
        # review does not move the order
        assert _reload(db_session, order.id).status == OrderStatus.RX_RECEIVED

    def test_mark_invalid(self, client, admin_auth, rx, db_session):
        order, prescription = rx
        client.patch(f"{BASE}/{order.id}/prescriptions/{prescription.id}",
                     json={"is_valid": False}, auth=admin_auth)
        assert _reload(db_session, order.id).rx_verified is False

    def test_prescription_of_other_order(self, client, admin_auth, rx, order_factory):
        _, prescription = rx
        other = order_factory()
        response = client.patch(f"{BASE}/{other.id}/prescriptions/{prescription.id}",
                                json={"is_valid": True}, auth=admin_auth)
        assert response.status_code == 404


def test_versioned_admin_path(client, admin_auth, order_factory):
    order = order_factory(total_amount=Decimal("10"))
    assert client.get(f"/api/v1{BASE}/{order.id}", auth=admin_auth).status_code == 200


def test_outbound_messages_attributed(client, admin_auth, order_factory, sent_messages, db_session):
    order = order_factory(status=OrderStatus.UNDER_REVIEW)
    client.post(f"{BASE}/{order.id}/request-rx", auth=admin_auth)
    db_session.expire_all()
    assert db_session.query(Message).filter_by(order_id=order.id, direction="outbound").count() == 1
