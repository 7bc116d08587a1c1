"""Tests for delivery statuses and courier status mapping."""

import pytest

from pharmacy_bot.delivery_state import (
    BOOKABLE,
    FINAL,
    PROVIDER_CANCELLABLE,
    DeliveryStatus,
    map_provider_status,
    next_dispatch_step,
)


@pytest.mark.parametrize("provider_status, expected", [
    ("available", DeliveryStatus.BOOKED),
    ("active", DeliveryStatus.COURIER_ASSIGNED),
    ("performer_found", DeliveryStatus.COURIER_ASSIGNED),
    ("performer_on_the_way", DeliveryStatus.IN_TRANSIT),
    ("delivering", DeliveryStatus.IN_TRANSIT),
    ("completed", DeliveryStatus.DELIVERED),
    ("cancelled", DeliveryStatus.CANCELLED),
    ("failed", DeliveryStatus.FAILED),
])
def test_known_provider_statuses(provider_status, expected):
    assert map_provider_status(provider_status) == expected


def test_provider_status_is_case_and_whitespace_insensitive():
    assert map_provider_status("  Completed ") == DeliveryStatus.DELIVERED


@pytest.mark.parametrize("provider_status", [None, "", "reactivated", "draft"])
def test_unknown_provider_status_maps_to_none(provider_status):
    assert map_provider_status(provider_status) is None


class TestDispatchPath:
    def test_local_steps(self):
        assert next_dispatch_step(DeliveryStatus.PENDING) == DeliveryStatus.CALCULATING
        assert next_dispatch_step(DeliveryStatus.CALCULATING) == DeliveryStatus.QUOTED
        assert next_dispatch_step(DeliveryStatus.QUOTED) == DeliveryStatus.BOOKED

    def test_courier_owns_everything_after_booking(self):
        assert next_dispatch_step(DeliveryStatus.BOOKED) is None
        assert next_dispatch_step(DeliveryStatus.IN_TRANSIT) is None


def test_status_groups():
    assert DeliveryStatus.FAILED in BOOKABLE
    assert DeliveryStatus.BOOKED not in BOOKABLE
    assert PROVIDER_CANCELLABLE == {DeliveryStatus.BOOKED, DeliveryStatus.COURIER_ASSIGNED}
    assert FINAL == {DeliveryStatus.DELIVERED, DeliveryStatus.CANCELLED}
    assert not BOOKABLE & FINAL
