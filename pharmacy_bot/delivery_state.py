"""
Delivery dispatch statuses and courier status mapping.

Local dispatch path driven by the delivery service:

    pending -> calculating -> quoted -> booked

Courier callbacks move a booked delivery through
courier_assigned -> in_transit -> delivered. ``cancelled`` and ``failed`` can
be reached from any active status.
"""

from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    CALCULATING = "calculating"
    QUOTED = "quoted"
    BOOKED = "booked"
    COURIER_ASSIGNED = "courier_assigned"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    FAILED = "failed"


# Steps the service drives itself, before the courier takes over
DISPATCH_SEQUENCE = (
    DeliveryStatus.PENDING,
    DeliveryStatus.CALCULATING,
    DeliveryStatus.QUOTED,
    DeliveryStatus.BOOKED,
)

# A provider-side cancel is only attempted from these
PROVIDER_CANCELLABLE = frozenset({
    DeliveryStatus.BOOKED,
    DeliveryStatus.COURIER_ASSIGNED,
})

# No provider order exists yet (or the last attempt failed); booking may run
BOOKABLE = frozenset({
    DeliveryStatus.PENDING,
    DeliveryStatus.CALCULATING,
    DeliveryStatus.QUOTED,
    DeliveryStatus.FAILED,
})

# Callbacks arriving after one of these are ignored
FINAL = frozenset({
    DeliveryStatus.DELIVERED,
    DeliveryStatus.CANCELLED,
})


PROVIDER_STATUS_MAP: Mapping[str, DeliveryStatus] = MappingProxyType({
    "available": DeliveryStatus.BOOKED,
    "active": DeliveryStatus.COURIER_ASSIGNED,
    "performer_found": DeliveryStatus.COURIER_ASSIGNED,
    "performer_on_the_way": DeliveryStatus.IN_TRANSIT,
    "delivering": DeliveryStatus.IN_TRANSIT,
    "completed": DeliveryStatus.DELIVERED,
    "cancelled": DeliveryStatus.CANCELLED,
    "failed": DeliveryStatus.FAILED,
})


def map_provider_status(provider_status: Optional[str]) -> Optional[DeliveryStatus]:
    """Translate a courier status string; unknown values map to None."""
    if not provider_status:
        return None
    return PROVIDER_STATUS_MAP.get(provider_status.strip().lower())


def next_dispatch_step(current: DeliveryStatus) -> Optional[DeliveryStatus]:
    """The status after ``current`` on the local dispatch path, if any."""
    try:
        idx = DISPATCH_SEQUENCE.index(DeliveryStatus(current))
    except ValueError:
        return None
    if idx + 1 >= len(DISPATCH_SEQUENCE):
        return None
    return DISPATCH_SEQUENCE[idx + 1]
