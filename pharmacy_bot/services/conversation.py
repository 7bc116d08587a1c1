"""
Per-conversation serialization and state snapshot.

A conversation is one customer talking to one pharmacy. Inbound messages for
the same conversation are processed one at a time: the lock is taken before
the customer's orders are read, so two messages arriving together cannot both
see "no open order" and each create one.

The lock registry is in-process. Running several worker processes needs the
same key serialized at the database level instead (e.g. an advisory lock).
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..models import Customer, Order, Pharmacy
from ..state_machine import ADDRESS_ELIGIBLE_STATUSES, OrderStatus
from . import orders as order_repo

logger = logging.getLogger(__name__)


# =============================================================================
# Conversation Lock Registry
# =============================================================================

_registry_lock = threading.Lock()
# key -> [lock, number of holders and waiters]
_conversation_locks: Dict[Tuple[str, int], list] = {}


@contextmanager
def conversation_lock(phone: str, pharmacy_id: int) -> Iterator[None]:
    """Serialize processing for one (customer phone, pharmacy) pair."""
    key = (phone, pharmacy_id)
    with _registry_lock:
        entry = _conversation_locks.setdefault(key, [threading.Lock(), 0])
        entry[1] += 1

    entry[0].acquire()
    try:
        yield
    finally:
        entry[0].release()
        with _registry_lock:
            entry[1] -= 1
            if entry[1] == 0:
                _conversation_locks.pop(key, None)


def active_lock_count() -> int:
    with _registry_lock:
        return len(_conversation_locks)


# =============================================================================
# Conversation State
# =============================================================================

@dataclass
class ConversationState:
    """The customer's open orders at one pharmacy, newest first."""
    customer: Customer
    pharmacy: Pharmacy
    open_orders: List[Order] = field(default_factory=list)

    @property
    def last_known_address(self) -> Optional[str]:
        address = (self.customer.address or "").strip()
        return address or None

    def latest_in(self, statuses: Iterable[OrderStatus]) -> Optional[Order]:
        wanted = set(statuses)
        for order in self.open_orders:
            if OrderStatus(order.status) in wanted:
                return order
        return None

    def awaiting_rx_order(self) -> Optional[Order]:
        return self.latest_in([OrderStatus.AWAITING_RX])

    def awaiting_payment_order(self) -> Optional[Order]:
        return self.latest_in([OrderStatus.AWAITING_PAYMENT])

    def order_needing_address(self) -> Optional[Order]:
        """Newest order that can still take a delivery address."""
        wanted = set(ADDRESS_ELIGIBLE_STATUSES)
        for order in self.open_orders:
            if OrderStatus(order.status) in wanted and not order.delivery_address:
                return order
        return None

    def latest_open_order(self) -> Optional[Order]:
        return self.open_orders[0] if self.open_orders else None


def load_conversation(db: Session, customer: Customer, pharmacy: Pharmacy) -> ConversationState:
    open_orders = order_repo.find_open_orders(db, customer.id, pharmacy.id)
    logger.debug(
        "Conversation loaded: customer=%d pharmacy=%d open_orders=%d",
        customer.id, pharmacy.id, len(open_orders),
    )
    return ConversationState(customer=customer, pharmacy=pharmacy, open_orders=open_orders)
