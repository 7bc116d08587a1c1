"""
Services Package for Pharmacy Bot
=================================

Business logic shared by the webhook and dashboard routes.

Available Services:
-------------------
- **orders**: Order repository (creation, lookups, listing, detail edits)
- **customers**: Customer find-or-create and pharmacy lookup by WhatsApp number
- **conversation**: Per-(customer, pharmacy) lock and open-order snapshot
- **intents**: Inbound message classification and handling
- **lifecycle**: Order status transitions (sole writer of Order.status)
- **delivery**: Courier booking, pricing, cancellation and callbacks
  (sole writer of Delivery.status)
- **notifications**: Message templates and the notification dispatcher

Usage:
------
    from pharmacy_bot.services.lifecycle import OrderLifecycle
    from pharmacy_bot.services import orders, delivery
"""

from . import orders
from . import customers
from . import conversation
from . import notifications
from . import lifecycle
from . import delivery
from . import intents

__all__ = [
    "orders",
    "customers",
    "conversation",
    "notifications",
    "lifecycle",
    "delivery",
    "intents",
]
