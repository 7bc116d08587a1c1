"""
Routes Package for Pharmacy Bot
===============================

This package contains all API route definitions organized by domain. Each module
defines a FastAPI APIRouter with related endpoints grouped together.

**Transport Routes (no admin auth):**
- webhooks.py: Twilio inbound/status webhooks and courier status callbacks

**Admin Routes (require authentication):**
- admin_orders.py: Order listing, lifecycle transitions and customer messaging
- admin_deliveries.py: Courier booking, pricing, cancellation and refresh
- admin_pharmacies.py: Pharmacy settings

Router Registration:
--------------------
All routers are registered in main.py under two prefixes:
1. /api/v1/* - Versioned API (recommended)
2. /* - Root paths; Twilio and the courier are configured with these

Error Handling:
---------------
Service code raises ``OrderBotError`` subclasses (see errors.py), converted to
JSON by the handler in main.py. Routes raise HTTPException for HTTP-only
conditions:
- 401: Unauthorized (invalid credentials)
- 403: Bad webhook signature
- 404: Not found (invalid ID)
- 429: Too many requests (rate limited)
- 502: Courier or transport failure
"""

from .webhooks import webhooks_router
from .admin_orders import admin_orders_router
from .admin_deliveries import admin_deliveries_router
from .admin_pharmacies import admin_pharmacies_router

__all__ = [
    "webhooks_router",
    "admin_orders_router",
    "admin_deliveries_router",
    "admin_pharmacies_router",
]
