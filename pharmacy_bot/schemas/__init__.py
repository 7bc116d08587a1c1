"""
Schemas Package for Pharmacy Bot
================================

Pydantic models used for API request validation and response serialization.

Schema Organization:
--------------------
- **orders.py**: Order list/detail, status transitions, messages, prescriptions
- **deliveries.py**: Delivery records, price estimates, courier webhook payload
- **pharmacies.py**: Pharmacy settings

Naming Conventions:
-------------------
- *Out: Response models (e.g., OrderSummaryOut)
- *Update: Request models for PATCH (e.g., PharmacyUpdate)
- *Request: Complex request bodies (e.g., OrderStatusUpdateRequest)
- *Response: Complex response structures (e.g., OrderListResponse)

Pydantic Configuration:
-----------------------
Response models that are built from ORM objects use
``model_config = ConfigDict(from_attributes=True)``.
"""

from .orders import (
    OrderItem,
    PrescriptionOut,
    StatusHistoryOut,
    OrderDeliverySummary,
    OrderSummaryOut,
    OrderDetailOut,
    OrderListResponse,
    OrderStatusUpdateRequest,
    OrderUpdateRequest,
    ItemsUnavailableRequest,
    SendMessageRequest,
    SendMessageResponse,
    MessageOut,
    PrescriptionReviewRequest,
)

from .deliveries import (
    DeliveryOut,
    DeliveryConfigOut,
    DeliveryBookRequest,
    DeliveryEstimateOut,
    CourierContact,
    CourierWebhookPayload,
)

from .pharmacies import (
    PharmacyOut,
    PharmacyUpdate,
)
