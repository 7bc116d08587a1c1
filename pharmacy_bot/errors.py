"""
Domain exceptions for the order engine.

Services raise these; ``main.py`` registers handlers that turn them into
JSON ``{"detail": ...}`` responses with the status code carried on the class.
Courier failures have their own ``CourierError`` in ``courier.py`` and are
always caught by the delivery service.
"""

from typing import Optional

from .state_machine import EventType, OrderStatus, describe_rejection


class OrderBotError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(OrderBotError):
    status_code = 404


class OrderValidationError(OrderBotError):
    """A request that is well-formed but breaks a business rule."""
    status_code = 400


class InvalidTransitionError(OrderBotError):
    status_code = 400

    def __init__(self, current: OrderStatus, event_type: EventType):
        super().__init__(describe_rejection(current, event_type))
        self.current = OrderStatus(current)
        self.event_type = EventType(event_type)


class ConcurrentTransitionError(OrderBotError):
    """The stored status changed between the caller's read and the write."""
    status_code = 409

    def __init__(self, order_id: int, expected: OrderStatus, actual: Optional[OrderStatus]):
        actual_text = actual.value if actual else "unknown"
        super().__init__(
            f"Order {order_id} changed concurrently: expected {OrderStatus(expected).value}, "
            f"found {actual_text}"
        )
        self.order_id = order_id
        self.expected = OrderStatus(expected)
        self.actual = actual
