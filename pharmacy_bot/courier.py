"""
Courier API client (Borzo business API).

Prices, books, cancels and looks up bike deliveries. Every call is a
synchronous HTTP request with a bounded timeout. Any failure (HTTP error,
timeout, ``is_successful: false``) is raised as ``CourierError``; callers in
``services/delivery.py`` catch it and mark the delivery failed.

API docs: https://borzodelivery.com/in/business-api/doc
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import requests

from . import config

logger = logging.getLogger(__name__)

# Two-wheeler; the cheapest option for small parcels
BIKE_VEHICLE_TYPE_ID = 8
DEFAULT_MATTER = "Medicines"


class CourierError(Exception):
    """Structured courier failure: message plus optional field-level errors."""

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        parameter_errors: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.errors = errors or []
        self.parameter_errors = parameter_errors or {}


@dataclass
class CourierPoint:
    address: str
    phone: str
    name: Optional[str] = None
    note: Optional[str] = None
    client_order_id: Optional[str] = None


@dataclass
class CourierBooking:
    provider_order_id: str
    provider_order_number: Optional[str]
    tracking_url: Optional[str]
    price: Optional[Decimal]
    status: str


@dataclass
class CourierOrderInfo:
    status: str
    status_description: Optional[str] = None
    courier: Dict[str, str] = field(default_factory=dict)
    tracking_url: Optional[str] = None


def format_phone(phone: str) -> str:
    """Courier API wants an explicit country code; local numbers are Indian."""
    digits = "".join(c for c in (phone or "") if c.isdigit())
    if digits.startswith("91") and len(digits) == 12:
        return f"+{digits}"
    if len(digits) == 10:
        return f"+91{digits}"
    return phone if phone.startswith("+") else f"+{digits}"


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value in (None, ""):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


class CourierClient:
    """
    Thin wrapper over the courier REST API.

    Usage:
        client = CourierClient(auth_token="...", base_url=config.COURIER_API_URL)
        price = client.calculate_price(pickup, drop)
        booking = client.create_order(pickup, drop, reference="PH-7KQ2MZ")
    """

    def __init__(
        self,
        auth_token: str,
        base_url: str,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ):
        self.auth_token = auth_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()

    def _request(self, method: str, endpoint: str, payload: Optional[dict] = None,
                 params: Optional[dict] = None) -> dict:
        url = f"{self.base_url}{endpoint}"
        logger.debug("Courier request %s %s", method, endpoint)

        try:
            response = self.http.request(
                method,
                url,
                json=payload,
                params=params,
                headers={"X-DV-Auth-Token": self.auth_token},
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise CourierError(f"Courier request timed out: {endpoint}") from e
        except requests.RequestException as e:
            raise CourierError(f"Courier request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.ok or not data.get("is_successful"):
            errors = data.get("errors") or []
            parameter_errors = data.get("parameter_errors") or {}
            logger.error(
                "Courier error on %s (HTTP %s): %s %s",
                endpoint, response.status_code, errors, parameter_errors,
            )
            message = errors[0] if errors else f"Courier API error (HTTP {response.status_code})"
            raise CourierError(message, errors, parameter_errors)

        return data

    def _points(self, pickup: CourierPoint, drop: CourierPoint) -> List[dict]:
        points = []
        for point in (pickup, drop):
            entry = {
                "address": point.address,
                "contact_person": {"phone": format_phone(point.phone)},
            }
            if point.name:
                entry["contact_person"]["name"] = point.name
            if point.note:
                entry["note"] = point.note
            if point.client_order_id:
                entry["client_order_id"] = point.client_order_id
            points.append(entry)
        return points

    def calculate_price(self, pickup: CourierPoint, drop: CourierPoint,
                        matter: str = DEFAULT_MATTER) -> Decimal:
        """Quote a delivery without creating a provider order."""
        data = self._request("POST", "/calculate-order", {
            "matter": matter,
            "vehicle_type_id": BIKE_VEHICLE_TYPE_ID,
            "points": self._points(pickup, drop),
        })
        price = _to_decimal((data.get("order") or {}).get("payment_amount"))
        return price if price is not None else Decimal("0")

    def create_order(self, pickup: CourierPoint, drop: CourierPoint, reference: str,
                     matter: str = DEFAULT_MATTER) -> CourierBooking:
        pickup.client_order_id = pickup.client_order_id or reference
        pickup.note = pickup.note or "Pharmacy pickup"
        drop.note = drop.note or f"Order {reference}"

        data = self._request("POST", "/create-order", {
            "matter": matter,
            "vehicle_type_id": BIKE_VEHICLE_TYPE_ID,
            "is_contact_person_notification_enabled": True,
            "points": self._points(pickup, drop),
        })

        order = data.get("order")
        if not order:
            raise CourierError("No order in courier response")

        points = order.get("points") or []
        drop_point = points[1] if len(points) > 1 else {}

        return CourierBooking(
            provider_order_id=str(order["order_id"]),
            provider_order_number=order.get("order_name"),
            tracking_url=drop_point.get("tracking_url"),
            price=_to_decimal(order.get("payment_amount")),
            status=order.get("status", ""),
        )

    def cancel_order(self, provider_order_id: str) -> None:
        try:
            order_id = int(provider_order_id)
        except (TypeError, ValueError) as e:
            raise CourierError(f"Invalid courier order id: {provider_order_id!r}") from e
        self._request("POST", "/cancel-order", {"order_id": order_id})

    def get_order(self, provider_order_id: str) -> CourierOrderInfo:
        data = self._request("GET", "/orders", params={"order_id": provider_order_id})
        orders = data.get("orders") or []
        if not orders:
            raise CourierError("Order not found")

        order = orders[0]
        points = order.get("points") or []
        return CourierOrderInfo(
            status=order.get("status", ""),
            status_description=order.get("status_description"),
            courier=order.get("courier") or {},
            tracking_url=points[1].get("tracking_url") if len(points) > 1 else None,
        )


def get_courier_client() -> CourierClient:
    """Build a client from the current configuration."""
    return CourierClient(
        auth_token=config.COURIER_AUTH_TOKEN,
        base_url=config.COURIER_API_URL,
        timeout=config.COURIER_TIMEOUT_SECONDS,
    )
