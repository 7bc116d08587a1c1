"""
Configuration Module for Pharmacy Bot
=====================================

This module centralizes all configuration settings, environment variables, and
constants used throughout the Pharmacy Bot application. Values are parsed once
at import time; other modules import the module itself (``from . import config``)
so tests can override individual settings with monkeypatch.

Configuration Categories:
-------------------------
- **Environment**: Development vs production behaviour (Twilio signature
  validation, courier sandbox URL).

- **Chat Transport**: Twilio WhatsApp credentials. When they are missing the
  transport runs in mock mode and only logs outgoing messages.

- **Courier Integration**: Delivery provider toggle, token, endpoint and the
  bounded timeout applied to every courier call.

- **Rate Limiting**: Throttling for the inbound chat webhook.

- **CORS / Admin Auth**: Dashboard integration settings.

Environment Variables:
----------------------
- APP_ENV: "development" or "production" (default: "development")
- BASE_URL: Public URL of this service, used for Twilio status callbacks
- TWILIO_ACCOUNT_SID / TWILIO_AUTH_TOKEN / TWILIO_WHATSAPP_NUMBER
- COURIER_ENABLED: Enable courier booking (default: "false")
- COURIER_AUTH_TOKEN: Courier API token
- COURIER_API_URL: Override the courier API base URL
- COURIER_TIMEOUT_SECONDS: Courier request timeout (default: 15)
- COURIER_CALLBACK_SECRET: Optional HMAC secret for courier webhooks
- DEFAULT_PHONE_REGION: Region used to parse local numbers (default: "IN")
- RATE_LIMIT_WEBHOOK / RATE_LIMIT_ENABLED
- CORS_ORIGINS: Comma-separated allowed origins (default: "*")
- ADMIN_USERNAME / ADMIN_PASSWORD: Dashboard credentials

Usage:
------
    from pharmacy_bot import config

    if config.COURIER_ENABLED:
        ...
"""

import os
from typing import List


# =============================================================================
# Environment
# =============================================================================

APP_ENV: str = os.getenv("APP_ENV", "development").lower()
IS_PRODUCTION: bool = APP_ENV == "production"

# Public base URL, e.g. "https://orders.example-pharmacy.in"
BASE_URL: str = os.getenv("BASE_URL", "http://localhost:8000").rstrip("/")


# =============================================================================
# Chat Transport (Twilio WhatsApp)
# =============================================================================

TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_WHATSAPP_NUMBER = os.getenv("TWILIO_WHATSAPP_NUMBER")

# Twilio signatures are only checked outside development
TWILIO_VALIDATE_SIGNATURE: bool = os.getenv(
    "TWILIO_VALIDATE_SIGNATURE", "true" if IS_PRODUCTION else "false"
).lower() == "true"

# Region used when a phone number arrives without a country code
DEFAULT_PHONE_REGION: str = os.getenv("DEFAULT_PHONE_REGION", "IN")


def get_status_callback_url() -> str:
    """Return the URL Twilio posts message delivery updates to."""
    return f"{BASE_URL}/webhooks/twilio/status"


# =============================================================================
# Courier Integration
# =============================================================================
# Bike courier API used for last-mile delivery. Booking only happens when
# COURIER_ENABLED is true and a token is configured.

COURIER_TEST_URL = "https://robotapitest-in.borzodelivery.com/api/business/1.6"
COURIER_PROD_URL = "https://robot-in.borzodelivery.com/api/business/1.6"

COURIER_ENABLED: bool = os.getenv("COURIER_ENABLED", "false").lower() == "true"
COURIER_AUTH_TOKEN: str = os.getenv("COURIER_AUTH_TOKEN", "")
COURIER_API_URL: str = os.getenv(
    "COURIER_API_URL", COURIER_PROD_URL if IS_PRODUCTION else COURIER_TEST_URL
)
COURIER_TIMEOUT_SECONDS: float = float(os.getenv("COURIER_TIMEOUT_SECONDS", "15"))
COURIER_CALLBACK_SECRET: str = os.getenv("COURIER_CALLBACK_SECRET", "")
COURIER_PROVIDER_NAME: str = "borzo"


def is_courier_enabled() -> bool:
    """Courier booking needs both the feature flag and a token."""
    return COURIER_ENABLED and bool(COURIER_AUTH_TOKEN)


# =============================================================================
# Message Classification
# =============================================================================

# Shortest message body that may be treated as a postal address
MIN_ADDRESS_LENGTH: int = int(os.getenv("MIN_ADDRESS_LENGTH", "20"))

DEFAULT_CANCEL_REASON = "Cancelled by pharmacy"


# =============================================================================
# Rate Limiting Configuration
# =============================================================================

RATE_LIMIT_WEBHOOK: str = os.getenv("RATE_LIMIT_WEBHOOK", "60 per minute")
RATE_LIMIT_ENABLED: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"


def get_rate_limit_webhook() -> str:
    """Return the current webhook rate limit (allows dynamic override in tests)."""
    return RATE_LIMIT_WEBHOOK


# =============================================================================
# CORS Configuration
# =============================================================================

_cors_origins_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS: List[str] = [
    origin.strip()
    for origin in _cors_origins_env.split(",")
    if origin.strip()
] or ["*"]


# =============================================================================
# Admin Authentication Configuration
# =============================================================================
# Credentials for HTTP Basic Auth on dashboard endpoints.

ADMIN_USERNAME: str = os.getenv("ADMIN_USERNAME", "admin")
ADMIN_PASSWORD: str = os.getenv("ADMIN_PASSWORD", "")
