"""
Authentication Module for Pharmacy Bot
======================================

HTTP Basic Authentication for the pharmacist dashboard endpoints
(``/admin/*``). Credentials come from ADMIN_USERNAME / ADMIN_PASSWORD
(see config.py) and are compared in constant time.

Behaviour:
----------
- 503 if ADMIN_PASSWORD is not configured (fail closed)
- 401 with WWW-Authenticate header if credentials are invalid
- The authenticated username otherwise; routes record it as the actor on
  order status history

Webhook endpoints do not use this module: Twilio requests are checked by
signature in ``routes/webhooks.py``.

Usage:
------
    from pharmacy_bot.auth import verify_admin_credentials

    @router.patch("/admin/orders/{order_id}/status")
    def update_status(
        order_id: int,
        admin_user: str = Depends(verify_admin_credentials),
    ):
        ...
"""

import secrets

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from . import config


# Shared realm so browsers reuse credentials across dashboard pages
security = HTTPBasic(realm="Pharmacy Dashboard")


def verify_admin_credentials(
    credentials: HTTPBasicCredentials = Depends(security),
) -> str:
    """
    Verify HTTP Basic Auth credentials for dashboard endpoints.

    Returns:
        str: The authenticated username.

    Raises:
        HTTPException (503): ADMIN_PASSWORD is not set.
        HTTPException (401): Credentials are invalid.
    """
    if not config.ADMIN_PASSWORD:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin authentication not configured. Set ADMIN_PASSWORD environment variable.",
        )

    username_correct = secrets.compare_digest(
        credentials.username.encode("utf-8"),
        config.ADMIN_USERNAME.encode("utf-8"),
    )
    password_correct = secrets.compare_digest(
        credentials.password.encode("utf-8"),
        config.ADMIN_PASSWORD.encode("utf-8"),
    )

    if not (username_correct and password_correct):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin credentials",
            headers={"WWW-Authenticate": "Basic"},
        )

    return credentials.username
