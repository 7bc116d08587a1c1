"""
Logging Setup for the Pharmacy Order Service
=============================================

Everything under the ``pharmacy_bot`` logger goes to stdout in one line format.

What gets logged at INFO:
    - inbound WhatsApp messages by MessageSid and the intent they were handled as
    - order creation, status transitions (order number, from -> to, actor) and
      address or payment events on an order
    - courier bookings, quotes, status changes and cancellations by delivery id
    - outbound sends by Twilio SID (the mock transport also logs the reply
      text) and skipped duplicate notifications

Customer phone numbers, profile names and inbound message text are only
logged at DEBUG. Courier failures are logged at WARNING or ERROR with the
order number or delivery id they belong to.

Usage:
    from pharmacy_bot.logging_config import setup_logging
    setup_logging()  # once, before the app is created

Environment variables:
    LOG_LEVEL: DEBUG, INFO, WARNING, ERROR or CRITICAL (default: INFO)
"""
import logging
import os
import sys

VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# twilio.http_client logs full request bodies (recipient and message text) at INFO
QUIET_LOGGERS = ("twilio.http_client", "urllib3", "sqlalchemy.engine")


def setup_logging(level: str = None) -> None:
    """
    Configure stdout logging for the service.

    Args:
        level: Log level name. Falls back to LOG_LEVEL, then INFO.
               Unknown names are treated as INFO.
    """
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    level = level.upper()
    if level not in VALID_LEVELS:
        level = "INFO"

    numeric_level = getattr(logging, level)

    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )

    logging.getLogger("pharmacy_bot").setLevel(numeric_level)

    if level != "DEBUG":
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug("Logging configured at %s level", level)
