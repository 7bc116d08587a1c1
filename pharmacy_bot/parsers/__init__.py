"""
Parsers Package.

Deterministic text parsing used on inbound chat messages.

Exports:
- Extractor: order item extraction, prescription keyword check, display formatting
- Deterministic: affirmation / address / payment-acknowledgement heuristics
"""

from .extractor import (
    ExtractedItem,
    ExtractionResult,
    extract_items,
    format_items_for_display,
    parse_line_item,
    parse_order_message,
    requires_prescription,
)

from .deterministic import (
    is_affirmation,
    is_payment_ack,
    looks_like_address,
    normalize_reply,
)

__all__ = [
    "ExtractedItem",
    "ExtractionResult",
    "extract_items",
    "format_items_for_display",
    "parse_line_item",
    "parse_order_message",
    "requires_prescription",
    "is_affirmation",
    "is_payment_ack",
    "looks_like_address",
    "normalize_reply",
]
