"""
Deterministic intent heuristics for short customer replies.

These only look at the message text. Whether a reply actually applies to an
order is decided by the intent resolver, which also knows the customer's
open orders.
"""

import re

from .constants import (
    ADDRESS_PATTERN,
    AFFIRMATION_TOKENS,
    PAYMENT_ACK_TOKENS,
    TRAILING_PUNCTUATION_PATTERN,
)


def normalize_reply(body: str) -> str:
    """Lowercase, collapse whitespace and drop trailing punctuation."""
    text = re.sub(r"\s+", " ", (body or "").strip().lower())
    return TRAILING_PUNCTUATION_PATTERN.sub("", text)


def is_affirmation(body: str) -> bool:
    """"yes", "ok", "same address" and friends. The whole reply must be the token."""
    return normalize_reply(body) in AFFIRMATION_TOKENS


def looks_like_address(body: str, min_length: int) -> bool:
    text = (body or "").strip()
    return len(text) > min_length and bool(ADDRESS_PATTERN.search(text))


def is_payment_ack(body: str) -> bool:
    return normalize_reply(body) in PAYMENT_ACK_TOKENS
