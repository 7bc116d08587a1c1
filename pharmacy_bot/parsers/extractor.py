"""
Order item extraction from free-form chat text.

Customers type orders however they like ("Paracetamol x10, Vitamin C x2",
numbered lists, one item per line). Extraction is deterministic: split into
candidate lines, strip list markers, then peel off a quantity using the
first matching pattern in ``QUANTITY_PATTERNS``.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional

from .constants import (
    LEADING_BULLET_PATTERN,
    LEADING_NUMBERING_PATTERN,
    LINE_SPLIT_PATTERN,
    MAX_QUANTITY,
    MIN_QUANTITY,
    MULTISPACE_PATTERN,
    QUANTITY_PATTERNS,
    RX_KEYWORDS,
    TRAILING_BULLET_PATTERN,
    TRAILING_UNIT_PATTERN,
)

logger = logging.getLogger(__name__)


@dataclass
class ExtractedItem:
    name: str
    quantity: int
    raw: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ExtractionResult:
    items: List[ExtractedItem]
    requires_rx: bool


def _clean_name(text: str) -> str:
    text = LEADING_BULLET_PATTERN.sub("", text)
    text = TRAILING_BULLET_PATTERN.sub("", text)
    return MULTISPACE_PATTERN.sub(" ", text).strip()


def parse_line_item(line: str) -> Optional[ExtractedItem]:
    """Parse one candidate line. Returns None for noise."""
    line = line.strip()
    if len(line) < 2:
        return None

    cleaned = LEADING_BULLET_PATTERN.sub("", line)
    cleaned = LEADING_NUMBERING_PATTERN.sub("", cleaned).strip()
    if not cleaned:
        return None

    quantity = 1
    name = cleaned
    for pattern in QUANTITY_PATTERNS:
        match = pattern.search(cleaned)
        if not match:
            continue
        parsed_qty = int(match.group(1))
        if MIN_QUANTITY <= parsed_qty <= MAX_QUANTITY:
            quantity = parsed_qty
            name = cleaned[:match.start()] + cleaned[match.end():]
            name = TRAILING_UNIT_PATTERN.sub("", name.strip())
            break

    name = _clean_name(name)
    if not name:
        return None

    return ExtractedItem(name=name, quantity=quantity, raw=line)


def extract_items(message: str) -> List[ExtractedItem]:
    normalized = (message or "").replace("\r\n", "\n").replace("\r", "\n")
    items = []
    for line in LINE_SPLIT_PATTERN.split(normalized):
        item = parse_line_item(line)
        if item:
            items.append(item)
    return items


def requires_prescription(names: Iterable[str]) -> bool:
    """True if any name contains a regulated-drug keyword (case-insensitive)."""
    all_text = " ".join(name.lower() for name in names)
    return any(keyword in all_text for keyword in RX_KEYWORDS)


def parse_order_message(message: str) -> ExtractionResult:
    items = extract_items(message)
    requires_rx = requires_prescription(item.name for item in items)
    logger.debug("Extracted %d items (requires_rx=%s)", len(items), requires_rx)
    return ExtractionResult(items=items, requires_rx=requires_rx)


def format_items_for_display(items: Iterable[Any]) -> str:
    """
    Render items as a numbered list for a chat reply.

    Accepts ExtractedItem objects or the ``{"name", "quantity"}`` dicts stored
    on orders.
    """
    lines = []
    for idx, item in enumerate(items or [], start=1):
        if isinstance(item, dict):
            name, qty = item.get("name", ""), int(item.get("quantity") or 1)
        else:
            name, qty = item.name, item.quantity
        suffix = f" x {qty}" if qty > 1 else ""
        lines.append(f"{idx}. {name}{suffix}")
    if not lines:
        return "No items found"
    return "\n".join(lines)
