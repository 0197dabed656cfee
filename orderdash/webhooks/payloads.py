"""Shopify order payload decoding, validation and mapping to OrderFields.

Validation policy: orders/create and orders/edited both require a present
`id`, `email`, `total_price`, `line_items` and `created_at`. "Present" means
not null, not an empty string, not false and not numeric zero; an empty
`line_items` list still counts as present.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any

from orderdash.models import OrderFields

logger = logging.getLogger(__name__)

ORDER_REQUIRED_FIELDS = ("id", "email", "total_price", "line_items", "created_at")
DELETE_REQUIRED_FIELDS = ("id",)

STATUS_PENDING = "pending"
STATUS_UPDATED = "updated"


def decode_payload(body: bytes) -> dict[str, Any]:
    """Parse the raw body; anything but a JSON object becomes {}."""
    try:
        payload = json.loads(body)
    except (ValueError, RecursionError):
        # ValueError covers JSONDecodeError, UnicodeDecodeError and oversized ints
        logger.info("Webhook body is not valid JSON; continuing with empty payload")
        return {}
    if not isinstance(payload, dict):
        logger.info("Webhook body is JSON %s, not an object; ignoring", type(payload).__name__)
        return {}
    return payload


def is_present(value: Any) -> bool:
    if value is None or value == "":
        return False
    # bool is an int subclass, so this also rejects False; NaN != NaN
    if isinstance(value, (int, float)) and (value == 0 or value != value):
        return False
    return True


def missing_fields(payload: dict[str, Any], required: tuple[str, ...]) -> list[str]:
    return [name for name in required if not is_present(payload.get(name))]


def as_text(value: Any) -> str:
    """Stringify a JSON scalar the way the Shopify payload renders it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return _float_text(value)
    return str(value)


def _float_text(value: float) -> str:
    """1001.0 renders as "1001"; non-finite values use their JSON spelling."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return str(value)


def product_summary(line_items: Any) -> str:
    """Line-item titles joined by ", "; empty if line_items is not a list."""
    if not isinstance(line_items, list):
        return ""
    titles = []
    for item in line_items:
        title = item.get("title") if isinstance(item, dict) else None
        titles.append(as_text(title))
    return ", ".join(titles)


def order_fields(payload: dict[str, Any], status: str) -> OrderFields:
    """Map a validated order payload to the record written to the store."""
    return OrderFields(
        external_id=as_text(payload["id"]),
        email=as_text(payload["email"]),
        total_price=as_text(payload["total_price"]),
        product=product_summary(payload.get("line_items")),
        date=as_text(payload.get("created_at")),
        status=status,
    )
