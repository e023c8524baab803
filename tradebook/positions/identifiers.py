"""
Trade/order identifier extraction and synthetic delivery ids.

Both the leg/fill path and the unprocessed-trade path resolve identifiers
through this module so the two stay in lock-step.
"""

import hashlib
import re
from typing import Any, Mapping, Optional

from tradebook.utils.numbers import format_number

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")

# Normalized key names that flag a settlement/delivery event
_DELIVERY_MARKER_KEYS = ("type", "deliverytype", "action")

# Signature fields for hashing, with the case folding applied to each
_SIGNATURE_FIELDS = (
    ("instrument", str.upper),
    ("timestamp", None),
    ("side", str.lower),
    ("action", str.lower),
    ("amount", None),
    ("price", None),
    ("exchange", str.lower),
)

SYNTHETIC_HASH_LENGTH = 16


def sanitize_identifier(value: Any) -> Optional[str]:
    """Trimmed string form of value, or None when empty."""
    if value is None:
        return None
    if isinstance(value, float):
        text = format_number(value)
    else:
        text = str(value)
    trimmed = text.strip()
    return trimmed or None


def normalize_key(key: Any) -> str:
    """Case-fold a field name and drop everything but letters and digits."""
    return _NON_ALNUM_RE.sub("", str(key).lower())


def _lookup_normalized(row: Mapping[str, Any], target: str) -> Optional[str]:
    for key, value in row.items():
        if normalize_key(key) == target:
            sanitized = sanitize_identifier(value)
            if sanitized:
                return sanitized
    return None


def extract_identifier(row: Optional[Mapping[str, Any]], kind: str) -> Optional[str]:
    """Pull the '{kind}' identifier out of a loosely-shaped row.

    Exact spellings ({kind}_id, {kind}Id, {kind}ID, {kind}id) are checked
    first; after that any key equal to '{kind}id' once punctuation and case
    are stripped matches, so 'Trade_ID', 'TRADE-ID' and 'tradeid' all
    resolve.
    """
    if not row:
        return None

    for key in (f"{kind}_id", f"{kind}Id", f"{kind}ID", f"{kind}id"):
        sanitized = sanitize_identifier(row.get(key))
        if sanitized:
            return sanitized

    return _lookup_normalized(row, normalize_key(f"{kind}id"))


def is_delivery_row(row: Optional[Mapping[str, Any]], raw: Optional[Mapping[str, Any]] = None) -> bool:
    for source in (raw, row):
        if not source:
            continue
        for marker in _DELIVERY_MARKER_KEYS:
            value = _lookup_normalized(source, marker)
            if value and value.lower() == "delivery":
                return True
    return False


def _signature_part(value: Any, fold) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return format_number(float(value))
    text = str(value).strip()
    if not text:
        return None
    return fold(text) if fold else text


def delivery_signature(row: Mapping[str, Any]) -> str:
    """Pipe-joined signature of the row's content fields, absent parts skipped."""
    parts = []
    for field, fold in _SIGNATURE_FIELDS:
        part = _signature_part(row.get(field), fold)
        if part is not None:
            parts.append(part)
    return "|".join(parts)


def derive_synthetic_delivery_id(
    row: Mapping[str, Any], raw: Optional[Mapping[str, Any]] = None,
) -> Optional[str]:
    """Stable id for a delivery/settlement row that arrived without a trade id.

    Returns 'D<delivery_id>' when the exchange supplied one, otherwise 'D'
    plus the first 16 hex digits of a SHA-256 over the row signature.
    Non-delivery rows and rows with an empty signature give None.
    """
    if not is_delivery_row(row, raw):
        return None

    delivery_id = extract_identifier(raw, "delivery") or extract_identifier(row, "delivery")
    if delivery_id:
        return f"D{delivery_id}"

    signature = delivery_signature(row)
    if not signature:
        return None

    digest = hashlib.sha256(signature.encode("utf-8")).hexdigest()
    return f"D{digest[:SYNTHETIC_HASH_LENGTH]}"


def resolve_trade_id(row: Mapping[str, Any], raw: Optional[Mapping[str, Any]] = None) -> Optional[str]:
    """Trade id, else synthetic delivery id, else order id."""
    raw_payload = raw
    if raw_payload is None and isinstance(row.get("raw"), dict):
        raw_payload = row["raw"]
    return (
        extract_identifier(row, "trade")
        or derive_synthetic_delivery_id(row, raw_payload)
        or extract_identifier(row, "order")
    )

