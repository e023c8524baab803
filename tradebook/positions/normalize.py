"""
Trade row normalization: raw exchange rows -> NormalizedTrade.

Every required field must come from the row itself or from the parsed
instrument symbol.  A batch is normalized all-or-nothing: the first bad row
fails the whole batch with a message naming that row.
"""

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from tradebook.positions.identifiers import derive_synthetic_delivery_id, extract_identifier
from tradebook.positions.results import Result
from tradebook.utils.dates import normalize_date_only, now_iso, parse_datetime, to_iso_instant
from tradebook.utils.numbers import to_numeric
from tradebook.venues.instruments import parse_instrument_by_exchange


@dataclass(frozen=True)
class NormalizedTrade:
    side: str  # buy, sell
    option_type: str  # call, put
    expiry: str  # YYYY-MM-DD
    strike: float
    qty: float  # always positive, direction lives in side
    price: float
    timestamp: str
    open_close: Optional[str] = None
    trade_id: Optional[str] = None
    order_id: Optional[str] = None
    fee: Optional[float] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class NormalizeResult(Result):
    value: Optional[NormalizedTrade] = None


@dataclass(frozen=True)
class NormalizeBatchResult(Result):
    trades: List[NormalizedTrade] = field(default_factory=list)


def sanitize_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    trimmed = str(value).strip()
    return trimmed or None


def normalize_side(raw: Any) -> Optional[str]:
    text = sanitize_text(raw)
    if text is None:
        return None
    text = text.lower()
    if text.startswith("buy") or text == "b":
        return "buy"
    if text.startswith("sell") or text == "s":
        return "sell"
    return None


def normalize_option_type(raw: Any) -> Optional[str]:
    text = sanitize_text(raw)
    if text is None:
        return None
    text = text.lower()
    if text in ("c", "call"):
        return "call"
    if text in ("p", "put"):
        return "put"
    return None


def normalize_open_close(raw: Any) -> Optional[str]:
    text = sanitize_text(raw)
    if text is None:
        return None
    text = text.lower()
    return text if text in ("open", "close") else None


def normalize_timestamp(raw: Any) -> str:
    """ISO instant for parseable values, the trimmed raw string otherwise.

    A missing value means "now".
    """
    text = sanitize_text(raw)
    if text is None:
        return now_iso()
    parsed = parse_datetime(raw)
    if parsed is None:
        return text
    return to_iso_instant(parsed)


def _raw_payload(row: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    raw = row.get("raw")
    return raw if isinstance(raw, dict) else None


def describe_row(row: Mapping[str, Any]) -> str:
    trade_id = extract_identifier(row, "trade")
    if trade_id:
        return f"trade {trade_id}"
    order_id = extract_identifier(row, "order")
    if order_id:
        return f"order {order_id}"
    return sanitize_text(row.get("instrument")) or "trade row"


def normalize_trade_row(row: Mapping[str, Any]) -> NormalizeResult:
    """Validate one raw row and convert it to a NormalizedTrade."""
    qty = to_numeric(row.get("amount"))
    if qty is None or qty == 0:
        return NormalizeResult.failure(f"Missing quantity for {describe_row(row)}.")

    price = to_numeric(row.get("price"))
    if price is None:
        return NormalizeResult.failure(f"Missing price for {describe_row(row)}.")

    side = normalize_side(row.get("side"))
    if side is None:
        return NormalizeResult.failure(f"Missing side (buy/sell) for {describe_row(row)}.")

    parsed = parse_instrument_by_exchange(row.get("exchange"), sanitize_text(row.get("instrument")))

    expiry = normalize_date_only(row.get("expiry")) or (parsed.expiry if parsed else None)
    if not expiry:
        return NormalizeResult.failure(f"Missing expiry for {describe_row(row)}.")

    strike = to_numeric(row.get("strike"))
    if strike is None and parsed is not None:
        strike = parsed.strike
    if strike is None or strike <= 0:
        return NormalizeResult.failure(f"Missing strike for {describe_row(row)}.")

    option_type = normalize_option_type(row.get("option_type")) or (
        normalize_option_type(parsed.option_type) if parsed else None
    )
    if option_type is None:
        return NormalizeResult.failure(f"Missing option type for {describe_row(row)}.")

    return NormalizeResult.success(value=NormalizedTrade(
        side=side,
        option_type=option_type,
        expiry=expiry,
        strike=strike,
        qty=abs(qty),
        price=price,
        timestamp=normalize_timestamp(row.get("timestamp")),
        open_close=normalize_open_close(row.get("action")),
        trade_id=extract_identifier(row, "trade") or derive_synthetic_delivery_id(row, _raw_payload(row)),
        order_id=extract_identifier(row, "order"),
        fee=to_numeric(row.get("fee")),
        notes=sanitize_text(row.get("info")),
    ))


def normalize_trade_rows(rows) -> NormalizeBatchResult:
    """Normalize a batch; the first failing row fails the whole batch."""
    trades = []
    for row in rows:
        result = normalize_trade_row(row)
        if not result.ok:
            return NormalizeBatchResult.failure(result.error, result.kind)
        trades.append(result.value)
    return NormalizeBatchResult.success(trades=trades)
