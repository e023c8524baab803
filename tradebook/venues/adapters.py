"""
Exchange export adapters.

One adapter per upstream exchange turns a raw CSV/API record into the
canonical TxnRow dict the structure code consumes.  All field-name guessing
for an exchange lives here.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from tradebook.positions.identifiers import (
    derive_synthetic_delivery_id,
    extract_identifier,
    normalize_key,
    sanitize_identifier,
)
from tradebook.utils.numbers import to_number
from tradebook.venues.instruments import (
    ParsedInstrument,
    normalize_exchange,
    parse_instrument_by_exchange,
)

# Canonical TxnRow fields a column mapping may point at
MAPPING_FIELDS = ("instrument", "side", "amount", "price", "fee", "timestamp", "trade_id", "order_id", "info")


def parse_action_side(raw: Any) -> Tuple[Optional[str], Optional[str]]:
    """Split an export's side cell into (action, side).

    'open buy' -> ('open', 'buy'); 'sell' -> (None, 'sell').  Anything else
    is matched on substrings.
    """
    text = " ".join(str(raw or "").lower().split())
    exact = {
        "open buy": ("open", "buy"),
        "open sell": ("open", "sell"),
        "close buy": ("close", "buy"),
        "close sell": ("close", "sell"),
        "buy": (None, "buy"),
        "sell": (None, "sell"),
    }
    if text in exact:
        return exact[text]

    side = "sell" if "sell" in text else ("buy" if "buy" in text else None)
    action = "open" if "open" in text else ("close" if "close" in text else None)
    return action, side


def resolve_mapped_identifier(row: Mapping[str, Any], column: Optional[str], kind: str) -> Optional[str]:
    """Mapped column first, then a normalized match on its name, then the
    generic {kind}_id extraction."""
    if column:
        direct = sanitize_identifier(row.get(column))
        if direct:
            return direct
        target = normalize_key(column)
        for key, value in row.items():
            if normalize_key(key) == target:
                sanitized = sanitize_identifier(value)
                if sanitized:
                    return sanitized
    return extract_identifier(row, kind)


@dataclass
class ExchangeAdapter:
    name: str
    default_mapping: Dict[str, str] = field(default_factory=dict)

    def parse_instrument(self, symbol: Optional[str]) -> Optional[ParsedInstrument]:
        return parse_instrument_by_exchange(self.name, symbol)

    def resolve_mapping(self, mapping: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        resolved = dict(self.default_mapping)
        for key, column in (mapping or {}).items():
            if key in MAPPING_FIELDS and column:
                resolved[key] = column
        return resolved

    def has_instrument(self, raw: Mapping[str, Any], mapping: Optional[Mapping[str, str]] = None) -> bool:
        column = self.resolve_mapping(mapping).get("instrument")
        return bool(column and str(raw.get(column) or "").strip())

    def to_txn_row(self, raw: Mapping[str, Any], mapping: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
        """Map one raw export record to a TxnRow.

        Rows without a native trade id get a synthetic delivery id when they
        are settlement events.
        """
        cols = self.resolve_mapping(mapping)

        def cell(key):
            column = cols.get(key)
            return raw.get(column) if column else None

        action, side = parse_action_side(cell("side"))
        timestamp = cell("timestamp")
        info = cell("info")

        row: Dict[str, Any] = {
            "instrument": str(cell("instrument") or "").strip(),
            "side": side or "",
            "action": action,
            "amount": to_number(cell("amount")) if cols.get("amount") else 0.0,
            "price": to_number(cell("price")) if cols.get("price") else 0.0,
            "fee": to_number(cell("fee")) if cols.get("fee") else 0.0,
            "timestamp": str(timestamp) if timestamp is not None else None,
            "trade_id": resolve_mapped_identifier(raw, cols.get("trade_id"), "trade"),
            "order_id": resolve_mapped_identifier(raw, cols.get("order_id"), "order"),
            "info": str(info) if info is not None else None,
            "exchange": self.name,
        }
        if row["trade_id"] is None:
            row["trade_id"] = derive_synthetic_delivery_id(row, raw)
        return row


DERIBIT = ExchangeAdapter(
    name="deribit",
    default_mapping={
        "instrument": "Instrument",
        "side": "Side",
        "amount": "Amount",
        "price": "Price",
        "fee": "Fee Charged",
        "timestamp": "Date",
        "trade_id": "Trade ID",
        "order_id": "Order ID",
        "info": "Info",
    },
)

COINCALL = ExchangeAdapter(
    name="coincall",
    default_mapping={
        "instrument": "Symbol",
        "side": "Direction",
        "amount": "Qty",
        "price": "Price",
        "fee": "Fee",
        "timestamp": "Time",
        "trade_id": "Trade ID",
        "order_id": "Order ID",
        "info": "Remark",
    },
)

_ADAPTERS = {adapter.name: adapter for adapter in (DERIBIT, COINCALL)}


def get_adapter(exchange: Optional[str]) -> ExchangeAdapter:
    """Adapter for the exchange; unknown names fall back to Deribit."""
    return _ADAPTERS.get(normalize_exchange(exchange), DERIBIT)
