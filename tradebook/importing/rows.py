"""
Column-mapped CSV import: raw export records -> TxnRows + audit log entries.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from loguru import logger

from tradebook.positions.transaction_logs import TransactionLogEntry
from tradebook.venues.adapters import get_adapter, resolve_mapped_identifier

IMPORT_MODE = "import"
BACKFILL_MODE = "backfill"


@dataclass
class MappedRows:
    exchange: str
    rows: List[Dict[str, Any]] = field(default_factory=list)
    excluded_rows: List[Dict[str, Any]] = field(default_factory=list)
    total_rows: int = 0
    rows_with_instrument: int = 0

    @property
    def parsed_option_rows(self) -> int:
        return len(self.rows)

    @property
    def stats(self) -> Dict[str, int]:
        return {
            "total_rows": self.total_rows,
            "rows_with_instrument": self.rows_with_instrument,
            "parsed_option_rows": self.parsed_option_rows,
        }


def _is_complete_trade(row: Mapping[str, Any]) -> bool:
    return row.get("side") in ("buy", "sell") and abs(row.get("amount") or 0) > 0 and row.get("price") is not None


def map_rows(
    raw_rows, exchange: Optional[str] = None, mapping: Optional[Mapping[str, str]] = None, mode: str = IMPORT_MODE,
) -> MappedRows:
    """Map raw export records to TxnRows and keep only option rows.

    Rows without an instrument are dropped.  In import mode rows also need a
    side, a non-zero amount and a price; backfill mode only needs enough to
    match identifiers.  Rows whose instrument isn't an option symbol for the
    exchange end up in ``excluded_rows``.
    """
    adapter = get_adapter(exchange)
    raw_rows = list(raw_rows or [])
    result = MappedRows(exchange=adapter.name, total_rows=len(raw_rows))

    for raw in raw_rows:
        if not raw or not adapter.has_instrument(raw, mapping):
            continue
        result.rows_with_instrument += 1

        row = adapter.to_txn_row(raw, mapping)
        if mode != BACKFILL_MODE and not _is_complete_trade(row):
            continue

        if adapter.parse_instrument(row["instrument"]):
            result.rows.append(row)
        else:
            result.excluded_rows.append(row)

    logger.info(
        f"Mapped {result.total_rows} {adapter.name} rows: {result.rows_with_instrument} with instrument, "
        f"{result.parsed_option_rows} options, {len(result.excluded_rows)} excluded"
    )
    return result


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def build_log_entries(
    raw_rows, exchange: Optional[str] = None, mapping: Optional[Mapping[str, str]] = None,
) -> List[TransactionLogEntry]:
    """One audit entry per non-empty raw record, mapped or not."""
    adapter = get_adapter(exchange)
    cols = adapter.resolve_mapping(mapping)
    entries = []
    for raw in raw_rows or []:
        if not raw or not any(_has_value(v) for v in raw.values()):
            continue
        instrument = str(raw.get(cols.get("instrument", "")) or "").strip()
        timestamp = str(raw.get(cols.get("timestamp", "")) or "").strip()
        entries.append(TransactionLogEntry(
            exchange=adapter.name,
            raw=dict(raw),
            instrument=instrument or None,
            timestamp=timestamp or None,
            trade_id=resolve_mapped_identifier(raw, cols.get("trade_id"), "trade"),
            order_id=resolve_mapped_identifier(raw, cols.get("order_id"), "order"),
        ))
    return entries
