"""
Deduplicating writer for the transaction_logs audit trail.

Entries whose trade id or order id is already stored (for the caller's
client when scoped), or was already seen earlier in the same batch, are
dropped.  Lookups and inserts are chunked to keep IN-lists and payloads
bounded.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from tradebook.database.models import TransactionLog
from tradebook.database.scope import ClientScope, apply_client_filter, scope_name
from tradebook.positions.identifiers import sanitize_identifier
from tradebook.positions.results import InsertResult

LOOKUP_CHUNK_SIZE = 99
INSERT_CHUNK_SIZE = 500


@dataclass
class TransactionLogEntry:
    exchange: str
    raw: Dict[str, Any] = field(default_factory=dict)
    instrument: Optional[str] = None
    timestamp: Optional[str] = None
    trade_id: Optional[str] = None
    order_id: Optional[str] = None


def chunked(items: List[Any], size: int) -> Iterable[List[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _unique(values) -> List[str]:
    seen = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


def _existing_ids(session, column, ids: List[str], client_scope: Optional[ClientScope]) -> Set[str]:
    found: Set[str] = set()
    for chunk in chunked(ids, LOOKUP_CHUNK_SIZE):
        query = session.query(column).filter(column.in_(chunk))
        query = apply_client_filter(query, TransactionLog, client_scope)
        for (value,) in query.all():
            sanitized = sanitize_identifier(value)
            if sanitized:
                found.add(sanitized)
    return found


def filter_new_entries(
    entries: List[TransactionLogEntry], existing_trade_ids: Set[str], existing_order_ids: Set[str],
) -> List[TransactionLogEntry]:
    """Drop entries whose ids are known or were seen earlier in the batch.

    Ids on a dropped entry still count as seen.
    """
    seen_trade_ids: Set[str] = set()
    seen_order_ids: Set[str] = set()
    kept = []
    for entry in entries:
        trade_id = sanitize_identifier(entry.trade_id)
        order_id = sanitize_identifier(entry.order_id)
        trade_dup = bool(trade_id and (trade_id in existing_trade_ids or trade_id in seen_trade_ids))
        order_dup = bool(order_id and (order_id in existing_order_ids or order_id in seen_order_ids))

        if trade_id:
            seen_trade_ids.add(trade_id)
        if order_id:
            seen_order_ids.add(order_id)

        if not trade_dup and not order_dup:
            kept.append(entry)
    return kept


def save_transaction_logs(
    db, entries, client_scope: Optional[ClientScope] = None, created_by: Optional[str] = None,
) -> InsertResult:
    entries: List[TransactionLogEntry] = list(entries or [])
    if not entries:
        return InsertResult.success(inserted=0)

    client_name = scope_name(client_scope)
    trade_ids = _unique(sanitize_identifier(e.trade_id) for e in entries)
    order_ids = _unique(sanitize_identifier(e.order_id) for e in entries)

    try:
        with db.get_session() as session:
            existing_trade_ids = _existing_ids(session, TransactionLog.trade_id, trade_ids, client_scope)
            existing_order_ids = _existing_ids(session, TransactionLog.order_id, order_ids, client_scope)
    except SQLAlchemyError as exc:
        logger.error(f"Transaction log lookup failed: {exc}")
        return InsertResult.storage_failure(exc)

    kept = filter_new_entries(entries, existing_trade_ids, existing_order_ids)
    skipped = len(entries) - len(kept)
    if not kept:
        logger.info(f"All {skipped} transaction log entries already recorded")
        return InsertResult.success(inserted=0, skipped=skipped)

    records = [
        {
            "client_name": client_name,
            "exchange": entry.exchange,
            "trade_id": sanitize_identifier(entry.trade_id),
            "order_id": sanitize_identifier(entry.order_id),
            "instrument": entry.instrument,
            "timestamp": entry.timestamp,
            "raw": {str(k): v for k, v in (entry.raw or {}).items()},
            "created_by": created_by,
        }
        for entry in kept
    ]

    inserted = 0
    try:
        for chunk in chunked(records, INSERT_CHUNK_SIZE):
            with db.get_session() as session:
                session.execute(TransactionLog.__table__.insert(), chunk)
            inserted += len(chunk)
    except SQLAlchemyError as exc:
        logger.error(f"Transaction log insert failed after {inserted} rows: {exc}")
        return InsertResult.storage_failure(exc)

    logger.info(f"Saved {inserted} transaction log entries ({skipped} duplicates skipped)")
    return InsertResult.success(inserted=inserted, skipped=skipped)
