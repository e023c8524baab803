"""Split mapped rows into new ones and ones already imported earlier."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from tradebook.database.models import Fill, Position, UnprocessedImport
from tradebook.database.scope import ClientScope, apply_client_filter, is_restricted, scope_name
from tradebook.positions.identifiers import extract_identifier, sanitize_identifier
from tradebook.positions.results import Result
from tradebook.positions.transaction_logs import LOOKUP_CHUNK_SIZE, chunked


@dataclass(frozen=True)
class DuplicateFilterResult(Result):
    filtered: List[Dict[str, Any]] = field(default_factory=list)
    duplicates: List[Dict[str, Any]] = field(default_factory=list)
    duplicate_trade_ids: List[str] = field(default_factory=list)
    duplicate_order_ids: List[str] = field(default_factory=list)


def _known_ids(session, kind: str, ids: List[str], client_scope: Optional[ClientScope]) -> Set[str]:
    fill_column = Fill.trade_id if kind == "trade" else Fill.order_id
    unprocessed_column = UnprocessedImport.trade_id if kind == "trade" else UnprocessedImport.order_id
    known: Set[str] = set()

    for chunk in chunked(ids, LOOKUP_CHUNK_SIZE):
        fills = session.query(fill_column).filter(fill_column.in_(chunk))
        if is_restricted(client_scope):
            fills = fills.join(Position, Position.position_id == Fill.position_id).filter(
                Position.client_name == scope_name(client_scope),
            )
        parked = apply_client_filter(
            session.query(unprocessed_column).filter(unprocessed_column.in_(chunk)), UnprocessedImport, client_scope,
        )
        for (value,) in fills.all() + parked.all():
            sanitized = sanitize_identifier(value)
            if sanitized:
                known.add(sanitized)
    return known


def filter_previously_imported(
    db, rows, client_scope: Optional[ClientScope] = None, allow_allocations: bool = False,
) -> DuplicateFilterResult:
    """Drop rows whose trade or order id is already in fills or unprocessed_imports.

    With allow_allocations the known ids are reported but every row is kept,
    so one execution can be split across several structures.
    """
    rows = list(rows or [])
    trade_ids = sorted({extract_identifier(r, "trade") for r in rows} - {None})
    order_ids = sorted({extract_identifier(r, "order") for r in rows} - {None})
    if not trade_ids and not order_ids:
        return DuplicateFilterResult.success(filtered=rows)

    try:
        with db.get_session() as session:
            known_trade_ids = _known_ids(session, "trade", trade_ids, client_scope)
            known_order_ids = _known_ids(session, "order", order_ids, client_scope)
    except SQLAlchemyError as exc:
        logger.error(f"Duplicate lookup failed: {exc}")
        return DuplicateFilterResult.storage_failure(exc)

    dup_trade_ids = sorted(known_trade_ids)
    dup_order_ids = sorted(known_order_ids)
    if allow_allocations or (not known_trade_ids and not known_order_ids):
        return DuplicateFilterResult.success(
            filtered=rows, duplicate_trade_ids=dup_trade_ids, duplicate_order_ids=dup_order_ids,
        )

    filtered, duplicates = [], []
    for row in rows:
        trade_id = extract_identifier(row, "trade")
        order_id = extract_identifier(row, "order")
        if (trade_id and trade_id in known_trade_ids) or (order_id and order_id in known_order_ids):
            duplicates.append(row)
        else:
            filtered.append(row)

    logger.info(f"Filtered {len(duplicates)} previously imported rows out of {len(rows)}")
    return DuplicateFilterResult.success(
        filtered=filtered,
        duplicates=duplicates,
        duplicate_trade_ids=dup_trade_ids,
        duplicate_order_ids=dup_order_ids,
    )
