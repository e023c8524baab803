"""
Expiry backfill: repair leg expiries from raw rows that share a trade or
order id with the legs' fills.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from tradebook.database.models import Fill, Leg, Position
from tradebook.database.scope import ClientScope, is_restricted, scope_name
from tradebook.positions.identifiers import extract_identifier
from tradebook.positions.results import BackfillResult
from tradebook.positions.transaction_logs import chunked
from tradebook.utils.dates import normalize_date_only
from tradebook.venues.instruments import parse_instrument_by_exchange

FILL_LOOKUP_CHUNK_SIZE = 100


@dataclass(frozen=True)
class LegUpdate:
    position_id: str
    leg_seq: int
    expiry: str


def resolve_row_expiry(row: Mapping[str, Any]) -> Optional[str]:
    expiry = normalize_date_only(row.get("expiry"))
    if expiry:
        return expiry
    parsed = parse_instrument_by_exchange(row.get("exchange"), row.get("instrument"))
    return parsed.expiry if parsed else None


def build_identifier_maps(rows) -> Tuple[Dict[str, str], Dict[str, str]]:
    """id -> expiry maps.  A row keyed by trade id is not also keyed by order id
    unless its trade id was already taken; the first row for an id wins."""
    trade_map: Dict[str, str] = {}
    order_map: Dict[str, str] = {}

    for row in rows:
        expiry = resolve_row_expiry(row)
        if not expiry:
            continue

        trade_id = extract_identifier(row, "trade")
        if trade_id and trade_id not in trade_map:
            trade_map[trade_id] = expiry
            continue

        order_id = extract_identifier(row, "order")
        if order_id and order_id not in order_map:
            order_map[order_id] = expiry

    return trade_map, order_map


def collect_leg_updates(fills, trade_map: Dict[str, str], order_map: Dict[str, str]) -> Tuple[List[LegUpdate], int]:
    """Resolve fills to leg updates, one per (position_id, leg_seq).

    Returns (updates, matched) where matched counts every fill that resolved.
    """
    updates: Dict[Tuple[str, int], LegUpdate] = {}
    matched = 0

    for fill in fills:
        expiry = None
        if fill.trade_id and fill.trade_id in trade_map:
            expiry = trade_map[fill.trade_id]
        elif fill.order_id and fill.order_id in order_map:
            expiry = order_map[fill.order_id]
        if expiry is None:
            continue
        if fill.leg_seq is None or int(fill.leg_seq) <= 0:
            continue

        matched += 1
        key = (fill.position_id, int(fill.leg_seq))
        if key not in updates:
            updates[key] = LegUpdate(position_id=fill.position_id, leg_seq=int(fill.leg_seq), expiry=expiry)

    return list(updates.values()), matched


def _fetch_fills(session, column, ids: List[str], client_scope: Optional[ClientScope]):
    rows = []
    for chunk in chunked(ids, FILL_LOOKUP_CHUNK_SIZE):
        query = session.query(Fill.fill_id, Fill.position_id, Fill.leg_seq, Fill.trade_id, Fill.order_id).filter(
            column.in_(chunk),
        )
        if is_restricted(client_scope):
            query = query.join(Position, Position.position_id == Fill.position_id).filter(
                Position.client_name == scope_name(client_scope),
            )
        rows.extend(query.all())
    return rows


def backfill_leg_expiries(db, rows, client_scope: Optional[ClientScope] = None) -> BackfillResult:
    """Update leg expiries from raw rows; reports legs updated and the
    matched fills that didn't produce their own update."""
    rows = list(rows or [])
    if not rows:
        return BackfillResult.success(updated=0, skipped=0)

    trade_map, order_map = build_identifier_maps(rows)
    if not trade_map and not order_map:
        return BackfillResult.success(updated=0, skipped=0)

    try:
        with db.get_session() as session:
            fetched = _fetch_fills(session, Fill.trade_id, list(trade_map), client_scope)
            fetched += _fetch_fills(session, Fill.order_id, list(order_map), client_scope)

            # a fill can come back from both lookups
            fills = list({fill.fill_id: fill for fill in fetched}.values())
            updates, matched = collect_leg_updates(fills, trade_map, order_map)

            updated = 0
            for update in updates:
                session.query(Leg).filter(
                    Leg.position_id == update.position_id,
                    Leg.leg_seq == update.leg_seq,
                ).update({Leg.expiry: update.expiry}, synchronize_session=False)
                updated += 1
    except SQLAlchemyError as exc:
        logger.error(f"Expiry backfill failed: {exc}")
        return BackfillResult.storage_failure(exc)

    skipped = max(0, matched - updated)
    logger.info(f"Backfilled expiries on {updated} legs ({skipped} duplicate matches skipped)")
    return BackfillResult.success(updated=updated, skipped=skipped)
