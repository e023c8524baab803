"""
Append normalized trades to an existing structure as new legs + fills.

Legs and fills go in one transaction.  Sequence numbers are max(leg_seq)+1
onward; the (position_id, leg_seq) primary key turns a concurrent append
into an IntegrityError, after which the batch is retried against the new
maximum.
"""

from typing import Optional

from loguru import logger
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from tradebook.database.models import Fill, Leg, Position
from tradebook.database.scope import ClientScope, apply_client_filter
from tradebook.positions.identifiers import sanitize_identifier
from tradebook.positions.normalize import normalize_trade_rows
from tradebook.positions.results import AppendResult, ErrorKind

MAX_APPEND_ATTEMPTS = 3


def load_scoped_position(session, structure_id: str, client_scope: Optional[ClientScope], lock: bool = False):
    query = session.query(Position).filter(Position.position_id == structure_id)
    query = apply_client_filter(query, Position, client_scope)
    if lock:
        query = query.with_for_update()
    return query.first()


def current_max_leg_seq(session, structure_id: str) -> int:
    value = session.query(func.max(Leg.leg_seq)).filter(Leg.position_id == structure_id).scalar()
    return int(value or 0)


def _write_batch(session, structure_id: str, trades, start_seq: int) -> int:
    legs = []
    fills = []
    for offset, trade in enumerate(trades):
        leg_seq = start_seq + offset
        legs.append(Leg(
            position_id=structure_id,
            leg_seq=leg_seq,
            side=trade.side,
            option_type=trade.option_type,
            expiry=trade.expiry,
            strike=trade.strike,
            qty=trade.qty,
            price=trade.price,
        ))
        fills.append(Fill(
            position_id=structure_id,
            leg_seq=leg_seq,
            ts=trade.timestamp,
            qty=trade.qty,
            price=trade.price,
            open_close=trade.open_close,
            side=trade.side,
            trade_id=trade.trade_id,
            order_id=trade.order_id,
            fees=trade.fee,
            notes=trade.notes,
        ))

    session.add_all(legs)
    session.flush()  # legs must exist before fills reference them
    session.add_all(fills)
    session.flush()
    return len(legs)


def append_trades_to_structure(db, structure_id, rows, client_scope: Optional[ClientScope] = None) -> AppendResult:
    """Normalize rows and append them to a structure as legs and fills.

    Returns AppendResult(inserted=<legs written>).  Nothing is written if
    any row fails normalization or the structure isn't visible.
    """
    structure_id = sanitize_identifier(structure_id)
    if not structure_id:
        return AppendResult.failure("Missing structure identifier.")

    rows = list(rows or [])
    if not rows:
        return AppendResult.success(inserted=0)

    batch = normalize_trade_rows(rows)
    if not batch.ok:
        return AppendResult.failure(batch.error, batch.kind)

    for attempt in range(1, MAX_APPEND_ATTEMPTS + 1):
        start_seq = None
        try:
            with db.get_session() as session:
                position = load_scoped_position(session, structure_id, client_scope, lock=True)
                if position is None:
                    return AppendResult.failure(
                        f"Structure {structure_id} does not exist or is not accessible.",
                        ErrorKind.NOT_FOUND,
                    )
                start_seq = current_max_leg_seq(session, structure_id) + 1
                inserted = _write_batch(session, structure_id, batch.trades, start_seq)
        except IntegrityError as exc:
            if start_seq is not None and _sequence_moved(db, structure_id, start_seq):
                if attempt < MAX_APPEND_ATTEMPTS:
                    logger.warning(
                        f"Leg sequence collision on structure {structure_id} "
                        f"(attempt {attempt}/{MAX_APPEND_ATTEMPTS}), retrying"
                    )
                    continue
                return AppendResult.failure(
                    f"Could not allocate leg sequence for structure {structure_id}.", ErrorKind.CONFLICT,
                )
            logger.error(f"Failed to append trades to structure {structure_id}: {exc}")
            return AppendResult.storage_failure(exc)
        except SQLAlchemyError as exc:
            logger.error(f"Failed to append trades to structure {structure_id}: {exc}")
            return AppendResult.storage_failure(exc)

        logger.info(f"Appended {inserted} legs to structure {structure_id} starting at leg {start_seq}")
        return AppendResult.success(inserted=inserted)


def _sequence_moved(db, structure_id: str, attempted_start: int) -> bool:
    """True when another writer took the sequence numbers we tried to use."""
    with db.get_session() as session:
        return current_max_leg_seq(session, structure_id) >= attempted_start
