"""Archive raw trades that aren't attached to a structure yet."""

from typing import Any, Dict, List, Mapping, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from tradebook.database.models import UnprocessedImport
from tradebook.database.scope import ClientScope, scope_name
from tradebook.positions.identifiers import extract_identifier, resolve_trade_id, sanitize_identifier
from tradebook.positions.results import InsertResult
from tradebook.utils.numbers import to_numeric


def _json_safe(row: Mapping[str, Any]) -> Dict[str, Any]:
    return {str(key): value for key, value in row.items()}


def build_unprocessed_record(
    row: Mapping[str, Any], client_name: Optional[str], created_by: Optional[str],
) -> Dict[str, Any]:
    """Column values for one unprocessed_imports row; absent fields are None."""
    return {
        "client_name": client_name,
        "trade_id": resolve_trade_id(row),
        "order_id": extract_identifier(row, "order"),
        "instrument": sanitize_identifier(row.get("instrument")),
        "side": sanitize_identifier(row.get("side")),
        "amount": to_numeric(row.get("amount")),
        "price": to_numeric(row.get("price")),
        "fee": to_numeric(row.get("fee")),
        "timestamp": sanitize_identifier(row.get("timestamp")),
        "exchange": sanitize_identifier(row.get("exchange")),
        "raw": _json_safe(row),
        "created_by": created_by,
    }


def save_unprocessed_trades(
    db, rows, client_scope: Optional[ClientScope] = None, created_by: Optional[str] = None,
) -> InsertResult:
    rows: List[Mapping[str, Any]] = list(rows or [])
    if not rows:
        return InsertResult.success(inserted=0)

    client_name = scope_name(client_scope)
    records = [build_unprocessed_record(row, client_name, created_by) for row in rows]

    try:
        with db.get_session() as session:
            session.execute(UnprocessedImport.__table__.insert(), records)
    except SQLAlchemyError as exc:
        logger.error(f"Failed to save unprocessed trades: {exc}")
        return InsertResult.storage_failure(exc)

    logger.info(f"Saved {len(records)} unprocessed trades for client {client_name or '-'}")
    return InsertResult.success(inserted=len(records))
