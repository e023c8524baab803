"""Import endpoints: bundles, audit logs, parked trades, backfill and duplicate checks."""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends
from loguru import logger

from tradebook.database.db_manager import DatabaseManager
from tradebook.database.scope import ClientScope
from tradebook.dependencies import get_client_scope, get_db, raise_for_result
from tradebook.importing.duplicates import filter_previously_imported
from tradebook.positions import (
    TransactionLogEntry, backfill_leg_expiries, save_transaction_logs, save_unprocessed_trades,
)
from tradebook.schemas import (
    BackfillRequest, DuplicateCheckRequest, FinalizeImportRequest, TransactionLogsRequest, UnprocessedRequest,
)
from tradebook.services.client_service import ensure_client_record
from tradebook.services.import_service import finalize_import, import_structure_bundle

router = APIRouter()


@router.post("/api/import")
async def import_bundle(
    payload: Dict[str, Any] = Body(...),
    db: DatabaseManager = Depends(get_db),
    scope: ClientScope = Depends(get_client_scope),
):
    """Create a structure from a program/venue/position/legs/fills bundle."""
    result = import_structure_bundle(db, payload, client_scope=scope)
    raise_for_result(result)
    return {"ok": True, "position_id": result.position_id}


@router.post("/api/import/finalize")
async def finalize(
    body: FinalizeImportRequest,
    db: DatabaseManager = Depends(get_db),
    scope: ClientScope = Depends(get_client_scope),
):
    """Park unprocessed rows and append linked rows to their structures."""
    result = finalize_import(
        db, body.selected_rows, body.unprocessed_rows, client_scope=scope, created_by=body.created_by,
    )
    raise_for_result(result)
    return {"ok": True, "unprocessed_inserted": result.unprocessed_inserted, "appended": result.appended}


@router.post("/api/import/duplicates")
async def check_duplicates(
    body: DuplicateCheckRequest,
    db: DatabaseManager = Depends(get_db),
    scope: ClientScope = Depends(get_client_scope),
):
    result = filter_previously_imported(db, body.rows, client_scope=scope, allow_allocations=body.allow_allocations)
    raise_for_result(result)
    return {
        "filtered": result.filtered,
        "duplicates": result.duplicates,
        "duplicate_trade_ids": result.duplicate_trade_ids,
        "duplicate_order_ids": result.duplicate_order_ids,
    }


@router.post("/api/transaction-logs")
async def record_transaction_logs(
    body: TransactionLogsRequest,
    db: DatabaseManager = Depends(get_db),
    scope: ClientScope = Depends(get_client_scope),
):
    """Append raw export records to the audit log, skipping known ids."""
    entries = [TransactionLogEntry(**entry.model_dump()) for entry in body.entries]
    result = save_transaction_logs(db, entries, client_scope=scope, created_by=body.created_by)
    raise_for_result(result)
    return {"ok": True, "inserted": result.inserted, "skipped": result.skipped}


@router.post("/api/unprocessed-trades")
async def park_unprocessed_trades(
    body: UnprocessedRequest,
    db: DatabaseManager = Depends(get_db),
    scope: ClientScope = Depends(get_client_scope),
):
    result = save_unprocessed_trades(db, body.rows, client_scope=scope, created_by=body.created_by)
    raise_for_result(result)
    return {"ok": True, "inserted": result.inserted}


@router.post("/api/backfill/expiries")
async def backfill_expiries(
    body: BackfillRequest,
    db: DatabaseManager = Depends(get_db),
    scope: ClientScope = Depends(get_client_scope),
):
    """Fill leg expiries from re-imported rows matched by trade/order id."""
    result = backfill_leg_expiries(db, body.rows, client_scope=scope)
    raise_for_result(result)
    logger.info(f"Expiry backfill via API: {result.updated} updated, {result.skipped} skipped")
    return {"ok": True, "updated": result.updated, "skipped": result.skipped}


@router.post("/api/clients")
async def register_client(
    client_name: str = Body(..., embed=True),
    db: DatabaseManager = Depends(get_db),
):
    result = ensure_client_record(db, client_name)
    raise_for_result(result)
    return {"ok": True, "client_id": result.client_id}
