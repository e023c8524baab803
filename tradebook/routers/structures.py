"""Saved structure endpoints: listing, appending trades, archiving and links."""

from typing import Optional

from fastapi import APIRouter, Depends

from tradebook.database.db_manager import DatabaseManager
from tradebook.database.scope import ClientScope
from tradebook.dependencies import get_client_scope, get_db, raise_for_result
from tradebook.positions import (
    append_trades_to_structure,
    archive_structure,
    build_structure_chip_summary,
    build_structure_summary_lines,
    fetch_saved_structures,
    sync_linked_structures,
)
from tradebook.schemas import AppendTradesRequest, ArchiveRequest, LinksUpdate

router = APIRouter()


@router.get("/api/structures")
async def list_structures(
    include_archived: bool = False,
    db: DatabaseManager = Depends(get_db),
    scope: ClientScope = Depends(get_client_scope),
):
    """Saved structures with their coalesced legs and summary labels."""
    result = fetch_saved_structures(db, client_scope=scope, include_archived=include_archived)
    raise_for_result(result)

    structures = []
    for structure in result.structures:
        data = structure.to_dict()
        lines = build_structure_summary_lines(structure)
        data["summary"] = {"header": lines.header, "legs": lines.legs} if lines else None
        data["chip"] = build_structure_chip_summary(structure)
        structures.append(data)
    return structures


@router.post("/api/structures/{structure_id}/trades")
async def append_trades(
    structure_id: str,
    body: AppendTradesRequest,
    db: DatabaseManager = Depends(get_db),
    scope: ClientScope = Depends(get_client_scope),
):
    result = append_trades_to_structure(db, structure_id, body.rows, client_scope=scope)
    raise_for_result(result)
    return {"ok": True, "inserted": result.inserted}


@router.post("/api/structures/{structure_id}/archive")
async def archive(
    structure_id: str,
    body: Optional[ArchiveRequest] = None,
    db: DatabaseManager = Depends(get_db),
    scope: ClientScope = Depends(get_client_scope),
):
    """Hide a structure from the default listing."""
    result = archive_structure(db, structure_id, archived_by=body.archived_by if body else None, client_scope=scope)
    raise_for_result(result)
    return {"ok": True}


@router.put("/api/structures/{structure_id}/links")
async def update_links(
    structure_id: str,
    body: LinksUpdate,
    db: DatabaseManager = Depends(get_db),
    scope: ClientScope = Depends(get_client_scope),
):
    """Replace a structure's linked set; both sides of each link change."""
    result = sync_linked_structures(
        db, structure_id, body.linked_structure_ids, closed_at=body.closed_at, client_scope=scope,
    )
    raise_for_result(result)
    return {"ok": True, "linked_structure_ids": result.linked_ids}
