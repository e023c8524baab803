"""Program playbook and resource routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from tradebook.database.db_manager import DatabaseManager
from tradebook.dependencies import get_db, raise_for_result
from tradebook.positions import fetch_program_playbooks, fetch_program_resources

router = APIRouter()


@router.get("/api/playbooks")
async def list_playbooks(
    program_id: Optional[List[str]] = Query(default=None),
    db: DatabaseManager = Depends(get_db),
):
    result = fetch_program_playbooks(db, program_ids=program_id)
    raise_for_result(result)
    return result.playbooks


@router.get("/api/program-resources")
async def list_program_resources(
    program_id: Optional[List[str]] = Query(default=None),
    db: DatabaseManager = Depends(get_db),
):
    result = fetch_program_resources(db, program_ids=program_id)
    raise_for_result(result)
    return result.resources
