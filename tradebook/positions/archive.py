"""Soft-delete (archive) a structure.  Legs, fills and links are left alone."""

from typing import Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from tradebook.database.models import Position
from tradebook.database.scope import ClientScope, apply_client_filter
from tradebook.positions.identifiers import sanitize_identifier
from tradebook.positions.results import ErrorKind, Result
from tradebook.utils.dates import now_iso


def archive_structure(
    db, structure_id, archived_by: Optional[str] = None, client_scope: Optional[ClientScope] = None,
) -> Result:
    structure_id = sanitize_identifier(structure_id)
    if not structure_id:
        return Result.failure("Missing structure identifier.")

    try:
        with db.get_session() as session:
            query = session.query(Position).filter(Position.position_id == structure_id)
            position = apply_client_filter(query, Position, client_scope).first()
            if position is None:
                return Result.failure(f"Structure {structure_id} does not exist.", ErrorKind.NOT_FOUND)

            position.archived = True
            position.archived_at = now_iso()
            position.archived_by = sanitize_identifier(archived_by)
    except SQLAlchemyError as exc:
        logger.error(f"Failed to archive structure {structure_id}: {exc}")
        return Result.storage_failure(exc)

    logger.info(f"Archived structure {structure_id} (by {archived_by or 'unknown'})")
    return Result.success()
