"""
Linked-structure synchronization.

Links are stored once per unordered pair in structure_links (low_id <
high_id), so "A links to B" and "B links to A" are the same row and the
relation can't go asymmetric.  A shared closed_at is merged earliest-wins
onto the source and every desired target.
"""

from typing import Iterable, List, Optional, Set, Tuple

from loguru import logger
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from tradebook.database.models import Position, StructureLink
from tradebook.database.scope import ClientScope, apply_client_filter
from tradebook.positions.identifiers import sanitize_identifier
from tradebook.positions.results import ErrorKind, SyncResult
from tradebook.utils.dates import parse_datetime, to_iso_instant


def normalize_iso_timestamp(value: Optional[str]) -> Optional[str]:
    """ISO instant for parseable input, the trimmed text otherwise, None if blank."""
    if value is None:
        return None
    trimmed = str(value).strip()
    if not trimmed:
        return None
    parsed = parse_datetime(trimmed)
    if parsed is None:
        return trimmed
    return to_iso_instant(parsed)


def merge_closed_at(existing: Optional[str], candidate: Optional[str]) -> Optional[str]:
    """Earliest-wins merge of two closed-at values.

    Unparseable strings are carried as opaque values: an unparseable
    candidate never replaces an existing value, and an unparseable existing
    value yields to a parseable candidate.
    """
    normalized_candidate = normalize_iso_timestamp(candidate)
    normalized_existing = normalize_iso_timestamp(existing)
    if normalized_candidate is None:
        return normalized_existing
    if normalized_existing is None:
        return normalized_candidate

    candidate_dt = parse_datetime(normalized_candidate)
    existing_dt = parse_datetime(normalized_existing)
    if candidate_dt is None:
        return normalized_existing
    if existing_dt is None:
        return normalized_candidate
    return normalized_candidate if candidate_dt < existing_dt else normalized_existing


def sanitize_ids(values: Optional[Iterable], exclude: Optional[str] = None) -> List[str]:
    """Trimmed, de-duplicated ids in first-seen order, without ``exclude``."""
    result: List[str] = []
    for value in values or []:
        if not isinstance(value, str):
            continue
        trimmed = value.strip()
        if not trimmed or trimmed == exclude or trimmed in result:
            continue
        result.append(trimmed)
    return result


def ordered_pair(a: str, b: str) -> Tuple[str, str]:
    return (a, b) if a < b else (b, a)


def get_linked_structure_ids(session, structure_id: str) -> Optional[List[str]]:
    """Sorted ids linked to structure_id, or None when there are none."""
    rows = session.query(StructureLink.low_id, StructureLink.high_id).filter(
        or_(StructureLink.low_id == structure_id, StructureLink.high_id == structure_id),
    ).all()
    linked: Set[str] = {high if low == structure_id else low for low, high in rows}
    linked.discard(structure_id)
    return sorted(linked) or None


def linked_ids_by_structure(session, structure_ids: List[str]) -> dict:
    """{structure_id: [linked ids]} for a set of structures."""
    result = {sid: set() for sid in structure_ids}
    if not structure_ids:
        return {}
    rows = session.query(StructureLink.low_id, StructureLink.high_id).filter(
        or_(StructureLink.low_id.in_(structure_ids), StructureLink.high_id.in_(structure_ids)),
    ).all()
    for low, high in rows:
        if low in result:
            result[low].add(high)
        if high in result:
            result[high].add(low)
    return {sid: sorted(ids) for sid, ids in result.items() if ids}


def sync_linked_structures(
    db,
    source_id,
    linked_ids,
    closed_at: Optional[str] = None,
    client_scope: Optional[ClientScope] = None,
) -> SyncResult:
    """Make source_id's link set equal linked_ids, symmetrically.

    Returns SyncResult(linked_ids=<desired set, or None when empty>).
    """
    source_id = sanitize_identifier(source_id)
    if not source_id:
        return SyncResult.failure("Missing source structure identifier.")

    desired = sanitize_ids(linked_ids, exclude=source_id)
    candidate = normalize_iso_timestamp(closed_at) if closed_at else None

    try:
        with db.get_session() as session:
            source = apply_client_filter(
                session.query(Position).filter(Position.position_id == source_id), Position, client_scope,
            ).first()
            if source is None:
                return SyncResult.failure(f"Structure {source_id} does not exist.", ErrorKind.NOT_FOUND)

            current = get_linked_structure_ids(session, source_id) or []
            removed = [sid for sid in current if sid not in desired]
            affected = desired + [sid for sid in removed if sid not in desired]

            targets = {}
            if affected:
                query = session.query(Position).filter(Position.position_id.in_(affected))
                targets = {p.position_id: p for p in apply_client_filter(query, Position, client_scope).all()}
                missing = next((sid for sid in affected if sid not in targets), None)
                if missing:
                    return SyncResult.failure(f"Linked structure {missing} does not exist.", ErrorKind.NOT_FOUND)

            if candidate is not None:
                next_closed_at = merge_closed_at(source.closed_at, candidate)
                if next_closed_at != source.closed_at:
                    source.closed_at = next_closed_at

            writes = 0
            for target_id in desired:
                if target_id not in current:
                    low, high = ordered_pair(source_id, target_id)
                    session.add(StructureLink(low_id=low, high_id=high))
                    writes += 1
                if candidate is not None:
                    target = targets[target_id]
                    next_closed_at = merge_closed_at(target.closed_at, candidate)
                    if next_closed_at != target.closed_at:
                        target.closed_at = next_closed_at
                        writes += 1

            for target_id in removed:
                low, high = ordered_pair(source_id, target_id)
                session.query(StructureLink).filter(
                    StructureLink.low_id == low, StructureLink.high_id == high,
                ).delete(synchronize_session=False)
                writes += 1
    except SQLAlchemyError as exc:
        logger.error(f"Failed to sync links for structure {source_id}: {exc}")
        return SyncResult.storage_failure(exc)

    logger.info(
        f"Synced links for structure {source_id}: {len(desired)} linked, "
        f"{len(removed)} removed, {writes} target writes"
    )
    return SyncResult.success(linked_ids=desired or None)
