"""Import service: structure bundles and the review-overlay finalize step."""

from collections import OrderedDict
from typing import Any, Dict, List, Mapping, Optional

from loguru import logger
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from tradebook.database.models import Fill, Leg, Position, Program, ProgramStrategy, Strategy, Venue
from tradebook.database.scope import ClientScope, scope_name
from tradebook.positions.append_trades import append_trades_to_structure
from tradebook.positions.identifiers import sanitize_identifier
from tradebook.positions.linked import sync_linked_structures
from tradebook.positions.results import ErrorKind, FinalizeImportResult, ImportResult
from tradebook.positions.unprocessed import save_unprocessed_trades
from tradebook.schemas import ImportPayload


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "Invalid payload: " + "; ".join(parts)


def _upsert(session, db, model, values: Dict[str, Any], conflict: List[str]):
    stmt = db.dialect_insert(model).values(**values)
    updates = {k: stmt.excluded[k] for k in values if k not in conflict}
    if updates:
        stmt = stmt.on_conflict_do_update(index_elements=conflict, set_=updates)
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=conflict)
    session.execute(stmt)


def _resolve_fill_leg(fill: Dict[str, Any], leg_seqs: List[int]) -> Optional[int]:
    if fill.get("leg_seq") is not None:
        return fill["leg_seq"]
    if len(leg_seqs) == 1:
        return leg_seqs[0]
    return None


def import_structure_bundle(db, payload, client_scope: Optional[ClientScope] = None) -> ImportResult:
    """Write a program/venue/position/legs/fills bundle as one new structure.

    Program, strategy and the program-strategy pairing are upserted; the
    venue is inserted only when the position doesn't already name one.
    Declared linked_structure_ids are synced after the structure exists.
    """
    try:
        bundle = payload if isinstance(payload, ImportPayload) else ImportPayload.model_validate(payload)
    except ValidationError as exc:
        return ImportResult.failure(_validation_message(exc))

    program = bundle.program.model_dump()
    position = bundle.position.model_dump(exclude={"linked_structure_ids"})
    legs = [leg.model_dump() for leg in bundle.legs]
    fills = [fill.model_dump(exclude_none=True) for fill in bundle.fills or []]
    linked_ids = list(bundle.position.linked_structure_ids or [])
    close_target = sanitize_identifier(position.get("close_target_structure_id"))
    closed_at = None
    if position["lifecycle"] == "close":
        # the closing structure is always linked to the one it closes
        if close_target and close_target not in linked_ids:
            linked_ids.append(close_target)
        closed_at = position.get("exit_ts") or position["entry_ts"]

    leg_seqs = [leg["leg_seq"] for leg in legs]
    if len(set(leg_seqs)) != len(leg_seqs):
        return ImportResult.failure("Leg sequence numbers must be unique.")
    for index, fill in enumerate(fills, start=1):
        leg_seq = _resolve_fill_leg(fill, leg_seqs)
        if leg_seq is None:
            return ImportResult.failure(f"Fill {index} is missing leg_seq.")
        if leg_seq not in leg_seqs:
            return ImportResult.failure(f"Fill {index} references unknown leg {leg_seq}.")
        fill["leg_seq"] = leg_seq

    client_name = scope_name(client_scope) or position.get("client_name")

    try:
        with db.get_session() as session:
            _upsert(session, db, Program, program, ["program_id"])
            _upsert(session, db, Strategy, {
                "strategy_code": position["strategy_code"],
                "strategy_name": position["strategy_name"],
            }, ["strategy_code"])
            _upsert(session, db, ProgramStrategy, {
                "program_id": position["program_id"],
                "strategy_code": position["strategy_code"],
            }, ["program_id", "strategy_code"])

            venue_id = position.get("venue_id")
            if bundle.venue is not None and not venue_id:
                venue = Venue(**bundle.venue.model_dump(exclude_none=True))
                session.add(venue)
                session.flush()
                venue_id = venue.venue_id

            position_values = {k: v for k, v in position.items() if v is not None}
            position_values.update(
                venue_id=venue_id,
                client_name=client_name,
                strategy_name_at_entry=position["strategy_name"],
            )
            row = Position(**position_values)
            session.add(row)
            session.flush()
            position_id = row.position_id

            session.add_all([Leg(position_id=position_id, **leg) for leg in legs])
            session.flush()  # fills reference (position_id, leg_seq)
            if fills:
                session.add_all([Fill(position_id=position_id, **fill) for fill in fills])
    except SQLAlchemyError as exc:
        logger.error(f"Structure import failed: {exc}")
        return ImportResult.storage_failure(exc)

    logger.info(
        f"Imported structure {position_id} ({position['underlier']} {position['strategy_code']}) "
        f"with {len(legs)} legs and {len(fills)} fills"
    )

    if linked_ids:
        synced = sync_linked_structures(
            db, position_id, linked_ids, closed_at=closed_at, client_scope=client_scope,
        )
        if not synced.ok:
            return ImportResult(ok=False, error=synced.error, kind=synced.kind, position_id=position_id)

    return ImportResult.success(position_id=position_id)


def group_rows_by_target(rows) -> "OrderedDict[str, List[Dict[str, Any]]]":
    """Rows carrying a linked_structure_id, grouped by target in first-seen order."""
    groups: "OrderedDict[str, List[Dict[str, Any]]]" = OrderedDict()
    for row in rows or []:
        target = sanitize_identifier(row.get("linked_structure_id"))
        if not target:
            continue
        groups.setdefault(target, []).append({**row, "linked_structure_id": target})
    return groups


def finalize_import(
    db,
    selected_rows,
    unprocessed_rows,
    client_scope: Optional[ClientScope] = None,
    created_by: Optional[str] = None,
) -> FinalizeImportResult:
    """Park unprocessed rows, then append each linked group to its structure.

    Stops at the first failing group; groups appended before it stay
    written and are reported in ``appended``.
    """
    unprocessed_rows: List[Mapping[str, Any]] = list(unprocessed_rows or [])
    unprocessed_inserted = 0
    if unprocessed_rows:
        saved = save_unprocessed_trades(db, unprocessed_rows, client_scope=client_scope, created_by=created_by)
        if not saved.ok:
            return FinalizeImportResult.failure(
                f"Failed to save unprocessed trades: {saved.error}", saved.kind or ErrorKind.STORAGE,
            )
        unprocessed_inserted = saved.inserted

    appended: Dict[str, int] = {}
    for structure_id, grouped in group_rows_by_target(selected_rows).items():
        result = append_trades_to_structure(db, structure_id, grouped, client_scope=client_scope)
        if not result.ok:
            logger.warning(f"Finalize stopped at structure {structure_id}: {result.error}")
            return FinalizeImportResult(
                ok=False,
                error=f"Failed to update saved structure {structure_id}: {result.error}",
                kind=result.kind,
                unprocessed_inserted=unprocessed_inserted,
                appended=appended,
            )
        appended[structure_id] = result.inserted

    logger.info(
        f"Finalized import: {unprocessed_inserted} unprocessed, "
        f"{sum(appended.values())} legs across {len(appended)} structures"
    )
    return FinalizeImportResult.success(unprocessed_inserted=unprocessed_inserted, appended=appended)
