"""
Read model for saved structures: positions with their legs coalesced by
contract and quantities signed (sell negative).  No P&L is computed here.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from tradebook.database.models import Position, Program
from tradebook.database.scope import ClientScope, apply_client_filter
from tradebook.positions.linked import linked_ids_by_structure
from tradebook.positions.results import FetchStructuresResult
from tradebook.utils.dates import normalize_date_only


@dataclass
class LegView:
    key: str
    strike: float
    option_type: str  # "C" or "P"
    qty_net: float
    expiry: Optional[str] = None
    exchange: Optional[str] = None


@dataclass
class StructureView:
    structure_id: str
    underlying: str
    expiry: Optional[str]
    legs: List[LegView] = field(default_factory=list)
    strategy_code: Optional[str] = None
    strategy_name: Optional[str] = None
    program_id: Optional[str] = None
    program_name: Optional[str] = None
    client_name: Optional[str] = None
    exchange: Optional[str] = None
    lifecycle: str = "open"
    status: str = "OPEN"
    closed_at: Optional[str] = None
    linked_ids: Optional[List[str]] = None
    archived: bool = False
    archived_at: Optional[str] = None
    archived_by: Optional[str] = None

    def to_dict(self) -> Dict:
        data = dict(self.__dict__)
        data["legs"] = [dict(leg.__dict__) for leg in self.legs]
        return data


def infer_exchange(position: Position) -> Optional[str]:
    for candidate in (position.provider, position.venue_id, position.mark_source):
        if not candidate:
            continue
        letters = "".join(ch for ch in candidate.lower() if ch.isalpha())
        if "coincall" in letters or letters == "cc":
            return "coincall"
        if "deribit" in letters or letters == "db":
            return "deribit"
    return None


def normalize_lifecycle(raw: Optional[str]) -> Optional[str]:
    text = (raw or "").strip().lower()
    if text == "open":
        return "open"
    if text in ("close", "closed"):
        return "close"
    return None


def normalize_closed_at(raw: Optional[str]) -> Optional[str]:
    text = (raw or "").strip()
    if not text or text.lower() in ("null", "undefined", "none"):
        return None
    return text


def coalesce_legs(position: Position, exchange: Optional[str]) -> List[LegView]:
    merged: Dict[str, LegView] = {}
    for leg in position.legs:
        if leg.strike is None or leg.qty is None or leg.side not in ("buy", "sell"):
            continue
        option = "P" if (leg.option_type or "").lower() == "put" else "C"
        expiry = normalize_date_only(leg.expiry)
        signed = -abs(leg.qty) if leg.side == "sell" else abs(leg.qty)
        key = f"{expiry or ''}::{leg.strike:g}::{option}::{exchange or ''}"

        existing = merged.get(key)
        if existing is None:
            merged[key] = LegView(
                key=key, strike=leg.strike, option_type=option, qty_net=signed, expiry=expiry, exchange=exchange,
            )
        else:
            existing.qty_net += signed
    return list(merged.values())


def _has_expired(expiry: Optional[str]) -> bool:
    if not expiry:
        return False
    try:
        return date.fromisoformat(expiry) <= date.today()
    except ValueError:
        return False


def build_structure_view(position: Position, program_names: Dict[str, str], linked: Optional[List[str]]) -> StructureView:
    exchange = infer_exchange(position)
    legs = coalesce_legs(position, exchange)
    lifecycle = normalize_lifecycle(position.lifecycle) or "open"
    closed_at = normalize_closed_at(position.closed_at)

    expiry = next((leg.expiry for leg in legs if leg.expiry), None) or normalize_date_only(position.entry_ts)
    expired = _has_expired(expiry)
    is_closed = lifecycle == "close" or bool(closed_at or position.close_target_structure_id) or expired

    return StructureView(
        structure_id=position.position_id,
        underlying=(position.underlier or "").upper(),
        expiry=expiry,
        legs=legs,
        strategy_code=position.strategy_code,
        strategy_name=position.strategy_name_at_entry or position.strategy_name or position.strategy_code,
        program_id=position.program_id,
        program_name=program_names.get(position.program_id) if position.program_id else None,
        client_name=position.client_name,
        exchange=exchange,
        lifecycle=lifecycle,
        status="CLOSED" if is_closed else "OPEN",
        closed_at=closed_at,
        linked_ids=linked,
        archived=bool(position.archived),
        archived_at=position.archived_at,
        archived_by=position.archived_by,
    )


def fetch_saved_structures(
    db, client_scope: Optional[ClientScope] = None, include_archived: bool = False,
) -> FetchStructuresResult:
    """Saved structures visible to the caller, newest entry first."""
    try:
        with db.get_session() as session:
            query = session.query(Position).options(selectinload(Position.legs))
            if not include_archived:
                query = query.filter(Position.archived.is_(False))
            query = apply_client_filter(query, Position, client_scope)
            positions = query.order_by(Position.entry_ts.desc(), Position.created_at.desc()).all()

            program_ids = {p.program_id for p in positions if p.program_id}
            program_names = {}
            if program_ids:
                program_names = dict(
                    session.query(Program.program_id, Program.program_name)
                    .filter(Program.program_id.in_(program_ids))
                    .all()
                )
            links = linked_ids_by_structure(session, [p.position_id for p in positions])

            structures = [
                build_structure_view(p, program_names, links.get(p.position_id)) for p in positions
            ]
    except SQLAlchemyError as exc:
        logger.error(f"Failed to fetch saved structures: {exc}")
        return FetchStructuresResult.storage_failure(exc)

    return FetchStructuresResult.success(structures=structures)
