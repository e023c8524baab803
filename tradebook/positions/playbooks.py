"""Program playbooks (rules + signals) and link-style program resources."""

from collections import defaultdict
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from tradebook.database.models import ProgramPlaybook, ProgramResource
from tradebook.positions.results import FetchPlaybooksResult, FetchResourcesResult


def _resource_dict(resource: ProgramResource) -> Dict[str, Any]:
    return {
        "id": resource.resource_id,
        "program_id": resource.program_id,
        "title": resource.title,
        "url": resource.url,
        "notes": resource.notes,
        "resource_type": resource.resource_type,
    }


def _query_resources(session, program_ids: Optional[List[str]]):
    query = session.query(ProgramResource)
    if program_ids:
        query = query.filter(ProgramResource.program_id.in_(program_ids))
    return query.order_by(ProgramResource.title.asc()).all()


def fetch_program_resources(db, program_ids: Optional[List[str]] = None) -> FetchResourcesResult:
    try:
        with db.get_session() as session:
            resources = [_resource_dict(r) for r in _query_resources(session, program_ids) if r.title]
    except SQLAlchemyError as exc:
        logger.error(f"Failed to fetch program resources: {exc}")
        return FetchResourcesResult.storage_failure(exc)
    return FetchResourcesResult.success(resources=resources)


def fetch_program_playbooks(db, program_ids: Optional[List[str]] = None) -> FetchPlaybooksResult:
    """Playbooks with their signals, each carrying its program's links."""
    try:
        with db.get_session() as session:
            links_by_program = defaultdict(list)
            for resource in _query_resources(session, program_ids):
                if resource.title:
                    links_by_program[resource.program_id].append(_resource_dict(resource))

            query = session.query(ProgramPlaybook).options(selectinload(ProgramPlaybook.signals))
            if program_ids:
                query = query.filter(ProgramPlaybook.program_id.in_(program_ids))

            playbooks = []
            for playbook in query.order_by(ProgramPlaybook.created_at.asc()).all():
                playbooks.append({
                    "id": playbook.playbook_id,
                    "program_id": playbook.program_id,
                    "title": playbook.title,
                    "profit_rule": playbook.profit_rule,
                    "stop_rule": playbook.stop_rule,
                    "time_rule": playbook.time_rule,
                    "other_notes": playbook.other_notes,
                    "sizing_limits": playbook.sizing_limits,
                    "market_signals": playbook.market_signals,
                    "signals": [
                        {
                            "id": signal.signal_id,
                            "playbook_id": signal.playbook_id,
                            "label": signal.label,
                            "trigger": signal.trigger,
                            "action": signal.action,
                        }
                        for signal in playbook.signals
                    ],
                    "links": links_by_program.get(playbook.program_id, []),
                })
    except SQLAlchemyError as exc:
        logger.error(f"Failed to fetch program playbooks: {exc}")
        return FetchPlaybooksResult.storage_failure(exc)

    return FetchPlaybooksResult.success(playbooks=playbooks)
