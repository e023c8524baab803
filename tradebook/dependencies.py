"""Request-scoped dependencies shared across routers."""

import os
from typing import List, Optional

from fastapi import Header, HTTPException, Request

from tradebook.database.db_manager import DatabaseManager
from tradebook.database.scope import ClientScope, resolve_client_scope
from tradebook.positions.results import ErrorKind, Result

STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.STORAGE: 500,
}


def get_db(request: Request) -> DatabaseManager:
    """The DatabaseManager created by create_app()."""
    return request.app.state.db


def admin_emails() -> List[str]:
    raw = os.getenv("ADMIN_EMAILS", "")
    return [email.strip() for email in raw.split(",") if email.strip()]


async def get_client_scope(
    x_client_name: Optional[str] = Header(default=None),
    x_user_email: Optional[str] = Header(default=None),
) -> ClientScope:
    return resolve_client_scope(x_client_name, x_user_email, admin_emails())


def raise_for_result(result: Result) -> None:
    """Translate a failed operation result into an HTTPException."""
    if result.ok:
        return
    status_code = STATUS_BY_KIND.get(result.kind, 400)
    raise HTTPException(status_code=status_code, detail=result.error)
