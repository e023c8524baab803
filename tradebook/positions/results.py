"""
Result values returned by every structure operation.

Operations never raise for expected failures.  Callers branch on ``ok``
before reading payload fields; ``kind`` classifies the failure so the HTTP
layer can pick a status code.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    STORAGE = "storage"


def storage_error_message(exc: SQLAlchemyError) -> str:
    """The driver's own message, without SQLAlchemy's statement dump."""
    orig = getattr(exc, "orig", None)
    if orig is not None:
        return str(orig)
    return str(exc).split("\n")[0]


@dataclass(frozen=True)
class Result:
    ok: bool
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None

    @classmethod
    def success(cls, **payload):
        return cls(ok=True, **payload)

    @classmethod
    def failure(cls, error: str, kind: ErrorKind = ErrorKind.VALIDATION):
        return cls(ok=False, error=error, kind=kind)

    @classmethod
    def storage_failure(cls, exc: SQLAlchemyError):
        return cls.failure(storage_error_message(exc), ErrorKind.STORAGE)


@dataclass(frozen=True)
class InsertResult(Result):
    inserted: int = 0
    skipped: int = 0


@dataclass(frozen=True)
class AppendResult(Result):
    inserted: int = 0


@dataclass(frozen=True)
class BackfillResult(Result):
    updated: int = 0
    skipped: int = 0


@dataclass(frozen=True)
class SyncResult(Result):
    linked_ids: Optional[List[str]] = None


@dataclass(frozen=True)
class ImportResult(Result):
    position_id: Optional[str] = None


@dataclass(frozen=True)
class EnsureClientResult(Result):
    client_id: Optional[str] = None


@dataclass(frozen=True)
class FetchStructuresResult(Result):
    structures: List[Any] = field(default_factory=list)


@dataclass(frozen=True)
class FetchPlaybooksResult(Result):
    playbooks: List[Dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class FetchResourcesResult(Result):
    resources: List[Dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class FinalizeImportResult(Result):
    unprocessed_inserted: int = 0
    appended: Dict[str, int] = field(default_factory=dict)
