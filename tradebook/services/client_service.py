"""Client service: get-or-create for the clients directory."""

from typing import Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from tradebook.database.models import Client
from tradebook.positions.results import EnsureClientResult, ErrorKind


def _lookup_client_id(db, client_name: str) -> Optional[str]:
    with db.get_session() as session:
        row = session.query(Client.client_id).filter(Client.client_name == client_name).first()
        return row[0] if row else None


def ensure_client_record(db, client_name) -> EnsureClientResult:
    """Return the client's id, creating the client row when it doesn't exist.

    A concurrent insert of the same name surfaces as a unique violation; the
    row the other writer created is looked up and returned instead.
    """
    normalized = (client_name or "").strip()
    if not normalized:
        return EnsureClientResult.failure("Client name is required.")

    try:
        existing = _lookup_client_id(db, normalized)
    except SQLAlchemyError as exc:
        logger.error(f"Client lookup failed for {normalized}: {exc}")
        return EnsureClientResult.storage_failure(exc)
    if existing:
        return EnsureClientResult.success(client_id=existing)

    try:
        with db.get_session() as session:
            client = Client(client_name=normalized)
            session.add(client)
            session.flush()
            client_id = client.client_id
    except IntegrityError as exc:
        try:
            retry = _lookup_client_id(db, normalized)
        except SQLAlchemyError as lookup_exc:
            logger.error(f"Client lookup failed for {normalized}: {lookup_exc}")
            return EnsureClientResult.storage_failure(lookup_exc)
        if retry:
            logger.info(f"Client {normalized} was created concurrently, reusing {retry}")
            return EnsureClientResult.success(client_id=retry)
        return EnsureClientResult.storage_failure(exc)
    except SQLAlchemyError as exc:
        logger.error(f"Failed to create client {normalized}: {exc}")
        return EnsureClientResult.storage_failure(exc)

    if not client_id:
        return EnsureClientResult.failure("Failed to resolve client id after insert.", ErrorKind.STORAGE)

    logger.info(f"Created client {normalized} ({client_id})")
    return EnsureClientResult.success(client_id=client_id)
