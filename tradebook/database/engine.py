"""
SQLAlchemy engine factory for the structure ledger.

Engines are created per DatabaseManager instance rather than held in module
globals, so every core operation receives its store handle explicitly.
Supports both SQLite and PostgreSQL; the dialect is selected from the URL
prefix.
"""

import logging

from sqlalchemy import create_engine, event
from sqlalchemy.dialects.postgresql import insert as _pg_insert
from sqlalchemy.dialects.sqlite import insert as _sqlite_insert
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)


def dialect_for_url(db_url: str) -> str:
    """Return 'postgresql' or 'sqlite' for a SQLAlchemy URL."""
    return "postgresql" if db_url.startswith("postgresql") else "sqlite"


def create_db_engine(db_url: str) -> Engine:
    """Create a SQLAlchemy engine for the given URL.

    SQLite connections get foreign keys switched on so leg/fill cascades and
    the composite fill -> leg reference are enforced.
    """
    dialect = dialect_for_url(db_url)

    if dialect == "sqlite":
        engine = create_engine(
            db_url,
            echo=False,
            connect_args={"check_same_thread": False},  # required for FastAPI
        )

        # Enable foreign keys for every connection (SQLite-specific)
        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    else:
        engine = create_engine(
            db_url,
            echo=False,
            pool_size=5,
            max_overflow=10,
        )

    logger.info("SQLAlchemy engine initialized (%s): %s", dialect, db_url.split("@")[-1] if "@" in db_url else db_url)
    return engine


def dialect_insert(model, dialect: str):
    """Return a dialect-specific insert() statement for the given model.

    Equivalent to sqlite.insert(Model) or postgresql.insert(Model); both
    expose on_conflict_do_nothing() / on_conflict_do_update().
    """
    if dialect == "postgresql":
        return _pg_insert(model)
    return _sqlite_insert(model)
