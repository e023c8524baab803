"""
Database manager for the structure ledger.
Owns one engine + session factory and hands out transactional sessions.
"""

import logging
import os
from contextlib import contextmanager
from typing import Optional

from sqlalchemy.orm import Session, sessionmaker

from tradebook.database.engine import create_db_engine, dialect_for_url, dialect_insert
from tradebook.database.models import Base

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///tradebook.db"


class DatabaseManager:
    def __init__(self, db_url: Optional[str] = None):
        if db_url is None:
            db_url = os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)
        self.db_url = db_url
        self.dialect = dialect_for_url(db_url)
        self.engine = create_db_engine(db_url)
        self._session_factory = sessionmaker(bind=self.engine)

    def initialize_database(self):
        """Create all tables that don't exist yet."""
        logger.info("Starting database initialization...")
        Base.metadata.create_all(self.engine)
        logger.info("Database initialization complete")

    @contextmanager
    def get_session(self):
        """Context manager yielding a SQLAlchemy Session.

        Commits on clean exit, rolls back on exception.
        """
        session: Session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dialect_insert(self, model):
        """Dialect-specific insert() with on_conflict_* support."""
        return dialect_insert(model, self.dialect)

    def dispose(self):
        self.engine.dispose()
