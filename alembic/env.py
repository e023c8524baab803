"""
Alembic environment for the structure ledger.

The database URL comes from DATABASE_URL (or ``sqlalchemy.url`` in an ini
file when one is used), defaulting to the app's SQLite file.  SQLite runs
in batch mode so column changes become table rebuilds, and its loose column
affinities are not reported as type changes by autogenerate.
"""

import os
from logging.config import fileConfig

from sqlalchemy import JSON, Boolean, Date, Float, Integer, String, create_engine, pool

from alembic import context

from tradebook.database.db_manager import DEFAULT_DATABASE_URL
from tradebook.database.engine import dialect_for_url
from tradebook.database.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

DATABASE_URL = os.environ.get("DATABASE_URL") or config.get_main_option("sqlalchemy.url") or DEFAULT_DATABASE_URL
IS_SQLITE = dialect_for_url(DATABASE_URL) == "sqlite"

# Reflected SQLite type name -> model types it may stand for
SQLITE_AFFINITIES = {
    "TEXT": (String,),
    "VARCHAR": (String,),
    "REAL": (Float,),
    "FLOAT": (Float,),
    "INTEGER": (Integer, Boolean),
    "BOOLEAN": (Boolean,),
    "DATE": (Date, String),
    "TIMESTAMP": (String,),
    "JSON": (JSON,),
}


def compare_sqlite_type(context, inspected_column, metadata_column, inspected_type, metadata_type):
    """False when the reflected type is an affinity of the model type, else defer to Alembic."""
    reflected = type(inspected_type).__name__.upper()
    if isinstance(metadata_type, SQLITE_AFFINITIES.get(reflected, ())):
        return False
    return None


def configure_options() -> dict:
    options = {
        "target_metadata": target_metadata,
        "render_as_batch": IS_SQLITE,
    }
    if IS_SQLITE:
        options["compare_type"] = compare_sqlite_type
    return options


def run_migrations_offline() -> None:
    """Emit SQL for the pending revisions without connecting."""
    context.configure(
        url=DATABASE_URL,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **configure_options(),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply the pending revisions over a short-lived connection."""
    connect_args = {"check_same_thread": False} if IS_SQLITE else {}
    engine = create_engine(DATABASE_URL, poolclass=pool.NullPool, connect_args=connect_args)

    with engine.connect() as connection:
        context.configure(connection=connection, **configure_options())
        with context.begin_transaction():
            context.run_migrations()
    engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
