"""Add transaction_logs and unprocessed_imports for the import audit trail.

Revision ID: add_import_audit_002
Revises: structure_ledger_001
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "add_import_audit_002"
down_revision: Union[str, Sequence[str], None] = "structure_ledger_001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(conn, table_name: str) -> bool:
    dialect = conn.dialect.name
    if dialect == "sqlite":
        result = conn.execute(sa.text(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=:t"
        ), {"t": table_name})
        return result.fetchone() is not None
    else:
        result = conn.execute(sa.text(
            "SELECT to_regclass(:t)"
        ), {"t": f"public.{table_name}"})
        return result.scalar() is not None


def upgrade() -> None:
    conn = op.get_bind()

    if not _table_exists(conn, "transaction_logs"):
        op.create_table(
            "transaction_logs",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("client_name", sa.String, index=True),
            sa.Column("exchange", sa.String),
            sa.Column("instrument", sa.String),
            sa.Column("timestamp", sa.String),
            sa.Column("trade_id", sa.String, index=True),
            sa.Column("order_id", sa.String, index=True),
            sa.Column("raw", sa.JSON, nullable=False),
            sa.Column("created_by", sa.String),
            sa.Column("created_at", sa.String, server_default=sa.func.now()),
        )

    if not _table_exists(conn, "unprocessed_imports"):
        op.create_table(
            "unprocessed_imports",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("client_name", sa.String, index=True),
            sa.Column("trade_id", sa.String, index=True),
            sa.Column("order_id", sa.String, index=True),
            sa.Column("instrument", sa.String),
            sa.Column("side", sa.String),
            sa.Column("amount", sa.Float),
            sa.Column("price", sa.Float),
            sa.Column("fee", sa.Float),
            sa.Column("timestamp", sa.String),
            sa.Column("exchange", sa.String),
            sa.Column("raw", sa.JSON),
            sa.Column("created_by", sa.String),
            sa.Column("created_at", sa.String, server_default=sa.func.now()),
        )


def downgrade() -> None:
    op.drop_table("unprocessed_imports")
    op.drop_table("transaction_logs")
