"""Add program resources, playbooks and playbook signals.

Revision ID: add_program_playbooks_003
Revises: add_import_audit_002
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "add_program_playbooks_003"
down_revision: Union[str, Sequence[str], None] = "add_import_audit_002"
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

    if not _table_exists(conn, "program_resources"):
        op.create_table(
            "program_resources",
            sa.Column("resource_id", sa.String(36), primary_key=True),
            sa.Column("program_id", sa.String, sa.ForeignKey("programs.program_id", ondelete="CASCADE"),
                      nullable=False),
            sa.Column("title", sa.String, nullable=False),
            sa.Column("url", sa.String),
            sa.Column("notes", sa.Text),
            sa.Column("resource_type", sa.String, nullable=False, server_default="link"),
            sa.Column("created_at", sa.String, server_default=sa.func.now()),
            sa.Index("idx_program_resources_program", "program_id"),
        )

    if not _table_exists(conn, "program_playbooks"):
        op.create_table(
            "program_playbooks",
            sa.Column("playbook_id", sa.String(36), primary_key=True),
            sa.Column("program_id", sa.String, sa.ForeignKey("programs.program_id", ondelete="CASCADE"),
                      nullable=False, unique=True),
            sa.Column("title", sa.String, nullable=False),
            sa.Column("profit_rule", sa.Text),
            sa.Column("stop_rule", sa.Text),
            sa.Column("time_rule", sa.Text),
            sa.Column("other_notes", sa.Text),
            sa.Column("sizing_limits", sa.JSON),
            sa.Column("market_signals", sa.JSON),
            sa.Column("created_at", sa.String, server_default=sa.func.now()),
            sa.Column("updated_at", sa.String, server_default=sa.func.now()),
        )

    if not _table_exists(conn, "playbook_signals"):
        op.create_table(
            "playbook_signals",
            sa.Column("signal_id", sa.String(36), primary_key=True),
            sa.Column("playbook_id", sa.String(36),
                      sa.ForeignKey("program_playbooks.playbook_id", ondelete="CASCADE"), nullable=False),
            sa.Column("label", sa.String, nullable=False),
            sa.Column("trigger", sa.Text),
            sa.Column("action", sa.Text),
            sa.Column("sort_order", sa.Integer, server_default="0"),
            sa.UniqueConstraint("playbook_id", "label", name="uq_playbook_signals_label"),
        )


def downgrade() -> None:
    op.drop_table("playbook_signals")
    op.drop_table("program_playbooks")
    op.drop_table("program_resources")
