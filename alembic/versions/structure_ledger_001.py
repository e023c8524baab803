"""Structure ledger core tables: clients, programs, strategies, venues,
positions, legs, fills and structure links.

Revision ID: structure_ledger_001
Revises:
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "structure_ledger_001"
down_revision: Union[str, Sequence[str], None] = None
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

    if not _table_exists(conn, "clients"):
        op.create_table(
            "clients",
            sa.Column("client_id", sa.String(36), primary_key=True),
            sa.Column("client_name", sa.String, nullable=False, unique=True),
            sa.Column("created_at", sa.String, server_default=sa.func.now()),
        )

    if not _table_exists(conn, "programs"):
        op.create_table(
            "programs",
            sa.Column("program_id", sa.String, primary_key=True),
            sa.Column("program_name", sa.String, nullable=False),
            sa.Column("base_currency", sa.String(3), nullable=False),
            sa.Column("objective", sa.Text),
            sa.Column("sleeve", sa.String),
            sa.Column("created_at", sa.String, server_default=sa.func.now()),
        )

    if not _table_exists(conn, "strategies"):
        op.create_table(
            "strategies",
            sa.Column("strategy_code", sa.String, primary_key=True),
            sa.Column("strategy_name", sa.String, nullable=False),
            sa.Column("description", sa.Text),
            sa.Column("created_at", sa.String, server_default=sa.func.now()),
        )

    if not _table_exists(conn, "program_strategies"):
        op.create_table(
            "program_strategies",
            sa.Column("program_id", sa.String, sa.ForeignKey("programs.program_id", ondelete="CASCADE"),
                      primary_key=True),
            sa.Column("strategy_code", sa.String, sa.ForeignKey("strategies.strategy_code", ondelete="CASCADE"),
                      primary_key=True),
            sa.Column("effective_from", sa.Date),
            sa.Column("effective_to", sa.Date),
        )

    if not _table_exists(conn, "venues"):
        op.create_table(
            "venues",
            sa.Column("venue_id", sa.String(36), primary_key=True),
            sa.Column("type", sa.String, nullable=False),
            sa.Column("name", sa.String, nullable=False),
            sa.Column("mic", sa.String),
            sa.Column("underlying_exchange", sa.String),
            sa.Column("venue_code", sa.String),
            sa.Column("execution_mode", sa.String),
            sa.Column("liquidity_role", sa.String),
            sa.Column("broker", sa.String),
            sa.Column("clearing_firm", sa.String),
            sa.Column("account", sa.String),
            sa.Column("created_at", sa.String, server_default=sa.func.now()),
        )

    if not _table_exists(conn, "positions"):
        op.create_table(
            "positions",
            sa.Column("position_id", sa.String(36), primary_key=True),
            sa.Column("program_id", sa.String, sa.ForeignKey("programs.program_id"), nullable=True),
            sa.Column("venue_id", sa.String(36), sa.ForeignKey("venues.venue_id"), nullable=True),
            sa.Column("client_name", sa.String, index=True),
            sa.Column("underlier", sa.String),
            sa.Column("strategy_code", sa.String),
            sa.Column("strategy_name", sa.String),
            sa.Column("strategy_name_at_entry", sa.String),
            sa.Column("options_structure", sa.String),
            sa.Column("construction", sa.String),
            sa.Column("risk_defined", sa.Boolean),
            sa.Column("lifecycle", sa.String),
            sa.Column("entry_ts", sa.String),
            sa.Column("exit_ts", sa.String),
            sa.Column("execution_route", sa.String),
            sa.Column("order_type", sa.String),
            sa.Column("provider", sa.String),
            sa.Column("package_order_id", sa.String),
            sa.Column("order_id", sa.String),
            sa.Column("rfq_id", sa.String),
            sa.Column("deal_id", sa.String),
            sa.Column("trade_id", sa.String),
            sa.Column("fees_total", sa.Float),
            sa.Column("fees_currency", sa.String(3)),
            sa.Column("net_fill", sa.Float),
            sa.Column("mark_at_entry", sa.Float),
            sa.Column("mark_source", sa.String),
            sa.Column("mark_ts", sa.String),
            sa.Column("spot", sa.Float),
            sa.Column("expected_move_pts", sa.Float),
            sa.Column("em_coverage_pct", sa.Float),
            sa.Column("multiplier", sa.Float),
            sa.Column("max_gain", sa.Float),
            sa.Column("max_loss", sa.Float),
            sa.Column("net_delta", sa.Float),
            sa.Column("counterparty", sa.String),
            sa.Column("pricing_currency", sa.String(3)),
            sa.Column("notes", sa.Text),
            sa.Column("close_target_structure_id", sa.String(36)),
            sa.Column("closed_at", sa.String),
            sa.Column("archived", sa.Boolean, nullable=False, server_default=sa.false()),
            sa.Column("archived_at", sa.String),
            sa.Column("archived_by", sa.String),
            sa.Column("created_at", sa.String, server_default=sa.func.now()),
            sa.Index("idx_positions_client_archived", "client_name", "archived"),
        )

    if not _table_exists(conn, "legs"):
        op.create_table(
            "legs",
            sa.Column("position_id", sa.String(36), sa.ForeignKey("positions.position_id", ondelete="CASCADE"),
                      primary_key=True),
            sa.Column("leg_seq", sa.Integer, primary_key=True, autoincrement=False),
            sa.Column("side", sa.String, nullable=False),
            sa.Column("option_type", sa.String, nullable=False),
            sa.Column("expiry", sa.String),
            sa.Column("strike", sa.Float, nullable=False),
            sa.Column("qty", sa.Float, nullable=False),
            sa.Column("price", sa.Float, nullable=False),
            sa.CheckConstraint("leg_seq > 0", name="ck_legs_leg_seq_positive"),
        )

    if not _table_exists(conn, "fills"):
        op.create_table(
            "fills",
            sa.Column("fill_id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("position_id", sa.String(36), nullable=False),
            sa.Column("leg_seq", sa.Integer, nullable=False),
            sa.Column("ts", sa.String, nullable=False),
            sa.Column("qty", sa.Float, nullable=False),
            sa.Column("price", sa.Float, nullable=False),
            sa.Column("side", sa.String),
            sa.Column("open_close", sa.String),
            sa.Column("liquidity_role", sa.String),
            sa.Column("execution_mode", sa.String),
            sa.Column("provider", sa.String),
            sa.Column("venue_id", sa.String(36)),
            sa.Column("trade_id", sa.String),
            sa.Column("order_id", sa.String),
            sa.Column("rfq_id", sa.String),
            sa.Column("deal_id", sa.String),
            sa.Column("fees", sa.Float),
            sa.Column("notes", sa.Text),
            sa.ForeignKeyConstraint(
                ["position_id", "leg_seq"], ["legs.position_id", "legs.leg_seq"], ondelete="CASCADE",
            ),
            sa.Index("idx_fills_trade_id", "trade_id"),
            sa.Index("idx_fills_order_id", "order_id"),
            sa.Index("idx_fills_position_leg", "position_id", "leg_seq"),
        )

    if not _table_exists(conn, "structure_links"):
        op.create_table(
            "structure_links",
            sa.Column("low_id", sa.String(36), sa.ForeignKey("positions.position_id", ondelete="CASCADE"),
                      primary_key=True),
            sa.Column("high_id", sa.String(36), sa.ForeignKey("positions.position_id", ondelete="CASCADE"),
                      primary_key=True),
            sa.Column("created_at", sa.String, server_default=sa.func.now()),
            sa.CheckConstraint("low_id < high_id", name="ck_structure_links_ordered_pair"),
            sa.Index("idx_structure_links_high", "high_id"),
        )


def downgrade() -> None:
    for table in (
        "structure_links", "fills", "legs", "positions", "venues",
        "program_strategies", "strategies", "programs", "clients",
    ):
        op.drop_table(table)
