"""
SQLAlchemy 2.0 declarative models for the structure ledger.

Structures (positions) own their legs and fills; the storage layer enforces
the cascade.  Linked structures live in a join table keyed on the unordered
pair so the relation is symmetric by construction.  Timestamps that callers
may hand us as opaque strings (closed_at, fill ts, log timestamps) are kept
as String columns and never reparsed on the way out.
"""

import uuid
from datetime import datetime, date as date_type
from typing import Any, Dict

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    Float,
    ForeignKey,
    ForeignKeyConstraint,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, relationship


def _uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Base class with to_dict() for JSON serialization
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    """Shared declarative base with a generic to_dict() helper."""

    def to_dict(self) -> Dict[str, Any]:
        """Serialize all columns to a plain dict."""
        result = {}
        for col in self.__table__.columns:
            value = getattr(self, col.key)
            if isinstance(value, (datetime, date_type)):
                value = value.isoformat()
            result[col.key] = value
        return result


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------

class Client(Base):
    __tablename__ = "clients"

    client_id = Column(String(36), primary_key=True, default=_uuid)
    client_name = Column(String, nullable=False, unique=True)
    created_at = Column(String, server_default=func.now())


# ---------------------------------------------------------------------------
# Program / strategy catalog
# ---------------------------------------------------------------------------

class Program(Base):
    __tablename__ = "programs"

    program_id = Column(String, primary_key=True)
    program_name = Column(String, nullable=False)
    base_currency = Column(String(3), nullable=False)
    objective = Column(Text)
    sleeve = Column(String)
    created_at = Column(String, server_default=func.now())


class Strategy(Base):
    __tablename__ = "strategies"

    strategy_code = Column(String, primary_key=True)
    strategy_name = Column(String, nullable=False)
    description = Column(Text)
    created_at = Column(String, server_default=func.now())


class ProgramStrategy(Base):
    __tablename__ = "program_strategies"

    program_id = Column(String, ForeignKey("programs.program_id", ondelete="CASCADE"), primary_key=True)
    strategy_code = Column(String, ForeignKey("strategies.strategy_code", ondelete="CASCADE"), primary_key=True)
    effective_from = Column(Date, default=date_type.today)
    effective_to = Column(Date)


class Venue(Base):
    __tablename__ = "venues"

    venue_id = Column(String(36), primary_key=True, default=_uuid)
    type = Column(String, nullable=False)  # exchange, rfq_network, otc_bilateral
    name = Column(String, nullable=False)
    mic = Column(String)
    underlying_exchange = Column(String)
    venue_code = Column(String)
    execution_mode = Column(String)  # CLOB, RFQ, Block
    liquidity_role = Column(String)  # maker, taker
    broker = Column(String)
    clearing_firm = Column(String)
    account = Column(String)
    created_at = Column(String, server_default=func.now())


# ---------------------------------------------------------------------------
# Structures (positions), legs, fills
# ---------------------------------------------------------------------------

class Position(Base):
    __tablename__ = "positions"

    position_id = Column(String(36), primary_key=True, default=_uuid)
    program_id = Column(String, ForeignKey("programs.program_id"), nullable=True)
    venue_id = Column(String(36), ForeignKey("venues.venue_id"), nullable=True)
    client_name = Column(String, index=True)
    underlier = Column(String)
    strategy_code = Column(String)
    strategy_name = Column(String)
    strategy_name_at_entry = Column(String)
    options_structure = Column(String)
    construction = Column(String)
    risk_defined = Column(Boolean)
    lifecycle = Column(String, default="open")  # open, close
    entry_ts = Column(String)
    exit_ts = Column(String)
    execution_route = Column(String)
    order_type = Column(String)
    provider = Column(String)
    package_order_id = Column(String)
    order_id = Column(String)
    rfq_id = Column(String)
    deal_id = Column(String)
    trade_id = Column(String)
    fees_total = Column(Float)
    fees_currency = Column(String(3))
    net_fill = Column(Float)
    mark_at_entry = Column(Float)
    mark_source = Column(String)
    mark_ts = Column(String)
    spot = Column(Float)
    expected_move_pts = Column(Float)
    em_coverage_pct = Column(Float)
    multiplier = Column(Float)
    max_gain = Column(Float)
    max_loss = Column(Float)
    net_delta = Column(Float)
    counterparty = Column(String)
    pricing_currency = Column(String(3))
    notes = Column(Text)
    close_target_structure_id = Column(String(36))
    closed_at = Column(String)
    archived = Column(Boolean, nullable=False, default=False)
    archived_at = Column(String)
    archived_by = Column(String)
    created_at = Column(String, server_default=func.now())

    legs = relationship(
        "Leg", back_populates="position", cascade="all, delete-orphan",
        passive_deletes=True, order_by="Leg.leg_seq",
    )

    __table_args__ = (
        Index("idx_positions_client_archived", "client_name", "archived"),
    )


class Leg(Base):
    __tablename__ = "legs"

    position_id = Column(
        String(36), ForeignKey("positions.position_id", ondelete="CASCADE"), primary_key=True,
    )
    leg_seq = Column(Integer, primary_key=True, autoincrement=False)
    side = Column(String, nullable=False)  # buy, sell
    option_type = Column(String, nullable=False)  # call, put
    expiry = Column(String)  # YYYY-MM-DD, may be backfilled later
    strike = Column(Float, nullable=False)
    qty = Column(Float, nullable=False)
    price = Column(Float, nullable=False)

    position = relationship("Position", back_populates="legs")

    __table_args__ = (
        CheckConstraint("leg_seq > 0", name="ck_legs_leg_seq_positive"),
    )


class Fill(Base):
    __tablename__ = "fills"

    fill_id = Column(Integer, primary_key=True, autoincrement=True)
    position_id = Column(String(36), nullable=False)
    leg_seq = Column(Integer, nullable=False)
    ts = Column(String, nullable=False)
    qty = Column(Float, nullable=False)
    price = Column(Float, nullable=False)
    side = Column(String)
    open_close = Column(String)  # open, close
    liquidity_role = Column(String)
    execution_mode = Column(String)
    provider = Column(String)
    venue_id = Column(String(36))
    trade_id = Column(String)
    order_id = Column(String)
    rfq_id = Column(String)
    deal_id = Column(String)
    fees = Column(Float)
    notes = Column(Text)

    __table_args__ = (
        ForeignKeyConstraint(
            ["position_id", "leg_seq"],
            ["legs.position_id", "legs.leg_seq"],
            ondelete="CASCADE",
        ),
        Index("idx_fills_trade_id", "trade_id"),
        Index("idx_fills_order_id", "order_id"),
        Index("idx_fills_position_leg", "position_id", "leg_seq"),
    )


class StructureLink(Base):
    """Unordered pair of linked structures, stored with low_id < high_id."""
    __tablename__ = "structure_links"

    low_id = Column(
        String(36), ForeignKey("positions.position_id", ondelete="CASCADE"), primary_key=True,
    )
    high_id = Column(
        String(36), ForeignKey("positions.position_id", ondelete="CASCADE"), primary_key=True,
    )
    created_at = Column(String, server_default=func.now())

    __table_args__ = (
        CheckConstraint("low_id < high_id", name="ck_structure_links_ordered_pair"),
        Index("idx_structure_links_high", "high_id"),
    )


# ---------------------------------------------------------------------------
# Import audit trail and reconciliation queue
# ---------------------------------------------------------------------------

class TransactionLog(Base):
    __tablename__ = "transaction_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_name = Column(String, index=True)
    exchange = Column(String)
    instrument = Column(String)
    timestamp = Column(String)
    trade_id = Column(String, index=True)
    order_id = Column(String, index=True)
    raw = Column(JSON, nullable=False)
    created_by = Column(String)
    created_at = Column(String, server_default=func.now())


class UnprocessedImport(Base):
    __tablename__ = "unprocessed_imports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_name = Column(String, index=True)
    trade_id = Column(String, index=True)
    order_id = Column(String, index=True)
    instrument = Column(String)
    side = Column(String)
    amount = Column(Float)
    price = Column(Float)
    fee = Column(Float)
    timestamp = Column(String)
    exchange = Column(String)
    raw = Column(JSON)
    created_by = Column(String)
    created_at = Column(String, server_default=func.now())


# ---------------------------------------------------------------------------
# Program resources and playbooks
# ---------------------------------------------------------------------------

class ProgramResource(Base):
    __tablename__ = "program_resources"

    resource_id = Column(String(36), primary_key=True, default=_uuid)
    program_id = Column(String, ForeignKey("programs.program_id", ondelete="CASCADE"), nullable=False)
    title = Column(String, nullable=False)
    url = Column(String)
    notes = Column(Text)
    resource_type = Column(String, nullable=False, default="link")
    created_at = Column(String, server_default=func.now())

    __table_args__ = (
        Index("idx_program_resources_program", "program_id"),
    )


class ProgramPlaybook(Base):
    __tablename__ = "program_playbooks"

    playbook_id = Column(String(36), primary_key=True, default=_uuid)
    program_id = Column(
        String, ForeignKey("programs.program_id", ondelete="CASCADE"), nullable=False, unique=True,
    )
    title = Column(String, nullable=False)
    profit_rule = Column(Text)
    stop_rule = Column(Text)
    time_rule = Column(Text)
    other_notes = Column(Text)
    sizing_limits = Column(JSON)
    market_signals = Column(JSON)
    created_at = Column(String, server_default=func.now())
    updated_at = Column(String, server_default=func.now())

    signals = relationship(
        "PlaybookSignal", back_populates="playbook", cascade="all, delete-orphan",
        passive_deletes=True, order_by="PlaybookSignal.sort_order",
    )


class PlaybookSignal(Base):
    __tablename__ = "playbook_signals"

    signal_id = Column(String(36), primary_key=True, default=_uuid)
    playbook_id = Column(
        String(36), ForeignKey("program_playbooks.playbook_id", ondelete="CASCADE"), nullable=False,
    )
    label = Column(String, nullable=False)
    trigger = Column(Text)
    action = Column(Text)
    sort_order = Column(Integer, default=0)

    playbook = relationship("ProgramPlaybook", back_populates="signals")

    __table_args__ = (
        UniqueConstraint("playbook_id", "label", name="uq_playbook_signals_label"),
    )
