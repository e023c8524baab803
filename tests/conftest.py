"""
Shared pytest fixtures and row factory helpers for structure ledger tests.

Each test gets a fresh temporary SQLite database (auto-cleaned by pytest).
"""

import pytest

from tradebook.database.db_manager import DatabaseManager
from tradebook.database.models import Leg, Position, Program


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def db(tmp_path):
    """Temporary SQLite database, fully initialized and auto-cleaned."""
    db_path = str(tmp_path / "test.db")
    db_manager = DatabaseManager(db_url=f"sqlite:///{db_path}")
    db_manager.initialize_database()
    yield db_manager
    db_manager.dispose()


@pytest.fixture
def program(db):
    """A seeded program other fixtures can attach positions to."""
    with db.get_session() as session:
        session.add(Program(program_id="P1", program_name="Core vol", base_currency="USD"))
    return "P1"


# ---------------------------------------------------------------------------
# Row factory helpers
# ---------------------------------------------------------------------------

def make_txn_row(
    *,
    instrument="BTC-27DEC24-100000-C",
    side="buy",
    action="open",
    amount=1,
    price=0.05,
    fee=0.0003,
    timestamp="2024-12-01T10:00:00Z",
    trade_id="T-1",
    order_id="O-1",
    exchange="deribit",
    **extra,
):
    """Build a TxnRow dict as produced by the exchange adapters."""
    row = {
        "instrument": instrument,
        "side": side,
        "action": action,
        "amount": amount,
        "price": price,
        "fee": fee,
        "timestamp": timestamp,
        "trade_id": trade_id,
        "order_id": order_id,
        "exchange": exchange,
    }
    row.update(extra)
    return row


def make_deribit_record(
    *,
    instrument="BTC-27DEC24-100000-C",
    side="open buy",
    amount="1",
    price="0.05",
    fee="0.0003",
    date="2024-12-01 10:00:00",
    trade_id="T-1",
    order_id="O-1",
    info="",
    **extra,
):
    """Build a raw Deribit CSV record keyed by the export's column headers."""
    record = {
        "Instrument": instrument,
        "Side": side,
        "Amount": amount,
        "Price": price,
        "Fee Charged": fee,
        "Date": date,
        "Trade ID": trade_id,
        "Order ID": order_id,
        "Info": info,
    }
    record.update(extra)
    return record


def make_leg(*, leg_seq=1, side="buy", option_type="call", expiry="2024-12-27", strike=100000.0, qty=1.0, price=0.05):
    """Leg column values, minus position_id."""
    return {
        "leg_seq": leg_seq,
        "side": side,
        "option_type": option_type,
        "expiry": expiry,
        "strike": strike,
        "qty": qty,
        "price": price,
    }


def make_position(
    db,
    *,
    position_id=None,
    client_name="Fund A",
    underlier="BTC",
    strategy_code="CAL",
    legs=(),
    **fields,
):
    """Insert a position (plus optional legs built with make_leg) and return its id."""
    fields.setdefault("strategy_name", "Calendar")
    fields.setdefault("lifecycle", "open")
    fields.setdefault("entry_ts", "2024-12-01T10:00:00Z")
    with db.get_session() as session:
        position = Position(
            client_name=client_name,
            underlier=underlier,
            strategy_code=strategy_code,
            **fields,
        )
        if position_id:
            position.position_id = position_id
        session.add(position)
        session.flush()
        for leg in legs:
            session.add(Leg(position_id=position.position_id, **leg))
        return position.position_id
