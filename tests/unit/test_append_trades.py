"""
Tests for appending trades to a saved structure.

Verifies:
- leg_seq continues from the current maximum
- one fill per leg, carrying the row's identifiers
- validation failures write nothing
- client scope hides other clients' structures
- a failing fill write rolls the legs back
- a sequence collision is retried against the new maximum
- delivery rows without a trade id get the same synthetic id as when parked
"""

from tradebook.database.models import Fill, Leg, UnprocessedImport
from tradebook.database.scope import ClientScope
from tradebook.positions import append_trades as append_module
from tradebook.positions.append_trades import append_trades_to_structure
from tradebook.positions.results import ErrorKind
from tradebook.positions.unprocessed import save_unprocessed_trades
from tests.conftest import make_leg, make_position, make_txn_row


def _legs(db, position_id):
    with db.get_session() as session:
        return [
            (leg.leg_seq, leg.side, leg.strike)
            for leg in session.query(Leg).filter(Leg.position_id == position_id).order_by(Leg.leg_seq)
        ]


def _fills(db, position_id):
    with db.get_session() as session:
        return [
            (fill.leg_seq, fill.trade_id, fill.open_close, fill.side)
            for fill in session.query(Fill).filter(Fill.position_id == position_id).order_by(Fill.leg_seq)
        ]


def test_appends_after_existing_legs(db):
    position_id = make_position(db, legs=[make_leg(leg_seq=1), make_leg(leg_seq=2, side="sell")])
    rows = [
        make_txn_row(trade_id="T-10", side="sell", action="close"),
        make_txn_row(trade_id="T-11", instrument="BTC-27DEC24-110000-C"),
    ]

    result = append_trades_to_structure(db, position_id, rows)

    assert result.ok
    assert result.inserted == 2
    assert [seq for seq, _, _ in _legs(db, position_id)] == [1, 2, 3, 4]
    assert _fills(db, position_id) == [(3, "T-10", "close", "sell"), (4, "T-11", "open", "buy")]


def test_first_append_starts_at_one(db):
    position_id = make_position(db)
    result = append_trades_to_structure(db, position_id, [make_txn_row()])
    assert result.ok
    assert _legs(db, position_id) == [(1, "buy", 100000.0)]


def test_empty_rows_are_a_no_op(db):
    position_id = make_position(db)
    result = append_trades_to_structure(db, position_id, [])
    assert result.ok
    assert result.inserted == 0


def test_missing_structure_id(db):
    result = append_trades_to_structure(db, "  ", [make_txn_row()])
    assert not result.ok
    assert result.error == "Missing structure identifier."
    assert result.kind == ErrorKind.VALIDATION


def test_unknown_structure(db):
    result = append_trades_to_structure(db, "nope", [make_txn_row()])
    assert result.kind == ErrorKind.NOT_FOUND
    assert result.error == "Structure nope does not exist or is not accessible."


def test_invalid_row_writes_nothing(db):
    position_id = make_position(db)
    rows = [make_txn_row(), make_txn_row(trade_id="T-2", price=None)]

    result = append_trades_to_structure(db, position_id, rows)

    assert not result.ok
    assert result.error == "Missing price for trade T-2."
    assert _legs(db, position_id) == []


def test_other_clients_structure_is_not_accessible(db):
    position_id = make_position(db, client_name="Fund A")

    denied = append_trades_to_structure(db, position_id, [make_txn_row()], ClientScope("Fund B"))
    admin = append_trades_to_structure(db, position_id, [make_txn_row()], ClientScope("Fund B", is_admin=True))

    assert denied.kind == ErrorKind.NOT_FOUND
    assert admin.ok
    assert len(_legs(db, position_id)) == 1


def test_failed_fill_write_rolls_back_legs(db, monkeypatch):
    position_id = make_position(db, legs=[make_leg(leg_seq=1)])
    original = append_module._write_batch

    def write_then_break(session, structure_id, trades, start_seq):
        original(session, structure_id, trades, start_seq)
        # fill pointing at a leg that doesn't exist violates the fills -> legs key
        session.add(Fill(position_id=structure_id, leg_seq=999, ts="2024-12-01T10:00:00Z", qty=1, price=1))
        session.flush()

    monkeypatch.setattr(append_module, "_write_batch", write_then_break)

    result = append_trades_to_structure(db, position_id, [make_txn_row(), make_txn_row(trade_id="T-2")])

    assert not result.ok
    assert result.kind == ErrorKind.STORAGE
    assert [seq for seq, _, _ in _legs(db, position_id)] == [1]
    assert _fills(db, position_id) == []


def test_sequence_collision_is_retried(db, monkeypatch):
    position_id = make_position(db, legs=[make_leg(leg_seq=1), make_leg(leg_seq=2)])
    real_max = append_module.current_max_leg_seq
    calls = []

    def stale_first(session, structure_id):
        calls.append(structure_id)
        # the first read misses the two legs another writer already stored
        return 0 if len(calls) == 1 else real_max(session, structure_id)

    monkeypatch.setattr(append_module, "current_max_leg_seq", stale_first)

    result = append_trades_to_structure(db, position_id, [make_txn_row()])

    assert result.ok
    assert [seq for seq, _, _ in _legs(db, position_id)] == [1, 2, 3]
    assert len(calls) == 3


def test_delivery_fill_and_parked_row_share_synthetic_id(db):
    position_id = make_position(db)
    row = make_txn_row(trade_id=None, action="delivery", price=0, timestamp="2024-12-27T08:00:00Z")

    assert append_trades_to_structure(db, position_id, [row]).ok
    assert save_unprocessed_trades(db, [row]).ok

    with db.get_session() as session:
        fill_id = session.query(Fill.trade_id).filter(Fill.position_id == position_id).scalar()
        parked_id = session.query(UnprocessedImport.trade_id).scalar()
    assert fill_id.startswith("D")
    assert fill_id == parked_id
