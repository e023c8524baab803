"""
Integration tests: exchange CSV -> audit log -> structure legs.

Drives the import CLI against a temporary database the way an operator
would run it on a downloaded export.
"""

import csv
import importlib.util
from pathlib import Path

import pytest

from tradebook.database.models import Fill, Leg, TransactionLog, UnprocessedImport
from tests.conftest import make_deribit_record, make_position

SCRIPT_PATH = Path(__file__).resolve().parents[2] / "scripts" / "import_trades.py"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@pytest.fixture(scope="module")
def import_trades():
    """The CLI module, loaded from scripts/ like `python scripts/import_trades.py`."""
    module_spec = importlib.util.spec_from_file_location("import_trades", SCRIPT_PATH)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


def _write_csv(path, records):
    fieldnames = []
    for record in records:
        for key in record:
            if key not in fieldnames:
                fieldnames.append(key)
    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(records)
    return path


def _export(tmp_path):
    return _write_csv(tmp_path / "deribit.csv", [
        make_deribit_record(trade_id="T-1", order_id="O-1", side="open sell"),
        make_deribit_record(trade_id="T-2", order_id="O-2", instrument="BTC-31JAN25-100000-C"),
        make_deribit_record(trade_id="T-3", order_id="O-3", instrument="BTC-PERPETUAL"),
    ])


def _args(csv_path, db, *extra):
    return [str(csv_path), "--db", db.db_url, *extra]


# ---------------------------------------------------------------------------
# Append to a saved structure
# ---------------------------------------------------------------------------

class TestAppendToStructure:
    def test_export_becomes_legs_and_fills(self, import_trades, db, tmp_path):
        position_id = make_position(db)

        exit_code = import_trades.main(_args(_export(tmp_path), db, "--structure", position_id, "--client", "Fund A"))

        assert exit_code == 0
        with db.get_session() as session:
            legs = session.query(Leg).filter(Leg.position_id == position_id).order_by(Leg.leg_seq).all()
            assert [(leg.leg_seq, leg.side, leg.expiry, leg.strike) for leg in legs] == [
                (1, "sell", "2024-12-27", 100000.0),
                (2, "buy", "2025-01-31", 100000.0),
            ]
            fills = session.query(Fill).order_by(Fill.leg_seq).all()
            assert [f.trade_id for f in fills] == ["T-1", "T-2"]
            assert fills[0].ts == "2024-12-01T10:00:00Z"
            assert fills[0].open_close == "open"
            # the perpetual row is logged but never becomes a leg
            assert session.query(TransactionLog).count() == 3

    def test_rerun_skips_rows_already_imported(self, import_trades, db, tmp_path):
        position_id = make_position(db)
        csv_path = _export(tmp_path)

        assert import_trades.main(_args(csv_path, db, "--structure", position_id)) == 0
        assert import_trades.main(_args(csv_path, db, "--structure", position_id)) == 0

        with db.get_session() as session:
            assert session.query(Leg).filter(Leg.position_id == position_id).count() == 2
            assert session.query(TransactionLog).count() == 3

    def test_unknown_structure_fails(self, import_trades, db, tmp_path):
        assert import_trades.main(_args(_export(tmp_path), db, "--structure", "missing")) == 1


# ---------------------------------------------------------------------------
# Unprocessed and backfill modes
# ---------------------------------------------------------------------------

class TestOtherModes:
    def test_unprocessed_parks_option_rows(self, import_trades, db, tmp_path):
        exit_code = import_trades.main(
            _args(_export(tmp_path), db, "--unprocessed", "--client", "Fund A", "--created-by", "ops"),
        )

        assert exit_code == 0
        with db.get_session() as session:
            parked = session.query(UnprocessedImport).order_by(UnprocessedImport.id).all()
            assert [row.trade_id for row in parked] == ["T-1", "T-2"]
            assert {row.client_name for row in parked} == {"Fund A"}

    def test_backfill_repairs_expiries(self, import_trades, db, tmp_path):
        position_id = make_position(db)
        assert import_trades.main(_args(_export(tmp_path), db, "--structure", position_id)) == 0
        with db.get_session() as session:
            session.query(Leg).update({Leg.expiry: None})

        assert import_trades.main(_args(_export(tmp_path), db, "--backfill")) == 0

        with db.get_session() as session:
            expiries = [leg.expiry for leg in session.query(Leg).order_by(Leg.leg_seq)]
            assert expiries == ["2024-12-27", "2025-01-31"]

    def test_coincall_export(self, import_trades, db, tmp_path):
        position_id = make_position(db)
        csv_path = _write_csv(tmp_path / "coincall.csv", [{
            "Symbol": "ETHUSD-27DEC24-4000-P",
            "Direction": "BUY",
            "Qty": "3",
            "Price": "120",
            "Fee": "0.5",
            "Time": "2024-12-02T08:30:00Z",
            "Trade ID": "C-1",
            "Order ID": "CO-1",
        }])

        exit_code = import_trades.main(_args(csv_path, db, "--exchange", "coincall", "--structure", position_id))

        assert exit_code == 0
        with db.get_session() as session:
            leg = session.query(Leg).one()
            assert (leg.option_type, leg.strike, leg.qty) == ("put", 4000.0, 3.0)

    def test_missing_file(self, import_trades, db, tmp_path):
        assert import_trades.main(_args(tmp_path / "nope.csv", db)) == 1
