"""
Tests for column-mapped CSV rows and audit log entries.
"""

from tradebook.importing.rows import BACKFILL_MODE, build_log_entries, map_rows
from tests.conftest import make_deribit_record


def _records():
    return [
        make_deribit_record(trade_id="T-1"),
        make_deribit_record(trade_id="T-2", instrument="BTC-PERPETUAL"),
        make_deribit_record(trade_id="T-3", instrument=""),
        make_deribit_record(trade_id="T-4", amount="0"),
        {},
    ]


def test_import_mode_keeps_complete_option_rows():
    mapped = map_rows(_records(), "deribit")

    assert [row["trade_id"] for row in mapped.rows] == ["T-1"]
    assert [row["trade_id"] for row in mapped.excluded_rows] == ["T-2"]
    assert mapped.stats == {"total_rows": 5, "rows_with_instrument": 3, "parsed_option_rows": 1}


def test_backfill_mode_keeps_incomplete_rows():
    mapped = map_rows(_records(), "deribit", mode=BACKFILL_MODE)
    assert [row["trade_id"] for row in mapped.rows] == ["T-1", "T-4"]


def test_unknown_exchange_maps_as_deribit():
    mapped = map_rows([make_deribit_record()], "somewhere")
    assert mapped.exchange == "deribit"
    assert mapped.parsed_option_rows == 1


def test_log_entries_cover_every_non_empty_record():
    entries = build_log_entries(_records() + [{"Instrument": "  ", "Date": None}], "deribit")

    assert [entry.trade_id for entry in entries] == ["T-1", "T-2", "T-3", "T-4"]
    first = entries[0]
    assert first.exchange == "deribit"
    assert first.instrument == "BTC-27DEC24-100000-C"
    assert first.timestamp == "2024-12-01 10:00:00"
    assert first.order_id == "O-1"
    assert first.raw["Trade ID"] == "T-1"
    assert entries[2].instrument is None
