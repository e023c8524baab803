"""
Tests for the date and number coercion helpers.
"""

from datetime import datetime, timezone

from tradebook.utils.dates import normalize_date_only, parse_datetime, to_iso_instant
from tradebook.utils.numbers import format_number, to_number, to_numeric


class TestParseDatetime:
    def test_naive_text_is_utc(self):
        assert parse_datetime("2024-12-01 10:00:00") == datetime(2024, 12, 1, 10, tzinfo=timezone.utc)

    def test_offset_is_converted(self):
        assert parse_datetime("2024-12-01T12:00:00+02:00") == datetime(2024, 12, 1, 10, tzinfo=timezone.utc)

    def test_epoch_milliseconds(self):
        assert parse_datetime(1733047200000) == datetime(2024, 12, 1, 10, tzinfo=timezone.utc)

    def test_export_layouts(self):
        assert parse_datetime("2024/12/01 10:00:00") == datetime(2024, 12, 1, 10, tzinfo=timezone.utc)

    def test_unparseable(self):
        assert parse_datetime("yesterday-ish") is None
        assert parse_datetime("") is None
        assert parse_datetime(True) is None


def test_iso_instant_milliseconds_only_when_present():
    assert to_iso_instant(datetime(2024, 12, 1, 10, tzinfo=timezone.utc)) == "2024-12-01T10:00:00Z"
    assert to_iso_instant(datetime(2024, 12, 1, 10, 0, 0, 250000, tzinfo=timezone.utc)) == "2024-12-01T10:00:00.250Z"


def test_normalize_date_only():
    assert normalize_date_only("2024-12-27T08:00:00Z") == "2024-12-27"
    assert normalize_date_only("27/12/2024") == "2024-12-27"
    assert normalize_date_only("  ") is None
    assert normalize_date_only("not a date") is None


class TestNumbers:
    def test_to_numeric_is_strict(self):
        assert to_numeric("1.5") == 1.5
        assert to_numeric("1,5") is None
        assert to_numeric("") is None
        assert to_numeric(float("nan")) is None
        assert to_numeric(False) is None

    def test_to_number_reads_locales(self):
        assert to_number("1,234.5") == 1234.5
        assert to_number("0,25") == 0.25
        assert to_number("junk") == 0.0
        assert to_number(None) == 0.0

    def test_format_number(self):
        assert format_number(100000.0) == "100000"
        assert format_number(0.25) == "0.25"
