"""
Tests for the deduplicating transaction log writer.
"""

from tradebook.database.models import TransactionLog
from tradebook.database.scope import ClientScope
from tradebook.positions.transaction_logs import (
    TransactionLogEntry,
    chunked,
    filter_new_entries,
    save_transaction_logs,
)


def _entry(trade_id=None, order_id=None, **kwargs):
    return TransactionLogEntry(exchange="deribit", trade_id=trade_id, order_id=order_id, **kwargs)


def _stored(db):
    with db.get_session() as session:
        return [(row.trade_id, row.order_id, row.client_name) for row in session.query(TransactionLog).order_by(TransactionLog.id)]


def test_chunked():
    assert list(chunked([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]


def test_filter_drops_batch_repeats_by_either_id():
    entries = [_entry("T-1", "O-1"), _entry("T-1", "O-2"), _entry("T-3", "O-1"), _entry(None, None)]
    kept = filter_new_entries(entries, set(), set())
    assert kept == [entries[0], entries[3]]


def test_filter_drops_known_ids():
    entries = [_entry("T-1"), _entry(order_id="O-9"), _entry("T-2")]
    kept = filter_new_entries(entries, {"T-1"}, {"O-9"})
    assert kept == [entries[2]]


def test_saves_and_skips_stored_entries(db):
    first = save_transaction_logs(db, [_entry("T-1", "O-1", raw={"Trade ID": "T-1"})], created_by="ops")
    second = save_transaction_logs(db, [_entry("T-1", "O-1"), _entry(" T-2 ", "O-2")])

    assert first.inserted == 1
    assert second.ok
    assert second.inserted == 1
    assert second.skipped == 1
    assert [trade for trade, _, _ in _stored(db)] == ["T-1", "T-2"]


def test_all_duplicates_is_still_ok(db):
    save_transaction_logs(db, [_entry("T-1")])
    result = save_transaction_logs(db, [_entry("T-1")])
    assert result.ok
    assert result.inserted == 0
    assert result.skipped == 1


def test_dedup_is_per_client_when_scoped(db):
    save_transaction_logs(db, [_entry("T-1")], ClientScope("Fund A"))

    other = save_transaction_logs(db, [_entry("T-1")], ClientScope("Fund B"))
    same = save_transaction_logs(db, [_entry("T-1")], ClientScope("Fund A"))

    assert other.inserted == 1
    assert same.skipped == 1
    assert [client for _, _, client in _stored(db)] == ["Fund A", "Fund B"]


def test_admin_sees_every_clients_entries(db):
    save_transaction_logs(db, [_entry("T-1")], ClientScope("Fund A"))
    result = save_transaction_logs(db, [_entry("T-1")], ClientScope("Fund B", is_admin=True))
    assert result.skipped == 1


def test_large_batches_are_chunked(db):
    entries = [_entry(f"T-{n}", f"O-{n}") for n in range(250)]
    save_transaction_logs(db, entries[:120])

    result = save_transaction_logs(db, entries)

    assert result.inserted == 130
    assert result.skipped == 120
    assert len(_stored(db)) == 250
