"""
Tests for linked-structure synchronization and closed-at merging.
"""

import pytest

from tradebook.database.models import Position, StructureLink
from tradebook.database.scope import ClientScope
from tradebook.positions.linked import (
    get_linked_structure_ids,
    merge_closed_at,
    normalize_iso_timestamp,
    sanitize_ids,
    sync_linked_structures,
)
from tradebook.positions.results import ErrorKind
from tests.conftest import make_position


def _links(db, structure_id):
    with db.get_session() as session:
        return get_linked_structure_ids(session, structure_id)


def _closed_at(db, structure_id):
    with db.get_session() as session:
        return session.get(Position, structure_id).closed_at


@pytest.mark.parametrize(
    "existing, candidate, expected",
    [
        (None, "2024-12-02T00:00:00Z", "2024-12-02T00:00:00Z"),
        ("2024-12-02T00:00:00Z", None, "2024-12-02T00:00:00Z"),
        ("2024-12-02T00:00:00Z", "2024-12-01T00:00:00Z", "2024-12-01T00:00:00Z"),
        ("2024-12-01T00:00:00Z", "2024-12-05T00:00:00Z", "2024-12-01T00:00:00Z"),
        ("2024-12-01T00:00:00Z", "soon", "2024-12-01T00:00:00Z"),
        ("soon", "2024-12-05 00:00:00", "2024-12-05T00:00:00Z"),
        (None, "   ", None),
    ],
)
def test_merge_closed_at_is_earliest_wins(existing, candidate, expected):
    assert merge_closed_at(existing, candidate) == expected


def test_normalize_iso_timestamp():
    assert normalize_iso_timestamp("2024-12-01T12:00:00+02:00") == "2024-12-01T10:00:00Z"
    assert normalize_iso_timestamp(" later ") == "later"
    assert normalize_iso_timestamp("") is None


def test_sanitize_ids():
    assert sanitize_ids([" b ", "a", "b", "", None, 5, "self"], exclude="self") == ["b", "a"]


def test_links_are_symmetric_and_replaced(db):
    a, b, c = (make_position(db) for _ in range(3))

    first = sync_linked_structures(db, a, [b, c])
    assert first.ok
    assert first.linked_ids == [b, c]
    assert _links(db, a) == sorted([b, c])
    assert _links(db, b) == [a]

    second = sync_linked_structures(db, a, [b])
    assert second.linked_ids == [b]
    assert _links(db, a) == [b]
    assert _links(db, c) is None


def test_one_row_per_pair(db):
    a, b = make_position(db), make_position(db)
    sync_linked_structures(db, a, [b])
    sync_linked_structures(db, b, [a])
    with db.get_session() as session:
        assert session.query(StructureLink).count() == 1


def test_empty_set_clears_links(db):
    a, b = make_position(db), make_position(db)
    sync_linked_structures(db, a, [b])
    result = sync_linked_structures(db, a, [])
    assert result.ok
    assert result.linked_ids is None
    assert _links(db, b) is None


def test_closed_at_reaches_source_and_targets(db):
    a = make_position(db)
    b = make_position(db, closed_at="2024-11-30T00:00:00Z")
    c = make_position(db, closed_at="2024-12-09T00:00:00Z")

    sync_linked_structures(db, a, [b, c], closed_at="2024-12-05T00:00:00Z")

    assert _closed_at(db, a) == "2024-12-05T00:00:00Z"
    assert _closed_at(db, b) == "2024-11-30T00:00:00Z"
    assert _closed_at(db, c) == "2024-12-05T00:00:00Z"


def test_missing_target_writes_nothing(db):
    a = make_position(db)
    result = sync_linked_structures(db, a, ["ghost"], closed_at="2024-12-05T00:00:00Z")
    assert result.kind == ErrorKind.NOT_FOUND
    assert result.error == "Linked structure ghost does not exist."
    assert _links(db, a) is None
    assert _closed_at(db, a) is None


def test_missing_source(db):
    assert sync_linked_structures(db, " ", ["x"]).kind == ErrorKind.VALIDATION
    assert sync_linked_structures(db, "nope", []).kind == ErrorKind.NOT_FOUND


def test_scope_hides_other_clients_targets(db):
    a = make_position(db, client_name="Fund A")
    b = make_position(db, client_name="Fund B")

    denied = sync_linked_structures(db, a, [b], client_scope=ClientScope("Fund A"))
    allowed = sync_linked_structures(db, a, [b], client_scope=ClientScope("Fund A", is_admin=True))

    assert denied.kind == ErrorKind.NOT_FOUND
    assert allowed.ok
