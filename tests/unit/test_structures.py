"""
Tests for the saved-structures read model.
"""

from datetime import date, timedelta

from tradebook.database.models import Position
from tradebook.database.scope import ClientScope
from tradebook.positions.archive import archive_structure
from tradebook.positions.linked import sync_linked_structures
from tradebook.positions.structures import (
    fetch_saved_structures,
    infer_exchange,
    normalize_closed_at,
    normalize_lifecycle,
)
from tests.conftest import make_leg, make_position


def _future_expiry():
    return (date.today() + timedelta(days=60)).isoformat()


def _by_id(result):
    return {s.structure_id: s for s in result.structures}


def test_infer_exchange_from_provider_or_venue():
    assert infer_exchange(Position(provider="Deribit")) == "deribit"
    assert infer_exchange(Position(provider=None, venue_id="coin-call")) == "coincall"
    assert infer_exchange(Position(mark_source="cc")) == "coincall"
    assert infer_exchange(Position(provider="OKX")) is None


def test_lifecycle_and_closed_at_normalization():
    assert normalize_lifecycle(" Closed ") == "close"
    assert normalize_lifecycle("open") == "open"
    assert normalize_lifecycle("pending") is None
    assert normalize_closed_at("null") is None
    assert normalize_closed_at(" 2024-12-01 ") == "2024-12-01"


def test_legs_coalesce_by_contract_with_signed_quantity(db, program):
    expiry = _future_expiry()
    position_id = make_position(
        db,
        program_id=program,
        provider="deribit",
        legs=[
            make_leg(leg_seq=1, side="buy", qty=2, expiry=expiry),
            make_leg(leg_seq=2, side="sell", qty=1, expiry=expiry),
            make_leg(leg_seq=3, side="sell", option_type="put", strike=90000, qty=3, expiry=expiry),
        ],
    )

    result = fetch_saved_structures(db)

    assert result.ok
    view = _by_id(result)[position_id]
    assert view.underlying == "BTC"
    assert view.exchange == "deribit"
    assert view.program_name == "Core vol"
    assert view.status == "OPEN"
    assert view.expiry == expiry
    assert sorted((leg.option_type, leg.strike, leg.qty_net) for leg in view.legs) == [
        ("C", 100000.0, 1.0),
        ("P", 90000.0, -3.0),
    ]


def test_status_closed_by_lifecycle_closed_at_or_expiry(db):
    future = _future_expiry()
    open_id = make_position(db, legs=[make_leg(expiry=future)])
    closed_id = make_position(db, lifecycle="close", legs=[make_leg(expiry=future)])
    dated_id = make_position(db, closed_at="2024-12-05T00:00:00Z", legs=[make_leg(expiry=future)])
    expired_id = make_position(db, legs=[make_leg(expiry="2020-01-31")])

    views = _by_id(fetch_saved_structures(db))

    assert views[open_id].status == "OPEN"
    assert views[closed_id].status == "CLOSED"
    assert views[dated_id].status == "CLOSED"
    assert views[expired_id].status == "CLOSED"


def test_archived_hidden_unless_requested(db):
    kept = make_position(db)
    gone = make_position(db)
    archive_structure(db, gone, archived_by="ops")

    assert set(_by_id(fetch_saved_structures(db))) == {kept}
    everything = _by_id(fetch_saved_structures(db, include_archived=True))
    assert everything[gone].archived is True
    assert everything[gone].archived_by == "ops"


def test_scope_and_links(db):
    a = make_position(db, client_name="Fund A")
    b = make_position(db, client_name="Fund A")
    other = make_position(db, client_name="Fund B")
    sync_linked_structures(db, a, [b])

    scoped = _by_id(fetch_saved_structures(db, ClientScope("Fund A")))

    assert set(scoped) == {a, b}
    assert scoped[a].linked_ids == [b]
    assert scoped[b].linked_ids == [a]
    assert other in _by_id(fetch_saved_structures(db, ClientScope("Fund A", is_admin=True)))


def test_newest_entry_first(db):
    older = make_position(db, entry_ts="2024-11-01T00:00:00Z")
    newer = make_position(db, entry_ts="2024-12-01T00:00:00Z")
    ids = [s.structure_id for s in fetch_saved_structures(db).structures]
    assert ids == [newer, older]
