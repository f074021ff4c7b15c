"""Tests for filter / sort / page compilation and its SQL rendering."""

import uuid
from datetime import datetime

import pytest
from sqlmodel import select

from portal.core.errors import FilterValidationError
from portal.models.event import Booking, Event
from portal.services.filters import (
    Compare,
    Equals,
    In,
    PageWindow,
    SortKey,
    apply_to_select,
    compile_query,
    parse_filter,
    parse_query_params,
    parse_sort,
)

# ── Parsing ───────────────────────────────────────────────────


def test_scalar_list_and_operator_shapes():
    predicates = parse_filter({
        "status": "active",
        "id": ["a", "b"],
        "age": {"gte": 18, "lt": 65},
    })
    assert predicates == [
        Equals("status", "active"),
        In("id", ("a", "b")),
        Compare("age", "gte", 18),
        Compare("age", "lt", 65),
    ]


def test_in_operator_and_is_null():
    predicates = parse_filter({"status": {"in": ["draft", "live"]}, "deleted_at": {"is": None}})
    assert predicates == [In("status", ("draft", "live")), Compare("deleted_at", "is", None)]


def test_empty_filter_compiles_to_nothing():
    assert parse_filter(None) == []
    assert parse_filter({}) == []
    descriptor = compile_query()
    assert descriptor.predicates == ()
    assert descriptor.limit is None
    assert descriptor.window is None


def test_unknown_operator_is_rejected():
    with pytest.raises(FilterValidationError, match="between"):
        parse_filter({"age": {"between": [1, 2]}})


def test_unknown_operator_is_dropped_when_lenient(caplog):
    predicates = parse_filter({"age": {"between": [1, 2], "gt": 3}}, strict=False)
    assert predicates == [Compare("age", "gt", 3)]
    assert "between" in caplog.text


def test_in_requires_a_list():
    with pytest.raises(FilterValidationError):
        parse_filter({"status": {"in": "draft"}})


def test_is_requires_null_or_boolean():
    with pytest.raises(FilterValidationError):
        parse_filter({"deleted_at": {"is": "yesterday"}})


def test_sort_directions():
    assert parse_sort({"created_at": "desc", "title": "ASC"}) == [
        SortKey("created_at", descending=True),
        SortKey("title", descending=False),
    ]
    with pytest.raises(FilterValidationError):
        parse_sort({"title": "sideways"})
    assert parse_sort({"title": "sideways"}, strict=False) == [SortKey("title", descending=True)]


def test_offset_without_limit_uses_default_window():
    descriptor = compile_query(page=PageWindow(offset=20))
    assert descriptor.limit == 100
    assert descriptor.window == (20, 119)

    descriptor = compile_query(page=PageWindow(offset=0), default_window=25)
    assert descriptor.window == (0, 24)


def test_limit_and_offset_window():
    descriptor = compile_query(page=PageWindow(limit=10, offset=30))
    assert descriptor.window == (30, 39)


def test_negative_or_non_numeric_paging_is_rejected():
    with pytest.raises(FilterValidationError):
        compile_query(page=PageWindow(limit=-1))
    with pytest.raises(FilterValidationError):
        parse_query_params(offset="ten")


def test_query_params_are_json_decoded():
    descriptor = parse_query_params('{"status": "confirmed"}', '{"created_at": "desc"}', "5", "0")
    assert descriptor.predicates == (Equals("status", "confirmed"),)
    assert descriptor.order_by == (SortKey("created_at", descending=True),)
    assert descriptor.window == (0, 4)
    assert descriptor.fields() == {"status", "created_at"}


def test_invalid_json_is_rejected():
    with pytest.raises(FilterValidationError, match="filter"):
        parse_query_params("{status: confirmed}")
    with pytest.raises(FilterValidationError, match="Filter must be"):
        parse_query_params('["status"]')


def test_unknown_field_is_rejected_when_applied():
    descriptor = compile_query({"nope": 1})
    with pytest.raises(FilterValidationError, match="nope"):
        apply_to_select(select(Booking), Booking, descriptor)


# ── Against the store ─────────────────────────────────────────


async def _bookings(session, event_id: uuid.UUID, statuses: list[str]) -> None:
    for i, status in enumerate(statuses):
        session.add(Booking(event_id=event_id, attendee_email=f"m{i}@example.org", status=status))
    await session.commit()


@pytest.mark.asyncio
async def test_applied_filter_selects_matching_rows(session):
    event_id = uuid.uuid4()
    await _bookings(session, event_id, ["confirmed", "cancelled", "confirmed", "waitlist"])

    descriptor = compile_query(
        {"event_id": str(event_id), "status": {"in": ["confirmed", "waitlist"]}},
        {"attendee_email": "desc"},
    )
    result = await session.execute(apply_to_select(select(Booking), Booking, descriptor))
    rows = result.scalars().all()

    assert [r.attendee_email for r in rows] == ["m3@example.org", "m2@example.org", "m0@example.org"]


@pytest.mark.asyncio
async def test_applied_window_pages_rows(session):
    event_id = uuid.uuid4()
    await _bookings(session, event_id, ["confirmed"] * 5)

    descriptor = compile_query(
        {"event_id": str(event_id)},
        {"attendee_email": "asc"},
        PageWindow(limit=2, offset=1),
    )
    result = await session.execute(apply_to_select(select(Booking), Booking, descriptor))
    assert [r.attendee_email for r in result.scalars().all()] == ["m1@example.org", "m2@example.org"]


@pytest.mark.asyncio
async def test_datetime_comparison_and_like(session):
    tag = uuid.uuid4().hex[:8]
    session.add_all([
        Event(title=f"{tag} spring fair", start_date=datetime(2026, 3, 1, 10)),
        Event(title=f"{tag} summer fair", start_date=datetime(2026, 6, 1, 10)),
        Event(title=f"{tag} undated"),
    ])
    await session.commit()

    descriptor = compile_query({
        "title": {"like": f"{tag}%"},
        "start_date": {"gte": "2026-05-01T00:00:00Z"},
    })
    result = await session.execute(apply_to_select(select(Event), Event, descriptor))
    assert [e.title for e in result.scalars().all()] == [f"{tag} summer fair"]

    descriptor = compile_query({"title": {"like": f"{tag}%"}, "start_date": {"is": None}})
    result = await session.execute(apply_to_select(select(Event), Event, descriptor))
    assert [e.title for e in result.scalars().all()] == [f"{tag} undated"]


def test_invalid_uuid_value_is_rejected():
    descriptor = compile_query({"event_id": "not-a-uuid"})
    with pytest.raises(FilterValidationError, match="event_id"):
        apply_to_select(select(Booking), Booking, descriptor)
