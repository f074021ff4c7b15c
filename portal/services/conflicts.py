"""Scheduling conflict detection for webinar sessions."""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from portal.models.base import as_utc_naive
from portal.models.webinar import WebinarStatus, ZoomWebinar


class ScheduledSession(Protocol):
    id: Any
    topic: str
    start_time: datetime
    duration_minutes: int
    zoom_host_id: str | None
    status: str


@dataclass(frozen=True)
class ScheduledSessionInterval:
    start: datetime
    duration_minutes: int
    host_id: str | None = None
    exclude_id: Any = None

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration_minutes)


@dataclass
class ConflictReport:
    conflicts: list[Any] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open overlap of [start_a, end_a) and [start_b, end_b); touching ends don't count."""
    return start_a < end_b and end_a > start_b


def find_conflicts(
    candidate: ScheduledSessionInterval,
    existing: Iterable[ScheduledSession],
) -> ConflictReport:
    start = as_utc_naive(candidate.start)
    end = start + timedelta(minutes=candidate.duration_minutes)
    exclude = str(candidate.exclude_id) if candidate.exclude_id is not None else None

    report = ConflictReport()
    for session in existing:
        if session.status == WebinarStatus.CANCELLED:
            continue
        if exclude is not None and str(session.id) == exclude:
            continue
        if candidate.host_id is not None and session.zoom_host_id != candidate.host_id:
            continue
        other_start = as_utc_naive(session.start_time)
        other_end = other_start + timedelta(minutes=session.duration_minutes)
        if overlaps(start, end, other_start, other_end):
            report.conflicts.append(session)
    return report


async def check_webinar_conflicts(
    session: AsyncSession,
    candidate: ScheduledSessionInterval,
) -> ConflictReport:
    """Load the candidate's possible rivals and run :func:`find_conflicts` over them."""
    stmt = select(ZoomWebinar).where(ZoomWebinar.status != WebinarStatus.CANCELLED)
    if candidate.exclude_id is not None:
        stmt = stmt.where(ZoomWebinar.id != uuid.UUID(str(candidate.exclude_id)))
    if candidate.host_id is not None:
        stmt = stmt.where(ZoomWebinar.zoom_host_id == candidate.host_id)
    stmt = stmt.order_by(ZoomWebinar.start_time.asc())  # type: ignore[union-attr]

    result = await session.execute(stmt)
    return find_conflicts(candidate, result.scalars().all())
