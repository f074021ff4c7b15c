"""Tests for cascading deletes and cascade-job retries."""

import json
import uuid
from dataclasses import replace
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func
from sqlmodel import select

from portal.core.errors import CascadeDeleteError, UnknownEntityError
from portal.models.article import (
    ArticleComment,
    ArticleReaction,
    ArticleView,
    BlogPost,
    CommentReaction,
)
from portal.models.cascade_job import CascadeJob, CascadeJobStatus
from portal.models.communication import (
    CommunicationCategory,
    CommunicationCategoryRole,
    MemberCommunicationPreference,
)
from portal.models.event import Booking, Event
from portal.services.cascade import (
    CASCADE_PLANS,
    CascadeDeleteOrchestrator,
    CascadePlan,
    CascadeStep,
    delete_event_bookings,
)


async def _count(session, model, column, value) -> int:
    result = await session.execute(select(func.count()).select_from(model).where(column == value))
    return result.scalar_one()


async def _event_with_bookings(session, n: int = 3) -> uuid.UUID:
    event = Event(title="Graduate careers fair")
    session.add(event)
    await session.flush()
    for i in range(n):
        session.add(Booking(event_id=event.id, attendee_email=f"guest{i}@example.org"))
    await session.commit()
    return event.id


def _flaky(failures: int):
    """A bookings step that raises ``failures`` times before delegating."""
    calls = {"n": 0}

    async def step(session, event_id):
        calls["n"] += 1
        if calls["n"] <= failures:
            raise ConnectionError("statement timeout")
        return await delete_event_bookings(session, event_id)

    step.calls = calls
    return step


def _event_orchestrator(step, max_attempts: int = 2) -> CascadeDeleteOrchestrator:
    return CascadeDeleteOrchestrator(
        plans={"Event": CascadePlan(Event, (CascadeStep("bookings", step),))},
        max_attempts=max_attempts,
    )


@pytest.mark.asyncio
async def test_event_delete_removes_bookings_first(session):
    event_id = await _event_with_bookings(session)

    result = await CascadeDeleteOrchestrator().delete_with_cascade(session, "Event", event_id)

    assert result.deleted is True
    assert result.removed == {"bookings": 3}
    assert result.pending_steps == []
    assert result.job_id is None
    assert await _count(session, Booking, Booking.event_id, event_id) == 0
    assert await session.get(Event, event_id) is None


@pytest.mark.asyncio
async def test_transient_step_failure_is_retried(session):
    event_id = await _event_with_bookings(session)
    step = _flaky(failures=1)

    result = await _event_orchestrator(step).delete_with_cascade(session, "Event", event_id)

    assert result.deleted is True
    assert result.pending_steps == []
    assert step.calls["n"] == 2
    assert await _count(session, Booking, Booking.event_id, event_id) == 0
    assert await session.get(Event, event_id) is None


@pytest.mark.asyncio
async def test_persistent_step_failure_records_job_and_still_deletes_parent(session):
    event_id = await _event_with_bookings(session, n=2)

    result = await _event_orchestrator(_flaky(failures=99)).delete_with_cascade(
        session, "Event", event_id
    )

    assert result.deleted is True
    assert result.pending_steps == ["bookings"]
    assert result.job_id is not None
    assert await session.get(Event, event_id) is None
    assert await _count(session, Booking, Booking.event_id, event_id) == 2

    job = await session.get(CascadeJob, result.job_id)
    assert job.entity_kind == "Event"
    assert job.entity_id == event_id
    assert json.loads(job.pending_steps) == ["bookings"]
    assert job.status == CascadeJobStatus.PENDING
    assert "statement timeout" in job.last_error


@pytest.mark.asyncio
async def test_retry_job_finishes_pending_steps(session):
    event_id = await _event_with_bookings(session, n=2)
    failing = await _event_orchestrator(_flaky(failures=99)).delete_with_cascade(
        session, "Event", event_id
    )

    job = await CascadeDeleteOrchestrator().retry_job(session, failing.job_id)

    assert job.status == CascadeJobStatus.COMPLETED
    assert json.loads(job.pending_steps) == []
    assert job.attempts == 2
    assert job.last_error is None
    assert await _count(session, Booking, Booking.event_id, event_id) == 0


@pytest.mark.asyncio
async def test_retry_job_keeps_failing_steps_pending(session):
    event_id = await _event_with_bookings(session, n=1)
    orchestrator = _event_orchestrator(_flaky(failures=99), max_attempts=1)
    failing = await orchestrator.delete_with_cascade(session, "Event", event_id)

    job = await orchestrator.retry_job(session, failing.job_id)

    assert job.status == CascadeJobStatus.PENDING
    assert json.loads(job.pending_steps) == ["bookings"]
    assert job.attempts == 2


@pytest.mark.asyncio
async def test_retry_of_missing_job_returns_none(session):
    assert await CascadeDeleteOrchestrator().retry_job(session, uuid.uuid4()) is None


async def _blog_post(session) -> tuple[uuid.UUID, uuid.UUID]:
    post = BlogPost(title="Interview tips", slug=f"tips-{uuid.uuid4().hex[:6]}")
    session.add(post)
    await session.flush()
    comment = ArticleComment(article_id=post.id, author_email="a@example.org", content="Great")
    session.add(comment)
    await session.flush()
    session.add_all([
        CommentReaction(comment_id=comment.id, member_email="b@example.org", reaction="like"),
        CommentReaction(comment_id=comment.id, member_email="c@example.org", reaction="like"),
        ArticleReaction(article_id=post.id, member_email="b@example.org", reaction="love"),
        ArticleView(article_id=post.id),
        ArticleView(article_id=post.id, member_email="c@example.org"),
    ])
    await session.commit()
    return post.id, comment.id


@pytest.mark.asyncio
async def test_blog_post_cascade(session):
    post_id, comment_id = await _blog_post(session)

    result = await CascadeDeleteOrchestrator().delete_with_cascade(session, "BlogPost", post_id)

    assert result.deleted is True
    assert result.removed == {
        "comment_reactions": 2,
        "comments": 1,
        "article_reactions": 1,
        "article_views": 2,
    }
    assert await _count(session, CommentReaction, CommentReaction.comment_id, comment_id) == 0
    assert await _count(session, ArticleView, ArticleView.article_id, post_id) == 0
    assert await session.get(BlogPost, post_id) is None


@pytest.mark.asyncio
async def test_comments_wait_for_failed_comment_reactions(session):
    post_id, comment_id = await _blog_post(session)

    async def locked(session, article_id):
        raise ConnectionError("comment_reaction table locked")

    plan = CASCADE_PLANS["BlogPost"]
    steps = tuple(
        replace(step, run=locked) if step.name == "comment_reactions" else step
        for step in plan.steps
    )
    failing = CascadeDeleteOrchestrator(
        plans={"BlogPost": replace(plan, steps=steps)}, max_attempts=1
    )

    result = await failing.delete_with_cascade(session, "BlogPost", post_id)

    assert result.deleted is True
    assert result.pending_steps == ["comment_reactions", "comments"]
    assert result.removed == {"article_reactions": 1, "article_views": 2}
    assert await _count(session, ArticleComment, ArticleComment.article_id, post_id) == 1
    assert await _count(session, CommentReaction, CommentReaction.comment_id, comment_id) == 2

    # still blocked: the comments stay put for the next attempt
    job = await failing.retry_job(session, result.job_id)
    assert job.status == CascadeJobStatus.PENDING
    assert json.loads(job.pending_steps) == ["comment_reactions", "comments"]
    assert await _count(session, ArticleComment, ArticleComment.article_id, post_id) == 1

    job = await CascadeDeleteOrchestrator().retry_job(session, result.job_id)
    assert job.status == CascadeJobStatus.COMPLETED
    assert json.loads(job.pending_steps) == []
    assert job.attempts == 3
    assert await _count(session, CommentReaction, CommentReaction.comment_id, comment_id) == 0
    assert await _count(session, ArticleComment, ArticleComment.article_id, post_id) == 0


@pytest.mark.asyncio
async def test_communication_category_cascade(session):
    category = CommunicationCategory(name="Newsletters")
    session.add(category)
    await session.flush()
    session.add_all([
        CommunicationCategoryRole(category_id=category.id, role_id="member"),
        MemberCommunicationPreference(category_id=category.id, member_id="m-1"),
        MemberCommunicationPreference(category_id=category.id, member_id="m-2", is_subscribed=False),
    ])
    await session.commit()
    category_id = category.id

    result = await CascadeDeleteOrchestrator().delete_with_cascade(
        session, "CommunicationCategory", category_id
    )

    assert result.removed == {"category_roles": 1, "member_preferences": 2}
    assert await _count(
        session, MemberCommunicationPreference, MemberCommunicationPreference.category_id, category_id
    ) == 0


@pytest.mark.asyncio
async def test_kind_without_plan_deletes_only_the_row(session):
    booking = Booking(event_id=uuid.uuid4(), attendee_email="solo@example.org")
    session.add(booking)
    await session.commit()
    booking_id = booking.id

    result = await CascadeDeleteOrchestrator().delete_with_cascade(session, "Booking", booking_id)

    assert result.deleted is True
    assert result.removed == {}
    assert await session.get(Booking, booking_id) is None


@pytest.mark.asyncio
async def test_missing_row_is_not_deleted(session):
    result = await CascadeDeleteOrchestrator().delete_with_cascade(session, "Event", uuid.uuid4())
    assert result.deleted is False


@pytest.mark.asyncio
async def test_unknown_kind(session):
    with pytest.raises(UnknownEntityError):
        await CascadeDeleteOrchestrator().delete_with_cascade(session, "Invoice", uuid.uuid4())


@pytest.mark.asyncio
async def test_parent_delete_failure_is_raised(session):
    booking = Booking(event_id=uuid.uuid4(), attendee_email="stuck@example.org")
    session.add(booking)
    await session.commit()
    booking_id = booking.id

    with patch.object(session, "commit", AsyncMock(side_effect=RuntimeError("disk full"))):
        with pytest.raises(CascadeDeleteError) as excinfo:
            await CascadeDeleteOrchestrator().delete_with_cascade(session, "Booking", booking_id)

    assert excinfo.value.kind == "Booking"
    assert await session.get(Booking, booking_id) is not None
