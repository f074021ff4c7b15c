"""Cascading deletes: remove dependent rows before their parent row.

Each parent kind with dependents has a :class:`CascadePlan`: an ordered list
of named steps that run before the parent delete. Steps are best-effort. A
failing step is rolled back, logged and retried; if it keeps failing, its name
is written to a ``cascade_job`` row so the cleanup can be re-run later
(:meth:`CascadeDeleteOrchestrator.retry_job`, or the worker sweep) instead of
being lost. Only a failure to delete the parent row itself is returned to the
caller as an error.

Every step commits on its own: the store gives no single transaction across
the cascade, so a partially applied cascade is visible until the job is
retried.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel, select

from portal.core.errors import CascadeDeleteError, UnknownEntityError
from portal.models import ENTITY_MODELS
from portal.models.article import (
    ArticleComment,
    ArticleReaction,
    ArticleView,
    BlogPost,
    CommentReaction,
)
from portal.models.base import utcnow
from portal.models.cascade_job import CascadeJob, CascadeJobStatus
from portal.models.communication import (
    CommunicationCategory,
    CommunicationCategoryRole,
    MemberCommunicationPreference,
)
from portal.models.event import Booking, Event

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 2

StepFn = Callable[[AsyncSession, uuid.UUID], Awaitable[int]]


@dataclass(frozen=True)
class CascadeStep:
    name: str
    run: StepFn
    # steps that must have succeeded before this one may run
    requires: tuple[str, ...] = ()

    def blocked_by(self, pending: list[str]) -> list[str]:
        return [name for name in self.requires if name in pending]


@dataclass(frozen=True)
class CascadePlan:
    parent: type[SQLModel]
    steps: tuple[CascadeStep, ...] = ()

    def step(self, name: str) -> CascadeStep | None:
        return next((s for s in self.steps if s.name == name), None)


@dataclass
class CascadeResult:
    kind: str
    entity_id: uuid.UUID
    deleted: bool
    removed: dict[str, int] = field(default_factory=dict)
    pending_steps: list[str] = field(default_factory=list)
    job_id: uuid.UUID | None = None


# ── Dependent-row steps ───────────────────────────────────────


async def _delete_where(session: AsyncSession, stmt) -> int:
    result = await session.execute(stmt)
    return result.rowcount or 0


async def delete_event_bookings(session: AsyncSession, event_id: uuid.UUID) -> int:
    return await _delete_where(session, delete(Booking).where(Booking.event_id == event_id))


async def delete_comment_reactions(session: AsyncSession, article_id: uuid.UUID) -> int:
    result = await session.execute(
        select(ArticleComment.id).where(ArticleComment.article_id == article_id)
    )
    comment_ids = list(result.scalars().all())
    if not comment_ids:
        return 0
    return await _delete_where(
        session, delete(CommentReaction).where(CommentReaction.comment_id.in_(comment_ids))
    )


async def delete_article_comments(session: AsyncSession, article_id: uuid.UUID) -> int:
    return await _delete_where(
        session, delete(ArticleComment).where(ArticleComment.article_id == article_id)
    )


async def delete_article_reactions(session: AsyncSession, article_id: uuid.UUID) -> int:
    return await _delete_where(
        session, delete(ArticleReaction).where(ArticleReaction.article_id == article_id)
    )


async def delete_article_views(session: AsyncSession, article_id: uuid.UUID) -> int:
    return await _delete_where(
        session, delete(ArticleView).where(ArticleView.article_id == article_id)
    )


async def delete_category_roles(session: AsyncSession, category_id: uuid.UUID) -> int:
    return await _delete_where(
        session,
        delete(CommunicationCategoryRole).where(
            CommunicationCategoryRole.category_id == category_id
        ),
    )


async def delete_member_preferences(session: AsyncSession, category_id: uuid.UUID) -> int:
    return await _delete_where(
        session,
        delete(MemberCommunicationPreference).where(
            MemberCommunicationPreference.category_id == category_id
        ),
    )


CASCADE_PLANS: dict[str, CascadePlan] = {
    "Event": CascadePlan(
        Event,
        (CascadeStep("bookings", delete_event_bookings),),
    ),
    "BlogPost": CascadePlan(
        BlogPost,
        (
            # comment reactions are found through their comments
            CascadeStep("comment_reactions", delete_comment_reactions),
            CascadeStep("comments", delete_article_comments, requires=("comment_reactions",)),
            CascadeStep("article_reactions", delete_article_reactions),
            CascadeStep("article_views", delete_article_views),
        ),
    ),
    "CommunicationCategory": CascadePlan(
        CommunicationCategory,
        (
            CascadeStep("category_roles", delete_category_roles),
            CascadeStep("member_preferences", delete_member_preferences),
        ),
    ),
}


# ── Orchestrator ──────────────────────────────────────────────


class CascadeDeleteOrchestrator:
    def __init__(
        self,
        plans: Mapping[str, CascadePlan] = CASCADE_PLANS,
        models: Mapping[str, type[SQLModel]] = ENTITY_MODELS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self.plans = plans
        self.models = models
        self.max_attempts = max(1, max_attempts)

    def model_for(self, kind: str) -> type[SQLModel]:
        plan = self.plans.get(kind)
        if plan is not None:
            return plan.parent
        model = self.models.get(kind)
        if model is None:
            raise UnknownEntityError(f"Unknown entity kind '{kind}'")
        return model

    async def delete_with_cascade(
        self,
        session: AsyncSession,
        kind: str,
        entity_id: uuid.UUID,
    ) -> CascadeResult:
        """Delete ``kind``/``entity_id`` after its dependents.

        Returns ``deleted=False`` when the row does not exist. Raises
        :class:`CascadeDeleteError` when the parent delete itself fails.
        """
        model = self.model_for(kind)
        result = CascadeResult(kind=kind, entity_id=entity_id, deleted=False)

        exists = await session.execute(select(model.id).where(model.id == entity_id))  # type: ignore[attr-defined]
        if exists.scalar_one_or_none() is None:
            return result

        plan = self.plans.get(kind)
        last_error: str | None = None
        for step in plan.steps if plan else ():
            blocked = step.blocked_by(result.pending_steps)
            if blocked:
                logger.warning(
                    "Deferring cascade step %s for %s %s until %s succeed(s)",
                    step.name, kind, entity_id, ", ".join(blocked),
                )
                result.pending_steps.append(step.name)
                continue
            removed, error = await self._run_step(session, kind, entity_id, step)
            if error is None:
                result.removed[step.name] = removed
            else:
                result.pending_steps.append(step.name)
                last_error = error

        try:
            await session.execute(delete(model).where(model.id == entity_id))  # type: ignore[attr-defined]
            await session.commit()
        except Exception as exc:
            await session.rollback()
            logger.exception("Failed to delete %s %s", kind, entity_id)
            raise CascadeDeleteError(kind, entity_id, str(exc)) from exc
        result.deleted = True

        if result.pending_steps:
            job = await self._record_job(session, kind, entity_id, result.pending_steps, last_error)
            result.job_id = job.id
            logger.warning(
                "%s %s deleted with %d cleanup step(s) pending in cascade job %s",
                kind, entity_id, len(result.pending_steps), job.id,
            )
        elif plan:
            logger.info("%s %s deleted with dependents %s", kind, entity_id, result.removed)
        return result

    async def retry_job(self, session: AsyncSession, job_id: uuid.UUID) -> CascadeJob | None:
        """Re-run the steps a cascade job still has pending."""
        job = await session.get(CascadeJob, job_id)
        if job is None or job.status == CascadeJobStatus.COMPLETED:
            return job

        # plain values: a failed step rolls back and expires the loaded job
        kind, entity_id = job.entity_kind, job.entity_id
        pending = json.loads(job.pending_steps)

        plan = self.plans.get(kind)
        remaining: list[str] = []
        last_error: str | None = None
        for name in pending:
            step = plan.step(name) if plan else None
            if step is None:
                logger.error("Cascade job %s names unknown step %r; dropping it", job_id, name)
                continue
            blocked = step.blocked_by(remaining)
            if blocked:
                logger.warning(
                    "Cascade job %s defers step %s until %s succeed(s)",
                    job_id, name, ", ".join(blocked),
                )
                remaining.append(name)
                continue
            _removed, error = await self._run_step(session, kind, entity_id, step)
            if error is not None:
                remaining.append(name)
                last_error = error

        job = await session.get(CascadeJob, job_id)
        job.pending_steps = json.dumps(remaining)
        job.attempts += 1
        job.last_error = last_error[:2000] if last_error else None
        job.status = CascadeJobStatus.PENDING if remaining else CascadeJobStatus.COMPLETED
        job.updated_at = utcnow()
        session.add(job)
        await session.commit()
        await session.refresh(job)
        return job

    async def _run_step(
        self,
        session: AsyncSession,
        kind: str,
        entity_id: uuid.UUID,
        step: CascadeStep,
    ) -> tuple[int, str | None]:
        error: str | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                removed = await step.run(session, entity_id)
                await session.commit()
                return removed, None
            except Exception as exc:
                await session.rollback()
                error = f"{type(exc).__name__}: {exc}"
                logger.warning(
                    "Cascade step %s for %s %s failed (attempt %d/%d)",
                    step.name, kind, entity_id, attempt, self.max_attempts,
                    exc_info=True,
                )
        logger.error("Cascade step %s for %s %s gave up: %s", step.name, kind, entity_id, error)
        return 0, error

    @staticmethod
    async def _record_job(
        session: AsyncSession,
        kind: str,
        entity_id: uuid.UUID,
        pending: list[str],
        last_error: str | None,
    ) -> CascadeJob:
        job = CascadeJob(
            entity_kind=kind,
            entity_id=entity_id,
            pending_steps=json.dumps(pending),
            attempts=1,
            last_error=last_error[:2000] if last_error else None,
        )
        session.add(job)
        await session.commit()
        await session.refresh(job)
        return job


async def pending_job_ids(session: AsyncSession, limit: int = 100) -> list[uuid.UUID]:
    stmt = (
        select(CascadeJob.id)
        .where(CascadeJob.status == CascadeJobStatus.PENDING)
        .order_by(CascadeJob.created_at.asc())  # type: ignore[union-attr]
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
