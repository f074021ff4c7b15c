"""Generic entity list / delete endpoints keyed by entity kind name."""

import uuid
from typing import Any

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlmodel import select

from portal.api.deps import Cascade, Session
from portal.core.config import get_settings
from portal.core.errors import CascadeDeleteError, FilterValidationError, UnknownEntityError
from portal.models import ENTITY_MODELS
from portal.services.filters import apply_to_select, parse_query_params

router = APIRouter(prefix="/entities", tags=["entities"])

settings = get_settings()


class DeleteResponse(BaseModel):
    success: bool
    pending_steps: list[str] = Field(default_factory=list, serialization_alias="pendingSteps")
    cascade_job_id: uuid.UUID | None = Field(default=None, serialization_alias="cascadeJobId")


def _model_or_404(kind: str):
    model = ENTITY_MODELS.get(kind)
    if model is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown entity '{kind}'")
    return model


@router.get("/{kind}")
async def list_entities(
    kind: str,
    session: Session,
    filter: str | None = Query(default=None, description="JSON filter description"),
    sort: str | None = Query(default=None, description='JSON sort description, e.g. {"created_at": "desc"}'),
    limit: int | None = Query(default=None, ge=0),
    offset: int | None = Query(default=None, ge=0),
) -> list[dict[str, Any]]:
    model = _model_or_404(kind)
    try:
        descriptor = parse_query_params(
            filter,
            sort,
            limit,
            offset,
            strict=settings.filter_strict,
            default_window=settings.filter_default_window,
        )
        stmt = apply_to_select(select(model), model, descriptor)
    except FilterValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail=str(exc),
        ) from exc

    result = await session.execute(stmt)
    return [row.model_dump(mode="json") for row in result.scalars().all()]


@router.delete("/{kind}/{entity_id}", response_model=DeleteResponse, response_model_by_alias=True)
async def delete_entity(
    kind: str,
    entity_id: uuid.UUID,
    session: Session,
    cascade: Cascade,
) -> DeleteResponse:
    try:
        outcome = await cascade.delete_with_cascade(session, kind, entity_id)
    except UnknownEntityError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except CascadeDeleteError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to delete {kind}",
        ) from exc

    if not outcome.deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    return DeleteResponse(
        success=True,
        pending_steps=outcome.pending_steps,
        cascade_job_id=outcome.job_id,
    )
