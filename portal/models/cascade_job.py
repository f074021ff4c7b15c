"""Durable record of cascade-delete steps that still need to run."""

import uuid
from enum import StrEnum

from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from portal.models.base import TimestampMixin, new_uuid


class CascadeJobStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"


class CascadeJob(TimestampMixin, SQLModel, table=True):
    __tablename__ = "cascade_job"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    entity_kind: str = Field(max_length=100, nullable=False, index=True)
    entity_id: uuid.UUID = Field(nullable=False, index=True)

    # JSON array of step names, in plan order
    pending_steps: str = Field(default="[]", sa_column=Column(Text, nullable=False, server_default="[]"))
    status: CascadeJobStatus = Field(default=CascadeJobStatus.PENDING, index=True)
    attempts: int = Field(default=0)
    last_error: str | None = Field(default=None, max_length=2000)
