"""Zoom webinar sessions: the scheduled intervals checked for host conflicts."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlmodel import Field, SQLModel

from portal.models.base import TimestampMixin, new_uuid


class WebinarStatus(StrEnum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class ZoomWebinar(TimestampMixin, SQLModel, table=True):
    __tablename__ = "zoom_webinar"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    topic: str = Field(max_length=255, nullable=False)
    start_time: datetime = Field(nullable=False, index=True)
    duration_minutes: int = Field(nullable=False)
    zoom_host_id: str | None = Field(default=None, max_length=100, index=True)
    zoom_webinar_id: str | None = Field(default=None, max_length=100)
    status: str = Field(default=WebinarStatus.SCHEDULED, max_length=50)
