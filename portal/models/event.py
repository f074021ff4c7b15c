"""Scheduled events and the bookings that reference them."""

import uuid
from datetime import datetime

from sqlmodel import Field, SQLModel

from portal.models.base import TimestampMixin, new_uuid


class Event(TimestampMixin, SQLModel, table=True):
    __tablename__ = "event"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    title: str = Field(max_length=255, nullable=False)
    start_date: datetime | None = Field(default=None)
    location: str | None = Field(default=None, max_length=500)
    status: str = Field(default="scheduled", max_length=50)


class Booking(TimestampMixin, SQLModel, table=True):
    __tablename__ = "booking"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    event_id: uuid.UUID = Field(nullable=False, index=True)
    attendee_email: str = Field(max_length=255, nullable=False)
    status: str = Field(default="confirmed", max_length=50)
