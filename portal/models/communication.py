"""Communication categories, their role grants and member opt-ins."""

import uuid

from sqlmodel import Field, SQLModel

from portal.models.base import TimestampMixin, new_uuid


class CommunicationCategory(TimestampMixin, SQLModel, table=True):
    __tablename__ = "communication_category"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    name: str = Field(max_length=255, nullable=False)
    description: str = Field(default="", max_length=1000)
    is_active: bool = Field(default=True)


class CommunicationCategoryRole(TimestampMixin, SQLModel, table=True):
    __tablename__ = "communication_category_role"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    category_id: uuid.UUID = Field(nullable=False, index=True)
    role_id: str = Field(max_length=100, nullable=False)


class MemberCommunicationPreference(TimestampMixin, SQLModel, table=True):
    __tablename__ = "member_communication_preference"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    category_id: uuid.UUID = Field(nullable=False, index=True)
    member_id: str = Field(max_length=100, nullable=False, index=True)
    is_subscribed: bool = Field(default=True)
