"""Persisted upstream credential: one authoritative row per integration."""

import uuid
from datetime import datetime

from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from portal.models.base import TimestampMixin, new_uuid


class IntegrationCredential(TimestampMixin, SQLModel, table=True):
    __tablename__ = "integration_credential"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    integration: str = Field(max_length=50, unique=True, nullable=False, index=True)

    # Fernet ciphertext; plaintext tokens never touch the table
    access_token: str = Field(sa_column=Column(Text, nullable=False))
    refresh_token: str = Field(sa_column=Column(Text, nullable=False))

    # Provider-side organisation the token acts on (e.g. the Xero tenant id)
    associated_context_id: str | None = Field(default=None, max_length=255)
    expires_at: datetime = Field(nullable=False)

    # Bumped on every rotation; writers compare-and-swap against it
    version: int = Field(default=1, nullable=False)


class IntegrationCredentialRead(SQLModel):
    """Status view without token material."""
    integration: str
    associated_context_id: str | None
    expires_at: datetime
    version: int
    updated_at: datetime
