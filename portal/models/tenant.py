"""Tenant and tenant domain models: the brand/customer isolation boundary."""

import json
import uuid

from pydantic import BaseModel, ConfigDict
from pydantic import Field as PydanticField
from pydantic.alias_generators import to_camel
from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from portal.models.base import TimestampMixin, new_uuid

DEFAULT_PRIMARY_COLOR = "#1e40af"
DEFAULT_SECONDARY_COLOR = "#3b82f6"
DEFAULT_ACCENT_COLOR = "#f59e0b"


class Tenant(TimestampMixin, SQLModel, table=True):
    __tablename__ = "tenant"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    slug: str = Field(max_length=100, unique=True, nullable=False, index=True)
    name: str = Field(max_length=255, nullable=False)
    display_name: str | None = Field(default=None, max_length=255)
    logo_url: str | None = Field(default=None, max_length=2048)
    favicon_url: str | None = Field(default=None, max_length=2048)
    primary_color: str = Field(default=DEFAULT_PRIMARY_COLOR, max_length=32)
    secondary_color: str = Field(default=DEFAULT_SECONDARY_COLOR, max_length=32)
    accent_color: str = Field(default=DEFAULT_ACCENT_COLOR, max_length=32)

    # Feature flags and free-form config stored as JSON text
    settings: str = Field(default="{}", sa_column=Column(Text, nullable=False, server_default="{}"))

    is_active: bool = Field(default=True)


class TenantDomain(TimestampMixin, SQLModel, table=True):
    __tablename__ = "tenant_domain"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    tenant_id: uuid.UUID = Field(foreign_key="tenant.id", nullable=False, index=True)
    domain: str = Field(max_length=255, unique=True, nullable=False, index=True)
    is_primary: bool = Field(default=False)
    # Only verified domains take part in hostname resolution
    is_verified: bool = Field(default=False)


# ── Request-scoped tenant value ──────────────────────────────

class TenantContext(BaseModel):
    """Flat, read-only tenant value attached to each request.

    Serialises with camelCase keys for the client bootstrap payload.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    id: uuid.UUID
    slug: str
    name: str
    display_name: str | None = None
    logo_url: str | None = None
    favicon_url: str | None = None
    primary_color: str = DEFAULT_PRIMARY_COLOR
    secondary_color: str = DEFAULT_SECONDARY_COLOR
    accent_color: str = DEFAULT_ACCENT_COLOR
    settings: dict = PydanticField(default_factory=dict)
    is_active: bool = True

    @classmethod
    def from_row(cls, tenant: Tenant) -> "TenantContext":
        raw = tenant.settings
        settings = json.loads(raw) if isinstance(raw, str) and raw else (raw or {})
        return cls(
            id=tenant.id,
            slug=tenant.slug,
            name=tenant.name,
            display_name=tenant.display_name,
            logo_url=tenant.logo_url,
            favicon_url=tenant.favicon_url,
            primary_color=tenant.primary_color,
            secondary_color=tenant.secondary_color,
            accent_color=tenant.accent_color,
            settings=settings,
            is_active=tenant.is_active,
        )

    @classmethod
    def builtin_default(cls, tenant_id: uuid.UUID) -> "TenantContext":
        """Tenant value used when neither the hostname nor the store yields one."""
        return cls(id=tenant_id, slug="default", name="Default")


class TenantDebugRead(SQLModel):
    hostname: str
    source: str
    tenant_id: uuid.UUID
    tenant_slug: str
    cache_entries: int
