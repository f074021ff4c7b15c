"""Import all models so SQLModel.metadata picks them up."""

from sqlmodel import SQLModel

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
from portal.models.credential import IntegrationCredential, IntegrationCredentialRead
from portal.models.event import Booking, Event
from portal.models.tenant import Tenant, TenantContext, TenantDebugRead, TenantDomain
from portal.models.webinar import WebinarStatus, ZoomWebinar

# Entity kind name (as used by the generic entity endpoints) -> table model
ENTITY_MODELS: dict[str, type[SQLModel]] = {
    "Event": Event,
    "Booking": Booking,
    "BlogPost": BlogPost,
    "ArticleComment": ArticleComment,
    "CommentReaction": CommentReaction,
    "ArticleReaction": ArticleReaction,
    "ArticleView": ArticleView,
    "CommunicationCategory": CommunicationCategory,
    "CommunicationCategoryRole": CommunicationCategoryRole,
    "MemberCommunicationPreference": MemberCommunicationPreference,
    "ZoomWebinar": ZoomWebinar,
}

__all__ = [
    "ENTITY_MODELS",
    "ArticleComment",
    "ArticleReaction",
    "ArticleView",
    "BlogPost",
    "Booking",
    "CascadeJob",
    "CascadeJobStatus",
    "CommentReaction",
    "CommunicationCategory",
    "CommunicationCategoryRole",
    "Event",
    "IntegrationCredential",
    "IntegrationCredentialRead",
    "MemberCommunicationPreference",
    "Tenant",
    "TenantContext",
    "TenantDebugRead",
    "TenantDomain",
    "WebinarStatus",
    "ZoomWebinar",
]
