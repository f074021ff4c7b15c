"""create portal core tables

Revision ID: 5f2a9c1d7e43
Revises:
Create Date: 2026-10-17 09:12:44.120318

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '5f2a9c1d7e43'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "tenant",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("logo_url", sa.String(2048), nullable=True),
        sa.Column("favicon_url", sa.String(2048), nullable=True),
        sa.Column("primary_color", sa.String(32), nullable=False),
        sa.Column("secondary_color", sa.String(32), nullable=False),
        sa.Column("accent_color", sa.String(32), nullable=False),
        sa.Column("settings", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_tenant_slug", "tenant", ["slug"], unique=True)

    op.create_table(
        "tenant_domain",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenant.id"), nullable=False),
        sa.Column("domain", sa.String(255), nullable=False),
        sa.Column("is_primary", sa.Boolean(), nullable=False),
        sa.Column("is_verified", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_tenant_domain_domain", "tenant_domain", ["domain"], unique=True)
    op.create_index("ix_tenant_domain_tenant_id", "tenant_domain", ["tenant_id"])

    op.create_table(
        "integration_credential",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("integration", sa.String(50), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=False),
        sa.Column("associated_context_id", sa.String(255), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_integration_credential_integration", "integration_credential", ["integration"],
        unique=True,
    )

    op.create_table(
        "event",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("start_date", sa.DateTime(), nullable=True),
        sa.Column("location", sa.String(500), nullable=True),
        sa.Column("status", sa.String(50), nullable=False),
        *_timestamps(),
    )
    op.create_table(
        "booking",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("event_id", sa.Uuid(), nullable=False),
        sa.Column("attendee_email", sa.String(255), nullable=False),
        sa.Column("status", sa.String(50), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_booking_event_id", "booking", ["event_id"])

    op.create_table(
        "blog_post",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.String(50), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_blog_post_slug", "blog_post", ["slug"])
    op.create_table(
        "article_comment",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("article_id", sa.Uuid(), nullable=False),
        sa.Column("author_email", sa.String(255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_article_comment_article_id", "article_comment", ["article_id"])
    op.create_table(
        "comment_reaction",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("comment_id", sa.Uuid(), nullable=False),
        sa.Column("member_email", sa.String(255), nullable=False),
        sa.Column("reaction", sa.String(50), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_comment_reaction_comment_id", "comment_reaction", ["comment_id"])
    for table in ("article_reaction", "article_view"):
        columns = [
            sa.Column("id", sa.Uuid(), primary_key=True),
            sa.Column("article_id", sa.Uuid(), nullable=False),
        ]
        if table == "article_reaction":
            columns += [
                sa.Column("member_email", sa.String(255), nullable=False),
                sa.Column("reaction", sa.String(50), nullable=False),
            ]
        else:
            columns.append(sa.Column("member_email", sa.String(255), nullable=True))
        op.create_table(table, *columns, *_timestamps())
        op.create_index(f"ix_{table}_article_id", table, ["article_id"])

    op.create_table(
        "communication_category",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_table(
        "communication_category_role",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("category_id", sa.Uuid(), nullable=False),
        sa.Column("role_id", sa.String(100), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_communication_category_role_category_id", "communication_category_role", ["category_id"],
    )
    op.create_table(
        "member_communication_preference",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("category_id", sa.Uuid(), nullable=False),
        sa.Column("member_id", sa.String(100), nullable=False),
        sa.Column("is_subscribed", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_member_communication_preference_category_id",
        "member_communication_preference", ["category_id"],
    )
    op.create_index(
        "ix_member_communication_preference_member_id",
        "member_communication_preference", ["member_id"],
    )

    op.create_table(
        "zoom_webinar",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("topic", sa.String(255), nullable=False),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("zoom_host_id", sa.String(100), nullable=True),
        sa.Column("zoom_webinar_id", sa.String(100), nullable=True),
        sa.Column("status", sa.String(50), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_zoom_webinar_start_time", "zoom_webinar", ["start_time"])
    op.create_index("ix_zoom_webinar_zoom_host_id", "zoom_webinar", ["zoom_host_id"])

    op.create_table(
        "cascade_job",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("entity_kind", sa.String(100), nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=False),
        sa.Column("pending_steps", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("last_error", sa.String(2000), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_cascade_job_entity_kind", "cascade_job", ["entity_kind"])
    op.create_index("ix_cascade_job_entity_id", "cascade_job", ["entity_id"])
    op.create_index("ix_cascade_job_status", "cascade_job", ["status"])


def downgrade() -> None:
    for table in (
        "cascade_job",
        "zoom_webinar",
        "member_communication_preference",
        "communication_category_role",
        "communication_category",
        "article_view",
        "article_reaction",
        "comment_reaction",
        "article_comment",
        "blog_post",
        "booking",
        "event",
        "integration_credential",
        "tenant_domain",
        "tenant",
    ):
        op.drop_table(table)
