"""Blog articles and their comment / reaction / view records."""

import uuid

from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from portal.models.base import TimestampMixin, new_uuid


class BlogPost(TimestampMixin, SQLModel, table=True):
    __tablename__ = "blog_post"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    title: str = Field(max_length=255, nullable=False)
    slug: str = Field(max_length=255, nullable=False, index=True)
    body: str = Field(default="", sa_column=Column(Text, nullable=False, server_default=""))
    status: str = Field(default="draft", max_length=50)


class ArticleComment(TimestampMixin, SQLModel, table=True):
    __tablename__ = "article_comment"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    article_id: uuid.UUID = Field(nullable=False, index=True)
    author_email: str = Field(max_length=255, nullable=False)
    content: str = Field(sa_column=Column(Text, nullable=False))


class CommentReaction(TimestampMixin, SQLModel, table=True):
    __tablename__ = "comment_reaction"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    comment_id: uuid.UUID = Field(nullable=False, index=True)
    member_email: str = Field(max_length=255, nullable=False)
    reaction: str = Field(max_length=50, nullable=False)


class ArticleReaction(TimestampMixin, SQLModel, table=True):
    __tablename__ = "article_reaction"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    article_id: uuid.UUID = Field(nullable=False, index=True)
    member_email: str = Field(max_length=255, nullable=False)
    reaction: str = Field(max_length=50, nullable=False)


class ArticleView(TimestampMixin, SQLModel, table=True):
    __tablename__ = "article_view"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    article_id: uuid.UUID = Field(nullable=False, index=True)
    member_email: str | None = Field(default=None, max_length=255)
