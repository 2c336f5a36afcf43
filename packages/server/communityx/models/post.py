"""Post, tag, comment and bookmark models."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, _utcnow


class Post(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "posts"

    title: str = Field(nullable=False)
    content: str = Field(default="", nullable=False)  # sanitized HTML
    author_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    org_id: Optional[uuid.UUID] = Field(default=None, foreign_key="organizations.id", index=True)
    community_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="communities.id", index=True, ondelete="CASCADE"
    )
    visibility: str = Field(default="public", nullable=False)  # public | community
    is_deleted: bool = Field(default=False, nullable=False, index=True)


class Tag(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "tags"
    __table_args__ = (sa.UniqueConstraint("community_id", "name", name="uq_tags_community_name"),)

    name: str = Field(nullable=False)
    description: Optional[str] = None
    color: Optional[str] = None
    community_id: uuid.UUID = Field(
        foreign_key="communities.id", nullable=False, index=True, ondelete="CASCADE"
    )


class PostTag(SQLModel, table=True):
    __tablename__ = "post_tags"

    post_id: uuid.UUID = Field(foreign_key="posts.id", primary_key=True, ondelete="CASCADE")
    tag_id: uuid.UUID = Field(foreign_key="tags.id", primary_key=True, ondelete="CASCADE")


class Comment(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "comments"

    content: str = Field(nullable=False)
    post_id: uuid.UUID = Field(foreign_key="posts.id", nullable=False, index=True, ondelete="CASCADE")
    author_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    parent_id: Optional[uuid.UUID] = Field(default=None, foreign_key="comments.id")
    is_deleted: bool = Field(default=False, nullable=False)


class SavedPost(SQLModel, table=True):
    __tablename__ = "saved_posts"

    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True, ondelete="CASCADE")
    post_id: uuid.UUID = Field(foreign_key="posts.id", primary_key=True, ondelete="CASCADE")
    created_at: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )
