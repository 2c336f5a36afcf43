"""Attachment model (uploaded images and videos stored in R2)."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Attachment(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "attachments"

    filename: str = Field(nullable=False)
    mimetype: str = Field(nullable=False)
    type: str = Field(default="image", nullable=False)  # image | video
    size: Optional[int] = None
    r2_key: str = Field(nullable=False)
    r2_url: str = Field(nullable=False)
    public_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    uploaded_by: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    post_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="posts.id", index=True, ondelete="CASCADE"
    )
    community_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="communities.id", index=True, ondelete="CASCADE"
    )
