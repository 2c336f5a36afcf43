"""Direct-message chat models."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class ChatThread(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "chat_threads"
    __table_args__ = (sa.UniqueConstraint("user1_id", "user2_id", name="uq_chat_threads_pair"),)

    # Stored as an ordered pair (user1_id < user2_id)
    user1_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    user2_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    org_id: Optional[uuid.UUID] = Field(default=None, foreign_key="organizations.id")
    last_message_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    last_message_preview: Optional[str] = None


class DirectMessage(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "direct_messages"

    thread_id: uuid.UUID = Field(
        foreign_key="chat_threads.id", nullable=False, index=True, ondelete="CASCADE"
    )
    sender_id: uuid.UUID = Field(foreign_key="users.id", nullable=False)
    recipient_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    content: str = Field(nullable=False)
    is_read: bool = Field(default=False, nullable=False)
