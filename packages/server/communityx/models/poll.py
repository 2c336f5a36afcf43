"""Poll models."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, _utcnow


class Poll(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "polls"

    post_id: uuid.UUID = Field(
        foreign_key="posts.id", unique=True, nullable=False, ondelete="CASCADE"
    )
    question: str = Field(nullable=False)
    poll_type: str = Field(default="single", nullable=False)  # single | multiple
    expires_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    is_closed: bool = Field(default=False, nullable=False)


class PollOption(UUIDMixin, SQLModel, table=True):
    __tablename__ = "poll_options"

    poll_id: uuid.UUID = Field(foreign_key="polls.id", nullable=False, index=True, ondelete="CASCADE")
    text: str = Field(nullable=False)
    order_index: int = Field(default=0, nullable=False)


class PollVote(UUIDMixin, SQLModel, table=True):
    __tablename__ = "poll_votes"
    __table_args__ = (
        sa.UniqueConstraint("poll_option_id", "user_id", name="uq_poll_votes_option_user"),
    )

    poll_id: uuid.UUID = Field(foreign_key="polls.id", nullable=False, index=True, ondelete="CASCADE")
    poll_option_id: uuid.UUID = Field(
        foreign_key="poll_options.id", nullable=False, ondelete="CASCADE"
    )
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    created_at: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
