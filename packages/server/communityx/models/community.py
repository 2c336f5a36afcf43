"""Community and membership models."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, _utcnow


class Community(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "communities"

    name: str = Field(nullable=False)
    slug: str = Field(unique=True, nullable=False, index=True)
    description: Optional[str] = None
    type: str = Field(default="public", nullable=False)  # public | private
    rules: Optional[str] = None
    banner: Optional[str] = None
    avatar: Optional[str] = None
    post_creation_min_role: str = Field(default="member", nullable=False)  # member | moderator | admin
    org_id: Optional[uuid.UUID] = Field(default=None, foreign_key="organizations.id", index=True)
    created_by: uuid.UUID = Field(foreign_key="users.id", nullable=False)


class CommunityMember(SQLModel, table=True):
    __tablename__ = "community_members"

    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True, ondelete="CASCADE")
    community_id: uuid.UUID = Field(
        foreign_key="communities.id", primary_key=True, ondelete="CASCADE"
    )
    role: str = Field(default="member", nullable=False)  # member | moderator | admin
    membership_type: str = Field(default="member", nullable=False)  # member | follower
    status: str = Field(default="active", nullable=False)  # active | pending
    joined_at: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )


class CommunityMemberRequest(UUIDMixin, SQLModel, table=True):
    __tablename__ = "community_member_requests"

    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True, ondelete="CASCADE")
    community_id: uuid.UUID = Field(
        foreign_key="communities.id", nullable=False, index=True, ondelete="CASCADE"
    )
    request_type: str = Field(default="join", nullable=False)
    status: str = Field(default="pending", nullable=False)  # pending | approved | rejected
    requested_at: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
    reviewed_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    reviewed_by: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")


class CommunityAllowedOrg(SQLModel, table=True):
    __tablename__ = "community_allowed_orgs"

    community_id: uuid.UUID = Field(
        foreign_key="communities.id", primary_key=True, ondelete="CASCADE"
    )
    org_id: uuid.UUID = Field(foreign_key="organizations.id", primary_key=True, ondelete="CASCADE")
    added_by: uuid.UUID = Field(foreign_key="users.id", nullable=False)
    added_at: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
