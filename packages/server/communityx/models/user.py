"""User, credential account and profile models."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import JSONType, TimestampMixin, UUIDMixin


class User(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    name: str = Field(nullable=False)
    email: str = Field(unique=True, nullable=False, index=True)
    email_verified: bool = Field(default=False, nullable=False)
    image: Optional[str] = None
    org_id: Optional[uuid.UUID] = Field(default=None, foreign_key="organizations.id", index=True)
    org_role: str = Field(default="member", nullable=False)  # admin | member
    app_role: str = Field(default="user", nullable=False)  # admin | user


class Account(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "accounts"

    user_id: uuid.UUID = Field(
        foreign_key="users.id", nullable=False, index=True, ondelete="CASCADE"
    )
    provider_id: str = Field(default="credential", nullable=False)
    password_hash: Optional[str] = Field(default=None)  # bcrypt hash


class UserProfile(TimestampMixin, SQLModel, table=True):
    __tablename__ = "user_profiles"

    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True, ondelete="CASCADE")
    data: dict = Field(default_factory=dict, sa_type=JSONType, nullable=False)
