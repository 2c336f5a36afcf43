"""Push subscription, notification and preference models."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import JSONType, TimestampMixin, UUIDMixin


class PushSubscription(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "push_subscriptions"

    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True, ondelete="CASCADE")
    endpoint: str = Field(unique=True, nullable=False)
    p256dh: str = Field(nullable=False)
    auth: str = Field(nullable=False)


class Notification(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "notifications"

    recipient_id: uuid.UUID = Field(
        foreign_key="users.id", nullable=False, index=True, ondelete="CASCADE"
    )
    title: str = Field(nullable=False)
    body: str = Field(nullable=False)
    type: str = Field(nullable=False)  # post | comment | message
    data: Optional[dict] = Field(default=None, sa_type=JSONType)
    is_read: bool = Field(default=False, nullable=False)


class NotificationPreference(TimestampMixin, SQLModel, table=True):
    __tablename__ = "notification_preferences"

    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True, ondelete="CASCADE")
    community_id: uuid.UUID = Field(
        foreign_key="communities.id", primary_key=True, ondelete="CASCADE"
    )
    enabled: bool = Field(default=True, nullable=False)
