"""
Direct-message chat schemas.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .common import UserSummary


class ThreadCreateRequest(BaseModel):
    recipient_id: uuid.UUID


class ThreadResponse(BaseModel):
    id: uuid.UUID
    other_user: UserSummary
    last_message_at: Optional[datetime] = None
    last_message_preview: Optional[str] = None
    unread_count: int = 0


class ThreadListResponse(BaseModel):
    data: list[ThreadResponse]


class MessageCreateRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)


class MessageResponse(BaseModel):
    id: uuid.UUID
    thread_id: uuid.UUID
    sender_id: uuid.UUID
    recipient_id: uuid.UUID
    content: str
    is_read: bool
    created_at: datetime


class MessageListResponse(BaseModel):
    data: list[MessageResponse]
    has_more: bool


class UnreadCountResponse(BaseModel):
    count: int
