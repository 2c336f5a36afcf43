"""
Post, comment, poll and saved-post schemas.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .common import AttachmentType, OffsetPage, PollType, PostVisibility, UserSummary


# ---------------------------------------------------------------------------
# Polls
# ---------------------------------------------------------------------------

class PollCreate(BaseModel):
    question: str = Field(..., min_length=1, max_length=200)
    options: list[str] = Field(..., min_length=2, max_length=10)
    poll_type: PollType = PollType.SINGLE
    expires_at: Optional[datetime] = None

    @field_validator("options")
    @classmethod
    def _option_lengths(cls, options: list[str]) -> list[str]:
        cleaned = [o.strip() for o in options]
        for option in cleaned:
            if not 1 <= len(option) <= 100:
                raise ValueError("Poll options must be between 1 and 100 characters")
        return cleaned


class PollVoteRequest(BaseModel):
    option_ids: list[uuid.UUID] = Field(..., min_length=1)


class PollOptionResult(BaseModel):
    id: uuid.UUID
    text: str
    order_index: int
    votes: int
    percentage: int


class PollResultsResponse(BaseModel):
    poll_id: uuid.UUID
    post_id: uuid.UUID
    question: str
    poll_type: PollType
    is_closed: bool
    expires_at: Optional[datetime] = None
    options: list[PollOptionResult]
    total_votes: int
    user_votes: list[uuid.UUID]
    can_vote: bool


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------

class PostCreateRequest(BaseModel):
    title: Optional[str] = Field(default=None, max_length=300)
    content: Optional[str] = Field(default=None, max_length=50000)
    community_id: Optional[uuid.UUID] = None
    tag_ids: list[uuid.UUID] = Field(default_factory=list)
    poll: Optional[PollCreate] = None


class PostUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=300)
    content: Optional[str] = Field(default=None, max_length=50000)
    tag_ids: Optional[list[uuid.UUID]] = None
    poll_options: Optional[list[str]] = Field(default=None, min_length=2, max_length=10)


class TagSummary(BaseModel):
    id: uuid.UUID
    name: str
    color: Optional[str] = None


class CommunitySummary(BaseModel):
    id: uuid.UUID
    name: str
    slug: str


class AttachmentResponse(BaseModel):
    id: uuid.UUID
    filename: str
    mimetype: str
    type: AttachmentType
    size: Optional[int] = None
    url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    post_id: Optional[uuid.UUID] = None
    community_id: Optional[uuid.UUID] = None
    created_at: datetime


class PostResponse(BaseModel):
    id: uuid.UUID
    title: str
    content: str
    author: Optional[UserSummary] = None
    org_id: Optional[uuid.UUID] = None
    community_id: Optional[uuid.UUID] = None
    community: Optional[CommunitySummary] = None
    visibility: PostVisibility
    tags: list[TagSummary] = Field(default_factory=list)
    attachments: list[AttachmentResponse] = Field(default_factory=list)
    comment_count: int = 0
    has_poll: bool = False
    created_at: datetime
    updated_at: datetime


class FeedPage(OffsetPage):
    items: list[PostResponse]


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------

class CommentCreateRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)
    parent_id: Optional[uuid.UUID] = None


class CommentUpdateRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)


class CommentResponse(BaseModel):
    id: uuid.UUID
    content: str
    author: Optional[UserSummary] = None
    post_id: uuid.UUID
    parent_id: Optional[uuid.UUID] = None
    is_deleted: bool = False
    created_at: datetime
    replies: list[CommentResponse] = Field(default_factory=list)


class PostDetailResponse(PostResponse):
    poll: Optional[PollResultsResponse] = None
    comments: list[CommentResponse] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Saved posts
# ---------------------------------------------------------------------------

class PostSource(BaseModel):
    type: str  # community | org
    org_id: Optional[uuid.UUID] = None
    community_id: Optional[uuid.UUID] = None
    reason: str = ""


class SavedPostItem(PostResponse):
    saved_at: datetime
    source: PostSource


class SavedPostsPage(OffsetPage):
    items: list[SavedPostItem]


class SavedMapRequest(BaseModel):
    post_ids: list[uuid.UUID] = Field(default_factory=list, max_length=200)
