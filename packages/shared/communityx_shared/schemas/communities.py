"""
Community schemas.

Covers: community CRUD, membership and join requests, role assignment,
tags and per-community notification preferences.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .common import CommunityRole, CommunityType, MembershipStatus, RequestStatus, UserSummary

SLUG_PATTERN = r"^[a-z0-9-]+$"


class CommunityCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    slug: str = Field(..., min_length=3, max_length=50, pattern=SLUG_PATTERN)
    description: Optional[str] = Field(default=None, max_length=2000)
    type: CommunityType = CommunityType.PUBLIC
    rules: Optional[str] = Field(default=None, max_length=5000)
    banner: Optional[str] = None
    avatar: Optional[str] = None
    post_creation_min_role: CommunityRole = CommunityRole.MEMBER
    org_id: Optional[uuid.UUID] = None


class CommunityUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=2000)
    type: Optional[CommunityType] = None
    rules: Optional[str] = Field(default=None, max_length=5000)
    banner: Optional[str] = None
    avatar: Optional[str] = None
    post_creation_min_role: Optional[CommunityRole] = None


class CommunityResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    description: Optional[str] = None
    type: CommunityType
    rules: Optional[str] = None
    banner: Optional[str] = None
    avatar: Optional[str] = None
    post_creation_min_role: CommunityRole
    org_id: Optional[uuid.UUID] = None
    created_by: uuid.UUID
    created_at: datetime
    member_count: int = 0
    viewer_role: Optional[CommunityRole] = None


class CommunityListResponse(BaseModel):
    data: list[CommunityResponse]


class MemberResponse(BaseModel):
    user: UserSummary
    role: CommunityRole
    membership_type: str
    status: MembershipStatus
    joined_at: datetime


class MemberListResponse(BaseModel):
    data: list[MemberResponse]


class AddMemberRequest(BaseModel):
    user_id: uuid.UUID
    role: CommunityRole = CommunityRole.MEMBER


class MemberRoleRequest(BaseModel):
    role: CommunityRole


class JoinResponse(BaseModel):
    success: bool = True
    status: str  # joined | pending


class JoinRequestResponse(BaseModel):
    id: uuid.UUID
    user: UserSummary
    community_id: uuid.UUID
    status: RequestStatus
    requested_at: datetime
    reviewed_at: Optional[datetime] = None


class JoinRequestListResponse(BaseModel):
    data: list[JoinRequestResponse]


class TagCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9a-fA-F]{6}$")


class TagUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9a-fA-F]{6}$")


class TagResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    community_id: uuid.UUID


class NotificationPreferenceRequest(BaseModel):
    enabled: bool


class NotificationPreferenceResponse(BaseModel):
    community_id: uuid.UUID
    enabled: bool
