"""
Organization schemas: create/read and member invitations.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from .common import OrgRole


class OrgCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    slug: str = Field(
        ...,
        min_length=3,
        max_length=50,
        pattern=r"^[a-z0-9-]+$",
        description="URL-safe identifier",
    )
    allow_cross_org_dm: bool = False


class OrgResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    allow_cross_org_dm: bool
    member_count: int = 0
    community_count: int = 0
    created_at: datetime


class OrgInviteRequest(BaseModel):
    email: EmailStr
    role: OrgRole = OrgRole.MEMBER


class OrgInviteResponse(BaseModel):
    id: uuid.UUID
    org_id: uuid.UUID
    email: str
    role: OrgRole
    token: str
    expires_at: datetime
    accepted_at: Optional[datetime] = None
