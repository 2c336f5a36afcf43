"""
User and authentication schemas.

Covers: registration (optionally redeeming an org invite), login,
the current-user payload and org member listings.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from .common import AppRole, OrgRole


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=1, max_length=100)
    org_id: Optional[uuid.UUID] = None
    invite_token: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class AuthResponse(BaseModel):
    user_id: str
    email: str
    message: str


class MeResponse(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    image: Optional[str] = None
    org_id: Optional[uuid.UUID] = None
    org_role: Optional[OrgRole] = None
    app_role: AppRole


class OrgMemberResponse(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    image: Optional[str] = None
    org_role: OrgRole
    created_at: datetime


class OrgMemberListResponse(BaseModel):
    data: list[OrgMemberResponse]
    total: int
    page: int
    per_page: int


class OrgMemberRoleUpdate(BaseModel):
    role: OrgRole
