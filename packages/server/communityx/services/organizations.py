"""
Organization service: org creation, invitations and member role management.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from communityx.core.permissions import Action, Resource, Subject, ensure_can
from communityx.models.community import Community
from communityx.models.organization import Organization, OrgInvite
from communityx.models.user import User
from communityx_shared.schemas.common import OrgRole
from communityx_shared.schemas.organizations import (
    OrgCreateRequest,
    OrgInviteRequest,
    OrgResponse,
)

log = structlog.get_logger()

INVITE_TTL_DAYS = 7


async def get_org_or_404(org_id: uuid.UUID, session: AsyncSession) -> Organization:
    org = await session.get(Organization, org_id)
    if not org:
        raise HTTPException(status_code=404, detail="Organization not found")
    return org


async def create_org(req: OrgCreateRequest, session: AsyncSession) -> Organization:
    """Create an org (app admins only; the router enforces that)."""
    existing = await session.execute(
        select(Organization).where(Organization.slug == req.slug)
    )
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="Org slug already taken")

    org = Organization(
        name=req.name,
        slug=req.slug,
        allow_cross_org_dm=req.allow_cross_org_dm,
    )
    session.add(org)
    await session.flush()

    log.info("org.created", org_id=str(org.id), slug=req.slug)
    return org


async def org_response(org: Organization, session: AsyncSession) -> OrgResponse:
    member_count = await session.scalar(
        select(func.count()).select_from(User).where(User.org_id == org.id)
    )
    community_count = await session.scalar(
        select(func.count()).select_from(Community).where(Community.org_id == org.id)
    )
    return OrgResponse(
        id=org.id,
        name=org.name,
        slug=org.slug,
        allow_cross_org_dm=org.allow_cross_org_dm,
        member_count=member_count or 0,
        community_count=community_count or 0,
        created_at=org.created_at,
    )


async def get_org_for_subject(
    org_id: uuid.UUID, subject: Subject, session: AsyncSession
) -> Organization:
    org = await get_org_or_404(org_id, session)
    ensure_can(subject, Action.VIEW_ORG, Resource(org_id=org.id))
    return org


async def list_members(
    org: Organization,
    session: AsyncSession,
    *,
    page: int = 1,
    per_page: int = 20,
    search: Optional[str] = None,
) -> tuple[list[User], int]:
    """Paginated org members, optionally filtered by name/email substring."""
    filters = [User.org_id == org.id]
    if search:
        pattern = f"%{search.lower()}%"
        filters.append(
            or_(func.lower(User.name).like(pattern), func.lower(User.email).like(pattern))
        )

    total = await session.scalar(select(func.count()).select_from(User).where(*filters))
    result = await session.execute(
        select(User)
        .where(*filters)
        .order_by(User.name.asc(), User.id.asc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total or 0


async def invite_member(
    org: Organization,
    req: OrgInviteRequest,
    subject: Subject,
    session: AsyncSession,
) -> OrgInvite:
    """Create an invitation token for ``req.email``. Email delivery happens after commit."""
    ensure_can(subject, Action.INVITE_ORG_MEMBERS, Resource(org_id=org.id))

    existing = await session.execute(
        select(User).where(func.lower(User.email) == req.email.lower())
    )
    user = existing.scalar_one_or_none()
    if user and user.org_id == org.id:
        raise HTTPException(status_code=400, detail="User is already a member of this organization")

    invite = OrgInvite(
        org_id=org.id,
        email=req.email.lower(),
        role=req.role.value,
        token=secrets.token_urlsafe(32),
        invited_by=subject.user_id,
        expires_at=datetime.now(timezone.utc) + timedelta(days=INVITE_TTL_DAYS),
    )
    session.add(invite)
    await session.flush()

    log.info("org.member_invited", org_id=str(org.id), invite_id=str(invite.id), role=invite.role)
    return invite


async def _get_member_or_404(org: Organization, user_id: uuid.UUID, session: AsyncSession) -> User:
    user = await session.get(User, user_id)
    if not user or user.org_id != org.id:
        raise HTTPException(status_code=404, detail="Member not found")
    return user


async def set_member_role(
    org: Organization,
    user_id: uuid.UUID,
    role: OrgRole,
    subject: Subject,
    session: AsyncSession,
) -> User:
    ensure_can(subject, Action.MANAGE_ORG_MEMBERS, Resource(org_id=org.id))
    if user_id == subject.user_id:
        raise HTTPException(status_code=400, detail="You cannot change your own role")

    user = await _get_member_or_404(org, user_id, session)
    user.org_role = role.value
    user.updated_at = datetime.now(timezone.utc)
    session.add(user)
    await session.flush()

    log.info("org.member_role_changed", org_id=str(org.id), user_id=str(user_id), role=role.value)
    return user


async def remove_member(
    org: Organization,
    user_id: uuid.UUID,
    subject: Subject,
    session: AsyncSession,
) -> None:
    ensure_can(subject, Action.MANAGE_ORG_MEMBERS, Resource(org_id=org.id))
    if user_id == subject.user_id:
        raise HTTPException(status_code=400, detail="You cannot remove yourself")

    user = await _get_member_or_404(org, user_id, session)
    user.org_id = None
    user.org_role = OrgRole.MEMBER.value
    user.updated_at = datetime.now(timezone.utc)
    session.add(user)
    await session.flush()

    log.info("org.member_removed", org_id=str(org.id), user_id=str(user_id))
