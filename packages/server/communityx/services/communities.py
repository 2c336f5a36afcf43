"""
Community service: community CRUD, visibility and response shaping.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

import structlog
from fastapi import HTTPException
from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from communityx.core.permissions import Action, Resource, Subject, ensure_can
from communityx.models.community import Community, CommunityAllowedOrg, CommunityMember
from communityx.models.post import Post
from communityx_shared.schemas.common import CommunityRole, CommunityType, MembershipStatus
from communityx_shared.schemas.communities import (
    CommunityCreateRequest,
    CommunityResponse,
    CommunityUpdateRequest,
)

log = structlog.get_logger()


def community_resource(community: Community, *, owner_id: Optional[uuid.UUID] = None) -> Resource:
    """Describe a community (or something inside it) for the permission evaluator."""
    return Resource(
        community_id=community.id,
        community_org_id=community.org_id,
        community_type=CommunityType(community.type),
        owner_id=owner_id,
        post_creation_min_role=CommunityRole(community.post_creation_min_role),
    )


def post_resource(post: Post, community: Optional[Community]) -> Resource:
    """Describe a post: community-scoped when it lives in a community, else org-scoped."""
    if community is not None:
        return community_resource(community, owner_id=post.author_id)
    return Resource(org_id=post.org_id, owner_id=post.author_id)


async def get_community_or_404(session: AsyncSession, community_id: uuid.UUID) -> Community:
    community = await session.get(Community, community_id)
    if not community:
        raise HTTPException(status_code=404, detail="Community not found")
    return community


async def get_community_by_slug(
    session: AsyncSession, slug: str, subject: Subject
) -> Community:
    result = await session.execute(select(Community).where(Community.slug == slug))
    community = result.scalar_one_or_none()
    if not community:
        raise HTTPException(status_code=404, detail="Community not found")
    ensure_can(
        subject,
        Action.VIEW_COMMUNITY,
        community_resource(community),
        detail="You do not have access to this community",
    )
    return community


async def _member_counts(
    session: AsyncSession, community_ids: Sequence[uuid.UUID]
) -> dict[uuid.UUID, int]:
    if not community_ids:
        return {}
    result = await session.execute(
        select(CommunityMember.community_id, func.count())
        .where(
            CommunityMember.community_id.in_(community_ids),
            CommunityMember.status == MembershipStatus.ACTIVE.value,
        )
        .group_by(CommunityMember.community_id)
    )
    return {community_id: count for community_id, count in result.all()}


def to_response(community: Community, subject: Subject, member_count: int = 0) -> CommunityResponse:
    return CommunityResponse(
        id=community.id,
        name=community.name,
        slug=community.slug,
        description=community.description,
        type=community.type,
        rules=community.rules,
        banner=community.banner,
        avatar=community.avatar,
        post_creation_min_role=community.post_creation_min_role,
        org_id=community.org_id,
        created_by=community.created_by,
        created_at=community.created_at,
        member_count=member_count,
        viewer_role=subject.community_role(community.id),
    )


async def community_response(
    session: AsyncSession, community: Community, subject: Subject
) -> CommunityResponse:
    counts = await _member_counts(session, [community.id])
    return to_response(community, subject, counts.get(community.id, 0))


async def list_communities(session: AsyncSession, subject: Subject) -> list[CommunityResponse]:
    """Public communities plus private ones the subject belongs to or administers."""
    query = select(Community).order_by(Community.name.asc())
    if not subject.is_app_admin:
        visible = [Community.type == CommunityType.PUBLIC.value]
        if subject.community_roles:
            visible.append(Community.id.in_(list(subject.community_roles)))
        if subject.is_org_admin_of(subject.org_id):
            visible.append(Community.org_id == subject.org_id)
        query = query.where(or_(*visible))

    result = await session.execute(query)
    communities = list(result.scalars().all())
    counts = await _member_counts(session, [c.id for c in communities])
    return [to_response(c, subject, counts.get(c.id, 0)) for c in communities]


async def list_org_communities(
    session: AsyncSession, org_id: uuid.UUID, subject: Subject
) -> list[CommunityResponse]:
    ensure_can(subject, Action.VIEW_ORG, Resource(org_id=org_id))
    result = await session.execute(
        select(Community).where(Community.org_id == org_id).order_by(Community.name.asc())
    )
    communities = [
        c for c in result.scalars().all()
        if subject.is_app_admin
        or c.type == CommunityType.PUBLIC.value
        or subject.community_role(c.id) is not None
        or subject.is_org_admin_of(c.org_id)
    ]
    counts = await _member_counts(session, [c.id for c in communities])
    return [to_response(c, subject, counts.get(c.id, 0)) for c in communities]


async def create_community(
    session: AsyncSession, req: CommunityCreateRequest, subject: Subject
) -> Community:
    """Create a community; the creator becomes its admin member."""
    org_id = req.org_id if req.org_id is not None else subject.org_id
    if not subject.is_app_admin and org_id != subject.org_id:
        raise HTTPException(
            status_code=403, detail="You can only create communities in your own organization"
        )
    ensure_can(
        subject,
        Action.CREATE_COMMUNITY,
        Resource(org_id=org_id),
        detail="You do not have permission to create communities",
    )

    existing = await session.execute(select(Community).where(Community.slug == req.slug))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Community URL is already taken")

    community = Community(
        name=req.name,
        slug=req.slug,
        description=req.description,
        type=req.type.value,
        rules=req.rules,
        banner=req.banner,
        avatar=req.avatar,
        post_creation_min_role=req.post_creation_min_role.value,
        org_id=org_id,
        created_by=subject.user_id,
    )
    session.add(community)
    await session.flush()

    session.add(
        CommunityMember(
            user_id=subject.user_id,
            community_id=community.id,
            role=CommunityRole.ADMIN.value,
            membership_type="member",
            status=MembershipStatus.ACTIVE.value,
        )
    )
    if org_id is not None:
        session.add(
            CommunityAllowedOrg(
                community_id=community.id,
                org_id=org_id,
                added_by=subject.user_id,
            )
        )
    await session.flush()

    log.info(
        "community.created",
        community_id=str(community.id),
        slug=community.slug,
        org_id=str(org_id) if org_id else None,
        creator=str(subject.user_id),
    )
    return community


async def update_community(
    session: AsyncSession,
    community: Community,
    req: CommunityUpdateRequest,
    subject: Subject,
) -> Community:
    ensure_can(subject, Action.EDIT_COMMUNITY, community_resource(community))

    for field, value in req.model_dump(exclude_unset=True).items():
        if value is None and field in ("name", "type", "post_creation_min_role"):
            continue
        setattr(community, field, getattr(value, "value", value))

    community.updated_at = datetime.now(timezone.utc)
    session.add(community)
    await session.flush()

    log.info("community.updated", community_id=str(community.id))
    return community


async def delete_community(
    session: AsyncSession, community: Community, subject: Subject
) -> None:
    ensure_can(subject, Action.DELETE_COMMUNITY, community_resource(community))
    await session.delete(community)
    await session.flush()
    log.info("community.deleted", community_id=str(community.id), slug=community.slug)
