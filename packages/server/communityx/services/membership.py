"""
Community membership service: join/leave, join requests, member roles.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from communityx.core.permissions import Action, Subject, ensure_can
from communityx.models.community import Community, CommunityMember, CommunityMemberRequest
from communityx.models.user import User
from communityx.services.communities import community_resource
from communityx.services.users import load_user_summaries
from communityx_shared.schemas.common import (
    CommunityRole,
    CommunityType,
    MembershipStatus,
    RequestStatus,
)
from communityx_shared.schemas.communities import JoinRequestResponse, MemberResponse

log = structlog.get_logger()


async def get_membership(
    session: AsyncSession, community_id: uuid.UUID, user_id: uuid.UUID
) -> CommunityMember | None:
    return await session.get(CommunityMember, (user_id, community_id))


async def _pending_request(
    session: AsyncSession, community_id: uuid.UUID, user_id: uuid.UUID
) -> CommunityMemberRequest | None:
    result = await session.execute(
        select(CommunityMemberRequest).where(
            CommunityMemberRequest.community_id == community_id,
            CommunityMemberRequest.user_id == user_id,
            CommunityMemberRequest.status == RequestStatus.PENDING.value,
        )
    )
    return result.scalars().first()


# ---------------------------------------------------------------------------
# Join / leave
# ---------------------------------------------------------------------------


async def join_community(
    session: AsyncSession, community: Community, subject: Subject
) -> str:
    """Join a public community directly; request to join a private one.

    Returns "joined" or "pending".
    """
    membership = await get_membership(session, community.id, subject.user_id)
    if membership and membership.status == MembershipStatus.ACTIVE.value:
        raise HTTPException(status_code=400, detail="You are already a member of this community")

    if community.type == CommunityType.PUBLIC.value:
        if membership:
            membership.status = MembershipStatus.ACTIVE.value
            membership.membership_type = "member"
            session.add(membership)
        else:
            session.add(
                CommunityMember(
                    user_id=subject.user_id,
                    community_id=community.id,
                    role=CommunityRole.MEMBER.value,
                    membership_type="member",
                    status=MembershipStatus.ACTIVE.value,
                )
            )
        await session.flush()
        log.info("community.joined", community_id=str(community.id), user_id=str(subject.user_id))
        return "joined"

    if await _pending_request(session, community.id, subject.user_id):
        raise HTTPException(
            status_code=400, detail="You already have a pending request to join this community"
        )

    session.add(
        CommunityMemberRequest(
            user_id=subject.user_id,
            community_id=community.id,
            request_type="join",
            status=RequestStatus.PENDING.value,
        )
    )
    await session.flush()
    log.info(
        "community.join_requested", community_id=str(community.id), user_id=str(subject.user_id)
    )
    return "pending"


async def leave_community(
    session: AsyncSession, community: Community, subject: Subject
) -> None:
    membership = await get_membership(session, community.id, subject.user_id)
    if not membership:
        raise HTTPException(status_code=400, detail="You are not a member of this community")
    if community.created_by == subject.user_id:
        raise HTTPException(
            status_code=403, detail="Community creators cannot leave their own community"
        )

    await session.delete(membership)
    await session.flush()
    log.info("community.left", community_id=str(community.id), user_id=str(subject.user_id))


# ---------------------------------------------------------------------------
# Join requests (private communities)
# ---------------------------------------------------------------------------


async def list_join_requests(
    session: AsyncSession, community: Community, subject: Subject
) -> list[JoinRequestResponse]:
    ensure_can(subject, Action.MANAGE_COMMUNITY_MEMBERS, community_resource(community))
    result = await session.execute(
        select(CommunityMemberRequest)
        .where(
            CommunityMemberRequest.community_id == community.id,
            CommunityMemberRequest.status == RequestStatus.PENDING.value,
        )
        .order_by(CommunityMemberRequest.requested_at.asc())
    )
    requests = list(result.scalars().all())
    users = await load_user_summaries([r.user_id for r in requests], session)
    return [
        JoinRequestResponse(
            id=r.id,
            user=users[r.user_id],
            community_id=r.community_id,
            status=r.status,
            requested_at=r.requested_at,
            reviewed_at=r.reviewed_at,
        )
        for r in requests
        if r.user_id in users
    ]


async def _get_pending_request_or_404(
    session: AsyncSession, community: Community, request_id: uuid.UUID
) -> CommunityMemberRequest:
    request = await session.get(CommunityMemberRequest, request_id)
    if not request or request.community_id != community.id:
        raise HTTPException(status_code=404, detail="Join request not found")
    if request.status != RequestStatus.PENDING.value:
        raise HTTPException(status_code=400, detail="Join request has already been reviewed")
    return request


async def review_join_request(
    session: AsyncSession,
    community: Community,
    request_id: uuid.UUID,
    subject: Subject,
    *,
    approve: bool,
) -> CommunityMemberRequest:
    ensure_can(subject, Action.MANAGE_COMMUNITY_MEMBERS, community_resource(community))
    request = await _get_pending_request_or_404(session, community, request_id)

    request.status = (RequestStatus.APPROVED if approve else RequestStatus.REJECTED).value
    request.reviewed_at = datetime.now(timezone.utc)
    request.reviewed_by = subject.user_id
    session.add(request)

    if approve:
        membership = await get_membership(session, community.id, request.user_id)
        if membership:
            membership.status = MembershipStatus.ACTIVE.value
            session.add(membership)
        else:
            session.add(
                CommunityMember(
                    user_id=request.user_id,
                    community_id=community.id,
                    role=CommunityRole.MEMBER.value,
                    membership_type="member",
                    status=MembershipStatus.ACTIVE.value,
                )
            )
    await session.flush()

    log.info(
        "community.join_request_reviewed",
        community_id=str(community.id),
        request_id=str(request.id),
        status=request.status,
    )
    return request


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------


async def list_members(
    session: AsyncSession, community: Community, subject: Subject
) -> list[MemberResponse]:
    ensure_can(subject, Action.VIEW_COMMUNITY, community_resource(community))
    result = await session.execute(
        select(CommunityMember)
        .where(
            CommunityMember.community_id == community.id,
            CommunityMember.status == MembershipStatus.ACTIVE.value,
        )
        .order_by(CommunityMember.joined_at.asc())
    )
    members = list(result.scalars().all())
    users = await load_user_summaries([m.user_id for m in members], session)
    return [
        MemberResponse(
            user=users[m.user_id],
            role=m.role,
            membership_type=m.membership_type,
            status=m.status,
            joined_at=m.joined_at,
        )
        for m in members
        if m.user_id in users
    ]


async def add_member(
    session: AsyncSession,
    community: Community,
    user_id: uuid.UUID,
    role: CommunityRole,
    subject: Subject,
) -> CommunityMember:
    ensure_can(subject, Action.ADD_MEMBER, community_resource(community))
    if role != CommunityRole.MEMBER:
        ensure_can(subject, Action.MANAGE_COMMUNITY_MEMBERS, community_resource(community))

    if not await session.get(User, user_id):
        raise HTTPException(status_code=404, detail="User not found")

    membership = await get_membership(session, community.id, user_id)
    if membership and membership.status == MembershipStatus.ACTIVE.value:
        raise HTTPException(status_code=400, detail="User is already a member of this community")

    if membership:
        membership.status = MembershipStatus.ACTIVE.value
        membership.role = role.value
    else:
        membership = CommunityMember(
            user_id=user_id,
            community_id=community.id,
            role=role.value,
            membership_type="member",
            status=MembershipStatus.ACTIVE.value,
        )
    session.add(membership)
    await session.flush()

    log.info(
        "community.member_added",
        community_id=str(community.id),
        user_id=str(user_id),
        role=role.value,
    )
    return membership


async def remove_member(
    session: AsyncSession, community: Community, user_id: uuid.UUID, subject: Subject
) -> None:
    ensure_can(subject, Action.REMOVE_MEMBER, community_resource(community))
    if user_id == community.created_by:
        raise HTTPException(status_code=403, detail="The community creator cannot be removed")

    membership = await get_membership(session, community.id, user_id)
    if not membership:
        raise HTTPException(status_code=404, detail="Member not found")

    # Moderators cannot remove admins
    actor_role = subject.community_role(community.id)
    if (
        membership.role == CommunityRole.ADMIN.value
        and actor_role == CommunityRole.MODERATOR
        and not subject.is_app_admin
        and not subject.is_org_admin_of(community.org_id)
    ):
        raise HTTPException(status_code=403, detail="Moderators cannot remove admins")

    await session.delete(membership)
    await session.flush()
    log.info("community.member_removed", community_id=str(community.id), user_id=str(user_id))


async def assign_role(
    session: AsyncSession,
    community: Community,
    user_id: uuid.UUID,
    role: CommunityRole,
    subject: Subject,
) -> CommunityMember:
    """Promote or demote a member (moderator assignment and removal go through here)."""
    ensure_can(subject, Action.MANAGE_COMMUNITY_MEMBERS, community_resource(community))
    if user_id == community.created_by:
        raise HTTPException(
            status_code=403, detail="The community creator's role cannot be changed"
        )

    membership = await get_membership(session, community.id, user_id)
    if not membership or membership.status != MembershipStatus.ACTIVE.value:
        raise HTTPException(status_code=404, detail="Member not found")

    if role == CommunityRole.ADMIN and subject.community_role(community.id) == CommunityRole.MODERATOR:
        if not subject.is_org_admin_of(community.org_id):
            raise HTTPException(status_code=403, detail="Moderators cannot appoint admins")

    membership.role = role.value
    session.add(membership)
    await session.flush()

    log.info(
        "community.member_role_changed",
        community_id=str(community.id),
        user_id=str(user_id),
        role=role.value,
    )
    return membership
