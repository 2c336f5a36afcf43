"""
Community endpoints: CRUD, membership and join requests, tags, feed and
per-community notification preferences.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from communityx.core.auth import AuthenticatedUser, get_current_user
from communityx.core.database import get_session
from communityx.models.community import CommunityMember
from communityx.models.post import Tag
from communityx.services import communities as community_service
from communityx.services import feed as feed_service
from communityx.services import membership as membership_service
from communityx.services import notifications as notification_service
from communityx.services import tags as tag_service
from communityx.services.users import load_user_summaries
from communityx_shared.schemas.common import PostSort, SuccessResponse
from communityx_shared.schemas.communities import (
    AddMemberRequest,
    CommunityCreateRequest,
    CommunityListResponse,
    CommunityResponse,
    CommunityUpdateRequest,
    JoinRequestListResponse,
    JoinResponse,
    MemberListResponse,
    MemberResponse,
    MemberRoleRequest,
    NotificationPreferenceRequest,
    NotificationPreferenceResponse,
    TagCreateRequest,
    TagResponse,
    TagUpdateRequest,
)
from communityx_shared.schemas.posts import FeedPage

router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _tag_response(tag: Tag) -> TagResponse:
    return TagResponse(
        id=tag.id,
        name=tag.name,
        description=tag.description,
        color=tag.color,
        community_id=tag.community_id,
    )


async def _member_response(session: AsyncSession, membership: CommunityMember) -> MemberResponse:
    users = await load_user_summaries([membership.user_id], session)
    return MemberResponse(
        user=users[membership.user_id],
        role=membership.role,
        membership_type=membership.membership_type,
        status=membership.status,
        joined_at=membership.joined_at,
    )


# ---------------------------------------------------------------------------
# Communities
# ---------------------------------------------------------------------------


@router.get("", response_model=CommunityListResponse)
async def list_communities(
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return CommunityListResponse(
        data=await community_service.list_communities(session, auth.subject)
    )


@router.post("", response_model=CommunityResponse, status_code=201)
async def create_community(
    body: CommunityCreateRequest,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    community = await community_service.create_community(session, body, auth.subject)
    return community_service.to_response(community, auth.subject, member_count=1)


@router.get("/by-slug/{slug}", response_model=CommunityResponse)
async def get_community_by_slug(
    slug: str,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    community = await community_service.get_community_by_slug(session, slug, auth.subject)
    return await community_service.community_response(session, community, auth.subject)


@router.patch("/{community_id}", response_model=CommunityResponse)
async def update_community(
    community_id: uuid.UUID,
    body: CommunityUpdateRequest,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    community = await community_service.get_community_or_404(session, community_id)
    community = await community_service.update_community(session, community, body, auth.subject)
    return await community_service.community_response(session, community, auth.subject)


@router.delete("/{community_id}", response_model=SuccessResponse)
async def delete_community(
    community_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    community = await community_service.get_community_or_404(session, community_id)
    await community_service.delete_community(session, community, auth.subject)
    return SuccessResponse()


@router.get("/{community_id}/feed", response_model=FeedPage)
async def community_feed(
    community_id: uuid.UUID,
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    sort: PostSort = Query(PostSort.LATEST),
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    community = await community_service.get_community_or_404(session, community_id)
    return await feed_service.get_community_feed(
        session, community, auth.subject, limit=limit, offset=offset, sort=sort
    )


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------


@router.post("/{community_id}/join", response_model=JoinResponse)
async def join_community(
    community_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    community = await community_service.get_community_or_404(session, community_id)
    status = await membership_service.join_community(session, community, auth.subject)
    return JoinResponse(status=status)


@router.post("/{community_id}/leave", response_model=SuccessResponse)
async def leave_community(
    community_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    community = await community_service.get_community_or_404(session, community_id)
    await membership_service.leave_community(session, community, auth.subject)
    return SuccessResponse()


@router.get("/{community_id}/members", response_model=MemberListResponse)
async def list_members(
    community_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    community = await community_service.get_community_or_404(session, community_id)
    return MemberListResponse(
        data=await membership_service.list_members(session, community, auth.subject)
    )


@router.post("/{community_id}/members", response_model=MemberResponse, status_code=201)
async def add_member(
    community_id: uuid.UUID,
    body: AddMemberRequest,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    community = await community_service.get_community_or_404(session, community_id)
    membership = await membership_service.add_member(
        session, community, body.user_id, body.role, auth.subject
    )
    return await _member_response(session, membership)


@router.patch("/{community_id}/members/{user_id}", response_model=MemberResponse)
async def assign_member_role(
    community_id: uuid.UUID,
    user_id: uuid.UUID,
    body: MemberRoleRequest,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    community = await community_service.get_community_or_404(session, community_id)
    membership = await membership_service.assign_role(
        session, community, user_id, body.role, auth.subject
    )
    return await _member_response(session, membership)


@router.delete("/{community_id}/members/{user_id}", response_model=SuccessResponse)
async def remove_member(
    community_id: uuid.UUID,
    user_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    community = await community_service.get_community_or_404(session, community_id)
    await membership_service.remove_member(session, community, user_id, auth.subject)
    return SuccessResponse()


@router.get("/{community_id}/requests", response_model=JoinRequestListResponse)
async def list_join_requests(
    community_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    community = await community_service.get_community_or_404(session, community_id)
    return JoinRequestListResponse(
        data=await membership_service.list_join_requests(session, community, auth.subject)
    )


@router.post("/{community_id}/requests/{request_id}/approve", response_model=SuccessResponse)
async def approve_join_request(
    community_id: uuid.UUID,
    request_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    community = await community_service.get_community_or_404(session, community_id)
    await membership_service.review_join_request(
        session, community, request_id, auth.subject, approve=True
    )
    return SuccessResponse()


@router.post("/{community_id}/requests/{request_id}/reject", response_model=SuccessResponse)
async def reject_join_request(
    community_id: uuid.UUID,
    request_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    community = await community_service.get_community_or_404(session, community_id)
    await membership_service.review_join_request(
        session, community, request_id, auth.subject, approve=False
    )
    return SuccessResponse()


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------


@router.get("/{community_id}/tags", response_model=list[TagResponse])
async def list_tags(
    community_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    community = await community_service.get_community_or_404(session, community_id)
    tags = await tag_service.list_tags(session, community, auth.subject)
    return [_tag_response(t) for t in tags]


@router.post("/{community_id}/tags", response_model=TagResponse, status_code=201)
async def create_tag(
    community_id: uuid.UUID,
    body: TagCreateRequest,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    community = await community_service.get_community_or_404(session, community_id)
    tag = await tag_service.create_tag(session, community, body, auth.subject)
    return _tag_response(tag)


@router.patch("/{community_id}/tags/{tag_id}", response_model=TagResponse)
async def update_tag(
    community_id: uuid.UUID,
    tag_id: uuid.UUID,
    body: TagUpdateRequest,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    community = await community_service.get_community_or_404(session, community_id)
    tag = await tag_service.update_tag(session, community, tag_id, body, auth.subject)
    return _tag_response(tag)


@router.delete("/{community_id}/tags/{tag_id}", response_model=SuccessResponse)
async def delete_tag(
    community_id: uuid.UUID,
    tag_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    community = await community_service.get_community_or_404(session, community_id)
    await tag_service.delete_tag(session, community, tag_id, auth.subject)
    return SuccessResponse()


# ---------------------------------------------------------------------------
# Notification preference
# ---------------------------------------------------------------------------


@router.get("/{community_id}/notifications", response_model=NotificationPreferenceResponse)
async def get_notification_preference(
    community_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await community_service.get_community_or_404(session, community_id)
    enabled = await notification_service.get_community_preference(
        session, auth.user_id, community_id
    )
    return NotificationPreferenceResponse(community_id=community_id, enabled=enabled)


@router.put("/{community_id}/notifications", response_model=NotificationPreferenceResponse)
async def set_notification_preference(
    community_id: uuid.UUID,
    body: NotificationPreferenceRequest,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    enabled = await notification_service.set_community_preference(
        session, auth.user_id, community_id, body.enabled
    )
    return NotificationPreferenceResponse(community_id=community_id, enabled=enabled)
