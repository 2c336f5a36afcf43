"""
Organization endpoints: creation (app admins), members, invitations, communities, org feed.
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from communityx.core.auth import AuthenticatedUser, get_current_user, require_app_admin
from communityx.core.config import get_settings
from communityx.core.database import get_session
from communityx.core.mailer import send_org_invite
from communityx.services import communities as community_service
from communityx.services import feed as feed_service
from communityx.services import organizations as org_service
from communityx_shared.schemas.common import OrgRole, PostSort, SuccessResponse
from communityx_shared.schemas.communities import CommunityResponse
from communityx_shared.schemas.organizations import (
    OrgCreateRequest,
    OrgInviteRequest,
    OrgInviteResponse,
    OrgResponse,
)
from communityx_shared.schemas.posts import FeedPage
from communityx_shared.schemas.users import (
    OrgMemberListResponse,
    OrgMemberResponse,
    OrgMemberRoleUpdate,
)

router = APIRouter()


@router.post("", response_model=OrgResponse, status_code=201)
async def create_organization(
    body: OrgCreateRequest,
    auth: AuthenticatedUser = Depends(require_app_admin),
    session: AsyncSession = Depends(get_session),
):
    org = await org_service.create_org(body, session)
    return await org_service.org_response(org, session)


@router.get("/{org_id}", response_model=OrgResponse)
async def get_organization(
    org_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    org = await org_service.get_org_for_subject(org_id, auth.subject, session)
    return await org_service.org_response(org, session)


@router.get("/{org_id}/members", response_model=OrgMemberListResponse)
async def list_org_members(
    org_id: uuid.UUID,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=100),
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    org = await org_service.get_org_for_subject(org_id, auth.subject, session)
    users, total = await org_service.list_members(
        org, session, page=page, per_page=per_page, search=search
    )
    return OrgMemberListResponse(
        data=[
            OrgMemberResponse(
                id=u.id,
                name=u.name,
                email=u.email,
                image=u.image,
                org_role=OrgRole(u.org_role),
                created_at=u.created_at,
            )
            for u in users
        ],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.post("/{org_id}/invites", response_model=OrgInviteResponse, status_code=201)
async def invite_org_member(
    org_id: uuid.UUID,
    body: OrgInviteRequest,
    background_tasks: BackgroundTasks,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    org = await org_service.get_org_or_404(org_id, session)
    invite = await org_service.invite_member(org, body, auth.subject, session)

    link = f"{get_settings().app_base_url}/register?org={org.id}&invite={invite.token}"
    background_tasks.add_task(send_org_invite, invite.email, org.name, link)
    return OrgInviteResponse(
        id=invite.id,
        org_id=invite.org_id,
        email=invite.email,
        role=OrgRole(invite.role),
        token=invite.token,
        expires_at=invite.expires_at,
        accepted_at=invite.accepted_at,
    )


@router.patch("/{org_id}/members/{user_id}", response_model=OrgMemberResponse)
async def update_org_member_role(
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    body: OrgMemberRoleUpdate,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    org = await org_service.get_org_or_404(org_id, session)
    user = await org_service.set_member_role(org, user_id, body.role, auth.subject, session)
    return OrgMemberResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        image=user.image,
        org_role=OrgRole(user.org_role),
        created_at=user.created_at,
    )


@router.delete("/{org_id}/members/{user_id}", response_model=SuccessResponse)
async def remove_org_member(
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    org = await org_service.get_org_or_404(org_id, session)
    await org_service.remove_member(org, user_id, auth.subject, session)
    return SuccessResponse()


@router.get("/{org_id}/feed", response_model=FeedPage)
async def org_feed(
    org_id: uuid.UUID,
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    sort: PostSort = Query(PostSort.LATEST),
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await org_service.get_org_or_404(org_id, session)
    return await feed_service.get_org_feed(
        session, auth.subject, org_id=org_id, limit=limit, offset=offset, sort=sort
    )


@router.get("/{org_id}/communities", response_model=list[CommunityResponse])
async def list_org_communities(
    org_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await org_service.get_org_or_404(org_id, session)
    return await community_service.list_org_communities(session, org_id, auth.subject)
