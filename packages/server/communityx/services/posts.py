"""
Post service: create, edit and soft-delete posts.

All writes (post row, tag links, attachment links, poll and options) share the
request transaction. The new-post fan-out is scheduled by the caller once the
transaction has committed.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from communityx.core.permissions import (
    Action,
    Resource,
    Subject,
    can,
    ensure_can,
    post_creation_denied_message,
)
from communityx.core.sanitize import plain_text, sanitize_html
from communityx.models.community import Community
from communityx.models.post import Post
from communityx.services import attachments as attachment_service
from communityx.services import polls as poll_service
from communityx.services import tags as tag_service
from communityx.services.communities import (
    community_resource,
    get_community_or_404,
    post_resource,
)
from communityx.services.feed import get_live_post_or_404
from communityx_shared.schemas.common import CommunityRole, PostVisibility
from communityx_shared.schemas.posts import PostCreateRequest, PostUpdateRequest

log = structlog.get_logger()

UNTITLED_POST = "Untitled Post"


def _resolve_title(title: Optional[str], poll_question: Optional[str]) -> str:
    if title and title.strip():
        return title.strip()
    if poll_question and poll_question.strip():
        return poll_question.strip()
    return UNTITLED_POST


def _ensure_can_post_in(community: Community, subject: Subject) -> None:
    if can(subject, Action.CREATE_POST, community_resource(community)):
        return
    if subject.community_role(community.id) is None:
        raise HTTPException(
            status_code=403, detail="You must be a member to post in this community"
        )
    raise HTTPException(
        status_code=403,
        detail=post_creation_denied_message(CommunityRole(community.post_creation_min_role)),
    )


async def create_post(
    session: AsyncSession, req: PostCreateRequest, subject: Subject
) -> Post:
    if subject.org_id is None and not subject.is_app_admin:
        raise HTTPException(
            status_code=403, detail="You must belong to an organization to post"
        )

    community: Optional[Community] = None
    tag_ids: list[uuid.UUID] = []
    if req.community_id is not None:
        community = await get_community_or_404(session, req.community_id)
        _ensure_can_post_in(community, subject)
        tag_ids = await tag_service.validate_tag_ids(session, community.id, req.tag_ids)
    else:
        if req.tag_ids:
            raise HTTPException(status_code=400, detail="Tags can only be used in communities")
        ensure_can(
            subject,
            Action.CREATE_POST,
            Resource(org_id=subject.org_id),
            detail="You do not have permission to create posts",
        )

    org_id = community.org_id if community is not None else subject.org_id
    if community is None and org_id is None:
        raise HTTPException(
            status_code=400, detail="A post needs a community or an organization"
        )

    pending = await attachment_service.get_pending_attachments(
        session, subject.user_id, community.id if community else None
    )
    content = sanitize_html(req.content)
    if not plain_text(content) and not pending and req.poll is None:
        raise HTTPException(
            status_code=400, detail="Post must have content, attachments or a poll"
        )

    post = Post(
        title=_resolve_title(req.title, req.poll.question if req.poll else None),
        content=content,
        author_id=subject.user_id,
        org_id=org_id,
        community_id=community.id if community else None,
        visibility=(
            PostVisibility.COMMUNITY.value if community else PostVisibility.PUBLIC.value
        ),
    )
    session.add(post)
    await session.flush()

    if tag_ids:
        await tag_service.replace_post_tags(session, post.id, tag_ids)
    if pending:
        await attachment_service.link_attachments(session, pending, post.id)
    if req.poll is not None:
        await poll_service.create_poll_rows(session, post.id, req.poll)

    log.info(
        "post.created",
        post_id=str(post.id),
        author_id=str(subject.user_id),
        community_id=str(post.community_id) if post.community_id else None,
        attachments=len(pending),
        has_poll=req.poll is not None,
    )
    return post


async def _load_for_write(
    session: AsyncSession, post_id: uuid.UUID
) -> tuple[Post, Optional[Community]]:
    post = await get_live_post_or_404(session, post_id)
    community = await session.get(Community, post.community_id) if post.community_id else None
    return post, community


async def edit_post(
    session: AsyncSession, post_id: uuid.UUID, req: PostUpdateRequest, subject: Subject
) -> Post:
    post, community = await _load_for_write(session, post_id)
    ensure_can(
        subject,
        Action.EDIT_POST,
        post_resource(post, community),
        detail="You do not have permission to edit this post",
    )

    if req.title is not None:
        post.title = req.title.strip() or post.title
    if req.content is not None:
        post.content = sanitize_html(req.content)
    if req.tag_ids is not None:
        if community is None:
            if req.tag_ids:
                raise HTTPException(
                    status_code=400, detail="Tags can only be used in communities"
                )
        else:
            tag_ids = await tag_service.validate_tag_ids(session, community.id, req.tag_ids)
            await tag_service.replace_post_tags(session, post.id, tag_ids)
    if req.poll_options is not None:
        poll = await poll_service.get_poll_for_post(session, post.id)
        if poll is None:
            raise HTTPException(status_code=400, detail="This post does not have a poll")
        await poll_service.replace_options(session, poll, req.poll_options)

    post.updated_at = datetime.now(timezone.utc)
    session.add(post)
    await session.flush()

    log.info("post.updated", post_id=str(post.id), editor_id=str(subject.user_id))
    return post


async def delete_post(session: AsyncSession, post_id: uuid.UUID, subject: Subject) -> None:
    post, community = await _load_for_write(session, post_id)
    ensure_can(
        subject,
        Action.DELETE_POST,
        post_resource(post, community),
        detail="You do not have permission to delete this post",
    )

    post.is_deleted = True
    post.updated_at = datetime.now(timezone.utc)
    session.add(post)
    await session.flush()

    log.info("post.deleted", post_id=str(post.id), deleted_by=str(subject.user_id))
