"""
Comment service: threaded comments with soft delete.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from communityx.core.permissions import Action, Subject, can, ensure_can
from communityx.core.sanitize import plain_text, sanitize_html
from communityx.models.community import Community
from communityx.models.post import Comment, Post
from communityx.services.communities import post_resource
from communityx.services.feed import get_live_post_or_404
from communityx.services.users import load_user_summaries
from communityx_shared.schemas.posts import CommentCreateRequest, CommentResponse

log = structlog.get_logger()


async def _post_context(
    session: AsyncSession, post_id: uuid.UUID
) -> tuple[Post, Optional[Community]]:
    post = await get_live_post_or_404(session, post_id)
    community = await session.get(Community, post.community_id) if post.community_id else None
    return post, community


async def _get_live_comment_or_404(
    session: AsyncSession, post_id: uuid.UUID, comment_id: uuid.UUID
) -> Comment:
    comment = await session.get(Comment, comment_id)
    if not comment or comment.post_id != post_id or comment.is_deleted:
        raise HTTPException(status_code=404, detail="Comment not found")
    return comment


async def to_response(session: AsyncSession, comment: Comment) -> CommentResponse:
    authors = await load_user_summaries([comment.author_id], session)
    return CommentResponse(
        id=comment.id,
        content=comment.content,
        author=authors.get(comment.author_id),
        post_id=comment.post_id,
        parent_id=comment.parent_id,
        is_deleted=comment.is_deleted,
        created_at=comment.created_at,
    )


def _clean_body(content: str) -> str:
    cleaned = sanitize_html(content)
    if not plain_text(cleaned):
        raise HTTPException(status_code=400, detail="Comment cannot be empty")
    return cleaned


async def create_comment(
    session: AsyncSession,
    post_id: uuid.UUID,
    req: CommentCreateRequest,
    subject: Subject,
) -> Comment:
    post, community = await _post_context(session, post_id)
    ensure_can(
        subject,
        Action.VIEW_POST,
        post_resource(post, community),
        detail="You do not have access to this post",
    )

    if req.parent_id is not None:
        parent = await session.get(Comment, req.parent_id)
        if not parent or parent.post_id != post.id:
            raise HTTPException(
                status_code=400, detail="Parent comment does not belong to this post"
            )

    comment = Comment(
        content=_clean_body(req.content),
        post_id=post.id,
        author_id=subject.user_id,
        parent_id=req.parent_id,
    )
    session.add(comment)
    await session.flush()

    log.info(
        "comment.created",
        comment_id=str(comment.id),
        post_id=str(post.id),
        author_id=str(subject.user_id),
    )
    return comment


async def update_comment(
    session: AsyncSession,
    post_id: uuid.UUID,
    comment_id: uuid.UUID,
    content: str,
    subject: Subject,
) -> Comment:
    await get_live_post_or_404(session, post_id)
    comment = await _get_live_comment_or_404(session, post_id, comment_id)
    if comment.author_id != subject.user_id:
        raise HTTPException(status_code=403, detail="You can only edit your own comments")

    comment.content = _clean_body(content)
    comment.updated_at = datetime.now(timezone.utc)
    session.add(comment)
    await session.flush()

    log.info("comment.updated", comment_id=str(comment.id))
    return comment


async def delete_comment(
    session: AsyncSession, post_id: uuid.UUID, comment_id: uuid.UUID, subject: Subject
) -> None:
    post, community = await _post_context(session, post_id)
    comment = await _get_live_comment_or_404(session, post_id, comment_id)

    # Moderation rights come from delete_post on the post's community or org,
    # not from owning the post.
    resource = replace(post_resource(post, community), owner_id=None)
    if comment.author_id != subject.user_id and not can(subject, Action.DELETE_POST, resource):
        raise HTTPException(
            status_code=403, detail="You do not have permission to delete this comment"
        )

    comment.is_deleted = True
    comment.updated_at = datetime.now(timezone.utc)
    session.add(comment)
    await session.flush()

    log.info("comment.deleted", comment_id=str(comment.id), deleted_by=str(subject.user_id))
