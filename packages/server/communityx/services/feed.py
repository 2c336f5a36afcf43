"""
Content query service: post view-models, community and org feeds, and the
single-post view with its comment tree.

Soft-deleted posts are filtered in SQL before counting and paging, so
``total_count`` and ``has_next_page`` always describe visible rows.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from typing import Optional, Sequence

from fastapi import HTTPException
from sqlalchemy import and_, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from communityx.core.permissions import Action, Resource, Subject, ensure_can
from communityx.models.base import ensure_aware
from communityx.models.community import Community
from communityx.models.poll import Poll
from communityx.models.post import Comment, Post, PostTag, Tag
from communityx.services import attachments as attachment_service
from communityx.services import polls as poll_service
from communityx.services.communities import community_resource, post_resource
from communityx.services.users import load_user_summaries
from communityx_shared.schemas.common import (
    CommunityType,
    OrgRole,
    PostSort,
    UserSummary,
    page_envelope,
)
from communityx_shared.schemas.posts import (
    CommentResponse,
    CommunitySummary,
    FeedPage,
    PostDetailResponse,
    PostResponse,
    TagSummary,
)

DELETED_COMMENT_PLACEHOLDER = "[deleted]"


# ---------------------------------------------------------------------------
# Query helpers
# ---------------------------------------------------------------------------


def live_comment_counts():
    """Subquery: post_id -> number of non-deleted comments."""
    return (
        select(Comment.post_id, func.count().label("comment_count"))
        .where(Comment.is_deleted == False)  # noqa: E712
        .group_by(Comment.post_id)
        .subquery()
    )


def order_clauses(sort: PostSort, comment_count, *tiebreakers) -> list:
    if sort == PostSort.OLDEST:
        return [Post.created_at.asc(), *tiebreakers]
    if sort == PostSort.MOST_COMMENTED:
        return [comment_count.desc(), *tiebreakers]
    return [Post.created_at.desc(), *tiebreakers]


def visible_post_filter(subject: Subject):
    """SQL form of ``can(subject, VIEW_POST, post)``; ``None`` means no restriction.

    The query must outer-join ``Community`` on ``Post.community_id``.
    """
    if subject.is_app_admin:
        return None
    clauses = [Community.type == CommunityType.PUBLIC.value]
    if subject.community_roles:
        clauses.append(Post.community_id.in_(list(subject.community_roles)))
    if subject.org_role == OrgRole.ADMIN:
        clauses.append(Community.org_id == subject.org_id)
    if subject.org_role is not None:
        clauses.append(
            and_(
                Post.community_id.is_(None),
                or_(Post.org_id.is_(None), Post.org_id == subject.org_id),
            )
        )
    return or_(*clauses)


# ---------------------------------------------------------------------------
# View-models
# ---------------------------------------------------------------------------


async def _tags_by_post(
    session: AsyncSession, post_ids: Sequence[uuid.UUID]
) -> dict[uuid.UUID, list[TagSummary]]:
    result = await session.execute(
        select(PostTag.post_id, Tag)
        .join(Tag, Tag.id == PostTag.tag_id)
        .where(PostTag.post_id.in_(post_ids))
        .order_by(Tag.name.asc())
    )
    grouped: dict[uuid.UUID, list[TagSummary]] = defaultdict(list)
    for post_id, tag in result.all():
        grouped[post_id].append(TagSummary(id=tag.id, name=tag.name, color=tag.color))
    return grouped


async def _comment_counts(
    session: AsyncSession, post_ids: Sequence[uuid.UUID]
) -> dict[uuid.UUID, int]:
    result = await session.execute(
        select(Comment.post_id, func.count())
        .where(Comment.post_id.in_(post_ids), Comment.is_deleted == False)  # noqa: E712
        .group_by(Comment.post_id)
    )
    return {post_id: count for post_id, count in result.all()}


async def _communities(
    session: AsyncSession, community_ids: set[uuid.UUID]
) -> dict[uuid.UUID, Community]:
    if not community_ids:
        return {}
    result = await session.execute(select(Community).where(Community.id.in_(community_ids)))
    return {c.id: c for c in result.scalars().all()}


async def build_post_views(
    session: AsyncSession, posts: Sequence[Post]
) -> list[PostResponse]:
    """Convert Post rows to PostResponse with authors, tags, counts and attachments.

    Every relation is fetched in one batched query; output order follows ``posts``.
    """
    if not posts:
        return []
    post_ids = [p.id for p in posts]

    authors = await load_user_summaries([p.author_id for p in posts], session)
    communities = await _communities(session, {p.community_id for p in posts if p.community_id})
    tags = await _tags_by_post(session, post_ids)
    counts = await _comment_counts(session, post_ids)
    attachments = await attachment_service.list_post_attachments(session, post_ids)
    poll_result = await session.execute(select(Poll.post_id).where(Poll.post_id.in_(post_ids)))
    with_poll = {row[0] for row in poll_result.all()}

    views = []
    for post in posts:
        community = communities.get(post.community_id) if post.community_id else None
        views.append(
            PostResponse(
                id=post.id,
                title=post.title,
                content=post.content,
                author=authors.get(post.author_id),
                org_id=post.org_id,
                community_id=post.community_id,
                community=(
                    CommunitySummary(id=community.id, name=community.name, slug=community.slug)
                    if community
                    else None
                ),
                visibility=post.visibility,
                tags=tags.get(post.id, []),
                attachments=[
                    attachment_service.to_response(a) for a in attachments.get(post.id, [])
                ],
                comment_count=counts.get(post.id, 0),
                has_poll=post.id in with_poll,
                created_at=post.created_at,
                updated_at=post.updated_at,
            )
        )
    return views


# ---------------------------------------------------------------------------
# Feeds
# ---------------------------------------------------------------------------


async def _paged_posts(
    session: AsyncSession,
    filters: list,
    *,
    limit: int,
    offset: int,
    sort: PostSort,
) -> FeedPage:
    total = await session.scalar(select(func.count()).select_from(Post).where(*filters)) or 0

    counts = live_comment_counts()
    comment_count = func.coalesce(counts.c.comment_count, 0)
    result = await session.execute(
        select(Post)
        .outerjoin(counts, counts.c.post_id == Post.id)
        .where(*filters)
        .order_by(*order_clauses(sort, comment_count, Post.created_at.desc(), Post.id.asc()))
        .offset(offset)
        .limit(limit)
    )
    items = await build_post_views(session, list(result.scalars().all()))
    return FeedPage(items=items, **page_envelope(offset, limit, total))


async def get_community_feed(
    session: AsyncSession,
    community: Community,
    subject: Subject,
    *,
    limit: int = 10,
    offset: int = 0,
    sort: PostSort = PostSort.LATEST,
) -> FeedPage:
    ensure_can(
        subject,
        Action.VIEW_COMMUNITY,
        community_resource(community),
        detail="You do not have access to this community",
    )
    filters = [Post.community_id == community.id, Post.is_deleted == False]  # noqa: E712
    return await _paged_posts(session, filters, limit=limit, offset=offset, sort=sort)


async def get_org_feed(
    session: AsyncSession,
    subject: Subject,
    *,
    org_id: Optional[uuid.UUID] = None,
    limit: int = 10,
    offset: int = 0,
    sort: PostSort = PostSort.LATEST,
) -> FeedPage:
    """Org-wide posts (no community). App admins without an org see every org's."""
    target_org = org_id or subject.org_id
    filters = [Post.community_id.is_(None), Post.is_deleted == False]  # noqa: E712
    if target_org is None:
        if not subject.is_app_admin:
            raise HTTPException(status_code=403, detail="You are not a member of an organization")
    else:
        ensure_can(subject, Action.VIEW_POST, Resource(org_id=target_org))
        filters.append(Post.org_id == target_org)
    return await _paged_posts(session, filters, limit=limit, offset=offset, sort=sort)


# ---------------------------------------------------------------------------
# Single post
# ---------------------------------------------------------------------------


def build_comment_tree(
    comments: Sequence[Comment], authors: dict[uuid.UUID, UserSummary]
) -> list[CommentResponse]:
    """Nest comments by parent_id.

    A deleted comment is dropped unless it still has visible replies, in which
    case it stays as a placeholder so the thread keeps its shape.
    """
    known = {c.id for c in comments}
    children: dict[Optional[uuid.UUID], list[Comment]] = defaultdict(list)
    for comment in sorted(comments, key=lambda c: (ensure_aware(c.created_at), str(c.id))):
        parent = comment.parent_id if comment.parent_id in known else None
        children[parent].append(comment)

    def build(parent_id: Optional[uuid.UUID]) -> list[CommentResponse]:
        nodes = []
        for comment in children.get(parent_id, []):
            replies = build(comment.id)
            if comment.is_deleted and not replies:
                continue
            nodes.append(
                CommentResponse(
                    id=comment.id,
                    content=DELETED_COMMENT_PLACEHOLDER if comment.is_deleted else comment.content,
                    author=None if comment.is_deleted else authors.get(comment.author_id),
                    post_id=comment.post_id,
                    parent_id=comment.parent_id,
                    is_deleted=comment.is_deleted,
                    created_at=comment.created_at,
                    replies=replies,
                )
            )
        return nodes

    return build(None)


async def get_live_post_or_404(session: AsyncSession, post_id: uuid.UUID) -> Post:
    post = await session.get(Post, post_id)
    if not post or post.is_deleted:
        raise HTTPException(status_code=404, detail="Post not found")
    return post


async def get_post_detail(
    session: AsyncSession, post_id: uuid.UUID, subject: Subject
) -> PostDetailResponse:
    post = await get_live_post_or_404(session, post_id)
    community = await session.get(Community, post.community_id) if post.community_id else None
    ensure_can(
        subject,
        Action.VIEW_POST,
        post_resource(post, community),
        detail="You do not have access to this post",
    )

    [view] = await build_post_views(session, [post])

    poll_results = None
    poll = await poll_service.get_poll_for_post(session, post.id)
    if poll:
        poll_results = await poll_service.get_results(session, poll, post, community, subject)

    result = await session.execute(select(Comment).where(Comment.post_id == post.id))
    comments = list(result.scalars().all())
    authors = await load_user_summaries([c.author_id for c in comments], session)

    return PostDetailResponse(
        **view.model_dump(),
        poll=poll_results,
        comments=build_comment_tree(comments, authors),
    )
