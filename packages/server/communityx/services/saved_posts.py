"""
Saved posts: per-user bookmarks and the paginated saved-posts listing.

Only bookmarks whose post is still live and still visible to the viewer are
counted or returned; leaving a private community hides what was saved there.
Ordering is applied in SQL before LIMIT/OFFSET so consecutive pages never
overlap.
"""

from __future__ import annotations

import uuid
from typing import Iterable

import structlog
from sqlalchemy import delete, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from communityx.core.permissions import Action, Subject, ensure_can
from communityx.models.community import Community
from communityx.models.post import Post, SavedPost
from communityx.services.communities import post_resource
from communityx.services.feed import (
    build_post_views,
    get_live_post_or_404,
    live_comment_counts,
    order_clauses,
    visible_post_filter,
)
from communityx_shared.schemas.common import PostSort, page_envelope
from communityx_shared.schemas.posts import PostSource, SavedPostItem, SavedPostsPage

log = structlog.get_logger()


def _insert_ignore(session: AsyncSession):
    dialect = session.get_bind().dialect.name
    insert = sqlite_insert if dialect == "sqlite" else pg_insert
    return insert(SavedPost)


async def save_post(session: AsyncSession, subject: Subject, post_id: uuid.UUID) -> None:
    """Bookmark a post the subject can view. Saving twice is a no-op."""
    post = await get_live_post_or_404(session, post_id)
    community = (
        await session.get(Community, post.community_id) if post.community_id else None
    )
    ensure_can(
        subject,
        Action.VIEW_POST,
        post_resource(post, community),
        detail="You do not have access to this post",
    )
    user_id = subject.user_id
    stmt = (
        _insert_ignore(session)
        .values(user_id=user_id, post_id=post_id)
        .on_conflict_do_nothing(index_elements=["user_id", "post_id"])
    )
    await session.execute(stmt)
    log.info("post.saved", user_id=str(user_id), post_id=str(post_id))


async def unsave_post(session: AsyncSession, user_id: uuid.UUID, post_id: uuid.UUID) -> None:
    await session.execute(
        delete(SavedPost).where(SavedPost.user_id == user_id, SavedPost.post_id == post_id)
    )
    log.info("post.unsaved", user_id=str(user_id), post_id=str(post_id))


def post_source(post: Post) -> PostSource:
    if post.community_id is not None:
        return PostSource(type="community", org_id=post.org_id, community_id=post.community_id)
    return PostSource(type="org", org_id=post.org_id)


async def get_saved_posts_for_user(
    session: AsyncSession,
    subject: Subject,
    *,
    limit: int = 10,
    offset: int = 0,
    sort: PostSort = PostSort.LATEST,
) -> SavedPostsPage:
    live = [SavedPost.user_id == subject.user_id, Post.is_deleted == False]  # noqa: E712
    visible = visible_post_filter(subject)
    if visible is not None:
        live.append(visible)

    total = await session.scalar(
        select(func.count())
        .select_from(SavedPost)
        .join(Post, Post.id == SavedPost.post_id)
        .outerjoin(Community, Community.id == Post.community_id)
        .where(*live)
    ) or 0

    counts = live_comment_counts()
    comment_count = func.coalesce(counts.c.comment_count, 0)
    result = await session.execute(
        select(Post, SavedPost.created_at)
        .join(SavedPost, SavedPost.post_id == Post.id)
        .outerjoin(Community, Community.id == Post.community_id)
        .outerjoin(counts, counts.c.post_id == Post.id)
        .where(*live)
        .order_by(*order_clauses(sort, comment_count, SavedPost.created_at.desc(), Post.id.asc()))
        .offset(offset)
        .limit(limit)
    )
    rows = result.all()
    views = await build_post_views(session, [post for post, _ in rows])

    items = [
        SavedPostItem(**view.model_dump(), saved_at=saved_at, source=post_source(post))
        for view, (post, saved_at) in zip(views, rows)
    ]
    return SavedPostsPage(items=items, **page_envelope(offset, limit, total))


async def get_user_saved_map(
    session: AsyncSession, user_id: uuid.UUID, post_ids: Iterable[uuid.UUID]
) -> dict[uuid.UUID, bool]:
    """``{post_id: True}`` for each of ``post_ids`` the user has saved."""
    wanted = list(dict.fromkeys(post_ids))
    if not wanted:
        return {}
    result = await session.execute(
        select(SavedPost.post_id).where(
            SavedPost.user_id == user_id, SavedPost.post_id.in_(wanted)
        )
    )
    return {row[0]: True for row in result.all()}
