"""
Post endpoints: posts, comments, polls and saved posts.

New posts and comments schedule their notification fan-out as a background
task, so delivery starts only after the request transaction has committed.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from communityx.core.auth import AuthenticatedUser, get_current_user
from communityx.core.database import get_session
from communityx.services import comments as comment_service
from communityx.services import feed as feed_service
from communityx.services import notifications as notification_service
from communityx.services import polls as poll_service
from communityx.services import posts as post_service
from communityx.services import saved_posts as saved_service
from communityx_shared.schemas.common import PostSort, SuccessResponse
from communityx_shared.schemas.posts import (
    CommentCreateRequest,
    CommentResponse,
    CommentUpdateRequest,
    PollCreate,
    PollResultsResponse,
    PollVoteRequest,
    PostCreateRequest,
    PostDetailResponse,
    PostUpdateRequest,
    SavedMapRequest,
    SavedPostsPage,
)

router = APIRouter()


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------


@router.post("/posts", response_model=PostDetailResponse, status_code=201)
async def create_post(
    body: PostCreateRequest,
    background_tasks: BackgroundTasks,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    post = await post_service.create_post(session, body, auth.subject)
    background_tasks.add_task(notification_service.notify_new_post, post.id)
    return await feed_service.get_post_detail(session, post.id, auth.subject)


@router.get("/posts/{post_id}", response_model=PostDetailResponse)
async def get_post(
    post_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await feed_service.get_post_detail(session, post_id, auth.subject)


@router.patch("/posts/{post_id}", response_model=PostDetailResponse)
async def edit_post(
    post_id: uuid.UUID,
    body: PostUpdateRequest,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await post_service.edit_post(session, post_id, body, auth.subject)
    return await feed_service.get_post_detail(session, post_id, auth.subject)


@router.delete("/posts/{post_id}", response_model=SuccessResponse)
async def delete_post(
    post_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await post_service.delete_post(session, post_id, auth.subject)
    return SuccessResponse()


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------


@router.post("/posts/{post_id}/comments", response_model=CommentResponse, status_code=201)
async def create_comment(
    post_id: uuid.UUID,
    body: CommentCreateRequest,
    background_tasks: BackgroundTasks,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    comment = await comment_service.create_comment(session, post_id, body, auth.subject)
    background_tasks.add_task(notification_service.notify_new_comment, comment.id)
    return await comment_service.to_response(session, comment)


@router.patch("/posts/{post_id}/comments/{comment_id}", response_model=CommentResponse)
async def update_comment(
    post_id: uuid.UUID,
    comment_id: uuid.UUID,
    body: CommentUpdateRequest,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    comment = await comment_service.update_comment(
        session, post_id, comment_id, body.content, auth.subject
    )
    return await comment_service.to_response(session, comment)


@router.delete("/posts/{post_id}/comments/{comment_id}", response_model=SuccessResponse)
async def delete_comment(
    post_id: uuid.UUID,
    comment_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await comment_service.delete_comment(session, post_id, comment_id, auth.subject)
    return SuccessResponse()


# ---------------------------------------------------------------------------
# Polls
# ---------------------------------------------------------------------------


@router.post("/posts/{post_id}/poll", response_model=PollResultsResponse, status_code=201)
async def create_poll(
    post_id: uuid.UUID,
    body: PollCreate,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    poll = await poll_service.create_poll(session, post_id, body, auth.subject)
    return await poll_service.get_poll_results(session, poll.id, auth.subject)


@router.get("/polls/{poll_id}", response_model=PollResultsResponse)
async def get_poll_results(
    poll_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await poll_service.get_poll_results(session, poll_id, auth.subject)


@router.post("/polls/{poll_id}/vote", response_model=PollResultsResponse)
async def vote(
    poll_id: uuid.UUID,
    body: PollVoteRequest,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await poll_service.vote(session, poll_id, body.option_ids, auth.subject)


@router.post("/polls/{poll_id}/close", response_model=PollResultsResponse)
async def close_poll(
    poll_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await poll_service.close_poll(session, poll_id, auth.subject)


# ---------------------------------------------------------------------------
# Saved posts
# ---------------------------------------------------------------------------


@router.get("/saved", response_model=SavedPostsPage)
async def list_saved_posts(
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    sort: PostSort = Query(PostSort.LATEST),
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await saved_service.get_saved_posts_for_user(
        session, auth.subject, limit=limit, offset=offset, sort=sort
    )


@router.post("/saved/map", response_model=dict[uuid.UUID, bool])
async def saved_map(
    body: SavedMapRequest,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await saved_service.get_user_saved_map(session, auth.user_id, body.post_ids)


@router.post("/posts/{post_id}/save", response_model=SuccessResponse)
async def save_post(
    post_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await saved_service.save_post(session, auth.subject, post_id)
    return SuccessResponse()


@router.delete("/posts/{post_id}/save", response_model=SuccessResponse)
async def unsave_post(
    post_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await saved_service.unsave_post(session, auth.user_id, post_id)
    return SuccessResponse()
