"""
Poll service: poll creation, voting, results and closing.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from communityx.core.permissions import Action, Subject, can, ensure_can
from communityx.models.base import ensure_aware
from communityx.models.community import Community
from communityx.models.poll import Poll, PollOption, PollVote
from communityx.models.post import Post
from communityx.services.communities import post_resource
from communityx_shared.schemas.common import PollType
from communityx_shared.schemas.posts import PollCreate, PollOptionResult, PollResultsResponse

log = structlog.get_logger()


def is_expired(poll: Poll, now: Optional[datetime] = None) -> bool:
    if poll.expires_at is None:
        return False
    return ensure_aware(poll.expires_at) <= (now or datetime.now(timezone.utc))


def is_open(poll: Poll) -> bool:
    return not poll.is_closed and not is_expired(poll)


async def create_poll_rows(session: AsyncSession, post_id: uuid.UUID, data: PollCreate) -> Poll:
    """Insert a poll and its ordered options for ``post_id``."""
    if data.expires_at is not None and ensure_aware(data.expires_at) <= datetime.now(timezone.utc):
        raise HTTPException(status_code=400, detail="Poll expiry must be in the future")

    poll = Poll(
        post_id=post_id,
        question=data.question.strip(),
        poll_type=data.poll_type.value,
        expires_at=data.expires_at,
    )
    session.add(poll)
    await session.flush()

    for index, text in enumerate(data.options):
        session.add(PollOption(poll_id=poll.id, text=text, order_index=index))
    await session.flush()
    return poll


async def get_poll_for_post(session: AsyncSession, post_id: uuid.UUID) -> Optional[Poll]:
    result = await session.execute(select(Poll).where(Poll.post_id == post_id))
    return result.scalar_one_or_none()


async def _load_poll_context(
    session: AsyncSession, poll_id: uuid.UUID
) -> tuple[Poll, Post, Optional[Community]]:
    poll = await session.get(Poll, poll_id)
    if not poll:
        raise HTTPException(status_code=404, detail="Poll not found")
    post = await session.get(Post, poll.post_id)
    if not post or post.is_deleted:
        raise HTTPException(status_code=404, detail="Poll not found")
    community = await session.get(Community, post.community_id) if post.community_id else None
    return poll, post, community


async def _options(session: AsyncSession, poll_id: uuid.UUID) -> list[PollOption]:
    result = await session.execute(
        select(PollOption)
        .where(PollOption.poll_id == poll_id)
        .order_by(PollOption.order_index.asc())
    )
    return list(result.scalars().all())


async def _user_votes(
    session: AsyncSession, poll_id: uuid.UUID, user_id: uuid.UUID
) -> list[uuid.UUID]:
    result = await session.execute(
        select(PollVote.poll_option_id).where(
            PollVote.poll_id == poll_id, PollVote.user_id == user_id
        )
    )
    return [row[0] for row in result.all()]


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


async def create_poll(
    session: AsyncSession, post_id: uuid.UUID, data: PollCreate, subject: Subject
) -> Poll:
    post = await session.get(Post, post_id)
    if not post or post.is_deleted:
        raise HTTPException(status_code=404, detail="Post not found")
    community = await session.get(Community, post.community_id) if post.community_id else None
    ensure_can(
        subject,
        Action.EDIT_POST,
        post_resource(post, community),
        detail="You do not have permission to add a poll to this post",
    )
    if await get_poll_for_post(session, post.id):
        raise HTTPException(status_code=400, detail="This post already has a poll")

    poll = await create_poll_rows(session, post.id, data)
    log.info("poll.created", poll_id=str(poll.id), post_id=str(post.id))
    return poll


async def get_results(
    session: AsyncSession, poll: Poll, post: Post, community: Optional[Community], subject: Subject
) -> PollResultsResponse:
    options = await _options(session, poll.id)
    result = await session.execute(
        select(PollVote.poll_option_id, func.count())
        .where(PollVote.poll_id == poll.id)
        .group_by(PollVote.poll_option_id)
    )
    counts = {option_id: count for option_id, count in result.all()}
    total = sum(counts.values())
    user_votes = await _user_votes(session, poll.id, subject.user_id)

    return PollResultsResponse(
        poll_id=poll.id,
        post_id=poll.post_id,
        question=poll.question,
        poll_type=poll.poll_type,
        is_closed=poll.is_closed or is_expired(poll),
        expires_at=poll.expires_at,
        options=[
            PollOptionResult(
                id=option.id,
                text=option.text,
                order_index=option.order_index,
                votes=counts.get(option.id, 0),
                percentage=round(counts.get(option.id, 0) * 100 / total) if total else 0,
            )
            for option in options
        ],
        total_votes=total,
        user_votes=user_votes,
        can_vote=(
            is_open(poll)
            and not user_votes
            and can(subject, Action.VIEW_POST, post_resource(post, community))
        ),
    )


async def get_poll_results(
    session: AsyncSession, poll_id: uuid.UUID, subject: Subject
) -> PollResultsResponse:
    poll, post, community = await _load_poll_context(session, poll_id)
    ensure_can(subject, Action.VIEW_POST, post_resource(post, community))
    return await get_results(session, poll, post, community, subject)


async def vote(
    session: AsyncSession,
    poll_id: uuid.UUID,
    option_ids: list[uuid.UUID],
    subject: Subject,
) -> PollResultsResponse:
    poll, post, community = await _load_poll_context(session, poll_id)
    ensure_can(
        subject,
        Action.VIEW_POST,
        post_resource(post, community),
        detail="You do not have permission to vote on this poll",
    )
    if not is_open(poll):
        raise HTTPException(status_code=400, detail="This poll is closed")

    selected = list(dict.fromkeys(option_ids))
    valid_ids = {option.id for option in await _options(session, poll.id)}
    if any(option_id not in valid_ids for option_id in selected):
        raise HTTPException(status_code=400, detail="Invalid poll option")
    if poll.poll_type == PollType.SINGLE.value and len(selected) > 1:
        raise HTTPException(
            status_code=400, detail="Only one option can be selected for this poll"
        )
    if await _user_votes(session, poll.id, subject.user_id):
        raise HTTPException(status_code=400, detail="You have already voted on this poll")

    for option_id in selected:
        session.add(PollVote(poll_id=poll.id, poll_option_id=option_id, user_id=subject.user_id))
    await session.flush()

    log.info("poll.voted", poll_id=str(poll.id), user_id=str(subject.user_id), options=len(selected))
    return await get_results(session, poll, post, community, subject)


async def close_poll(
    session: AsyncSession, poll_id: uuid.UUID, subject: Subject
) -> PollResultsResponse:
    poll, post, community = await _load_poll_context(session, poll_id)
    ensure_can(
        subject,
        Action.EDIT_POST,
        post_resource(post, community),
        detail="You do not have permission to close this poll",
    )
    poll.is_closed = True
    poll.updated_at = datetime.now(timezone.utc)
    session.add(poll)
    await session.flush()

    log.info("poll.closed", poll_id=str(poll.id))
    return await get_results(session, poll, post, community, subject)


async def replace_options(session: AsyncSession, poll: Poll, options: list[str]) -> None:
    """Swap a poll's options; only allowed before anyone has voted."""
    cleaned = [o.strip() for o in options]
    if any(not 1 <= len(o) <= 100 for o in cleaned):
        raise HTTPException(
            status_code=400, detail="Poll options must be between 1 and 100 characters"
        )
    votes = await session.scalar(
        select(func.count()).select_from(PollVote).where(PollVote.poll_id == poll.id)
    )
    if votes:
        raise HTTPException(
            status_code=400, detail="Poll options cannot be changed after voting has started"
        )

    for option in await _options(session, poll.id):
        await session.delete(option)
    await session.flush()
    for index, text in enumerate(cleaned):
        session.add(PollOption(poll_id=poll.id, text=text, order_index=index))
    await session.flush()
