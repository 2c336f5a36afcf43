"""
Chat service: one-to-one direct message threads.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy import func, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from communityx.core.permissions import Subject
from communityx.core.sanitize import plain_text
from communityx.models.chat import ChatThread, DirectMessage
from communityx.models.organization import Organization
from communityx.models.user import User
from communityx.services.notifications import truncate
from communityx.services.users import get_user_or_404, load_user_summaries
from communityx_shared.schemas.chat import MessageListResponse, MessageResponse, ThreadResponse

log = structlog.get_logger()


def _ordered_pair(a: uuid.UUID, b: uuid.UUID) -> tuple[uuid.UUID, uuid.UUID]:
    return (a, b) if str(a) < str(b) else (b, a)


def other_participant(thread: ChatThread, user_id: uuid.UUID) -> uuid.UUID:
    return thread.user2_id if thread.user1_id == user_id else thread.user1_id


async def _ensure_can_message(session: AsyncSession, subject: Subject, recipient: User) -> None:
    if subject.is_app_admin:
        return
    if subject.org_id is not None and recipient.org_id == subject.org_id:
        return
    org = await session.get(Organization, subject.org_id) if subject.org_id else None
    if org is None or not org.allow_cross_org_dm:
        raise HTTPException(
            status_code=403, detail="You can only message members of your organization"
        )


async def get_or_create_thread(
    session: AsyncSession, subject: Subject, recipient_id: uuid.UUID
) -> ChatThread:
    if recipient_id == subject.user_id:
        raise HTTPException(status_code=400, detail="You cannot message yourself")
    recipient = await get_user_or_404(recipient_id, session)
    await _ensure_can_message(session, subject, recipient)

    user1_id, user2_id = _ordered_pair(subject.user_id, recipient_id)
    result = await session.execute(
        select(ChatThread).where(ChatThread.user1_id == user1_id, ChatThread.user2_id == user2_id)
    )
    thread = result.scalar_one_or_none()
    if thread:
        return thread

    thread = ChatThread(user1_id=user1_id, user2_id=user2_id, org_id=subject.org_id)
    session.add(thread)
    await session.flush()
    log.info("chat.thread_created", thread_id=str(thread.id))
    return thread


async def _get_thread_for_participant(
    session: AsyncSession, thread_id: uuid.UUID, user_id: uuid.UUID
) -> ChatThread:
    thread = await session.get(ChatThread, thread_id)
    if not thread:
        raise HTTPException(status_code=404, detail="Thread not found")
    if user_id not in (thread.user1_id, thread.user2_id):
        raise HTTPException(status_code=403, detail="You are not a participant in this thread")
    return thread


async def thread_response(
    session: AsyncSession, thread: ChatThread, user_id: uuid.UUID
) -> ThreadResponse:
    [view] = await _thread_views(session, [thread], user_id)
    return view


async def _thread_views(
    session: AsyncSession, threads: list[ChatThread], user_id: uuid.UUID
) -> list[ThreadResponse]:
    if not threads:
        return []
    others = {t.id: other_participant(t, user_id) for t in threads}
    users = await load_user_summaries(others.values(), session)
    result = await session.execute(
        select(DirectMessage.thread_id, func.count())
        .where(
            DirectMessage.thread_id.in_([t.id for t in threads]),
            DirectMessage.recipient_id == user_id,
            DirectMessage.is_read == False,  # noqa: E712
        )
        .group_by(DirectMessage.thread_id)
    )
    unread = {thread_id: count for thread_id, count in result.all()}
    return [
        ThreadResponse(
            id=t.id,
            other_user=users[others[t.id]],
            last_message_at=t.last_message_at,
            last_message_preview=t.last_message_preview,
            unread_count=unread.get(t.id, 0),
        )
        for t in threads
        if others[t.id] in users
    ]


async def list_threads(session: AsyncSession, user_id: uuid.UUID) -> list[ThreadResponse]:
    """Threads the user takes part in, most recently active first."""
    result = await session.execute(
        select(ChatThread)
        .where(or_(ChatThread.user1_id == user_id, ChatThread.user2_id == user_id))
        .order_by(
            func.coalesce(ChatThread.last_message_at, ChatThread.created_at).desc(),
            ChatThread.id.asc(),
        )
    )
    return await _thread_views(session, list(result.scalars().all()), user_id)


def message_response(message: DirectMessage) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        thread_id=message.thread_id,
        sender_id=message.sender_id,
        recipient_id=message.recipient_id,
        content=message.content,
        is_read=message.is_read,
        created_at=message.created_at,
    )


async def get_messages(
    session: AsyncSession,
    thread_id: uuid.UUID,
    user_id: uuid.UUID,
    *,
    limit: int = 50,
    before: Optional[datetime] = None,
) -> MessageListResponse:
    """Newest ``limit`` messages (optionally older than ``before``), oldest first.

    Messages addressed to the caller are marked read.
    """
    thread = await _get_thread_for_participant(session, thread_id, user_id)

    query = select(DirectMessage).where(DirectMessage.thread_id == thread.id)
    if before is not None:
        query = query.where(DirectMessage.created_at < before)
    result = await session.execute(
        query.order_by(DirectMessage.created_at.desc(), DirectMessage.id.desc()).limit(limit + 1)
    )
    rows = list(result.scalars().all())
    has_more = len(rows) > limit
    messages = list(reversed(rows[:limit]))

    await session.execute(
        update(DirectMessage)
        .where(
            DirectMessage.thread_id == thread.id,
            DirectMessage.recipient_id == user_id,
            DirectMessage.is_read == False,  # noqa: E712
        )
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )

    return MessageListResponse(
        data=[message_response(m) for m in messages],
        has_more=has_more,
    )


async def send_message(
    session: AsyncSession, thread_id: uuid.UUID, subject: Subject, content: str
) -> DirectMessage:
    thread = await _get_thread_for_participant(session, thread_id, subject.user_id)
    text = content.strip()
    if not plain_text(text):
        raise HTTPException(status_code=400, detail="Message cannot be empty")

    message = DirectMessage(
        thread_id=thread.id,
        sender_id=subject.user_id,
        recipient_id=other_participant(thread, subject.user_id),
        content=text,
    )
    session.add(message)
    await session.flush()

    thread.last_message_at = message.created_at or datetime.now(timezone.utc)
    thread.last_message_preview = truncate(text)
    thread.updated_at = datetime.now(timezone.utc)
    session.add(thread)
    await session.flush()

    log.info("chat.message_sent", thread_id=str(thread.id), sender_id=str(subject.user_id))
    return message


async def unread_count(session: AsyncSession, user_id: uuid.UUID) -> int:
    return await session.scalar(
        select(func.count())
        .select_from(DirectMessage)
        .where(DirectMessage.recipient_id == user_id, DirectMessage.is_read == False)  # noqa: E712
    ) or 0
