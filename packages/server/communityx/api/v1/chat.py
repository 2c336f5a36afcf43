"""
Chat endpoints: direct message threads between two users.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from communityx.core.auth import AuthenticatedUser, get_current_user
from communityx.core.database import get_session
from communityx.services import chat as chat_service
from communityx.services import notifications as notification_service
from communityx_shared.schemas.chat import (
    MessageCreateRequest,
    MessageListResponse,
    MessageResponse,
    ThreadCreateRequest,
    ThreadListResponse,
    ThreadResponse,
    UnreadCountResponse,
)

router = APIRouter()


@router.get("/threads", response_model=ThreadListResponse)
async def list_threads(
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return ThreadListResponse(data=await chat_service.list_threads(session, auth.user_id))


@router.post("/threads", response_model=ThreadResponse)
async def open_thread(
    body: ThreadCreateRequest,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Return the thread with ``recipient_id``, creating it on first contact."""
    thread = await chat_service.get_or_create_thread(session, auth.subject, body.recipient_id)
    return await chat_service.thread_response(session, thread, auth.user_id)


@router.get("/threads/{thread_id}/messages", response_model=MessageListResponse)
async def get_messages(
    thread_id: uuid.UUID,
    limit: int = Query(50, ge=1, le=100),
    before: Optional[datetime] = Query(None),
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await chat_service.get_messages(
        session, thread_id, auth.user_id, limit=limit, before=before
    )


@router.post("/threads/{thread_id}/messages", response_model=MessageResponse, status_code=201)
async def send_message(
    thread_id: uuid.UUID,
    body: MessageCreateRequest,
    background_tasks: BackgroundTasks,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    message = await chat_service.send_message(session, thread_id, auth.subject, body.content)
    background_tasks.add_task(
        notification_service.notify_new_message,
        message.recipient_id,
        auth.user.name,
        message.content,
        message.thread_id,
    )
    return chat_service.message_response(message)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return UnreadCountResponse(count=await chat_service.unread_count(session, auth.user_id))
