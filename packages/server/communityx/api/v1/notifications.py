"""
Notification endpoints: in-app notification inbox and web push subscriptions.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from communityx.core.auth import AuthenticatedUser, get_current_user
from communityx.core.database import get_session
from communityx.services import notifications as notification_service
from communityx_shared.schemas.common import SuccessResponse
from communityx_shared.schemas.notifications import (
    MarkReadRequest,
    NotificationListResponse,
    PushSubscribeRequest,
    PushUnsubscribeRequest,
)

router = APIRouter()


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    limit: int = Query(50, ge=1, le=200),
    unread_only: bool = Query(False),
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await notification_service.list_notifications(
        session, auth.user_id, limit=limit, unread_only=unread_only
    )


@router.post("/read", response_model=SuccessResponse)
async def mark_read(
    body: MarkReadRequest,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await notification_service.mark_read(session, auth.user_id, body.ids, mark_all=body.all)
    return SuccessResponse()


@router.delete("/{notification_id}", response_model=SuccessResponse)
async def delete_notification(
    notification_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await notification_service.delete_notification(session, auth.user_id, notification_id)
    return SuccessResponse()


@router.post("/push/subscribe", response_model=SuccessResponse, status_code=201)
async def subscribe(
    body: PushSubscribeRequest,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await notification_service.subscribe_push(session, auth.user_id, body)
    return SuccessResponse()


@router.post("/push/unsubscribe", response_model=SuccessResponse)
async def unsubscribe(
    body: PushUnsubscribeRequest,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await notification_service.unsubscribe_push(session, auth.user_id, body.endpoint)
    return SuccessResponse()
