"""
Notification service: push subscriptions, in-app notifications, per-community
preferences and the new-post fan-out.

Delivery is best-effort and at-most-once: the fan-out runs after the request
has committed, in its own session, and never raises into the caller.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

import structlog
from fastapi import HTTPException
from pywebpush import WebPushException, webpush
from sqlalchemy import delete, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from communityx.core.config import get_settings
from communityx.core.database import get_session_context
from communityx.models.community import Community, CommunityMember
from communityx.models.notification import (
    Notification,
    NotificationPreference,
    PushSubscription,
)
from communityx.models.organization import Organization
from communityx.models.post import Comment, Post
from communityx.models.user import User
from communityx_shared.schemas.common import (
    AppRole,
    MembershipStatus,
    NotificationType,
    OrgRole,
)
from communityx_shared.schemas.notifications import (
    NotificationListResponse,
    NotificationResponse,
    PushSubscribeRequest,
)

log = structlog.get_logger()

NOTIFICATION_ICON = "/icon.png"
TRUNCATE_AT = 100

# Web push failure statuses and how they are reported
PUSH_FAILURES = {
    400: "bad_request",
    401: "vapid_unauthorized",
    410: "subscription_gone",
    413: "payload_too_large",
    429: "rate_limited",
}


def truncate(text: str, limit: int = TRUNCATE_AT) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def post_url(post: Post, community: Optional[Community]) -> str:
    if community is not None:
        return f"/communities/{community.slug}/posts/{post.id}"
    return f"/posts/{post.id}"


def build_push_payload(title: str, body: str, url: str) -> dict[str, Any]:
    return {
        "command": "notify",
        "data": {"title": title, "body": body, "icon": NOTIFICATION_ICON, "url": url},
    }


# ---------------------------------------------------------------------------
# Push subscriptions
# ---------------------------------------------------------------------------


async def subscribe_push(
    session: AsyncSession, user_id: uuid.UUID, req: PushSubscribeRequest
) -> PushSubscription:
    """Register a browser endpoint; an endpoint moves to whoever subscribed last."""
    result = await session.execute(
        select(PushSubscription).where(PushSubscription.endpoint == req.endpoint)
    )
    subscription = result.scalar_one_or_none()
    if subscription is None:
        subscription = PushSubscription(
            user_id=user_id,
            endpoint=req.endpoint,
            p256dh=req.keys.p256dh,
            auth=req.keys.auth,
        )
    else:
        subscription.user_id = user_id
        subscription.p256dh = req.keys.p256dh
        subscription.auth = req.keys.auth
        subscription.updated_at = datetime.now(timezone.utc)
    session.add(subscription)
    await session.flush()

    log.info("push.subscribed", user_id=str(user_id), subscription_id=str(subscription.id))
    return subscription


async def unsubscribe_push(session: AsyncSession, user_id: uuid.UUID, endpoint: str) -> None:
    await session.execute(
        delete(PushSubscription).where(
            PushSubscription.user_id == user_id, PushSubscription.endpoint == endpoint
        )
    )
    log.info("push.unsubscribed", user_id=str(user_id))


def _send_webpush(subscription_info: dict, data: str, private_key: str, subject: str) -> None:
    webpush(
        subscription_info=subscription_info,
        data=data,
        vapid_private_key=private_key,
        vapid_claims={"sub": subject},
    )


async def send_push(
    session: AsyncSession, user_ids: Iterable[uuid.UUID], payload: dict[str, Any]
) -> int:
    """Push ``payload`` to every subscription of ``user_ids``. Returns deliveries."""
    settings = get_settings()
    if not settings.vapid_public_key or not settings.vapid_private_key:
        log.warning("push.skipped", reason="vapid_not_configured")
        return 0

    ids = list(dict.fromkeys(user_ids))
    if not ids:
        return 0
    result = await session.execute(
        select(PushSubscription).where(PushSubscription.user_id.in_(ids))
    )
    subscriptions = list(result.scalars().all())
    if not subscriptions:
        return 0

    data = json.dumps(payload)
    outcomes = await asyncio.gather(
        *(
            asyncio.to_thread(
                _send_webpush,
                {"endpoint": sub.endpoint, "keys": {"p256dh": sub.p256dh, "auth": sub.auth}},
                data,
                settings.vapid_private_key,
                settings.vapid_subject,
            )
            for sub in subscriptions
        ),
        return_exceptions=True,
    )

    delivered = 0
    for subscription, outcome in zip(subscriptions, outcomes):
        if not isinstance(outcome, BaseException):
            delivered += 1
            continue

        status = None
        if isinstance(outcome, WebPushException) and outcome.response is not None:
            status = outcome.response.status_code
        log.warning(
            "push.failed",
            user_id=str(subscription.user_id),
            status=status,
            reason=PUSH_FAILURES.get(status, "unexpected"),
            error=str(outcome),
        )
        if status == 410:
            await session.delete(subscription)

    await session.flush()
    log.info("push.sent", delivered=delivered, attempted=len(subscriptions))
    return delivered


# ---------------------------------------------------------------------------
# In-app notifications
# ---------------------------------------------------------------------------


async def _record_and_push(
    session: AsyncSession,
    recipient_ids: list[uuid.UUID],
    *,
    title: str,
    body: str,
    url: str,
    notification_type: NotificationType,
    data: Optional[dict[str, Any]] = None,
) -> None:
    for recipient_id in recipient_ids:
        session.add(
            Notification(
                recipient_id=recipient_id,
                title=title,
                body=body,
                type=notification_type.value,
                data={"url": url, **(data or {})},
            )
        )
    await session.flush()
    await send_push(session, recipient_ids, build_push_payload(title, body, url))


def to_response(notification: Notification) -> NotificationResponse:
    return NotificationResponse(
        id=notification.id,
        title=notification.title,
        body=notification.body,
        type=notification.type,
        data=notification.data,
        is_read=notification.is_read,
        created_at=notification.created_at,
    )


async def list_notifications(
    session: AsyncSession,
    user_id: uuid.UUID,
    *,
    limit: int = 50,
    unread_only: bool = False,
) -> NotificationListResponse:
    query = select(Notification).where(Notification.recipient_id == user_id)
    if unread_only:
        query = query.where(Notification.is_read == False)  # noqa: E712
    result = await session.execute(
        query.order_by(Notification.created_at.desc(), Notification.id.asc()).limit(limit)
    )
    unread = await session.scalar(
        select(func.count())
        .select_from(Notification)
        .where(Notification.recipient_id == user_id, Notification.is_read == False)  # noqa: E712
    )
    return NotificationListResponse(
        items=[to_response(n) for n in result.scalars().all()],
        unread_count=unread or 0,
    )


async def mark_read(
    session: AsyncSession,
    user_id: uuid.UUID,
    ids: list[uuid.UUID],
    mark_all: bool = False,
) -> None:
    stmt = update(Notification).where(Notification.recipient_id == user_id)
    if not mark_all:
        if not ids:
            return
        stmt = stmt.where(Notification.id.in_(ids))
    await session.execute(stmt.values(is_read=True))


async def delete_notification(
    session: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID
) -> None:
    notification = await session.get(Notification, notification_id)
    if not notification or notification.recipient_id != user_id:
        raise HTTPException(status_code=404, detail="Notification not found")
    await session.delete(notification)
    await session.flush()


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------


async def get_community_preference(
    session: AsyncSession, user_id: uuid.UUID, community_id: uuid.UUID
) -> bool:
    """Notifications are on unless the user opted out of this community."""
    preference = await session.get(NotificationPreference, (user_id, community_id))
    return preference.enabled if preference else True


async def set_community_preference(
    session: AsyncSession, user_id: uuid.UUID, community_id: uuid.UUID, enabled: bool
) -> bool:
    if not await session.get(Community, community_id):
        raise HTTPException(status_code=404, detail="Community not found")
    preference = await session.get(NotificationPreference, (user_id, community_id))
    if preference is None:
        preference = NotificationPreference(
            user_id=user_id, community_id=community_id, enabled=enabled
        )
    else:
        preference.enabled = enabled
        preference.updated_at = datetime.now(timezone.utc)
    session.add(preference)
    await session.flush()
    log.info(
        "notification.preference_set",
        user_id=str(user_id),
        community_id=str(community_id),
        enabled=enabled,
    )
    return enabled


# ---------------------------------------------------------------------------
# Fan-out
# ---------------------------------------------------------------------------


async def new_post_recipients(
    session: AsyncSession, post: Post, community: Optional[Community]
) -> list[uuid.UUID]:
    """Who hears about a new post, minus the author and anyone who opted out.

    Community post: active community members, org admins of the community's
    org and app admins. Org-wide post: members of the org and app admins.
    """
    app_admins = select(User.id).where(User.app_role == AppRole.ADMIN.value)

    if community is not None:
        members = select(CommunityMember.user_id).where(
            CommunityMember.community_id == community.id,
            CommunityMember.status == MembershipStatus.ACTIVE.value,
        )
        result = await session.execute(members)
        candidates = [row[0] for row in result.all()]
        if community.org_id is not None:
            result = await session.execute(
                select(User.id).where(
                    User.org_id == community.org_id, User.org_role == OrgRole.ADMIN.value
                )
            )
            candidates.extend(row[0] for row in result.all())
    else:
        candidates = []
        if post.org_id is not None:
            result = await session.execute(select(User.id).where(User.org_id == post.org_id))
            candidates.extend(row[0] for row in result.all())

    result = await session.execute(app_admins)
    candidates.extend(row[0] for row in result.all())

    opted_out: set[uuid.UUID] = set()
    if community is not None:
        result = await session.execute(
            select(NotificationPreference.user_id).where(
                NotificationPreference.community_id == community.id,
                NotificationPreference.enabled == False,  # noqa: E712
            )
        )
        opted_out = {row[0] for row in result.all()}

    return [
        user_id
        for user_id in dict.fromkeys(candidates)
        if user_id != post.author_id and user_id not in opted_out
    ]


async def fan_out_new_post(session: AsyncSession, post_id: uuid.UUID) -> int:
    """Record and push the new-post notification. Returns the recipient count."""
    post = await session.get(Post, post_id)
    if not post or post.is_deleted:
        log.warning("notification.post_missing", post_id=str(post_id))
        return 0
    community = await session.get(Community, post.community_id) if post.community_id else None
    author = await session.get(User, post.author_id)

    if community is not None:
        where = community.name
    else:
        org = await session.get(Organization, post.org_id) if post.org_id else None
        where = org.name if org else "your organization"

    recipients = await new_post_recipients(session, post, community)
    if not recipients:
        return 0

    await _record_and_push(
        session,
        recipients,
        title=f"New post in {where}",
        body=f'"{truncate(post.title)}" by {author.name if author else "someone"}',
        url=post_url(post, community),
        notification_type=NotificationType.POST,
        data={"post_id": str(post.id)},
    )
    log.info("notification.post_fanout", post_id=str(post.id), recipients=len(recipients))
    return len(recipients)


async def notify_comment(session: AsyncSession, comment_id: uuid.UUID) -> None:
    comment = await session.get(Comment, comment_id)
    if not comment:
        return
    post = await session.get(Post, comment.post_id)
    if not post or post.is_deleted or post.author_id == comment.author_id:
        return
    community = await session.get(Community, post.community_id) if post.community_id else None
    author = await session.get(User, comment.author_id)

    await _record_and_push(
        session,
        [post.author_id],
        title=f"{author.name if author else 'Someone'} commented on your post",
        body=truncate(post.title),
        url=post_url(post, community),
        notification_type=NotificationType.COMMENT,
        data={"post_id": str(post.id), "comment_id": str(comment.id)},
    )


async def notify_message(
    session: AsyncSession,
    recipient_id: uuid.UUID,
    sender_name: str,
    content: str,
    thread_id: uuid.UUID,
) -> None:
    await _record_and_push(
        session,
        [recipient_id],
        title=f"New message from {sender_name}",
        body=truncate(content),
        url=f"/chat/{thread_id}",
        notification_type=NotificationType.MESSAGE,
        data={"thread_id": str(thread_id)},
    )


# ---------------------------------------------------------------------------
# Background entry points (scheduled with FastAPI BackgroundTasks)
# ---------------------------------------------------------------------------


async def notify_new_post(post_id: uuid.UUID) -> None:
    try:
        async with get_session_context() as session:
            await fan_out_new_post(session, post_id)
    except Exception:
        log.exception("notification.post_fanout_failed", post_id=str(post_id))


async def notify_new_comment(comment_id: uuid.UUID) -> None:
    try:
        async with get_session_context() as session:
            await notify_comment(session, comment_id)
    except Exception:
        log.exception("notification.comment_failed", comment_id=str(comment_id))


async def notify_new_message(
    recipient_id: uuid.UUID, sender_name: str, content: str, thread_id: uuid.UUID
) -> None:
    try:
        async with get_session_context() as session:
            await notify_message(session, recipient_id, sender_name, content, thread_id)
    except Exception:
        log.exception("notification.message_failed", thread_id=str(thread_id))
