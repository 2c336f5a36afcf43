"""
Attachment pipeline: presigned upload, upload confirmation, proxied access
and video conversion callbacks.

Upload lifecycle:
    REQUESTED  presigned PUT issued for a key under the uploader's email prefix
    UPLOADED   client PUT straight to R2 (never touches this server)
    CONFIRMED  metadata row persisted, public_url rewritten to /api/images/{id}
"""

from __future__ import annotations

import re
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from communityx.core import storage
from communityx.core.auth import AuthenticatedUser
from communityx.core.config import get_settings
from communityx.core.permissions import Action, Subject, can, ensure_can
from communityx.models.attachment import Attachment
from communityx.models.community import Community
from communityx.models.post import Post
from communityx.services.communities import community_resource, post_resource
from communityx_shared.schemas.common import AttachmentType
from communityx_shared.schemas.media import (
    ConfirmUploadRequest,
    ConversionCompleteRequest,
    ConversionErrorRequest,
    PresignedUrlResponse,
)
from communityx_shared.schemas.posts import AttachmentResponse

log = structlog.get_logger()

ALLOWED_IMAGE_TYPES = frozenset({
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
})
ALLOWED_VIDEO_TYPES = frozenset({
    "video/mp4",
    "video/webm",
    "video/quicktime",
})

# Unlinked uploads older than this are not attached to a new post
PENDING_WINDOW = timedelta(hours=1)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")
_REPEATED_UNDERSCORES = re.compile(r"_+")


# ---------------------------------------------------------------------------
# Keys & validation
# ---------------------------------------------------------------------------


def sanitize_filename(filename: str) -> str:
    safe = _UNSAFE_FILENAME_CHARS.sub("_", filename)
    safe = _REPEATED_UNDERSCORES.sub("_", safe)
    return safe.lower()


def build_upload_key(email: str, filename: str, *, now_ms: Optional[int] = None) -> str:
    """``{lowercased email}/{unix ms}_{sanitized filename}``"""
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{email.lower()}/{timestamp}_{sanitize_filename(filename)}"


def key_belongs_to(key: str, email: str) -> bool:
    return key.startswith(f"{email.lower()}/")


def ensure_key_owner(key: str, email: str) -> None:
    if not key_belongs_to(key, email):
        raise HTTPException(status_code=403, detail="Invalid file key")


def classify_content_type(content_type: str) -> AttachmentType:
    """Map a MIME type onto an attachment type; 400 for anything not allowed."""
    normalized = content_type.split(";")[0].strip().lower()
    if normalized in ALLOWED_IMAGE_TYPES:
        return AttachmentType.IMAGE
    if normalized in ALLOWED_VIDEO_TYPES:
        return AttachmentType.VIDEO
    raise HTTPException(
        status_code=400,
        detail="Invalid file type. Allowed: JPEG, PNG, GIF, WebP images and MP4, WebM, MOV videos",
    )


def _check_size(size: Optional[int], attachment_type: AttachmentType) -> None:
    if size is None:
        return
    settings = get_settings()
    limit = (
        settings.max_image_size_bytes
        if attachment_type == AttachmentType.IMAGE
        else settings.max_video_size_bytes
    )
    if size > limit:
        raise HTTPException(
            status_code=400,
            detail=f"File too large. Maximum size is {limit // (1024 * 1024)}MB",
        )


def proxy_url(attachment_id: uuid.UUID) -> str:
    return f"/api/images/{attachment_id}"


def to_response(attachment: Attachment) -> AttachmentResponse:
    return AttachmentResponse(
        id=attachment.id,
        filename=attachment.filename,
        mimetype=attachment.mimetype,
        type=attachment.type,
        size=attachment.size,
        url=attachment.public_url or proxy_url(attachment.id),
        thumbnail_url=attachment.thumbnail_url,
        post_id=attachment.post_id,
        community_id=attachment.community_id,
        created_at=attachment.created_at,
    )


# ---------------------------------------------------------------------------
# REQUESTED
# ---------------------------------------------------------------------------


def create_upload_url(
    auth: Optional[AuthenticatedUser],
    key: Optional[str],
    content_type: Optional[str],
) -> PresignedUrlResponse:
    if auth is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not key or not content_type:
        raise HTTPException(status_code=400, detail="Missing key or contentType")

    ensure_key_owner(key, auth.email)
    classify_content_type(content_type)

    settings = get_settings()
    upload_url = storage.presign_upload(key, content_type, settings.upload_url_expiry_seconds)
    log.info("attachment.upload_url_issued", user_id=str(auth.user_id), key=key)
    return PresignedUrlResponse(
        upload_url=upload_url,
        key=key,
        public_url=storage.public_object_url(key),
        expires_in=settings.upload_url_expiry_seconds,
    )


# ---------------------------------------------------------------------------
# CONFIRMED
# ---------------------------------------------------------------------------


async def confirm_upload(
    session: AsyncSession,
    auth: Optional[AuthenticatedUser],
    req: ConfirmUploadRequest,
) -> Attachment:
    """Persist the attachment row and point its public URL at the proxy route.

    Insert and URL rewrite share the request transaction: a failure in
    between leaves no confirmed row behind.
    """
    if auth is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not req.key:
        raise HTTPException(status_code=400, detail="Missing file key")

    ensure_key_owner(req.key, auth.email)
    attachment_type = classify_content_type(req.mimetype)
    if req.type is not None and req.type != attachment_type:
        raise HTTPException(
            status_code=400, detail="Attachment type does not match content type"
        )
    _check_size(req.size, attachment_type)

    if req.post_id is not None:
        post = await session.get(Post, req.post_id)
        if not post or post.is_deleted:
            raise HTTPException(status_code=404, detail="Post not found")
        if post.author_id != auth.user_id:
            raise HTTPException(
                status_code=403, detail="You can only attach files to your own posts"
            )
    if req.community_id is not None:
        community = await session.get(Community, req.community_id)
        if not community:
            raise HTTPException(status_code=404, detail="Community not found")
        ensure_can(
            auth.subject,
            Action.CREATE_POST,
            community_resource(community),
            detail="You cannot upload to this community",
        )

    filename = req.name or req.key.rsplit("/", 1)[-1]
    attachment = Attachment(
        filename=filename,
        mimetype=req.mimetype,
        type=attachment_type.value,
        size=req.size,
        r2_key=req.key,
        r2_url=req.url or storage.public_object_url(req.key),
        uploaded_by=auth.user_id,
        post_id=req.post_id,
        community_id=req.community_id,
    )
    session.add(attachment)
    await session.flush()

    attachment.public_url = proxy_url(attachment.id)
    session.add(attachment)
    await session.flush()

    log.info(
        "attachment.confirmed",
        attachment_id=str(attachment.id),
        user_id=str(auth.user_id),
        type=attachment.type,
    )
    return attachment


async def get_pending_attachments(
    session: AsyncSession,
    user_id: uuid.UUID,
    community_id: Optional[uuid.UUID] = None,
) -> list[Attachment]:
    """The user's confirmed-but-unlinked uploads from the last hour."""
    cutoff = datetime.now(timezone.utc) - PENDING_WINDOW
    query = select(Attachment).where(
        Attachment.uploaded_by == user_id,
        Attachment.post_id.is_(None),
        Attachment.created_at >= cutoff,
    )
    if community_id is not None:
        query = query.where(Attachment.community_id == community_id)
    result = await session.execute(query.order_by(Attachment.created_at.asc()))
    return list(result.scalars().all())


async def link_attachments(
    session: AsyncSession, attachments: list[Attachment], post_id: uuid.UUID
) -> None:
    for attachment in attachments:
        attachment.post_id = post_id
        session.add(attachment)
    await session.flush()


async def list_post_attachments(
    session: AsyncSession, post_ids: list[uuid.UUID]
) -> dict[uuid.UUID, list[Attachment]]:
    if not post_ids:
        return {}
    result = await session.execute(
        select(Attachment)
        .where(Attachment.post_id.in_(post_ids))
        .order_by(Attachment.created_at.asc())
    )
    grouped: dict[uuid.UUID, list[Attachment]] = {}
    for attachment in result.scalars().all():
        grouped.setdefault(attachment.post_id, []).append(attachment)
    return grouped


# ---------------------------------------------------------------------------
# Proxied access
# ---------------------------------------------------------------------------


async def get_attachment_or_404(session: AsyncSession, attachment_id: uuid.UUID) -> Attachment:
    attachment = await session.get(Attachment, attachment_id)
    if not attachment:
        raise HTTPException(status_code=404, detail="Image not found")
    return attachment


async def can_access_attachment(
    session: AsyncSession, attachment: Attachment, subject: Subject
) -> bool:
    if subject.is_app_admin or attachment.uploaded_by == subject.user_id:
        return True

    if attachment.post_id is not None:
        post = await session.get(Post, attachment.post_id)
        if not post or post.is_deleted:
            return False
        community = (
            await session.get(Community, post.community_id) if post.community_id else None
        )
        return can(subject, Action.VIEW_POST, post_resource(post, community))

    if attachment.community_id is not None:
        community = await session.get(Community, attachment.community_id)
        if not community:
            return False
        return (
            subject.community_role(community.id) is not None
            or subject.is_org_admin_of(community.org_id)
        )

    return False


async def download_url_for(
    session: AsyncSession,
    attachment_id: uuid.UUID,
    auth: Optional[AuthenticatedUser],
) -> str:
    if auth is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    attachment = await get_attachment_or_404(session, attachment_id)
    if not await can_access_attachment(session, attachment, auth.subject):
        raise HTTPException(status_code=403, detail="Access denied")
    return storage.presign_download(attachment.r2_key)


# ---------------------------------------------------------------------------
# Video conversion callbacks
# ---------------------------------------------------------------------------


async def complete_conversion(
    session: AsyncSession, req: ConversionCompleteRequest
) -> Attachment:
    if req.attachment_id is None or not req.converted_key:
        raise HTTPException(
            status_code=400, detail="Missing required fields: attachment_id and converted_key"
        )
    attachment = await get_attachment_or_404(session, req.attachment_id)

    attachment.r2_key = req.converted_key
    attachment.r2_url = req.converted_url or storage.public_object_url(req.converted_key)
    if req.thumbnail_url:
        attachment.thumbnail_url = req.thumbnail_url
    attachment.type = AttachmentType.VIDEO.value
    attachment.mimetype = "video/mp4"
    attachment.updated_at = datetime.now(timezone.utc)
    session.add(attachment)
    await session.flush()

    log.info(
        "attachment.video_converted",
        attachment_id=str(attachment.id),
        key=attachment.r2_key,
    )
    return attachment


async def fail_conversion(session: AsyncSession, req: ConversionErrorRequest) -> None:
    """Record a failed conversion, pointing the row back at the original upload."""
    if req.attachment_id is None:
        raise HTTPException(status_code=400, detail="Missing attachment_id")

    log.error(
        "attachment.video_conversion_failed",
        attachment_id=str(req.attachment_id),
        error=req.error,
    )

    if not (req.original_key and req.original_url):
        return

    attachment = await session.get(Attachment, req.attachment_id)
    if not attachment:
        log.warning("attachment.revert_skipped", attachment_id=str(req.attachment_id))
        return

    attachment.r2_key = req.original_key
    attachment.r2_url = req.original_url
    attachment.updated_at = datetime.now(timezone.utc)
    session.add(attachment)
    await session.flush()
    log.info("attachment.reverted", attachment_id=str(attachment.id), key=attachment.r2_key)
