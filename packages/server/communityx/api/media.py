"""
Media routes: attachment upload/confirm/proxy, video conversion callbacks and
link previews. Mounted at /api.
"""

from __future__ import annotations

import secrets
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from communityx.core.auth import AuthenticatedUser, get_optional_user
from communityx.core.config import get_settings
from communityx.core.database import get_session
from communityx.services import attachments as attachment_service
from communityx.services import link_preview as link_preview_service
from communityx_shared.schemas.common import SuccessResponse
from communityx_shared.schemas.media import (
    ConfirmUploadRequest,
    ConversionCompleteRequest,
    ConversionErrorRequest,
    LinkPreviewResponse,
    PresignedUrlResponse,
)
from communityx_shared.schemas.posts import AttachmentResponse

router = APIRouter()


def verify_callback_secret(x_callback_secret: Optional[str] = Header(None)) -> None:
    """Video worker callbacks must echo the shared secret when one is configured."""
    expected = get_settings().video_callback_secret
    if not expected:
        return
    if not x_callback_secret or not secrets.compare_digest(x_callback_secret, expected):
        raise HTTPException(status_code=401, detail="Invalid callback secret")


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------


@router.get("/images/presigned-url", response_model=PresignedUrlResponse)
async def presigned_url(
    key: Optional[str] = Query(None),
    content_type: Optional[str] = Query(None, alias="contentType"),
    auth: Optional[AuthenticatedUser] = Depends(get_optional_user),
):
    return attachment_service.create_upload_url(auth, key, content_type)


@router.post("/images/confirm-upload", response_model=AttachmentResponse)
async def confirm_upload(
    body: ConfirmUploadRequest,
    auth: Optional[AuthenticatedUser] = Depends(get_optional_user),
    session: AsyncSession = Depends(get_session),
):
    attachment = await attachment_service.confirm_upload(session, auth, body)
    return attachment_service.to_response(attachment)


@router.get("/images/{attachment_id}")
async def get_image(
    attachment_id: uuid.UUID,
    auth: Optional[AuthenticatedUser] = Depends(get_optional_user),
    session: AsyncSession = Depends(get_session),
):
    url = await attachment_service.download_url_for(session, attachment_id, auth)
    return RedirectResponse(url, status_code=307)


# ---------------------------------------------------------------------------
# Video conversion callbacks
# ---------------------------------------------------------------------------


@router.post(
    "/video/conversion-complete",
    response_model=SuccessResponse,
    dependencies=[Depends(verify_callback_secret)],
)
async def conversion_complete(
    body: ConversionCompleteRequest,
    session: AsyncSession = Depends(get_session),
):
    await attachment_service.complete_conversion(session, body)
    return SuccessResponse()


@router.post(
    "/video/conversion-error",
    response_model=SuccessResponse,
    dependencies=[Depends(verify_callback_secret)],
)
async def conversion_error(
    body: ConversionErrorRequest,
    session: AsyncSession = Depends(get_session),
):
    await attachment_service.fail_conversion(session, body)
    return SuccessResponse()


# ---------------------------------------------------------------------------
# Link preview
# ---------------------------------------------------------------------------


@router.get("/link-preview", response_model=LinkPreviewResponse)
async def link_preview(url: Optional[str] = Query(None)):
    return await link_preview_service.fetch_link_preview(url)
