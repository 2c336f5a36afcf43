"""
Attachment upload, video conversion callback and link preview schemas.
"""

from __future__ import annotations

import uuid
from typing import Optional

from pydantic import BaseModel, Field

from .common import AttachmentType


class PresignedUrlResponse(BaseModel):
    upload_url: str
    key: str
    public_url: str
    expires_in: int


class ConfirmUploadRequest(BaseModel):
    key: Optional[str] = None
    url: Optional[str] = None
    name: Optional[str] = None
    size: Optional[int] = Field(default=None, ge=0)
    post_id: Optional[uuid.UUID] = None
    community_id: Optional[uuid.UUID] = None
    mimetype: str = "image/jpeg"
    # Derived from mimetype; a conflicting value is rejected
    type: Optional[AttachmentType] = None


class ConversionCompleteRequest(BaseModel):
    attachment_id: Optional[uuid.UUID] = None
    converted_key: Optional[str] = None
    converted_url: Optional[str] = None
    thumbnail_url: Optional[str] = None


class ConversionErrorRequest(BaseModel):
    attachment_id: Optional[uuid.UUID] = None
    error: Optional[str] = None
    original_key: Optional[str] = None
    original_url: Optional[str] = None


class LinkPreviewResponse(BaseModel):
    title: str
    description: str
    image: str
    url: str
    domain: str
