"""
Object storage (Cloudflare R2 through the S3 API).

Only presigning happens here; bytes never pass through the application.
Presigning is a local signature computation, no network round-trip.
"""

from __future__ import annotations

from functools import lru_cache

import boto3
from botocore.config import Config

from communityx.core.config import get_settings


@lru_cache
def get_s3_client():
    settings = get_settings()
    return boto3.client(
        "s3",
        endpoint_url=settings.r2_endpoint_url or None,
        aws_access_key_id=settings.r2_access_key_id or None,
        aws_secret_access_key=settings.r2_secret_access_key or None,
        region_name="auto",
        config=Config(signature_version="s3v4"),
    )


def presign_upload(key: str, content_type: str, expires_in: int | None = None) -> str:
    """Presigned PUT URL; the client must send the same Content-Type."""
    settings = get_settings()
    return get_s3_client().generate_presigned_url(
        "put_object",
        Params={
            "Bucket": settings.r2_bucket_name,
            "Key": key,
            "ContentType": content_type,
        },
        ExpiresIn=expires_in or settings.upload_url_expiry_seconds,
    )


def presign_download(key: str, expires_in: int | None = None) -> str:
    settings = get_settings()
    return get_s3_client().generate_presigned_url(
        "get_object",
        Params={"Bucket": settings.r2_bucket_name, "Key": key},
        ExpiresIn=expires_in or settings.download_url_expiry_seconds,
    )


def public_object_url(key: str) -> str:
    """Direct bucket URL for a key (used as the stored r2_url)."""
    settings = get_settings()
    base = settings.r2_public_url.rstrip("/")
    if not base:
        base = f"{settings.r2_endpoint_url.rstrip('/')}/{settings.r2_bucket_name}"
    return f"{base}/{key}"
