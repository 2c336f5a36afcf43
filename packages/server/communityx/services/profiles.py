"""
Profile service: free-form JSON metadata attached to each user.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from communityx.core.permissions import Subject
from communityx.models.user import User, UserProfile
from communityx_shared.schemas.profiles import ProfileResponse

log = structlog.get_logger()


def _deep_merge(base: dict, patch: dict) -> dict:
    """JSON Merge Patch style deep merge."""
    result = base.copy()
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def to_response(profile: UserProfile) -> ProfileResponse:
    return ProfileResponse(
        user_id=profile.user_id,
        metadata=profile.data or {},
        updated_at=profile.updated_at,
    )


async def _get_profile_or_404(session: AsyncSession, user_id: uuid.UUID) -> UserProfile:
    profile = await session.get(UserProfile, user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


async def get_my_profile(session: AsyncSession, subject: Subject) -> UserProfile:
    return await _get_profile_or_404(session, subject.user_id)


async def get_profile(
    session: AsyncSession, user_id: uuid.UUID, subject: Subject
) -> UserProfile:
    """Another user's profile; visible within the same organization."""
    if user_id != subject.user_id and not subject.is_app_admin:
        user = await session.get(User, user_id)
        if not user:
            raise HTTPException(status_code=404, detail="Profile not found")
        if subject.org_id is None or user.org_id != subject.org_id:
            raise HTTPException(
                status_code=403, detail="You do not have access to this profile"
            )
    return await _get_profile_or_404(session, user_id)


async def upsert_profile(
    session: AsyncSession, subject: Subject, metadata: dict[str, Any]
) -> UserProfile:
    profile = await session.get(UserProfile, subject.user_id)
    if profile is None:
        profile = UserProfile(user_id=subject.user_id, data=metadata)
    else:
        profile.data = metadata
        profile.updated_at = datetime.now(timezone.utc)
    session.add(profile)
    await session.flush()
    log.info("profile.upserted", user_id=str(subject.user_id))
    return profile


async def update_profile_fields(
    session: AsyncSession, subject: Subject, patch: dict[str, Any]
) -> UserProfile:
    profile = await session.get(UserProfile, subject.user_id)
    if profile is None:
        profile = UserProfile(user_id=subject.user_id, data={})
    # Reassign so the JSON column is marked dirty
    profile.data = _deep_merge(profile.data or {}, patch)
    profile.updated_at = datetime.now(timezone.utc)
    session.add(profile)
    await session.flush()
    log.info("profile.updated", user_id=str(subject.user_id), keys=sorted(patch))
    return profile


async def delete_profile(session: AsyncSession, subject: Subject) -> None:
    profile = await _get_profile_or_404(session, subject.user_id)
    await session.delete(profile)
    await session.flush()
    log.info("profile.deleted", user_id=str(subject.user_id))
