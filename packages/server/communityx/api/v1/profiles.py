"""
Profile endpoints: the caller's own profile metadata and same-org lookups.
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from communityx.core.auth import get_current_subject
from communityx.core.database import get_session
from communityx.core.permissions import Subject
from communityx.services import profiles as profile_service
from communityx_shared.schemas.common import SuccessResponse
from communityx_shared.schemas.profiles import ProfileResponse, ProfileUpsertRequest

router = APIRouter()


@router.get("/me", response_model=ProfileResponse)
async def get_my_profile(
    subject: Subject = Depends(get_current_subject),
    session: AsyncSession = Depends(get_session),
):
    profile = await profile_service.get_my_profile(session, subject)
    return profile_service.to_response(profile)


@router.put("/me", response_model=ProfileResponse)
async def upsert_my_profile(
    body: ProfileUpsertRequest,
    subject: Subject = Depends(get_current_subject),
    session: AsyncSession = Depends(get_session),
):
    profile = await profile_service.upsert_profile(session, subject, body.metadata)
    return profile_service.to_response(profile)


@router.patch("/me", response_model=ProfileResponse)
async def patch_my_profile(
    patch: dict[str, Any] = Body(...),
    subject: Subject = Depends(get_current_subject),
    session: AsyncSession = Depends(get_session),
):
    """Deep-merge ``patch`` into the stored metadata."""
    profile = await profile_service.update_profile_fields(session, subject, patch)
    return profile_service.to_response(profile)


@router.delete("/me", response_model=SuccessResponse)
async def delete_my_profile(
    subject: Subject = Depends(get_current_subject),
    session: AsyncSession = Depends(get_session),
):
    await profile_service.delete_profile(session, subject)
    return SuccessResponse()


@router.get("/{user_id}", response_model=ProfileResponse)
async def get_profile(
    user_id: uuid.UUID,
    subject: Subject = Depends(get_current_subject),
    session: AsyncSession = Depends(get_session),
):
    profile = await profile_service.get_profile(session, user_id, subject)
    return profile_service.to_response(profile)
