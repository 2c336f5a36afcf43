"""
User service: registration with credential accounts, login, and user lookups.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import func
from sqlmodel import select

from communityx.core.auth import hash_password, verify_password
from communityx.models.base import ensure_aware
from communityx.models.organization import Organization, OrgInvite
from communityx.models.user import Account, User
from communityx_shared.schemas.common import OrgRole, UserSummary
from communityx_shared.schemas.users import RegisterRequest

log = structlog.get_logger()

CREDENTIAL_PROVIDER = "credential"


async def get_user_or_404(user_id: uuid.UUID, session: AsyncSession) -> User:
    user = await session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


async def get_user_by_email(email: str, session: AsyncSession) -> Optional[User]:
    result = await session.execute(
        select(User).where(func.lower(User.email) == email.lower())
    )
    return result.scalar_one_or_none()


async def load_user_summaries(
    user_ids: Iterable[uuid.UUID], session: AsyncSession
) -> dict[uuid.UUID, UserSummary]:
    """Batch-load author/member summaries keyed by user id."""
    ids = {uid for uid in user_ids if uid is not None}
    if not ids:
        return {}
    result = await session.execute(select(User).where(User.id.in_(ids)))
    return {
        user.id: UserSummary(id=user.id, name=user.name, email=user.email, image=user.image)
        for user in result.scalars().all()
    }


async def _redeem_invite(
    req: RegisterRequest, session: AsyncSession
) -> OrgInvite:
    result = await session.execute(
        select(OrgInvite).where(OrgInvite.token == req.invite_token)
    )
    invite = result.scalar_one_or_none()
    if not invite or invite.email.lower() != req.email.lower():
        raise HTTPException(status_code=400, detail="Invalid invitation token")
    if req.org_id is not None and req.org_id != invite.org_id:
        raise HTTPException(status_code=400, detail="Invalid invitation token")
    if invite.accepted_at is not None:
        raise HTTPException(status_code=400, detail="Invitation has already been used")
    if ensure_aware(invite.expires_at) < datetime.now(timezone.utc):
        raise HTTPException(status_code=400, detail="Invitation has expired")

    org = await session.get(Organization, invite.org_id)
    if not org:
        raise HTTPException(status_code=404, detail="Organization not found")
    return invite


async def register_user(req: RegisterRequest, session: AsyncSession) -> User:
    """Create a user and its credential account in the request transaction.

    Joining an organization requires an invitation; without one the user is
    created org-less and can be invited later.
    """
    invite: Optional[OrgInvite] = None
    if req.invite_token:
        invite = await _redeem_invite(req, session)
    elif req.org_id is not None:
        raise HTTPException(
            status_code=400, detail="An invitation is required to join an organization"
        )

    if await get_user_by_email(req.email, session):
        raise HTTPException(status_code=409, detail="User already exists")

    user = User(
        name=req.name,
        email=req.email.lower(),
        email_verified=invite is not None,
        org_id=invite.org_id if invite else None,
        org_role=invite.role if invite else OrgRole.MEMBER.value,
    )
    session.add(user)
    await session.flush()

    account = Account(
        user_id=user.id,
        provider_id=CREDENTIAL_PROVIDER,
        password_hash=hash_password(req.password),
    )
    session.add(account)

    if invite:
        invite.accepted_at = datetime.now(timezone.utc)
        session.add(invite)

    await session.flush()

    log.info(
        "user.registered",
        user_id=str(user.id),
        org_id=str(user.org_id) if user.org_id else None,
        via_invite=invite is not None,
    )
    return user


async def authenticate(email: str, password: str, session: AsyncSession) -> User:
    """Check email/password against the credential account; 401 on mismatch."""
    user = await get_user_by_email(email, session)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    result = await session.execute(
        select(Account).where(
            Account.user_id == user.id,
            Account.provider_id == CREDENTIAL_PROVIDER,
        )
    )
    account = result.scalar_one_or_none()
    if not account or not account.password_hash:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    if not verify_password(password, account.password_hash):
        log.warning("auth.login_failure", user_id=str(user.id), reason="bad_password")
        raise HTTPException(status_code=401, detail="Invalid email or password")

    return user
