"""
Authentication for CommunityX.

Supports:
- Email/Password credential accounts (bcrypt)
- JWT session cookie (browser) or Bearer token (API clients)
- Session revocation checked against Redis
- Resolution of the permission ``Subject`` (app/org/community role triple)
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
import structlog
from fastapi import Depends, HTTPException, Request
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from communityx.core.config import get_settings
from communityx.core.database import get_session
from communityx.core.permissions import Subject, parse_app_role, parse_org_role
from communityx.core.redis import is_session_revoked
from communityx.models.community import CommunityMember
from communityx.models.user import User
from communityx_shared.schemas.common import CommunityRole, MembershipStatus

log = structlog.get_logger()
settings = get_settings()

SESSION_COOKIE = "cx_session"
CSRF_COOKIE = "cx_csrf"

authorization_header = APIKeyHeader(name="Authorization", auto_error=False)

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    """Hash a password using bcrypt with cost factor 12."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=12)).decode()


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against a bcrypt hash."""
    return bcrypt.checkpw(password.encode(), hashed.encode())


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(
    user_id: uuid.UUID,
    *,
    expires_delta: timedelta | None = None,
) -> tuple[str, str]:
    """Create a signed session JWT. Returns (token, jti)."""
    jti = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": exp,
        "jti": jti,
    }
    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token, jti


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


# ---------------------------------------------------------------------------
# CSRF Token
# ---------------------------------------------------------------------------

def generate_csrf_token() -> str:
    """Generate a random CSRF token."""
    return secrets.token_urlsafe(32)


# ---------------------------------------------------------------------------
# Subject resolution
# ---------------------------------------------------------------------------

async def build_subject(user: User, session: AsyncSession) -> Subject:
    """Parse the user's role strings into a permission Subject.

    Only active memberships count; a pending row grants nothing.
    """
    result = await session.execute(
        select(CommunityMember.community_id, CommunityMember.role).where(
            CommunityMember.user_id == user.id,
            CommunityMember.status == MembershipStatus.ACTIVE.value,
        )
    )
    community_roles = {
        community_id: CommunityRole(role) for community_id, role in result.all()
    }
    return Subject(
        user_id=user.id,
        app_role=parse_app_role(user.app_role),
        org_id=user.org_id,
        org_role=parse_org_role(user.org_id, user.org_role),
        community_roles=community_roles,
    )


class AuthenticatedUser:
    """Container for an authenticated user and their permission subject."""

    def __init__(self, user: User, subject: Subject):
        self.user = user
        self.subject = subject
        self.user_id = user.id
        self.email = user.email
        self.org_id = user.org_id


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

def _extract_token(request: Request, authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip()
    return request.cookies.get(SESSION_COOKIE)


async def _authenticate_jwt(token: str, session: AsyncSession) -> User:
    try:
        payload = decode_jwt(token)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    jti = payload.get("jti")
    if jti and await is_session_revoked(jti):
        raise HTTPException(status_code=401, detail="Session has been revoked")

    try:
        user_id = uuid.UUID(payload["sub"])
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    user = await session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


async def get_optional_user(
    request: Request,
    authorization: Optional[str] = Depends(authorization_header),
    session: AsyncSession = Depends(get_session),
) -> Optional[AuthenticatedUser]:
    """Resolve the session if there is one; routes decide whether 401 applies."""
    token = _extract_token(request, authorization)
    if not token:
        return None
    user = await _authenticate_jwt(token, session)
    subject = await build_subject(user, session)
    auth = AuthenticatedUser(user=user, subject=subject)
    request.state.auth = auth
    return auth


async def get_current_user(
    auth: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> AuthenticatedUser:
    """Main authentication dependency. 401 without a valid session."""
    if auth is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return auth


async def get_current_subject(
    auth: AuthenticatedUser = Depends(get_current_user),
) -> Subject:
    return auth.subject


async def require_app_admin(
    auth: AuthenticatedUser = Depends(get_current_user),
) -> AuthenticatedUser:
    """Requires the app-level admin role."""
    if not auth.subject.is_app_admin:
        raise HTTPException(status_code=403, detail="Administrator access required")
    return auth
