"""
Authentication endpoints.

- Email/Password registration (optionally redeeming an org invite) & login
- JWT session cookie + CSRF cookie
- Logout revokes the session's jti
"""

from __future__ import annotations

import jwt
import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from communityx.core.auth import (
    CSRF_COOKIE,
    SESSION_COOKIE,
    AuthenticatedUser,
    create_jwt,
    decode_jwt,
    generate_csrf_token,
    get_current_user,
)
from communityx.core.config import get_settings
from communityx.core.database import get_session
from communityx.core.mailer import send_welcome
from communityx.core.permissions import parse_org_role
from communityx.core.redis import revoke_session
from communityx.services import users as user_service
from communityx_shared.schemas.users import (
    AuthResponse,
    LoginRequest,
    MeResponse,
    RegisterRequest,
)

log = structlog.get_logger()
settings = get_settings()
router = APIRouter()

# Cookie config
COOKIE_KWARGS = {
    "httponly": True,
    "secure": not settings.debug,  # allow non-HTTPS in dev
    "samesite": "lax",
    "path": "/",
    "max_age": settings.jwt_expire_minutes * 60,
}


def _set_session_cookies(response: Response, token: str, csrf: str) -> None:
    """Set the session JWT and CSRF cookies on a response."""
    response.set_cookie(key=SESSION_COOKIE, value=token, **COOKIE_KWARGS)
    response.set_cookie(
        key=CSRF_COOKIE,
        value=csrf,
        httponly=False,  # JS must read this
        secure=not settings.debug,
        samesite="lax",
        path="/",
        max_age=settings.jwt_expire_minutes * 60,
    )


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    body: RegisterRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
):
    """Create a user with a credential account and start a session."""
    user = await user_service.register_user(body, session)

    token, _jti = create_jwt(user_id=user.id)
    _set_session_cookies(response, token, generate_csrf_token())
    background_tasks.add_task(send_welcome, user.email, user.name, settings.app_base_url)

    return AuthResponse(user_id=str(user.id), email=user.email, message="Registration successful")


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    """Authenticate with email/password and receive a JWT session."""
    user = await user_service.authenticate(body.email, body.password, session)

    token, _jti = create_jwt(user_id=user.id)
    _set_session_cookies(response, token, generate_csrf_token())

    log.info("auth.login_success", user_id=str(user.id))
    return AuthResponse(user_id=str(user.id), email=user.email, message="Login successful")


@router.post("/logout")
async def logout(request: Request, response: Response):
    """Invalidate the current session."""
    token = request.cookies.get(SESSION_COOKIE)
    if token:
        try:
            jti = decode_jwt(token).get("jti")
        except jwt.PyJWTError:
            jti = None  # already invalid, just clear cookies
        if jti:
            await revoke_session(jti)

    response.delete_cookie(SESSION_COOKIE, path="/")
    response.delete_cookie(CSRF_COOKIE, path="/")
    return {"message": "Logged out"}


@router.get("/me", response_model=MeResponse)
async def me(auth: AuthenticatedUser = Depends(get_current_user)):
    user = auth.user
    return MeResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        image=user.image,
        org_id=user.org_id,
        org_role=parse_org_role(user.org_id, user.org_role),
        app_role=auth.subject.app_role,
    )
