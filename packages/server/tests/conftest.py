"""
Shared fixtures for the CommunityX server tests.

Every test gets a fresh in-memory SQLite database. API tests drive the real
app through httpx's ASGI transport with the request session pointed at the
test session, Redis revocation checks stubbed out and notification fan-out
replaced by mocks.
"""

import os

os.environ.setdefault("CX_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("CX_SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")

import itertools
from datetime import datetime, timezone
from typing import Optional
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import communityx.models  # noqa: F401
from communityx.core.auth import build_subject, create_jwt, hash_password
from communityx.core.database import get_session
from communityx.core.permissions import Subject
from communityx.models.community import Community, CommunityMember
from communityx.models.organization import Organization
from communityx.models.post import Comment, Post
from communityx.models.user import Account, User

_seq = itertools.count(1)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(engine):
    factory = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------

class Factory:
    """Inserts rows directly, bypassing permission checks."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _save(self, row):
        self.session.add(row)
        await self.session.flush()
        return row

    async def org(self, name: Optional[str] = None, *, allow_cross_org_dm: bool = False) -> Organization:
        n = next(_seq)
        return await self._save(
            Organization(
                name=name or f"Org {n}",
                slug=f"org-{n}",
                allow_cross_org_dm=allow_cross_org_dm,
            )
        )

    async def user(
        self,
        name: Optional[str] = None,
        *,
        org: Optional[Organization] = None,
        org_role: str = "member",
        app_role: str = "user",
        email: Optional[str] = None,
        password: Optional[str] = None,
    ) -> User:
        n = next(_seq)
        user = await self._save(
            User(
                name=name or f"User {n}",
                email=email or f"user{n}@example.com",
                org_id=org.id if org else None,
                org_role=org_role,
                app_role=app_role,
            )
        )
        if password:
            await self._save(Account(user_id=user.id, password_hash=hash_password(password)))
        return user

    async def community(
        self,
        creator: User,
        *,
        name: Optional[str] = None,
        type: str = "public",
        post_creation_min_role: str = "member",
        org: Optional[Organization] = None,
    ) -> Community:
        n = next(_seq)
        community = await self._save(
            Community(
                name=name or f"Community {n}",
                slug=f"community-{n}",
                type=type,
                post_creation_min_role=post_creation_min_role,
                org_id=org.id if org else creator.org_id,
                created_by=creator.id,
            )
        )
        await self.member(community, creator, role="admin")
        return community

    async def member(
        self,
        community: Community,
        user: User,
        *,
        role: str = "member",
        status: str = "active",
    ) -> CommunityMember:
        return await self._save(
            CommunityMember(
                user_id=user.id,
                community_id=community.id,
                role=role,
                status=status,
            )
        )

    async def post(
        self,
        author: User,
        *,
        community: Optional[Community] = None,
        title: str = "Hello",
        content: str = "<p>Hello world</p>",
        created_at: Optional[datetime] = None,
        is_deleted: bool = False,
    ) -> Post:
        post = Post(
            title=title,
            content=content,
            author_id=author.id,
            org_id=community.org_id if community else author.org_id,
            community_id=community.id if community else None,
            visibility="community" if community else "public",
            is_deleted=is_deleted,
        )
        if created_at is not None:
            post.created_at = created_at
        return await self._save(post)

    async def comment(
        self,
        post: Post,
        author: User,
        content: str = "Nice post",
        *,
        parent: Optional[Comment] = None,
        created_at: Optional[datetime] = None,
        is_deleted: bool = False,
    ) -> Comment:
        comment = Comment(
            content=content,
            post_id=post.id,
            author_id=author.id,
            parent_id=parent.id if parent else None,
            is_deleted=is_deleted,
        )
        if created_at is not None:
            comment.created_at = created_at
        return await self._save(comment)

    async def subject(self, user: User) -> Subject:
        return await build_subject(user, self.session)


@pytest.fixture
def factory(session) -> Factory:
    return Factory(session)


def at(minute: int) -> datetime:
    """A fixed UTC timestamp; larger minute means newer."""
    return datetime(2024, 1, 1, 12, minute, tzinfo=timezone.utc)


@pytest.fixture
def ts():
    return at


# ---------------------------------------------------------------------------
# App client
# ---------------------------------------------------------------------------

@pytest.fixture
def notify_mocks():
    with patch("communityx.services.notifications.notify_new_post", new=AsyncMock()) as post, \
         patch("communityx.services.notifications.notify_new_comment", new=AsyncMock()) as comment, \
         patch("communityx.services.notifications.notify_new_message", new=AsyncMock()) as message:
        yield {"post": post, "comment": comment, "message": message}


@pytest.fixture
async def client(session, notify_mocks):
    from communityx.main import app

    async def _session_override():
        yield session
        await session.flush()

    app.dependency_overrides[get_session] = _session_override
    with patch("communityx.core.auth.is_session_revoked", new=AsyncMock(return_value=False)):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict[str, str]:
        token, _jti = create_jwt(user_id=user.id)
        return {"Authorization": f"Bearer {token}"}

    return _headers
