#!/usr/bin/env python3
"""Seed a development database with an organization, users, a community, posts and tags.

Usage:
    python scripts/seed_dev_data.py

Requires CX_DATABASE_URL (or defaults to localhost). Run `alembic upgrade head` first.
Every seeded user signs in with the password "communityx-dev".
"""

import asyncio
import uuid

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from communityx.core.auth import hash_password
from communityx.core.config import get_settings

DEV_PASSWORD = "communityx-dev"

# Deterministic UUIDs for reproducibility
ORG_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
ADMIN_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000010")
MEMBER_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000011")
COMMUNITY_ID = uuid.UUID("00000000-0000-0000-0000-000000000100")
TAG_IDS = [uuid.UUID(f"00000000-0000-0000-0000-0000000002{i:02d}") for i in range(2)]
POST_IDS = [uuid.UUID(f"00000000-0000-0000-0000-0000000003{i:02d}") for i in range(4)]


async def seed():
    engine = create_async_engine(get_settings().database_url)
    async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    password_hash = hash_password(DEV_PASSWORD)

    async with async_session() as session:
        # Organization
        await session.execute(text("""
            INSERT INTO organizations (id, name, slug, allow_cross_org_dm)
            VALUES (:id, :name, :slug, false)
            ON CONFLICT (id) DO NOTHING
        """), {"id": ORG_ID, "name": "Acme Gardeners", "slug": "acme-gardeners"})

        # Users and their credential accounts
        for uid, name, email, org_role, app_role in [
            (ADMIN_USER_ID, "Alice Admin", "alice@acme.dev", "admin", "admin"),
            (MEMBER_USER_ID, "Bob Member", "bob@acme.dev", "member", "user"),
        ]:
            await session.execute(text("""
                INSERT INTO users (id, name, email, email_verified, org_id, org_role, app_role)
                VALUES (:id, :name, :email, true, :oid, :org_role, :app_role)
                ON CONFLICT (id) DO NOTHING
            """), {
                "id": uid, "name": name, "email": email, "oid": ORG_ID,
                "org_role": org_role, "app_role": app_role,
            })
            await session.execute(text("""
                INSERT INTO accounts (id, user_id, provider_id, password_hash)
                SELECT :id, :uid, 'credential', :hash
                WHERE NOT EXISTS (SELECT 1 FROM accounts WHERE user_id = :uid)
            """), {"id": uuid.uuid4(), "uid": uid, "hash": password_hash})

        # Community, open to the organization
        await session.execute(text("""
            INSERT INTO communities (id, name, slug, description, type, post_creation_min_role, org_id, created_by)
            VALUES (:id, :name, :slug, :description, 'public', 'member', :oid, :creator)
            ON CONFLICT (id) DO NOTHING
        """), {
            "id": COMMUNITY_ID, "name": "Vegetable Patch", "slug": "vegetable-patch",
            "description": "Seeds, soil and harvest notes.", "oid": ORG_ID, "creator": ADMIN_USER_ID,
        })
        await session.execute(text("""
            INSERT INTO community_allowed_orgs (community_id, org_id, added_by)
            VALUES (:cid, :oid, :uid)
            ON CONFLICT DO NOTHING
        """), {"cid": COMMUNITY_ID, "oid": ORG_ID, "uid": ADMIN_USER_ID})

        for uid, role in [(ADMIN_USER_ID, "admin"), (MEMBER_USER_ID, "member")]:
            await session.execute(text("""
                INSERT INTO community_members (user_id, community_id, role, membership_type, status)
                VALUES (:uid, :cid, :role, 'member', 'active')
                ON CONFLICT DO NOTHING
            """), {"uid": uid, "cid": COMMUNITY_ID, "role": role})

        # Tags
        for tag_id, (name, color) in zip(TAG_IDS, [("Tomatoes", "#e5484d"), ("Compost", "#8d6e63")]):
            await session.execute(text("""
                INSERT INTO tags (id, name, color, community_id)
                VALUES (:id, :name, :color, :cid)
                ON CONFLICT (id) DO NOTHING
            """), {"id": tag_id, "name": name, "color": color, "cid": COMMUNITY_ID})

        # Posts: three in the community, one org-wide
        post_specs = [
            ("Best tomato varieties for containers", "<p>Cherry types do well on a balcony.</p>", COMMUNITY_ID, ADMIN_USER_ID, TAG_IDS[0]),
            ("Hot compost in six weeks", "<p>Turn it every three days.</p>", COMMUNITY_ID, MEMBER_USER_ID, TAG_IDS[1]),
            ("Welcome to the Vegetable Patch", "<p>Say hello below.</p>", COMMUNITY_ID, ADMIN_USER_ID, None),
            ("Spring plant swap", "<p>Bring seedlings to the lobby on Friday.</p>", None, MEMBER_USER_ID, None),
        ]
        for pid, (title, content, cid, author, tag_id) in zip(POST_IDS, post_specs):
            await session.execute(text("""
                INSERT INTO posts (id, title, content, author_id, org_id, community_id, visibility, is_deleted)
                VALUES (:id, :title, :content, :author, :oid, :cid, :visibility, false)
                ON CONFLICT (id) DO NOTHING
            """), {
                "id": pid, "title": title, "content": content, "author": author, "oid": ORG_ID,
                "cid": cid, "visibility": "community" if cid else "public",
            })
            if tag_id is not None:
                await session.execute(text("""
                    INSERT INTO post_tags (post_id, tag_id) VALUES (:pid, :tid)
                    ON CONFLICT DO NOTHING
                """), {"pid": pid, "tid": tag_id})

        await session.commit()

    await engine.dispose()
    print(f"Seeded org '{ORG_ID}' with 2 users, 1 community, 2 tags, 4 posts.")


if __name__ == "__main__":
    asyncio.run(seed())
