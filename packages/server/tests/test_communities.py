"""
Community tests.

Covers:
- Creation: org scoping, permission, unique slug, creator becomes admin
- Visibility of the community list and slug lookup
- Update and delete permissions
- Tags: CRUD, unique names, moderator vs member
- Per-community notification preference endpoints
"""

from __future__ import annotations

import uuid

import pytest
from fastapi import HTTPException
from pydantic import ValidationError
from sqlmodel import select

from communityx.models.community import Community, CommunityAllowedOrg
from communityx.services import communities as community_service
from communityx.services import tags as tag_service
from communityx.services.membership import get_membership
from communityx_shared.schemas.communities import (
    CommunityCreateRequest,
    CommunityUpdateRequest,
    TagCreateRequest,
    TagUpdateRequest,
)


@pytest.fixture
async def org_world(factory):
    org = await factory.org()
    other_org = await factory.org()
    admin = await factory.user(org=org, org_role="admin")
    member = await factory.user(org=org)
    outsider = await factory.user(org=other_org)
    return {
        "org": org,
        "other_org": other_org,
        "admin": admin,
        "member": member,
        "outsider": outsider,
    }


def _create_request(slug: str, **kwargs) -> CommunityCreateRequest:
    return CommunityCreateRequest(name=kwargs.pop("name", slug.title()), slug=slug, **kwargs)


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

class TestCreateCommunity:
    @pytest.mark.asyncio
    async def test_org_admin_creates_in_own_org(self, session, factory, org_world):
        subject = await factory.subject(org_world["admin"])
        community = await community_service.create_community(
            session, _create_request("book-club"), subject
        )

        assert community.org_id == org_world["org"].id
        assert community.created_by == org_world["admin"].id

        membership = await get_membership(session, community.id, org_world["admin"].id)
        assert membership.role == "admin"
        assert membership.status == "active"

        allowed = await session.execute(
            select(CommunityAllowedOrg).where(CommunityAllowedOrg.community_id == community.id)
        )
        assert [row.org_id for row in allowed.scalars().all()] == [org_world["org"].id]

    @pytest.mark.asyncio
    async def test_member_cannot_create(self, session, factory, org_world):
        subject = await factory.subject(org_world["member"])
        with pytest.raises(HTTPException) as exc_info:
            await community_service.create_community(session, _create_request("nope"), subject)
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_cannot_create_in_other_org(self, session, factory, org_world):
        subject = await factory.subject(org_world["admin"])
        req = _create_request("elsewhere", org_id=org_world["other_org"].id)
        with pytest.raises(HTTPException) as exc_info:
            await community_service.create_community(session, req, subject)
        assert exc_info.value.detail == "You can only create communities in your own organization"

    @pytest.mark.asyncio
    async def test_app_admin_creates_anywhere(self, session, factory, org_world):
        root = await factory.user(app_role="admin")
        req = _create_request("anywhere", org_id=org_world["other_org"].id)
        community = await community_service.create_community(
            session, req, await factory.subject(root)
        )
        assert community.org_id == org_world["other_org"].id

    @pytest.mark.asyncio
    async def test_slug_must_be_unique(self, session, factory, org_world):
        subject = await factory.subject(org_world["admin"])
        await community_service.create_community(session, _create_request("taken"), subject)
        with pytest.raises(HTTPException) as exc_info:
            await community_service.create_community(session, _create_request("taken"), subject)
        assert exc_info.value.status_code == 400
        assert exc_info.value.detail == "Community URL is already taken"

    def test_slug_format(self):
        with pytest.raises(ValidationError):
            CommunityCreateRequest(name="Bad", slug="Not A Slug")


# ---------------------------------------------------------------------------
# Visibility
# ---------------------------------------------------------------------------

class TestVisibility:
    @pytest.mark.asyncio
    async def test_list_shows_public_and_own_private(self, session, factory, org_world):
        admin = org_world["admin"]
        public = await factory.community(admin, name="Public")
        private = await factory.community(admin, name="Private", type="private")
        joined = await factory.community(admin, name="Joined", type="private")
        await factory.member(joined, org_world["member"])

        names = {
            c.name
            for c in await community_service.list_communities(
                session, await factory.subject(org_world["member"])
            )
        }
        assert names == {public.name, joined.name}

        outsider_names = {
            c.name
            for c in await community_service.list_communities(
                session, await factory.subject(org_world["outsider"])
            )
        }
        assert outsider_names == {public.name}

        admin_names = {
            c.name
            for c in await community_service.list_communities(session, await factory.subject(admin))
        }
        assert private.name in admin_names

    @pytest.mark.asyncio
    async def test_member_count_counts_active_only(self, session, factory, org_world):
        community = await factory.community(org_world["admin"])
        await factory.member(community, org_world["member"])
        await factory.member(community, org_world["outsider"], status="pending")

        response = await community_service.community_response(
            session, community, await factory.subject(org_world["admin"])
        )
        assert response.member_count == 2
        assert response.viewer_role == "admin"

    @pytest.mark.asyncio
    async def test_slug_lookup_hides_private(self, session, factory, org_world):
        community = await factory.community(org_world["admin"], type="private")
        with pytest.raises(HTTPException) as exc_info:
            await community_service.get_community_by_slug(
                session, community.slug, await factory.subject(org_world["outsider"])
            )
        assert exc_info.value.status_code == 403
        assert exc_info.value.detail == "You do not have access to this community"

    @pytest.mark.asyncio
    async def test_slug_lookup_unknown(self, session, factory, org_world):
        with pytest.raises(HTTPException) as exc_info:
            await community_service.get_community_by_slug(
                session, "missing", await factory.subject(org_world["member"])
            )
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_org_listing(self, session, factory, org_world):
        admin = org_world["admin"]
        public = await factory.community(admin, name="Allotments")
        hidden = await factory.community(admin, name="Board", type="private")
        elsewhere = await factory.community(org_world["outsider"], name="Elsewhere")

        member_view = await community_service.list_org_communities(
            session, org_world["org"].id, await factory.subject(org_world["member"])
        )
        assert [c.name for c in member_view] == [public.name]

        admin_view = await community_service.list_org_communities(
            session, org_world["org"].id, await factory.subject(admin)
        )
        assert [c.name for c in admin_view] == [public.name, hidden.name]
        assert elsewhere.name not in {c.name for c in admin_view}

        with pytest.raises(HTTPException) as exc_info:
            await community_service.list_org_communities(
                session, org_world["org"].id, await factory.subject(org_world["outsider"])
            )
        assert exc_info.value.status_code == 403


# ---------------------------------------------------------------------------
# Update / delete
# ---------------------------------------------------------------------------

class TestUpdateDelete:
    @pytest.mark.asyncio
    async def test_moderator_edits(self, session, factory, org_world):
        community = await factory.community(org_world["admin"])
        await factory.member(community, org_world["member"], role="moderator")

        updated = await community_service.update_community(
            session,
            community,
            CommunityUpdateRequest(description="Rules inside", type="private"),
            await factory.subject(org_world["member"]),
        )
        assert updated.description == "Rules inside"
        assert updated.type == "private"

    @pytest.mark.asyncio
    async def test_member_cannot_edit(self, session, factory, org_world):
        community = await factory.community(org_world["admin"])
        await factory.member(community, org_world["member"])
        with pytest.raises(HTTPException) as exc_info:
            await community_service.update_community(
                session,
                community,
                CommunityUpdateRequest(name="Hijacked"),
                await factory.subject(org_world["member"]),
            )
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_moderator_cannot_delete(self, session, factory, org_world):
        community = await factory.community(org_world["admin"])
        await factory.member(community, org_world["member"], role="moderator")
        with pytest.raises(HTTPException) as exc_info:
            await community_service.delete_community(
                session, community, await factory.subject(org_world["member"])
            )
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_community_admin_deletes(self, session, factory, org_world):
        community = await factory.community(org_world["admin"])
        await community_service.delete_community(
            session, community, await factory.subject(org_world["admin"])
        )
        assert await session.get(Community, community.id) is None


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

class TestTags:
    @pytest.mark.asyncio
    async def test_create_list_update_delete(self, session, factory, org_world):
        community = await factory.community(org_world["admin"])
        subject = await factory.subject(org_world["admin"])

        tag = await tag_service.create_tag(
            session, community, TagCreateRequest(name="  news ", color="#ff0000"), subject
        )
        assert tag.name == "news"

        await tag_service.update_tag(
            session, community, tag.id, TagUpdateRequest(name="updates"), subject
        )
        tags = await tag_service.list_tags(session, community, subject)
        assert [t.name for t in tags] == ["updates"]

        await tag_service.delete_tag(session, community, tag.id, subject)
        assert await tag_service.list_tags(session, community, subject) == []

    @pytest.mark.asyncio
    async def test_duplicate_name_rejected(self, session, factory, org_world):
        community = await factory.community(org_world["admin"])
        subject = await factory.subject(org_world["admin"])
        await tag_service.create_tag(session, community, TagCreateRequest(name="news"), subject)
        other = await tag_service.create_tag(session, community, TagCreateRequest(name="other"), subject)

        with pytest.raises(HTTPException) as exc_info:
            await tag_service.create_tag(session, community, TagCreateRequest(name="news"), subject)
        assert exc_info.value.status_code == 400

        with pytest.raises(HTTPException):
            await tag_service.update_tag(
                session, community, other.id, TagUpdateRequest(name="news"), subject
            )

    @pytest.mark.asyncio
    async def test_same_name_in_other_community(self, session, factory, org_world):
        first = await factory.community(org_world["admin"])
        second = await factory.community(org_world["admin"])
        subject = await factory.subject(org_world["admin"])
        await tag_service.create_tag(session, first, TagCreateRequest(name="news"), subject)
        await tag_service.create_tag(session, second, TagCreateRequest(name="news"), subject)

    @pytest.mark.asyncio
    async def test_member_cannot_manage_tags(self, session, factory, org_world):
        community = await factory.community(org_world["admin"])
        await factory.member(community, org_world["member"])
        with pytest.raises(HTTPException) as exc_info:
            await tag_service.create_tag(
                session,
                community,
                TagCreateRequest(name="mine"),
                await factory.subject(org_world["member"]),
            )
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_tag_from_other_community_is_404(self, session, factory, org_world):
        first = await factory.community(org_world["admin"])
        second = await factory.community(org_world["admin"])
        subject = await factory.subject(org_world["admin"])
        tag = await tag_service.create_tag(session, first, TagCreateRequest(name="news"), subject)

        with pytest.raises(HTTPException) as exc_info:
            await tag_service.delete_tag(session, second, tag.id, subject)
        assert exc_info.value.status_code == 404

    def test_color_must_be_hex(self):
        with pytest.raises(ValidationError):
            TagCreateRequest(name="news", color="red")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

class TestCommunityEndpoints:
    @pytest.mark.asyncio
    async def test_create_and_fetch_by_slug(self, client, org_world, auth_headers):
        headers = auth_headers(org_world["admin"])
        resp = await client.post(
            "/api/v1/communities",
            json={"name": "Runners", "slug": "runners", "type": "private"},
            headers=headers,
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["member_count"] == 1
        assert data["org_id"] == str(org_world["org"].id)

        resp = await client.get("/api/v1/communities/by-slug/runners", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["id"] == data["id"]

        resp = await client.get(
            "/api/v1/communities/by-slug/runners", headers=auth_headers(org_world["outsider"])
        )
        assert resp.status_code == 403
        assert resp.json() == {"error": "You do not have access to this community"}

    @pytest.mark.asyncio
    async def test_member_create_is_forbidden(self, client, org_world, auth_headers):
        resp = await client.post(
            "/api/v1/communities",
            json={"name": "Mine", "slug": "mine"},
            headers=auth_headers(org_world["member"]),
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_community_is_404(self, client, org_world, auth_headers):
        resp = await client.delete(
            f"/api/v1/communities/{uuid.uuid4()}", headers=auth_headers(org_world["admin"])
        )
        assert resp.status_code == 404
        assert resp.json() == {"error": "Community not found"}

    @pytest.mark.asyncio
    async def test_tag_endpoints(self, client, factory, org_world, auth_headers):
        community = await factory.community(org_world["admin"])
        headers = auth_headers(org_world["admin"])

        resp = await client.post(
            f"/api/v1/communities/{community.id}/tags",
            json={"name": "events", "color": "#00ff00"},
            headers=headers,
        )
        assert resp.status_code == 201
        tag_id = resp.json()["id"]

        resp = await client.patch(
            f"/api/v1/communities/{community.id}/tags/{tag_id}",
            json={"description": "Meetups"},
            headers=headers,
        )
        assert resp.json()["description"] == "Meetups"

        resp = await client.get(f"/api/v1/communities/{community.id}/tags", headers=headers)
        assert [t["name"] for t in resp.json()] == ["events"]

        resp = await client.delete(
            f"/api/v1/communities/{community.id}/tags/{tag_id}", headers=headers
        )
        assert resp.json() == {"success": True}

    @pytest.mark.asyncio
    async def test_notification_preference(self, client, factory, org_world, auth_headers):
        community = await factory.community(org_world["admin"])
        headers = auth_headers(org_world["member"])
        url = f"/api/v1/communities/{community.id}/notifications"

        resp = await client.get(url, headers=headers)
        assert resp.json() == {"community_id": str(community.id), "enabled": True}

        resp = await client.put(url, json={"enabled": False}, headers=headers)
        assert resp.json()["enabled"] is False

        resp = await client.get(url, headers=headers)
        assert resp.json()["enabled"] is False

    @pytest.mark.asyncio
    async def test_notification_preference_unknown_community(self, client, org_world, auth_headers):
        resp = await client.put(
            f"/api/v1/communities/{uuid.uuid4()}/notifications",
            json={"enabled": False},
            headers=auth_headers(org_world["member"]),
        )
        assert resp.status_code == 404
