"""
Permission evaluator tests.

Covers:
- Role tables per scope
- App admin override
- Owner edit/delete, only while the owner can still view the post
- Community scope: public visibility, role tables, post_creation_min_role, org admin
- Org scope: same-org only
- ensure_can raising 403
"""

from __future__ import annotations

import uuid

import pytest
from fastapi import HTTPException

from communityx.core.permissions import (
    PERMISSIONS,
    Action,
    Resource,
    Scope,
    Subject,
    can,
    ensure_can,
    has_permission,
    parse_app_role,
    parse_org_role,
    post_creation_denied_message,
)
from communityx_shared.schemas.common import AppRole, CommunityRole, CommunityType, OrgRole

ORG = uuid.uuid4()
OTHER_ORG = uuid.uuid4()
COMMUNITY = uuid.uuid4()


def _subject(**kwargs) -> Subject:
    return Subject(user_id=kwargs.pop("user_id", uuid.uuid4()), **kwargs)


def _community(
    community_type: CommunityType = CommunityType.PRIVATE,
    min_role: CommunityRole = CommunityRole.MEMBER,
    owner_id=None,
) -> Resource:
    return Resource(
        community_id=COMMUNITY,
        community_org_id=ORG,
        community_type=community_type,
        owner_id=owner_id,
        post_creation_min_role=min_role,
    )


# ---------------------------------------------------------------------------
# Role tables
# ---------------------------------------------------------------------------

class TestRoleTables:
    def test_app_admin_has_every_action(self):
        assert PERMISSIONS[Scope.APP][AppRole.ADMIN.value] == frozenset(Action)

    def test_app_user_has_nothing(self):
        assert PERMISSIONS[Scope.APP][AppRole.USER.value] == frozenset()

    @pytest.mark.parametrize("action", [
        Action.VIEW_ORG, Action.VIEW_COMMUNITY, Action.CREATE_POST, Action.VIEW_POST, Action.VIEW_TAG,
    ])
    def test_org_member_grants(self, action):
        assert has_permission(Scope.ORG, OrgRole.MEMBER, action)

    @pytest.mark.parametrize("action", [
        Action.UPDATE_ORG, Action.CREATE_COMMUNITY, Action.EDIT_POST, Action.DELETE_POST,
        Action.CREATE_TAG, Action.MANAGE_ORG_MEMBERS,
    ])
    def test_org_member_denials(self, action):
        assert not has_permission(Scope.ORG, OrgRole.MEMBER, action)

    @pytest.mark.parametrize("action", [
        Action.INVITE_ORG_MEMBERS, Action.CREATE_COMMUNITY, Action.DELETE_COMMUNITY,
        Action.DELETE_POST, Action.CREATE_TAG, Action.MANAGE_COMMUNITY_MEMBERS,
    ])
    def test_org_admin_grants(self, action):
        assert has_permission(Scope.ORG, OrgRole.ADMIN, action)

    def test_only_community_admin_deletes_community(self):
        assert has_permission(Scope.COMMUNITY, CommunityRole.ADMIN, Action.DELETE_COMMUNITY)
        assert not has_permission(Scope.COMMUNITY, CommunityRole.MODERATOR, Action.DELETE_COMMUNITY)

    def test_moderator_manages_posts_and_tags(self):
        for action in (Action.EDIT_POST, Action.DELETE_POST, Action.CREATE_TAG, Action.DELETE_TAG):
            assert has_permission(Scope.COMMUNITY, CommunityRole.MODERATOR, action)

    def test_member_cannot_moderate(self):
        for action in (Action.EDIT_POST, Action.DELETE_POST, Action.CREATE_TAG, Action.ADD_MEMBER):
            assert not has_permission(Scope.COMMUNITY, CommunityRole.MEMBER, action)

    def test_missing_role_denies(self):
        assert not has_permission(Scope.ORG, None, Action.VIEW_ORG)
        assert not has_permission(Scope.ORG, "owner", Action.VIEW_ORG)


class TestRoleParsing:
    def test_org_role_requires_org(self):
        assert parse_org_role(None, "admin") is None
        assert parse_org_role(ORG, "admin") == OrgRole.ADMIN
        assert parse_org_role(ORG, "anything") == OrgRole.MEMBER

    def test_app_role_defaults_to_user(self):
        assert parse_app_role("admin") == AppRole.ADMIN
        assert parse_app_role(None) == AppRole.USER
        assert parse_app_role("superuser") == AppRole.USER


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

class TestCan:
    def test_app_admin_allows_everything(self):
        admin = _subject(app_role=AppRole.ADMIN)
        assert can(admin, Action.DELETE_COMMUNITY, _community())
        assert can(admin, Action.DELETE_ORG, Resource(org_id=OTHER_ORG))

    def test_owner_may_edit_and_delete(self):
        user = _subject(community_roles={COMMUNITY: CommunityRole.MEMBER})
        resource = _community(owner_id=user.user_id)
        assert can(user, Action.EDIT_POST, resource)
        assert can(user, Action.DELETE_POST, resource)

    def test_owner_in_public_community_keeps_rights_without_membership(self):
        user = _subject()
        resource = _community(CommunityType.PUBLIC, owner_id=user.user_id)
        assert can(user, Action.EDIT_POST, resource)

    def test_owner_who_left_private_community_loses_rights(self):
        user = _subject()
        resource = _community(owner_id=user.user_id)
        assert not can(user, Action.EDIT_POST, resource)
        assert not can(user, Action.DELETE_POST, resource)

    def test_owner_of_org_post_must_still_be_in_the_org(self):
        moved = _subject(org_id=OTHER_ORG, org_role=OrgRole.MEMBER)
        resource = Resource(org_id=ORG, owner_id=moved.user_id)
        assert not can(moved, Action.EDIT_POST, resource)

        stayed = _subject(org_id=ORG, org_role=OrgRole.MEMBER)
        assert can(stayed, Action.EDIT_POST, Resource(org_id=ORG, owner_id=stayed.user_id))

    def test_owner_rights_do_not_extend_to_other_actions(self):
        user = _subject()
        assert not can(user, Action.CREATE_TAG, _community(owner_id=user.user_id))

    def test_public_community_is_viewable_by_anyone(self):
        outsider = _subject()
        resource = _community(CommunityType.PUBLIC)
        assert can(outsider, Action.VIEW_COMMUNITY, resource)
        assert can(outsider, Action.VIEW_POST, resource)
        assert not can(outsider, Action.CREATE_POST, resource)

    def test_private_community_hidden_from_non_members(self):
        outsider = _subject(org_id=ORG, org_role=OrgRole.MEMBER)
        assert not can(outsider, Action.VIEW_POST, _community())

    def test_member_can_post_and_view_private(self):
        member = _subject(community_roles={COMMUNITY: CommunityRole.MEMBER})
        assert can(member, Action.VIEW_POST, _community())
        assert can(member, Action.CREATE_POST, _community())

    @pytest.mark.parametrize("role,min_role,allowed", [
        (CommunityRole.MEMBER, CommunityRole.MEMBER, True),
        (CommunityRole.MEMBER, CommunityRole.MODERATOR, False),
        (CommunityRole.MODERATOR, CommunityRole.MODERATOR, True),
        (CommunityRole.MODERATOR, CommunityRole.ADMIN, False),
        (CommunityRole.ADMIN, CommunityRole.ADMIN, True),
    ])
    def test_post_creation_min_role(self, role, min_role, allowed):
        subject = _subject(community_roles={COMMUNITY: role})
        assert can(subject, Action.CREATE_POST, _community(min_role=min_role)) is allowed

    def test_org_admin_manages_org_communities(self):
        org_admin = _subject(org_id=ORG, org_role=OrgRole.ADMIN)
        assert can(org_admin, Action.DELETE_COMMUNITY, _community())
        assert can(org_admin, Action.DELETE_POST, _community())

    def test_org_admin_of_other_org_has_no_rights(self):
        other_admin = _subject(org_id=OTHER_ORG, org_role=OrgRole.ADMIN)
        assert not can(other_admin, Action.VIEW_POST, _community())

    def test_org_scope_is_same_org_only(self):
        member = _subject(org_id=ORG, org_role=OrgRole.MEMBER)
        assert can(member, Action.VIEW_POST, Resource(org_id=ORG))
        assert not can(member, Action.VIEW_POST, Resource(org_id=OTHER_ORG))

    def test_org_scope_without_org_role_denies(self):
        assert not can(_subject(), Action.VIEW_ORG, Resource(org_id=ORG))


class TestEnsureCan:
    def test_raises_403_with_detail(self):
        with pytest.raises(HTTPException) as exc_info:
            ensure_can(_subject(), Action.DELETE_ORG, Resource(org_id=ORG), detail="nope")
        assert exc_info.value.status_code == 403
        assert exc_info.value.detail == "nope"

    def test_passes_silently_when_allowed(self):
        ensure_can(_subject(app_role=AppRole.ADMIN), Action.DELETE_ORG)

    def test_denied_messages(self):
        assert post_creation_denied_message(CommunityRole.ADMIN) == (
            "Only admins can create posts in this community"
        )
        assert "moderators and admins" in post_creation_denied_message(CommunityRole.MODERATOR)
