"""
Permission evaluation for app, org and community scopes.

Pure functions only: no database access, no I/O. Callers build a ``Subject``
(who is acting) and a ``Resource`` (what is being acted on) from rows they
already loaded, then ask ``can()``. The evaluator never raises; routers and
services turn a ``False`` into a 403 through ``ensure_can()`` before any write.

Resolution order:
1. app admin -> allow everything
2. edit/delete of a resource the subject owns -> allow
3. community-scoped resource -> community role, then org admin of the owning org
4. org-scoped resource -> org role (same org only)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional

from fastapi import HTTPException

from communityx_shared.schemas.common import AppRole, CommunityRole, CommunityType, OrgRole


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Scope(str, Enum):
    APP = "app"
    ORG = "org"
    COMMUNITY = "community"


class Action(str, Enum):
    # Org
    VIEW_ORG = "view_org"
    UPDATE_ORG = "update_org"
    DELETE_ORG = "delete_org"
    MANAGE_ORG_MEMBERS = "manage_org_members"
    INVITE_ORG_MEMBERS = "invite_org_members"
    # Community
    VIEW_COMMUNITY = "view_community"
    CREATE_COMMUNITY = "create_community"
    EDIT_COMMUNITY = "edit_community"
    DELETE_COMMUNITY = "delete_community"
    MANAGE_COMMUNITY_MEMBERS = "manage_community_members"
    INVITE_COMMUNITY_MEMBERS = "invite_community_members"
    ADD_MEMBER = "add_member"
    REMOVE_MEMBER = "remove_member"
    # Posts
    CREATE_POST = "create_post"
    EDIT_POST = "edit_post"
    DELETE_POST = "delete_post"
    VIEW_POST = "view_post"
    # Tags
    CREATE_TAG = "create_tag"
    EDIT_TAG = "edit_tag"
    DELETE_TAG = "delete_tag"
    VIEW_TAG = "view_tag"


# Rank used for Community.post_creation_min_role
COMMUNITY_ROLE_RANK: dict[CommunityRole, int] = {
    CommunityRole.MEMBER: 1,
    CommunityRole.MODERATOR: 2,
    CommunityRole.ADMIN: 3,
}

# Actions an owner may always perform on their own resource
OWNER_ACTIONS = frozenset({Action.EDIT_POST, Action.DELETE_POST})

# Actions granted on any public community regardless of membership
PUBLIC_COMMUNITY_ACTIONS = frozenset({Action.VIEW_COMMUNITY, Action.VIEW_POST, Action.VIEW_TAG})


# ---------------------------------------------------------------------------
# Role tables
# ---------------------------------------------------------------------------

_POST_ACTIONS = frozenset({
    Action.CREATE_POST, Action.EDIT_POST, Action.DELETE_POST, Action.VIEW_POST,
})
_TAG_ACTIONS = frozenset({
    Action.CREATE_TAG, Action.EDIT_TAG, Action.DELETE_TAG, Action.VIEW_TAG,
})
_COMMUNITY_MANAGEMENT = frozenset({
    Action.VIEW_COMMUNITY,
    Action.EDIT_COMMUNITY,
    Action.MANAGE_COMMUNITY_MEMBERS,
    Action.INVITE_COMMUNITY_MEMBERS,
    Action.ADD_MEMBER,
    Action.REMOVE_MEMBER,
})

PERMISSIONS: dict[Scope, dict[str, frozenset[Action]]] = {
    Scope.APP: {
        AppRole.ADMIN.value: frozenset(Action),
        AppRole.USER.value: frozenset(),
    },
    Scope.ORG: {
        OrgRole.ADMIN.value: frozenset({
            Action.VIEW_ORG,
            Action.UPDATE_ORG,
            Action.DELETE_ORG,
            Action.MANAGE_ORG_MEMBERS,
            Action.INVITE_ORG_MEMBERS,
            Action.CREATE_COMMUNITY,
            Action.DELETE_COMMUNITY,
        }) | _COMMUNITY_MANAGEMENT | _POST_ACTIONS | _TAG_ACTIONS,
        OrgRole.MEMBER.value: frozenset({
            Action.VIEW_ORG,
            Action.VIEW_COMMUNITY,
            Action.CREATE_POST,
            Action.VIEW_POST,
            Action.VIEW_TAG,
        }),
    },
    Scope.COMMUNITY: {
        CommunityRole.ADMIN.value: _COMMUNITY_MANAGEMENT | _POST_ACTIONS | _TAG_ACTIONS | {
            Action.DELETE_COMMUNITY,
        },
        CommunityRole.MODERATOR.value: _COMMUNITY_MANAGEMENT | _POST_ACTIONS | _TAG_ACTIONS,
        CommunityRole.MEMBER.value: frozenset({
            Action.VIEW_COMMUNITY,
            Action.CREATE_POST,
            Action.VIEW_POST,
            Action.VIEW_TAG,
        }),
    },
}


def has_permission(scope: Scope, role: Optional[str], action: Action) -> bool:
    """Raw table lookup: does ``role`` in ``scope`` grant ``action``?"""
    if role is None:
        return False
    return action in PERMISSIONS[scope].get(str(getattr(role, "value", role)), frozenset())


# ---------------------------------------------------------------------------
# Subject / Resource
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Subject:
    """The acting user with their parsed role triple."""

    user_id: uuid.UUID
    app_role: AppRole = AppRole.USER
    org_id: Optional[uuid.UUID] = None
    org_role: Optional[OrgRole] = None
    community_roles: Mapping[uuid.UUID, CommunityRole] = field(default_factory=dict)

    @property
    def is_app_admin(self) -> bool:
        return self.app_role == AppRole.ADMIN

    def is_org_admin_of(self, org_id: Optional[uuid.UUID]) -> bool:
        return (
            org_id is not None
            and self.org_id == org_id
            and self.org_role == OrgRole.ADMIN
        )

    def community_role(self, community_id: uuid.UUID) -> Optional[CommunityRole]:
        return self.community_roles.get(community_id)


@dataclass(frozen=True)
class Resource:
    """What an action targets. Unset fields mean "not applicable"."""

    community_id: Optional[uuid.UUID] = None
    community_org_id: Optional[uuid.UUID] = None
    community_type: Optional[CommunityType] = None
    org_id: Optional[uuid.UUID] = None
    owner_id: Optional[uuid.UUID] = None
    post_creation_min_role: Optional[CommunityRole] = None


def parse_org_role(org_id: Optional[uuid.UUID], role: Optional[str]) -> Optional[OrgRole]:
    """A user without an org has no org role; anything but 'admin' is a member."""
    if org_id is None:
        return None
    return OrgRole.ADMIN if role == OrgRole.ADMIN.value else OrgRole.MEMBER


def parse_app_role(role: Optional[str]) -> AppRole:
    return AppRole.ADMIN if role == AppRole.ADMIN.value else AppRole.USER


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def can(subject: Subject, action: Action, resource: Resource = Resource()) -> bool:
    """Decide whether ``subject`` may perform ``action`` on ``resource``."""
    if subject.is_app_admin:
        return True

    # Authorship lapses with access: leaving a private community ends it
    if action in OWNER_ACTIONS and resource.owner_id is not None:
        if resource.owner_id == subject.user_id and can(subject, Action.VIEW_POST, resource):
            return True

    if resource.community_id is not None:
        return _can_in_community(subject, action, resource)

    return _can_in_org(subject, action, resource)


def _can_in_community(subject: Subject, action: Action, resource: Resource) -> bool:
    if (
        action in PUBLIC_COMMUNITY_ACTIONS
        and resource.community_type == CommunityType.PUBLIC
    ):
        return True

    role = subject.community_role(resource.community_id)
    if role is not None:
        if action == Action.CREATE_POST:
            min_role = resource.post_creation_min_role or CommunityRole.MEMBER
            if COMMUNITY_ROLE_RANK[role] >= COMMUNITY_ROLE_RANK[min_role]:
                return True
        elif has_permission(Scope.COMMUNITY, role, action):
            return True

    # Org admins manage every community that belongs to their org
    if subject.is_org_admin_of(resource.community_org_id):
        return has_permission(Scope.ORG, OrgRole.ADMIN, action)

    return False


def _can_in_org(subject: Subject, action: Action, resource: Resource) -> bool:
    if subject.org_role is None:
        return False
    if resource.org_id is not None and resource.org_id != subject.org_id:
        return False
    return has_permission(Scope.ORG, subject.org_role, action)


def ensure_can(
    subject: Subject,
    action: Action,
    resource: Resource = Resource(),
    *,
    detail: str = "You do not have permission to perform this action",
) -> None:
    """Raise 403 unless ``can()`` allows the action."""
    if not can(subject, action, resource):
        raise HTTPException(status_code=403, detail=detail)


def post_creation_denied_message(min_role: CommunityRole) -> str:
    who = {
        CommunityRole.MEMBER: "members",
        CommunityRole.MODERATOR: "moderators and admins",
        CommunityRole.ADMIN: "admins",
    }[min_role]
    return f"Only {who} can create posts in this community"
