# SQLModel definitions, imported here to ensure metadata is populated for Alembic.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .organization import Organization, OrgInvite  # noqa: F401
from .user import User, Account, UserProfile  # noqa: F401
from .community import (  # noqa: F401
    Community,
    CommunityAllowedOrg,
    CommunityMember,
    CommunityMemberRequest,
)
from .post import Post, Tag, PostTag, Comment, SavedPost  # noqa: F401
from .poll import Poll, PollOption, PollVote  # noqa: F401
from .attachment import Attachment  # noqa: F401
from .chat import ChatThread, DirectMessage  # noqa: F401
from .notification import PushSubscription, Notification, NotificationPreference  # noqa: F401
