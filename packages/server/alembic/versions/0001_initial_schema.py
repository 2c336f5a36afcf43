"""Initial schema: orgs, users, communities, posts, polls, attachments, chat, notifications.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _uuid(name: str, **kwargs) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), **kwargs)


def _ts(name: str, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=True)
    return sa.Column(
        name, sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")
    )


def _timestamps() -> list[sa.Column]:
    return [_ts("created_at"), _ts("updated_at")]


def _fk(column: str, target: str, ondelete: Union[str, None] = None) -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint([column], [target], ondelete=ondelete)


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # -----------------------------------------------------------------------
    # 1. Organizations & users
    # -----------------------------------------------------------------------
    op.create_table(
        "organizations",
        _uuid("id", primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=False, unique=True),
        sa.Column("allow_cross_org_dm", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_organizations_name", "organizations", ["name"])

    op.create_table(
        "users",
        _uuid("id", primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=False, unique=True),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("image", sa.Text(), nullable=True),
        _uuid("org_id", nullable=True),
        sa.Column("org_role", sa.Text(), nullable=False, server_default="member"),
        sa.Column("app_role", sa.Text(), nullable=False, server_default="user"),
        *_timestamps(),
        _fk("org_id", "organizations.id"),
        sa.CheckConstraint("org_role IN ('admin', 'member')", name="ck_users_org_role"),
        sa.CheckConstraint("app_role IN ('admin', 'user')", name="ck_users_app_role"),
    )
    op.create_index("ix_users_org_id", "users", ["org_id"])

    op.create_table(
        "accounts",
        _uuid("id", primary_key=True),
        _uuid("user_id", nullable=False),
        sa.Column("provider_id", sa.Text(), nullable=False, server_default="credential"),
        sa.Column("password_hash", sa.Text(), nullable=True),
        *_timestamps(),
        _fk("user_id", "users.id", ondelete="CASCADE"),
    )
    op.create_index("ix_accounts_user_id", "accounts", ["user_id"])

    op.create_table(
        "user_profiles",
        _uuid("user_id", primary_key=True),
        sa.Column("data", postgresql.JSONB(), nullable=False, server_default="{}"),
        *_timestamps(),
        _fk("user_id", "users.id", ondelete="CASCADE"),
    )

    op.create_table(
        "org_invites",
        _uuid("id", primary_key=True),
        _uuid("org_id", nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("role", sa.Text(), nullable=False, server_default="member"),
        sa.Column("token", sa.Text(), nullable=False, unique=True),
        _uuid("invited_by", nullable=False),
        _ts("expires_at"),
        _ts("accepted_at", nullable=True),
        *_timestamps(),
        _fk("org_id", "organizations.id"),
        _fk("invited_by", "users.id"),
    )
    op.create_index("ix_org_invites_org_id", "org_invites", ["org_id"])
    op.create_index("ix_org_invites_email", "org_invites", ["email"])

    # -----------------------------------------------------------------------
    # 2. Communities & membership
    # -----------------------------------------------------------------------
    op.create_table(
        "communities",
        _uuid("id", primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("type", sa.Text(), nullable=False, server_default="public"),
        sa.Column("rules", sa.Text(), nullable=True),
        sa.Column("banner", sa.Text(), nullable=True),
        sa.Column("avatar", sa.Text(), nullable=True),
        sa.Column("post_creation_min_role", sa.Text(), nullable=False, server_default="member"),
        _uuid("org_id", nullable=True),
        _uuid("created_by", nullable=False),
        *_timestamps(),
        _fk("org_id", "organizations.id"),
        _fk("created_by", "users.id"),
        sa.CheckConstraint("type IN ('public', 'private')", name="ck_communities_type"),
        sa.CheckConstraint(
            "post_creation_min_role IN ('member', 'moderator', 'admin')",
            name="ck_communities_post_creation_min_role",
        ),
    )
    op.create_index("ix_communities_org_id", "communities", ["org_id"])

    op.create_table(
        "community_members",
        _uuid("user_id", primary_key=True),
        _uuid("community_id", primary_key=True),
        sa.Column("role", sa.Text(), nullable=False, server_default="member"),
        sa.Column("membership_type", sa.Text(), nullable=False, server_default="member"),
        sa.Column("status", sa.Text(), nullable=False, server_default="active"),
        _ts("joined_at"),
        _fk("user_id", "users.id", ondelete="CASCADE"),
        _fk("community_id", "communities.id", ondelete="CASCADE"),
    )

    op.create_table(
        "community_member_requests",
        _uuid("id", primary_key=True),
        _uuid("user_id", nullable=False),
        _uuid("community_id", nullable=False),
        sa.Column("request_type", sa.Text(), nullable=False, server_default="join"),
        sa.Column("status", sa.Text(), nullable=False, server_default="pending"),
        _ts("requested_at"),
        _ts("reviewed_at", nullable=True),
        _uuid("reviewed_by", nullable=True),
        _fk("user_id", "users.id", ondelete="CASCADE"),
        _fk("community_id", "communities.id", ondelete="CASCADE"),
        _fk("reviewed_by", "users.id"),
    )
    op.create_index(
        "ix_community_member_requests_community_id", "community_member_requests", ["community_id"]
    )
    op.create_index("ix_community_member_requests_user_id", "community_member_requests", ["user_id"])

    op.create_table(
        "community_allowed_orgs",
        _uuid("community_id", primary_key=True),
        _uuid("org_id", primary_key=True),
        _uuid("added_by", nullable=False),
        _ts("added_at"),
        _fk("community_id", "communities.id", ondelete="CASCADE"),
        _fk("org_id", "organizations.id", ondelete="CASCADE"),
        _fk("added_by", "users.id"),
    )

    # -----------------------------------------------------------------------
    # 3. Posts, tags, comments, bookmarks
    # -----------------------------------------------------------------------
    op.create_table(
        "posts",
        _uuid("id", primary_key=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        _uuid("author_id", nullable=False),
        _uuid("org_id", nullable=True),
        _uuid("community_id", nullable=True),
        sa.Column("visibility", sa.Text(), nullable=False, server_default="public"),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        _fk("author_id", "users.id"),
        _fk("org_id", "organizations.id"),
        _fk("community_id", "communities.id", ondelete="CASCADE"),
    )
    op.create_index("ix_posts_author_id", "posts", ["author_id"])
    op.create_index("ix_posts_org_id", "posts", ["org_id"])
    op.create_index("ix_posts_community_id", "posts", ["community_id"])
    op.create_index("ix_posts_is_deleted", "posts", ["is_deleted"])

    op.create_table(
        "tags",
        _uuid("id", primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("color", sa.Text(), nullable=True),
        _uuid("community_id", nullable=False),
        *_timestamps(),
        _fk("community_id", "communities.id", ondelete="CASCADE"),
        sa.UniqueConstraint("community_id", "name", name="uq_tags_community_name"),
    )
    op.create_index("ix_tags_community_id", "tags", ["community_id"])

    op.create_table(
        "post_tags",
        _uuid("post_id", primary_key=True),
        _uuid("tag_id", primary_key=True),
        _fk("post_id", "posts.id", ondelete="CASCADE"),
        _fk("tag_id", "tags.id", ondelete="CASCADE"),
    )

    op.create_table(
        "comments",
        _uuid("id", primary_key=True),
        sa.Column("content", sa.Text(), nullable=False),
        _uuid("post_id", nullable=False),
        _uuid("author_id", nullable=False),
        _uuid("parent_id", nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        _fk("post_id", "posts.id", ondelete="CASCADE"),
        _fk("author_id", "users.id"),
        _fk("parent_id", "comments.id"),
    )
    op.create_index("ix_comments_post_id", "comments", ["post_id"])
    op.create_index("ix_comments_author_id", "comments", ["author_id"])

    op.create_table(
        "saved_posts",
        _uuid("user_id", primary_key=True),
        _uuid("post_id", primary_key=True),
        _ts("created_at"),
        _fk("user_id", "users.id", ondelete="CASCADE"),
        _fk("post_id", "posts.id", ondelete="CASCADE"),
    )

    # -----------------------------------------------------------------------
    # 4. Polls
    # -----------------------------------------------------------------------
    op.create_table(
        "polls",
        _uuid("id", primary_key=True),
        _uuid("post_id", nullable=False, unique=True),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("poll_type", sa.Text(), nullable=False, server_default="single"),
        _ts("expires_at", nullable=True),
        sa.Column("is_closed", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        _fk("post_id", "posts.id", ondelete="CASCADE"),
        sa.CheckConstraint("poll_type IN ('single', 'multiple')", name="ck_polls_poll_type"),
    )

    op.create_table(
        "poll_options",
        _uuid("id", primary_key=True),
        _uuid("poll_id", nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        _fk("poll_id", "polls.id", ondelete="CASCADE"),
    )
    op.create_index("ix_poll_options_poll_id", "poll_options", ["poll_id"])

    op.create_table(
        "poll_votes",
        _uuid("id", primary_key=True),
        _uuid("poll_id", nullable=False),
        _uuid("poll_option_id", nullable=False),
        _uuid("user_id", nullable=False),
        _ts("created_at"),
        _fk("poll_id", "polls.id", ondelete="CASCADE"),
        _fk("poll_option_id", "poll_options.id", ondelete="CASCADE"),
        _fk("user_id", "users.id"),
        sa.UniqueConstraint("poll_option_id", "user_id", name="uq_poll_votes_option_user"),
    )
    op.create_index("ix_poll_votes_poll_id", "poll_votes", ["poll_id"])
    op.create_index("ix_poll_votes_user_id", "poll_votes", ["user_id"])

    # -----------------------------------------------------------------------
    # 5. Attachments
    # -----------------------------------------------------------------------
    op.create_table(
        "attachments",
        _uuid("id", primary_key=True),
        sa.Column("filename", sa.Text(), nullable=False),
        sa.Column("mimetype", sa.Text(), nullable=False),
        sa.Column("type", sa.Text(), nullable=False, server_default="image"),
        sa.Column("size", sa.Integer(), nullable=True),
        sa.Column("r2_key", sa.Text(), nullable=False),
        sa.Column("r2_url", sa.Text(), nullable=False),
        sa.Column("public_url", sa.Text(), nullable=True),
        sa.Column("thumbnail_url", sa.Text(), nullable=True),
        _uuid("uploaded_by", nullable=False),
        _uuid("post_id", nullable=True),
        _uuid("community_id", nullable=True),
        *_timestamps(),
        _fk("uploaded_by", "users.id"),
        _fk("post_id", "posts.id", ondelete="CASCADE"),
        _fk("community_id", "communities.id", ondelete="CASCADE"),
        sa.CheckConstraint("type IN ('image', 'video')", name="ck_attachments_type"),
    )
    op.create_index("ix_attachments_uploaded_by", "attachments", ["uploaded_by"])
    op.create_index("ix_attachments_post_id", "attachments", ["post_id"])
    op.create_index("ix_attachments_community_id", "attachments", ["community_id"])

    # -----------------------------------------------------------------------
    # 6. Chat
    # -----------------------------------------------------------------------
    op.create_table(
        "chat_threads",
        _uuid("id", primary_key=True),
        _uuid("user1_id", nullable=False),
        _uuid("user2_id", nullable=False),
        _uuid("org_id", nullable=True),
        _ts("last_message_at", nullable=True),
        sa.Column("last_message_preview", sa.Text(), nullable=True),
        *_timestamps(),
        _fk("user1_id", "users.id"),
        _fk("user2_id", "users.id"),
        _fk("org_id", "organizations.id"),
        sa.UniqueConstraint("user1_id", "user2_id", name="uq_chat_threads_pair"),
    )
    op.create_index("ix_chat_threads_user1_id", "chat_threads", ["user1_id"])
    op.create_index("ix_chat_threads_user2_id", "chat_threads", ["user2_id"])

    op.create_table(
        "direct_messages",
        _uuid("id", primary_key=True),
        _uuid("thread_id", nullable=False),
        _uuid("sender_id", nullable=False),
        _uuid("recipient_id", nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        _fk("thread_id", "chat_threads.id", ondelete="CASCADE"),
        _fk("sender_id", "users.id"),
        _fk("recipient_id", "users.id"),
    )
    op.create_index("ix_direct_messages_thread_id", "direct_messages", ["thread_id"])
    op.create_index("ix_direct_messages_recipient_id", "direct_messages", ["recipient_id"])

    # -----------------------------------------------------------------------
    # 7. Notifications
    # -----------------------------------------------------------------------
    op.create_table(
        "push_subscriptions",
        _uuid("id", primary_key=True),
        _uuid("user_id", nullable=False),
        sa.Column("endpoint", sa.Text(), nullable=False, unique=True),
        sa.Column("p256dh", sa.Text(), nullable=False),
        sa.Column("auth", sa.Text(), nullable=False),
        *_timestamps(),
        _fk("user_id", "users.id", ondelete="CASCADE"),
    )
    op.create_index("ix_push_subscriptions_user_id", "push_subscriptions", ["user_id"])

    op.create_table(
        "notifications",
        _uuid("id", primary_key=True),
        _uuid("recipient_id", nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("data", postgresql.JSONB(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        _fk("recipient_id", "users.id", ondelete="CASCADE"),
    )
    op.create_index("ix_notifications_recipient_id", "notifications", ["recipient_id"])

    op.create_table(
        "notification_preferences",
        _uuid("user_id", primary_key=True),
        _uuid("community_id", primary_key=True),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        _fk("user_id", "users.id", ondelete="CASCADE"),
        _fk("community_id", "communities.id", ondelete="CASCADE"),
    )


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    for table in (
        "notification_preferences",
        "notifications",
        "push_subscriptions",
        "direct_messages",
        "chat_threads",
        "attachments",
        "poll_votes",
        "poll_options",
        "polls",
        "saved_posts",
        "comments",
        "post_tags",
        "tags",
        "posts",
        "community_allowed_orgs",
        "community_member_requests",
        "community_members",
        "communities",
        "org_invites",
        "user_profiles",
        "accounts",
        "users",
        "organizations",
    ):
        op.drop_table(table)
