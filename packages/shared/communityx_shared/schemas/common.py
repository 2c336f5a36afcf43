from enum import Enum
from typing import Optional
import uuid

from pydantic import BaseModel


class AppRole(str, Enum):
    ADMIN = "admin"
    USER = "user"


class OrgRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class CommunityRole(str, Enum):
    MEMBER = "member"
    MODERATOR = "moderator"
    ADMIN = "admin"


class CommunityType(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class MembershipStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PostVisibility(str, Enum):
    PUBLIC = "public"
    COMMUNITY = "community"


class PostSort(str, Enum):
    LATEST = "latest"
    OLDEST = "oldest"
    MOST_COMMENTED = "most-commented"


class PollType(str, Enum):
    SINGLE = "single"
    MULTIPLE = "multiple"


class AttachmentType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


class NotificationType(str, Enum):
    POST = "post"
    COMMENT = "comment"
    MESSAGE = "message"


class UserSummary(BaseModel):
    id: uuid.UUID
    name: str
    email: Optional[str] = None
    image: Optional[str] = None


class OffsetPage(BaseModel):
    """Offset pagination envelope shared by feeds and saved posts."""

    total_count: int
    has_next_page: bool
    next_offset: Optional[int] = None


class SuccessResponse(BaseModel):
    success: bool = True


class ErrorResponse(BaseModel):
    error: str


def page_envelope(offset: int, limit: int, total_count: int) -> dict:
    has_next = offset + limit < total_count
    return {
        "total_count": total_count,
        "has_next_page": has_next,
        "next_offset": offset + limit if has_next else None,
    }
