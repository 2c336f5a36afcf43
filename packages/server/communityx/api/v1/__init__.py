"""
API v1 Router

JSON API grouped by resource. Auth routes are mounted separately at /auth.
"""

from fastapi import APIRouter

from communityx_shared.schemas.common import ErrorResponse

from . import chat, communities, notifications, organizations, posts, profiles

# Every error body shares one envelope; documented once for the whole API
router = APIRouter(
    responses={
        status: {"model": ErrorResponse}
        for status in (400, 401, 403, 404, 409)
    }
)

router.include_router(organizations.router, prefix="/organizations", tags=["Organizations"])
router.include_router(communities.router, prefix="/communities", tags=["Communities"])
router.include_router(posts.router, prefix="/community", tags=["Posts"])
router.include_router(profiles.router, prefix="/profiles", tags=["Profiles"])
router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
router.include_router(chat.router, prefix="/chat", tags=["Chat"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/organizations",
            "/communities",
            "/community/posts",
            "/community/saved",
            "/profiles",
            "/notifications",
            "/chat",
        ],
    }
