"""
Redis client and the session revocation list.

A signed session cookie stays valid until it expires, so logout records the
token's jti here with a TTL matching the session lifetime. Auth checks the
list on every authenticated request.
"""

from __future__ import annotations

import redis.asyncio as redis
import structlog

from communityx.core.config import get_settings

settings = get_settings()
log = structlog.get_logger()

REVOKED_SESSION_PREFIX = "cx:session:revoked:"

_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    """Return the shared client, connecting lazily on first use."""
    global _client
    if _client is None:
        _client = redis.from_url(settings.redis_url, decode_responses=True)
    return _client


async def close_redis() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None


async def revoke_session(jti: str, ttl_seconds: int | None = None) -> None:
    """Revoke a session token until it would have expired anyway."""
    client = await get_redis()
    ttl = ttl_seconds or settings.jwt_expire_minutes * 60
    await client.setex(f"{REVOKED_SESSION_PREFIX}{jti}", ttl, "1")
    log.info("session.revoked", jti=jti, ttl=ttl)


async def is_session_revoked(jti: str) -> bool:
    client = await get_redis()
    return await client.exists(f"{REVOKED_SESSION_PREFIX}{jti}") > 0
