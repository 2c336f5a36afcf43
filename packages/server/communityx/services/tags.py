"""
Tag service: community-scoped post tags.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from communityx.core.permissions import Action, Subject, ensure_can
from communityx.models.community import Community
from communityx.models.post import PostTag, Tag
from communityx.services.communities import community_resource
from communityx_shared.schemas.communities import TagCreateRequest, TagUpdateRequest

log = structlog.get_logger()


async def _ensure_unique_name(
    session: AsyncSession,
    community_id: uuid.UUID,
    name: str,
    exclude_id: Optional[uuid.UUID] = None,
) -> None:
    query = select(Tag).where(Tag.community_id == community_id, Tag.name == name)
    if exclude_id is not None:
        query = query.where(Tag.id != exclude_id)
    existing = await session.execute(query)
    if existing.scalars().first():
        raise HTTPException(status_code=400, detail="A tag with this name already exists")


async def get_tag_or_404(
    session: AsyncSession, community: Community, tag_id: uuid.UUID
) -> Tag:
    tag = await session.get(Tag, tag_id)
    if not tag or tag.community_id != community.id:
        raise HTTPException(status_code=404, detail="Tag not found")
    return tag


async def list_tags(
    session: AsyncSession, community: Community, subject: Subject
) -> list[Tag]:
    ensure_can(subject, Action.VIEW_COMMUNITY, community_resource(community))
    result = await session.execute(
        select(Tag).where(Tag.community_id == community.id).order_by(Tag.name.asc())
    )
    return list(result.scalars().all())


async def create_tag(
    session: AsyncSession, community: Community, req: TagCreateRequest, subject: Subject
) -> Tag:
    ensure_can(subject, Action.CREATE_TAG, community_resource(community))
    name = req.name.strip()
    await _ensure_unique_name(session, community.id, name)

    tag = Tag(name=name, description=req.description, color=req.color, community_id=community.id)
    session.add(tag)
    await session.flush()
    log.info("tag.created", tag_id=str(tag.id), community_id=str(community.id))
    return tag


async def update_tag(
    session: AsyncSession,
    community: Community,
    tag_id: uuid.UUID,
    req: TagUpdateRequest,
    subject: Subject,
) -> Tag:
    ensure_can(subject, Action.EDIT_TAG, community_resource(community))
    tag = await get_tag_or_404(session, community, tag_id)

    if req.name is not None:
        name = req.name.strip()
        await _ensure_unique_name(session, community.id, name, exclude_id=tag.id)
        tag.name = name
    if req.description is not None:
        tag.description = req.description
    if req.color is not None:
        tag.color = req.color

    tag.updated_at = datetime.now(timezone.utc)
    session.add(tag)
    await session.flush()
    log.info("tag.updated", tag_id=str(tag.id))
    return tag


async def delete_tag(
    session: AsyncSession, community: Community, tag_id: uuid.UUID, subject: Subject
) -> None:
    ensure_can(subject, Action.DELETE_TAG, community_resource(community))
    tag = await get_tag_or_404(session, community, tag_id)

    links = await session.execute(select(PostTag).where(PostTag.tag_id == tag.id))
    for link in links.scalars().all():
        await session.delete(link)
    await session.delete(tag)
    await session.flush()
    log.info("tag.deleted", tag_id=str(tag_id), community_id=str(community.id))


async def validate_tag_ids(
    session: AsyncSession, community_id: uuid.UUID, tag_ids: Iterable[uuid.UUID]
) -> list[uuid.UUID]:
    """All tags must belong to the community the post lives in (400 otherwise)."""
    wanted = list(dict.fromkeys(tag_ids))
    if not wanted:
        return []
    result = await session.execute(
        select(Tag.id).where(Tag.id.in_(wanted), Tag.community_id == community_id)
    )
    found = {row[0] for row in result.all()}
    if len(found) != len(wanted):
        raise HTTPException(
            status_code=400, detail="One or more tags do not belong to this community"
        )
    return wanted


async def replace_post_tags(
    session: AsyncSession, post_id: uuid.UUID, tag_ids: list[uuid.UUID]
) -> None:
    existing = await session.execute(select(PostTag).where(PostTag.post_id == post_id))
    for link in existing.scalars().all():
        await session.delete(link)
    await session.flush()
    for tag_id in tag_ids:
        session.add(PostTag(post_id=post_id, tag_id=tag_id))
    await session.flush()
