"""
Database engine and per-request sessions.

Each API request runs in one transaction: the session commits after the
handler returns and rolls back if anything raised, so multi-row writes
(registration, upload confirmation, post creation) land together or not at
all. Background work such as push fan-out opens its own session through
``get_session_context``.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from communityx.core.config import get_settings

settings = get_settings()
log = structlog.get_logger()


def _engine_options(database_url: str) -> dict:
    # SQLite pools are single-connection; sizing only applies to server databases
    if make_url(database_url).get_backend_name() == "sqlite":
        return {}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_pre_ping": True,
    }


engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    **_engine_options(settings.database_url),
)

async_session_factory = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_db() -> None:
    """Create any missing tables. Production schemas come from Alembic."""
    import communityx.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    log.info("db.tables_created", tables=len(SQLModel.metadata.tables))


async def ping_db() -> bool:
    """True when the database answers a trivial query."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        log.warning("db.unreachable", error=str(exc))
        return False
    return True


async def dispose_db() -> None:
    await engine.dispose()


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one committed-or-rolled-back transaction per request."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# Background tasks run after the response, outside the request's session
get_session_context = asynccontextmanager(get_session)
