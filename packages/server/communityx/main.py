"""
CommunityX API Server

Entry point for the FastAPI application.
"""

import structlog
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from communityx.core.config import get_settings
from communityx.core.database import dispose_db, init_db, ping_db
from communityx.core.errors import register_exception_handlers
from communityx.core.logging import configure_logging
from communityx.core.middleware import CSRFMiddleware, SecurityHeadersMiddleware
from communityx.core.redis import close_redis
from communityx.api.media import router as media_router
from communityx.api.v1 import router as api_v1_router
from communityx.api.v1.auth import router as auth_router

settings = get_settings()
log = structlog.get_logger()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging()

    app = FastAPI(
        title="CommunityX",
        description="Organizations, communities, posts, polls and direct messages.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    register_exception_handlers(app)

    # Middleware (order matters, outermost first)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(CSRFMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-CSRF-Token", "X-Callback-Secret"],
    )

    app.include_router(auth_router, prefix="/auth", tags=["Authentication"])
    app.include_router(api_v1_router, prefix="/api/v1")
    app.include_router(media_router, prefix="/api", tags=["Media"])

    @app.get("/health", tags=["System"])
    async def health_check():
        """Liveness check."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check: the database must answer."""
        if not await ping_db():
            return JSONResponse(status_code=503, content={"error": "Database unavailable"})
        return {"status": "ready"}

    @app.on_event("startup")
    async def on_startup():
        log.info("CommunityX starting", debug=settings.debug)
        if settings.create_tables_on_startup:
            await init_db()

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("CommunityX shutting down")
        await close_redis()
        await dispose_db()

    return app


app = create_app()
