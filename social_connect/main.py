# social_connect/main.py
import os
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine

from social_connect.config import Settings
from social_connect.infrastructure.database import build_engine, init_db, session_factory
from social_connect.infrastructure.http_client import ExternalAPIClient
from social_connect.infrastructure.platforms_repo import OAuthAttemptRepository, PlatformsRepository
from social_connect.infrastructure.redis_cache import build_redis
from social_connect.middleware.logging import RequestIdMiddleware
from social_connect.oauth.encryption import TokenCipher
from social_connect.oauth.registry import build_services
from social_connect.oauth.state_store import InMemoryOAuthStateStore, OAuthStateStore, RedisOAuthStateStore
from social_connect.routers.analytics_router import router as analytics_router
from social_connect.routers.oauth_router import router as oauth_router
from social_connect.routers.platforms_router import router as platforms_router
from social_connect.services.refresh_scheduler import TokenRefreshScheduler


def configure_structlog():
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
    )


configure_structlog()
logger = structlog.get_logger()


def build_state_store(settings: Settings) -> OAuthStateStore:
    if settings.oauth_state_backend == "memory":
        return InMemoryOAuthStateStore(ttl=settings.oauth_state_ttl_seconds)
    if settings.oauth_state_backend == "redis":
        return RedisOAuthStateStore(build_redis(settings.redis_url), ttl=settings.oauth_state_ttl_seconds)
    raise ValueError(f"unknown OAUTH_STATE_BACKEND: {settings.oauth_state_backend}")


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[AsyncEngine] = None,
    state_store: Optional[OAuthStateStore] = None,
    http: Optional[ExternalAPIClient] = None,
    scheduler: Optional[TokenRefreshScheduler] = None,
) -> FastAPI:
    if settings is None:
        settings = Settings.from_env()

    # refuse to start with a missing or malformed ENCRYPTION_KEY
    cipher = TokenCipher(settings.encryption_key)

    if engine is None:
        engine = build_engine(settings.database_url)
    sessions = session_factory(engine)
    repo = PlatformsRepository(sessions, preserve_connected_at=settings.preserve_connected_at)
    attempts = OAuthAttemptRepository(sessions)
    if state_store is None:
        state_store = build_state_store(settings)
    services = build_services(settings, repo, cipher, state_store, attempts=attempts, http=http)
    if scheduler is None:
        scheduler = TokenRefreshScheduler()

    app = FastAPI(title="Social Connect")
    app.state.settings = settings
    app.state.repo = repo
    app.state.services = services
    app.state.scheduler = scheduler

    app.add_middleware(RequestIdMiddleware)

    app.include_router(oauth_router)
    app.include_router(platforms_router)
    app.include_router(analytics_router)

    @app.on_event("startup")
    async def on_startup():
        await init_db(engine)
        await scheduler.restore(services)
        unconfigured = [p.value for p, s in services.items() if not s.is_configured()]
        logger.info("app_startup", environment=settings.environment, unconfigured_platforms=unconfigured)

    @app.on_event("shutdown")
    async def on_shutdown():
        await scheduler.shutdown()
        await engine.dispose()
        logger.info("app_shutdown")

    return app


if __name__ == "__main__":
    uvicorn.run(
        "social_connect.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=os.getenv("ENVIRONMENT", "development").lower() == "development",
    )
