# social_connect/infrastructure/database.py
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator, Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

# register tables on SQLModel.metadata
from social_connect.models.connected_platform import PlatformConnection  # noqa: F401
from social_connect.models.oauth_attempt import OAuthAttempt  # noqa: F401

logger = structlog.get_logger(__name__)

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]


def build_engine(database_url: str, **kwargs) -> AsyncEngine:
    return create_async_engine(database_url, echo=False, **kwargs)


async def init_db(engine: AsyncEngine) -> None:
    try:
        async with engine.begin() as connection:
            await connection.run_sync(SQLModel.metadata.create_all)
    except Exception as e:
        logger.exception("db_init_failed", error=str(e))
        raise


def session_factory(engine: AsyncEngine) -> SessionFactory:
    @asynccontextmanager
    async def get_session() -> AsyncIterator[AsyncSession]:
        async with AsyncSession(engine, expire_on_commit=False) as session:
            yield session

    return get_session
