# social_connect/infrastructure/platforms_repo.py
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import func, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlmodel import select

from social_connect.infrastructure.database import SessionFactory
from social_connect.models.connected_platform import Platform, PlatformConnection
from social_connect.models.oauth_attempt import OAuthAttempt
from social_connect.utils import utcnow

logger = structlog.get_logger(__name__)

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}

UPSERT_FIELDS = {
    "access_token_enc",
    "refresh_token_enc",
    "token_expires_at",
    "platform_user_id",
    "platform_username",
    "scopes_granted",
    "last_synced",
}


class PlatformsRepository:
    """
    Repository for PlatformConnection rows, keyed uniquely by (user_id, platform).
    Each call opens its own session from the injected factory, so the repository
    can be shared by request handlers and the background refresh scheduler.
    """

    def __init__(self, session_factory: SessionFactory, preserve_connected_at: bool = True):
        self.session_factory = session_factory
        self.preserve_connected_at = preserve_connected_at

    async def find_connection(self, user_id: str, platform: Platform) -> Optional[PlatformConnection]:
        async with self.session_factory() as session:
            q = select(PlatformConnection).where(
                PlatformConnection.user_id == user_id,
                PlatformConnection.platform == platform.value,
            )
            res = await session.exec(q)
            return res.first()

    async def upsert_connection(self, user_id: str, platform: Platform, fields: Dict[str, Any]) -> PlatformConnection:
        """
        Atomic INSERT ... ON CONFLICT (user_id, platform) DO UPDATE.
        Always re-activates the connection. A missing refresh token keeps the stored one.
        """
        unknown = set(fields) - UPSERT_FIELDS
        if unknown:
            raise ValueError(f"unexpected connection fields: {sorted(unknown)}")

        now = utcnow()
        table = PlatformConnection.__table__
        async with self.session_factory() as session:
            insert = _INSERTS.get(session.bind.dialect.name)
            if insert is None:
                raise NotImplementedError(f"upsert not supported for dialect {session.bind.dialect.name}")

            values = {
                "scopes_granted": [],
                **fields,
                "id": uuid.uuid4(),
                "user_id": user_id,
                "platform": platform.value,
                "connected_at": now,
                "updated_at": now,
                "is_active": True,
            }
            stmt = insert(table).values(**values)

            set_ = {name: stmt.excluded[name] for name in fields}
            set_["refresh_token_enc"] = func.coalesce(stmt.excluded.refresh_token_enc, table.c.refresh_token_enc)
            set_["is_active"] = True
            set_["updated_at"] = now
            if not self.preserve_connected_at:
                set_["connected_at"] = now

            stmt = stmt.on_conflict_do_update(index_elements=["user_id", "platform"], set_=set_)
            await session.execute(stmt)
            await session.commit()

        cp = await self.find_connection(user_id, platform)
        logger.info("connection_upserted", user_id=user_id, platform=platform.value, connection_id=str(cp.id))
        return cp

    async def set_active(self, user_id: str, platform: Platform, is_active: bool) -> bool:
        """Returns False when no row exists for (user_id, platform)."""
        async with self.session_factory() as session:
            stmt = (
                update(PlatformConnection)
                .where(
                    PlatformConnection.user_id == user_id,
                    PlatformConnection.platform == platform.value,
                )
                .values(is_active=is_active, updated_at=utcnow())
            )
            res = await session.execute(stmt)
            await session.commit()
            return res.rowcount > 0

    async def update_tokens(
        self,
        user_id: str,
        platform: Platform,
        access_token_enc: str,
        refresh_token_enc: Optional[str],
        expires_at: Optional[datetime],
    ) -> None:
        async with self.session_factory() as session:
            stmt = (
                update(PlatformConnection)
                .where(
                    PlatformConnection.user_id == user_id,
                    PlatformConnection.platform == platform.value,
                )
                .values(
                    access_token_enc=access_token_enc,
                    refresh_token_enc=refresh_token_enc,
                    token_expires_at=expires_at,
                    updated_at=utcnow(),
                )
            )
            await session.execute(stmt)
            await session.commit()

    async def list_by_user(self, user_id: str) -> List[PlatformConnection]:
        async with self.session_factory() as session:
            q = select(PlatformConnection).where(PlatformConnection.user_id == user_id)
            res = await session.exec(q)
            return list(res.all())

    async def list_active(self, platform: Platform) -> List[PlatformConnection]:
        async with self.session_factory() as session:
            q = select(PlatformConnection).where(
                PlatformConnection.platform == platform.value,
                PlatformConnection.is_active == True,  # noqa: E712
            )
            res = await session.exec(q)
            return list(res.all())


class OAuthAttemptRepository:
    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    async def create(self, attempt: OAuthAttempt) -> OAuthAttempt:
        async with self.session_factory() as session:
            session.add(attempt)
            await session.commit()
            await session.refresh(attempt)
            return attempt

    async def list_by_user(self, user_id: str) -> List[OAuthAttempt]:
        async with self.session_factory() as session:
            q = select(OAuthAttempt).where(OAuthAttempt.user_id == user_id)
            res = await session.exec(q)
            return list(res.all())
