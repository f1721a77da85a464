# social_connect/services/refresh_scheduler.py
"""
Proactive refresh for platforms whose access tokens expire on a fixed
lifetime (TikTok, Instagram). One asyncio task per (user_id, platform).
"""
import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Dict, Mapping, Optional, Tuple

import structlog

from social_connect.errors import EncryptionError
from social_connect.models.connected_platform import Platform
from social_connect.oauth.base import BaseOAuthService
from social_connect.utils import as_utc, utcnow

logger = structlog.get_logger(__name__)

ScheduleKey = Tuple[str, Platform]


class TokenRefreshScheduler:
    def __init__(
        self,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        now: Callable[[], datetime] = utcnow,
    ):
        self._sleep = sleep
        self._now = now
        self._tasks: Dict[ScheduleKey, asyncio.Task] = {}

    def __contains__(self, key: ScheduleKey) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def schedule(self, service: BaseOAuthService, user_id: str, first_delay: Optional[float] = None) -> Optional[asyncio.Task]:
        """Start (or restart) the refresh loop for one connection. No-op for lazily refreshed platforms."""
        if service.refresh_interval is None:
            return None

        user_id = str(user_id)
        self.cancel(user_id, service.platform)
        delay = service.refresh_interval.total_seconds() if first_delay is None else first_delay
        task = asyncio.create_task(self._run(service, user_id, delay))
        self._tasks[(user_id, service.platform)] = task
        logger.info(
            "token_refresh_scheduled",
            platform=service.platform.value,
            user_id=user_id,
            delay_seconds=round(delay),
        )
        return task

    def cancel(self, user_id: str, platform: Platform) -> bool:
        task = self._tasks.pop((str(user_id), platform), None)
        if task is None:
            return False
        task.cancel()
        return True

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("token_refresh_scheduler_stopped", cancelled=len(tasks))

    def first_delay(self, service: BaseOAuthService, expires_at: Optional[datetime]) -> float:
        """
        Seconds until the next refresh should run for a token expiring at
        `expires_at`: the same margin before expiry a fresh schedule would
        leave, clamped to [0, refresh_interval].
        """
        interval = service.refresh_interval.total_seconds()
        if expires_at is None or service.token_lifetime is None:
            return interval
        margin = service.token_lifetime - service.refresh_interval
        delay = (as_utc(expires_at) - margin - as_utc(self._now())).total_seconds()
        return min(max(delay, 0.0), interval)

    async def restore(self, services: Mapping[Platform, BaseOAuthService]) -> int:
        """Reschedule every active connection after a restart. Returns the number scheduled."""
        count = 0
        for service in services.values():
            if service.refresh_interval is None:
                continue
            for cp in await service.repo.list_active(service.platform):
                self.schedule(service, cp.user_id, first_delay=self.first_delay(service, cp.token_expires_at))
                count += 1
        logger.info("token_refresh_schedules_restored", count=count)
        return count

    async def _run(self, service: BaseOAuthService, user_id: str, delay: float) -> None:
        key = (user_id, service.platform)
        try:
            while True:
                await self._sleep(delay)
                if not await self._tick(service, user_id):
                    return
                delay = service.refresh_interval.total_seconds()
        finally:
            if self._tasks.get(key) is asyncio.current_task():
                del self._tasks[key]

    async def _tick(self, service: BaseOAuthService, user_id: str) -> bool:
        """One scheduled refresh. Returns False when the schedule should stop."""
        platform = service.platform.value
        try:
            connection = await service.get_connection(user_id)
        except EncryptionError:
            logger.error("scheduled_refresh_stopped", platform=platform, user_id=user_id, reason="unreadable_tokens")
            return False
        except Exception:
            logger.exception("scheduled_refresh_error", platform=platform, user_id=user_id)
            return True

        if connection is None or not connection.is_active:
            logger.info("scheduled_refresh_stopped", platform=platform, user_id=user_id, reason="not_connected")
            return False
        if not service.refresh_credential(connection):
            logger.info("scheduled_refresh_stopped", platform=platform, user_id=user_id, reason="no_refresh_credential")
            return False

        try:
            token = await service.refresh_connection(user_id)
        except Exception:
            logger.exception("scheduled_refresh_error", platform=platform, user_id=user_id)
            token = None

        if token:
            logger.info("scheduled_refresh_succeeded", platform=platform, user_id=user_id)
        else:
            # keep the schedule; the next tick or a lazy refresh may recover
            logger.warning("scheduled_refresh_failed", platform=platform, user_id=user_id)
        return True
