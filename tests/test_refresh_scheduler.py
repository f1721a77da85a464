# Tests for services/refresh_scheduler.py

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from social_connect.models.connected_platform import Platform
from social_connect.oauth import tiktok
from social_connect.oauth.instagram import InstagramOAuthService
from social_connect.oauth.tiktok import TikTokOAuthService
from social_connect.oauth.youtube import YouTubeOAuthService
from social_connect.schemas.platform_schema import OAuthTokens, OAuthUserInfo
from social_connect.services.refresh_scheduler import TokenRefreshScheduler

TIKTOK_INTERVAL = timedelta(hours=22).total_seconds()
NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class ParkingSleep:
    """Returns immediately until `park_at` calls, then blocks until cancelled."""

    def __init__(self, park_at: int = 2):
        self.calls = []
        self.park_at = park_at
        self.parked = asyncio.Event()

    async def __call__(self, seconds):
        self.calls.append(seconds)
        if len(self.calls) >= self.park_at:
            self.parked.set()
            await asyncio.Event().wait()


@pytest.fixture
def tiktok_service(make_service):
    return make_service(TikTokOAuthService)


async def _connect(service, user_id="user-1", refresh="rft-1", expires_in=86400):
    tokens = OAuthTokens(access_token="act-1", refresh_token=refresh, expires_in=expires_in)
    await service.save_platform_connection(user_id, tokens, OAuthUserInfo(platform_user_id=f"o-{user_id}"), [])


async def _settle():
    for _ in range(5):
        await asyncio.sleep(0)


class TestSchedule:
    async def test_lazy_platforms_are_not_scheduled(self, make_service):
        scheduler = TokenRefreshScheduler(sleep=ParkingSleep())
        assert scheduler.schedule(make_service(YouTubeOAuthService), "user-1") is None
        assert len(scheduler) == 0

    async def test_successful_refresh_reschedules(self, tiktok_service, fake_api):
        fake_api.add("POST", tiktok.TOKEN_URL, body={"access_token": "act-2", "refresh_token": "rft-2", "expires_in": 86400})
        await _connect(tiktok_service)
        sleep = ParkingSleep(park_at=2)
        scheduler = TokenRefreshScheduler(sleep=sleep)

        scheduler.schedule(tiktok_service, "user-1")
        await asyncio.wait_for(sleep.parked.wait(), 1)

        assert sleep.calls == [TIKTOK_INTERVAL, TIKTOK_INTERVAL]
        record = await tiktok_service.get_connection("user-1")
        assert (record.access_token, record.refresh_token) == ("act-2", "rft-2")
        assert ("user-1", Platform.TIKTOK) in scheduler
        await scheduler.shutdown()

    async def test_failed_refresh_still_reschedules(self, tiktok_service, fake_api):
        fake_api.add("POST", tiktok.TOKEN_URL, status=401, body={"error": "invalid_grant"})
        await _connect(tiktok_service)
        sleep = ParkingSleep(park_at=2)
        scheduler = TokenRefreshScheduler(sleep=sleep)

        scheduler.schedule(tiktok_service, "user-1")
        await asyncio.wait_for(sleep.parked.wait(), 1)

        assert len(sleep.calls) == 2
        record = await tiktok_service.get_connection("user-1")
        assert record.is_active is True
        assert record.access_token == "act-1"
        await scheduler.shutdown()

    async def test_unexpected_error_still_reschedules(self, tiktok_service):
        await _connect(tiktok_service)

        async def boom(user_id):
            raise RuntimeError("unexpected")

        tiktok_service.refresh_connection = boom
        sleep = ParkingSleep(park_at=2)
        scheduler = TokenRefreshScheduler(sleep=sleep)

        scheduler.schedule(tiktok_service, "user-1")
        await asyncio.wait_for(sleep.parked.wait(), 1)

        assert len(sleep.calls) == 2
        await scheduler.shutdown()

    async def test_stops_when_disconnected(self, tiktok_service, fake_api):
        await _connect(tiktok_service)
        await tiktok_service.disconnect("user-1")
        sleep = ParkingSleep(park_at=5)
        scheduler = TokenRefreshScheduler(sleep=sleep)

        task = scheduler.schedule(tiktok_service, "user-1")
        await asyncio.wait_for(task, 1)

        assert sleep.calls == [TIKTOK_INTERVAL]
        assert ("user-1", Platform.TIKTOK) not in scheduler
        assert fake_api.requests == []

    async def test_stops_when_connection_missing(self, tiktok_service):
        sleep = ParkingSleep(park_at=5)
        scheduler = TokenRefreshScheduler(sleep=sleep)

        task = scheduler.schedule(tiktok_service, "nobody", first_delay=0)
        await asyncio.wait_for(task, 1)

        assert sleep.calls == [0]
        assert len(scheduler) == 0

    async def test_stops_without_refresh_token(self, tiktok_service, fake_api):
        await _connect(tiktok_service, refresh=None)
        scheduler = TokenRefreshScheduler(sleep=ParkingSleep(park_at=5))

        await asyncio.wait_for(scheduler.schedule(tiktok_service, "user-1"), 1)
        assert fake_api.requests == []

    async def test_reschedule_replaces_existing_task(self, tiktok_service):
        scheduler = TokenRefreshScheduler(sleep=ParkingSleep(park_at=1))

        first = scheduler.schedule(tiktok_service, "user-1")
        await _settle()
        second = scheduler.schedule(tiktok_service, "user-1")
        await asyncio.gather(first, return_exceptions=True)

        assert first.cancelled()
        assert not second.done()
        assert len(scheduler) == 1
        await scheduler.shutdown()

    async def test_cancel(self, tiktok_service):
        scheduler = TokenRefreshScheduler(sleep=ParkingSleep(park_at=1))
        task = scheduler.schedule(tiktok_service, "user-1")

        assert scheduler.cancel("user-1", Platform.TIKTOK) is True
        assert scheduler.cancel("user-1", Platform.TIKTOK) is False
        await asyncio.gather(task, return_exceptions=True)
        assert task.cancelled()

    async def test_shutdown_cancels_everything(self, tiktok_service):
        scheduler = TokenRefreshScheduler(sleep=ParkingSleep(park_at=1))
        tasks = [scheduler.schedule(tiktok_service, f"user-{i}") for i in range(3)]
        await _settle()

        await scheduler.shutdown()

        assert len(scheduler) == 0
        assert all(t.cancelled() for t in tasks)


class TestRestore:
    async def test_first_delay(self, make_service):
        scheduler = TokenRefreshScheduler(now=lambda: NOW)
        tiktok_service = make_service(TikTokOAuthService)
        instagram_service = make_service(InstagramOAuthService)

        # 2h margin before a 24h token expires
        assert scheduler.first_delay(tiktok_service, NOW + timedelta(hours=24)) == TIKTOK_INTERVAL
        assert scheduler.first_delay(tiktok_service, NOW + timedelta(hours=10)) == timedelta(hours=8).total_seconds()
        assert scheduler.first_delay(tiktok_service, NOW + timedelta(hours=1)) == 0
        assert scheduler.first_delay(tiktok_service, NOW + timedelta(days=3)) == TIKTOK_INTERVAL
        assert scheduler.first_delay(tiktok_service, None) == TIKTOK_INTERVAL
        # 10 day margin before a 60 day token expires
        assert scheduler.first_delay(instagram_service, NOW + timedelta(days=30)) == timedelta(days=20).total_seconds()

    async def test_restore_schedules_active_connections(self, make_service, repo):
        services = {
            Platform.TIKTOK: make_service(TikTokOAuthService),
            Platform.YOUTUBE: make_service(YouTubeOAuthService),
            Platform.INSTAGRAM: make_service(InstagramOAuthService),
        }
        await _connect(services[Platform.TIKTOK], "user-1")
        await _connect(services[Platform.TIKTOK], "user-2")
        await _connect(services[Platform.TIKTOK], "user-3")
        await services[Platform.TIKTOK].disconnect("user-3")
        await _connect(services[Platform.YOUTUBE], "user-1")
        await _connect(services[Platform.INSTAGRAM], "user-1", refresh=None, expires_in=5184000)

        sleep = ParkingSleep(park_at=1)
        scheduler = TokenRefreshScheduler(sleep=sleep)

        assert await scheduler.restore(services) == 3
        await _settle()

        assert ("user-1", Platform.TIKTOK) in scheduler
        assert ("user-2", Platform.TIKTOK) in scheduler
        assert ("user-3", Platform.TIKTOK) not in scheduler
        assert ("user-1", Platform.YOUTUBE) not in scheduler
        assert ("user-1", Platform.INSTAGRAM) in scheduler
        assert len(sleep.calls) == 3
        await scheduler.shutdown()
