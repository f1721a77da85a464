# Shared fixtures: in-memory SQLite, a fixed encryption key, and a scripted
# upstream API served through httpx.MockTransport.

import json
from typing import Dict, List, Tuple

import httpx
import pytest
from sqlalchemy.pool import StaticPool

from social_connect.config import PlatformCredentials, Settings
from social_connect.infrastructure.database import build_engine, init_db, session_factory
from social_connect.infrastructure.http_client import ExternalAPIClient
from social_connect.infrastructure.platforms_repo import OAuthAttemptRepository, PlatformsRepository
from social_connect.models.connected_platform import Platform
from social_connect.oauth.encryption import TokenCipher
from social_connect.oauth.state_store import InMemoryOAuthStateStore

TEST_KEY = "000102030405060708090a0b0c0d0e0f101112131415161718191a1b1c1d1e1f"
OTHER_KEY = "ff" * 32


def _bare_url(request: httpx.Request) -> str:
    return f"{request.url.scheme}://{request.url.host}{request.url.path}"


class FakeAPI:
    """Scripted upstream: (method, url without query) -> queue of responses."""

    def __init__(self):
        self.routes: Dict[Tuple[str, str], List[Tuple[int, object, dict]]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, url: str, status: int = 200, body: object = None, headers: dict = None, replace: bool = False):
        if replace:
            self.routes.pop((method, url), None)
        self.routes.setdefault((method, url), []).append((status, body, headers or {}))
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, _bare_url(request))
        queue = self.routes.get(key)
        if not queue:
            return httpx.Response(404, json={"error": "no route"})
        # the last scripted response repeats
        status, body, headers = queue.pop(0) if len(queue) > 1 else queue[0]
        return httpx.Response(status, content=json.dumps(body).encode(), headers={"content-type": "application/json", **headers})

    def client(self) -> ExternalAPIClient:
        return ExternalAPIClient(timeout=5, transport=httpx.MockTransport(self.handler))

    def calls(self, method: str, url: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and _bare_url(r) == url]


@pytest.fixture
def fake_api():
    return FakeAPI()


@pytest.fixture
def cipher():
    return TokenCipher(TEST_KEY)


@pytest.fixture
async def engine():
    engine = build_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessions(engine):
    return session_factory(engine)


@pytest.fixture
def repo(sessions):
    return PlatformsRepository(sessions)


@pytest.fixture
def attempts(sessions):
    return OAuthAttemptRepository(sessions)


@pytest.fixture
def state_store():
    return InMemoryOAuthStateStore()


@pytest.fixture
def credentials():
    return PlatformCredentials(
        client_id="client-id",
        client_secret="client-secret",
        redirect_uri="https://api.test/oauth/callback",
    )


@pytest.fixture
def settings(credentials):
    return Settings(
        encryption_key=TEST_KEY,
        secret_key="test-secret",
        frontend_url="https://app.test",
        platforms={platform: credentials for platform in Platform},
    )


@pytest.fixture
def make_service(credentials, repo, cipher, state_store, attempts, fake_api):
    """Build any adapter wired to the shared fixtures and the fake upstream."""

    def _make(cls, **kwargs):
        kwargs.setdefault("attempts", attempts)
        kwargs.setdefault("http", fake_api.client())
        return cls(kwargs.pop("credentials", credentials), repo, cipher, state_store, **kwargs)

    return _make
