# Tests for oauth/state_store.py

import json

from social_connect.oauth.state_store import InMemoryOAuthStateStore, RedisOAuthStateStore


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeRedis:
    """Just the commands RedisOAuthStateStore uses."""

    def __init__(self):
        self.data = {}
        self.expiry = {}

    async def set(self, key, value, ex=None):
        self.data[key] = value
        self.expiry[key] = ex

    async def getdel(self, key):
        self.expiry.pop(key, None)
        return self.data.pop(key, None)


class TestInMemoryStore:
    async def test_store_then_retrieve(self):
        store = InMemoryOAuthStateStore()
        state = await store.store("user-1", "verifier-1")

        entry = await store.retrieve(state)
        assert entry is not None
        assert entry.user_id == "user-1"
        assert entry.code_verifier == "verifier-1"
        assert entry.state == state

    async def test_single_use(self):
        store = InMemoryOAuthStateStore()
        state = await store.store("user-1", "verifier-1")

        assert await store.retrieve(state) is not None
        assert await store.retrieve(state) is None

    async def test_unknown_state(self):
        store = InMemoryOAuthStateStore()
        assert await store.retrieve("never-issued") is None

    async def test_expires_after_ttl(self):
        clock = FakeClock()
        store = InMemoryOAuthStateStore(ttl=600, clock=clock)
        state = await store.store("user-1", "verifier-1")

        clock.now += 601
        assert await store.retrieve(state) is None

    async def test_valid_at_ttl_boundary(self):
        clock = FakeClock()
        store = InMemoryOAuthStateStore(ttl=600, clock=clock)
        state = await store.store("user-1", "verifier-1")

        clock.now += 600
        assert await store.retrieve(state) is not None

    async def test_expired_entries_are_swept(self):
        clock = FakeClock()
        store = InMemoryOAuthStateStore(ttl=600, clock=clock)
        await store.store("user-1", "v1")
        await store.store("user-2", "v2")
        assert len(store) == 2

        clock.now += 700
        await store.store("user-3", "v3")
        assert len(store) == 1

    async def test_states_are_distinct_per_flow(self):
        store = InMemoryOAuthStateStore()
        a = await store.store("user-1", "v1")
        b = await store.store("user-1", "v2")
        assert a != b
        assert (await store.retrieve(b)).code_verifier == "v2"
        assert (await store.retrieve(a)).code_verifier == "v1"

    async def test_repr_hides_verifier(self):
        store = InMemoryOAuthStateStore()
        state = await store.store("user-1", "super-secret-verifier")
        entry = await store.retrieve(state)
        assert "super-secret-verifier" not in repr(entry)


class TestRedisStore:
    async def test_round_trip_with_ttl(self):
        redis = FakeRedis()
        store = RedisOAuthStateStore(redis, ttl=600)
        state = await store.store("user-1", "verifier-1")

        key = f"oauth_state:{state}"
        assert redis.expiry[key] == 600
        assert json.loads(redis.data[key])["user_id"] == "user-1"

        entry = await store.retrieve(state)
        assert entry.user_id == "user-1"
        assert entry.code_verifier == "verifier-1"

    async def test_single_use(self):
        store = RedisOAuthStateStore(FakeRedis())
        state = await store.store("user-1", "verifier-1")
        assert await store.retrieve(state) is not None
        assert await store.retrieve(state) is None

    async def test_corrupt_payload(self):
        redis = FakeRedis()
        redis.data["oauth_state:bad"] = "{not json"
        store = RedisOAuthStateStore(redis)
        assert await store.retrieve("bad") is None
