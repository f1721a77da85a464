# social_connect/oauth/state_store.py
"""
Short-lived, single-use mapping state -> (user_id, code_verifier) that ties an
authorization redirect to its callback.
"""
import abc
import json
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import structlog

from social_connect.oauth.pkce import generate_state

logger = structlog.get_logger(__name__)

OAUTH_STATE_TTL = 600


@dataclass(frozen=True)
class OAuthStateEntry:
    state: str
    user_id: str
    code_verifier: str
    created_at: float

    def __repr__(self) -> str:
        return f"OAuthStateEntry(user_id={self.user_id!r}, created_at={self.created_at!r})"


class OAuthStateStore(abc.ABC):
    @abc.abstractmethod
    async def store(self, user_id: str, code_verifier: str) -> str:
        """Record a new entry and return its freshly generated state token."""

    @abc.abstractmethod
    async def retrieve(self, state: str) -> Optional[OAuthStateEntry]:
        """Consume the entry for `state`. None if unknown, already used, or expired."""


class InMemoryOAuthStateStore(OAuthStateStore):
    """
    Process-local store for single-instance deployments. Every operation also
    sweeps expired entries. Methods never suspend, so concurrent flows on one
    event loop cannot interleave inside them.
    """

    def __init__(self, ttl: int = OAUTH_STATE_TTL, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.clock = clock
        self._entries: Dict[str, OAuthStateEntry] = {}

    async def store(self, user_id: str, code_verifier: str) -> str:
        self._sweep()
        state = generate_state()
        while state in self._entries:
            state = generate_state()
        self._entries[state] = OAuthStateEntry(
            state=state,
            user_id=str(user_id),
            code_verifier=code_verifier,
            created_at=self.clock(),
        )
        logger.debug("oauth_state_stored", user_id=str(user_id), pending=len(self._entries))
        return state

    async def retrieve(self, state: str) -> Optional[OAuthStateEntry]:
        entry = self._entries.pop(state, None)
        self._sweep()
        if entry is None:
            return None
        if self._expired(entry):
            logger.info("oauth_state_expired", user_id=entry.user_id)
            return None
        return entry

    def __len__(self) -> int:
        return len(self._entries)

    def _expired(self, entry: OAuthStateEntry) -> bool:
        return self.clock() - entry.created_at > self.ttl

    def _sweep(self) -> None:
        stale = [s for s, e in self._entries.items() if self._expired(e)]
        for s in stale:
            del self._entries[s]
        if stale:
            logger.debug("oauth_state_swept", removed=len(stale))


class RedisOAuthStateStore(OAuthStateStore):
    """
    Shared store for multi-instance deployments. Redis enforces the TTL;
    GETDEL makes consumption atomic across instances.
    """

    key_prefix = "oauth_state:"

    def __init__(self, redis_client, ttl: int = OAUTH_STATE_TTL):
        self.redis = redis_client
        self.ttl = ttl

    async def store(self, user_id: str, code_verifier: str) -> str:
        state = generate_state()
        payload = {"user_id": str(user_id), "code_verifier": code_verifier, "created_at": time.time()}
        await self.redis.set(f"{self.key_prefix}{state}", json.dumps(payload), ex=self.ttl)
        return state

    async def retrieve(self, state: str) -> Optional[OAuthStateEntry]:
        raw = await self.redis.getdel(f"{self.key_prefix}{state}")
        if not raw:
            return None
        try:
            payload = json.loads(raw)
            return OAuthStateEntry(
                state=state,
                user_id=payload["user_id"],
                code_verifier=payload["code_verifier"],
                created_at=payload["created_at"],
            )
        except (ValueError, KeyError, TypeError):
            logger.warning("oauth_state_payload_invalid")
            return None
