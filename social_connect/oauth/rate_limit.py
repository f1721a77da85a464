# social_connect/oauth/rate_limit.py
import asyncio
import time
from typing import Awaitable, Callable, TypeVar

import httpx
import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")

MIN_RATE_LIMIT_WAIT = 60.0
RATE_LIMIT_RESET_HEADER = "x-rate-limit-reset"


def rate_limit_wait_seconds(response: httpx.Response, now: float = None) -> float:
    """Seconds until the reported reset (epoch seconds header), never less than a minute."""
    now = time.time() if now is None else now
    try:
        reset_at = float(response.headers.get(RATE_LIMIT_RESET_HEADER, 0))
    except ValueError:
        reset_at = 0.0
    return max(reset_at - now, MIN_RATE_LIMIT_WAIT)


async def with_rate_limit(
    fn: Callable[[], Awaitable[T]],
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run `fn`; on HTTP 429 wait for the reset window and retry exactly once."""
    try:
        return await fn()
    except httpx.HTTPStatusError as exc:
        if exc.response.status_code != 429:
            raise
        wait = rate_limit_wait_seconds(exc.response)
        logger.warning("rate_limit_hit", path=exc.request.url.path, wait_seconds=round(wait, 1))
        await sleep(wait)
        return await fn()
