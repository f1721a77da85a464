# social_connect/infrastructure/redis_cache.py
import redis.asyncio as aioredis


def build_redis(url: str) -> aioredis.Redis:
    return aioredis.from_url(url, decode_responses=True)
