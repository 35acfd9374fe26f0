"""Redis connection for the quote cache and booking idempotency records.

Redis is optional: when it is down every helper here degrades to a miss and
quotes are simply computed uncached.
"""
import json
import logging
from typing import Any, Optional
from redis.asyncio import Redis
from app.core.config import settings

logger = logging.getLogger(__name__)

redis: Optional[Redis] = None

async def init_redis() -> Redis:
    global redis
    try:
        redis = Redis.from_url(settings.REDIS_URL, decode_responses=False)
        await redis.ping()
        logger.info(f"Connected to Redis at {settings.REDIS_URL}")
        return redis
    except Exception as e:
        logger.error(f"Failed to connect to Redis: {e}")
        redis = None
        raise

async def close_redis():
    global redis
    if redis:
        await redis.close()
        redis = None

def get_redis() -> Optional[Redis]:
    return redis

async def get_json(key: str) -> Optional[Any]:
    client = get_redis()
    if client is None:
        return None
    raw = await client.get(key)
    return json.loads(raw) if raw else None

async def set_json(key: str, value: Any, ttl: int) -> bool:
    client = get_redis()
    if client is None:
        return False
    await client.set(key, json.dumps(value, default=str), ex=ttl)
    return True
