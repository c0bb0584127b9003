import json

from loguru import logger
from redis.asyncio import Redis

from reservations.settings import REDIS_URL

_redis: Redis | None = None
SLOTS_TTL = 60  # 1 minute


def get_redis() -> Redis:
    global _redis
    if _redis is None:
        _redis = Redis.from_url(REDIS_URL, decode_responses=True)
    return _redis


def _slots_key(venue_id: int, day: str) -> str:
    return f"slots:{venue_id}:{day}"


async def get_slots_cache(venue_id: int, day: str) -> list | None:
    try:
        data = await get_redis().get(_slots_key(venue_id, day))
        return json.loads(data) if data else None
    except Exception:
        logger.warning("Redis get failed, skipping slots cache", exc_info=True)
        return None


async def set_slots_cache(venue_id: int, day: str, slots: list) -> None:
    try:
        await get_redis().setex(_slots_key(venue_id, day), SLOTS_TTL, json.dumps(slots))
    except Exception:
        logger.warning("Redis set failed, skipping slots cache", exc_info=True)


async def invalidate_slots_cache(*venue_ids: int) -> None:
    """Drop every cached day of the given venues."""
    try:
        redis = get_redis()
        for venue_id in set(venue_ids):
            keys = [k async for k in redis.scan_iter(match=_slots_key(venue_id, "*"))]
            if keys:
                await redis.delete(*keys)
    except Exception:
        logger.warning("Redis invalidate failed for slots cache", exc_info=True)
