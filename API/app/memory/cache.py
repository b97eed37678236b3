"""Redis cache for computed leaderboards.

Cache trouble never fails a request: reads miss, writes and invalidations are
dropped, and a circuit breaker stops hammering an unreachable server.
"""
from __future__ import annotations

import json
import logging

import redis.asyncio as redis

from app.core.resilience import get_breaker
from app.core.settings import settings

logger = logging.getLogger(__name__)

LEADERBOARD_PREFIX = "leaderboard:"

redis_client = redis.from_url(settings.redis_url, decode_responses=True)
_breaker = get_breaker("redis")


def leaderboard_cache_key(filters: dict) -> str:
    parts = [f"{name}={filters[name]}" for name in sorted(filters) if filters[name] not in (None, "")]
    return LEADERBOARD_PREFIX + ("&".join(parts) or "all")


def _enabled() -> bool:
    return settings.leaderboard_cache_enabled and _breaker.can_execute()


async def get_cached_leaderboard(key: str) -> list[dict] | None:
    if not _enabled():
        return None
    try:
        raw = await redis_client.get(key)
        _breaker.record_success()
    except redis.RedisError as exc:
        _breaker.record_failure()
        logger.warning("Leaderboard cache read failed: %s", exc)
        return None
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Discarding unreadable leaderboard cache entry %s", key)
        return None


async def set_cached_leaderboard(key: str, entries: list[dict]) -> None:
    if not _enabled():
        return
    try:
        await redis_client.set(key, json.dumps(entries), ex=settings.leaderboard_cache_ttl_seconds)
        _breaker.record_success()
    except redis.RedisError as exc:
        _breaker.record_failure()
        logger.warning("Leaderboard cache write failed: %s", exc)


async def invalidate_leaderboards() -> None:
    """Drop every cached leaderboard; called after any change that can move a ranking."""
    if not _enabled():
        return
    try:
        keys = [key async for key in redis_client.scan_iter(match=LEADERBOARD_PREFIX + "*")]
        if keys:
            await redis_client.delete(*keys)
        _breaker.record_success()
    except redis.RedisError as exc:
        _breaker.record_failure()
        logger.warning("Leaderboard cache invalidation failed: %s", exc)
