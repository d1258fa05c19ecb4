"""Fixed-window rate limiting for credential and billing endpoints."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Tuple

from fastapi import Request
import redis.asyncio as redis
from redis.exceptions import RedisError

from config import settings
from services.errors import RateLimited

logger = logging.getLogger(__name__)

# key -> (hits in window, window reset epoch seconds)
_local_counters: Dict[str, Tuple[int, float]] = {}
_local_lock = asyncio.Lock()


def reset_local_counters() -> None:
    _local_counters.clear()


def _client_identifier(request: Request) -> str:
    if request.client and request.client.host:
        return request.client.host
    # Only consulted when the server sees no peer address.
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return "unknown"


async def _hit_local(key: str, window_seconds: int) -> Tuple[int, int]:
    now = time.time()
    async with _local_lock:
        count, reset_at = _local_counters.get(key, (0, now + window_seconds))
        if now >= reset_at:
            count, reset_at = 0, now + window_seconds
        count += 1
        _local_counters[key] = (count, reset_at)
    return count, max(int(reset_at - now), 1)


async def _hit_redis(key: str, window_seconds: int) -> Tuple[int, int]:
    client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        count = await client.incr(key)
        if count == 1:
            await client.expire(key, window_seconds)
        ttl = await client.ttl(key)
    finally:
        await client.aclose()
    return int(count), max(int(ttl), 1) if ttl and ttl > 0 else window_seconds


def rate_limit(prefix: str, limit: int, window_seconds: int) -> Callable[[Request], Awaitable[None]]:
    """Return a dependency allowing ``limit`` requests per client per window."""

    async def _dependency(request: Request) -> None:
        if getattr(request.app.state, "disable_rate_limits", False):
            return

        key = f"profile:rate:{prefix}:{_client_identifier(request)}"
        try:
            count, retry_after = await _hit_redis(key, window_seconds)
        except (RedisError, OSError) as exc:
            logger.debug("Rate limit falling back to local counters: %s", exc)
            count, retry_after = await _hit_local(key, window_seconds)

        if count > limit:
            raise RateLimited(
                f"Rate limit exceeded for {prefix}. Try again later.",
                extra={"retryAfter": retry_after},
            )

    return _dependency
