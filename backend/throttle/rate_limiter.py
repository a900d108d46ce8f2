"""Redis-backed fixed-window rate limiting.

Each client address gets one counter per window. The counter key expires
with the window, so no cleanup is needed. When Redis is unreachable the
limiter lets requests through and logs a warning.
"""

import logging
import time

import redis.asyncio as redis
from redis.exceptions import RedisError
from fastapi import HTTPException, Request, status

from config import settings

logger = logging.getLogger(__name__)

RATE_LIMIT_PREFIX = "rate_limit:"
RATE_LIMIT_MESSAGE = "Too many requests, please try again later."

_redis_pool: redis.Redis | None = None


def _get_redis() -> redis.Redis:
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = redis.from_url(settings.redis_url, decode_responses=True)
    return _redis_pool


def _window_key(client_id: str, window_seconds: int, now: float | None = None) -> str:
    window = int((now if now is not None else time.time()) // window_seconds)
    return f"{RATE_LIMIT_PREFIX}{client_id}:{window}"


async def hit(client_id: str) -> tuple[int, bool]:
    """Count one request for a client in the current window.

    Args:
        client_id: Identifier of the client (usually its address).

    Returns:
        ``(count, allowed)`` where count is the number of requests seen in
        this window, including this one.
    """
    window_seconds = settings.rate_limit_window_seconds
    key = _window_key(client_id, window_seconds)
    r = _get_redis()
    pipe = r.pipeline()
    pipe.incr(key)
    pipe.expire(key, window_seconds)
    count, _ = await pipe.execute()
    return int(count), int(count) <= settings.rate_limit_max_requests


async def enforce_rate_limit(request: Request) -> None:
    """FastAPI dependency that rejects clients over their request budget."""
    if not settings.rate_limit_enabled:
        return
    client_id = request.client.host if request.client else "unknown"
    try:
        count, allowed = await hit(client_id)
    except RedisError as e:
        logger.warning(f"Rate limiter unavailable, allowing request: {e}")
        return
    if not allowed:
        logger.info(f"Rate limit exceeded for {client_id} ({count} requests)")
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=RATE_LIMIT_MESSAGE)
