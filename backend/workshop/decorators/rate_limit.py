from __future__ import annotations
"""Fixed-window rate limiting backed by Redis.

Counters are keyed by scope and client IP (INCR + EXPIRE in one pipeline).
Without Redis, or when Redis errors, requests are allowed.
"""
import logging
from functools import wraps
from typing import Optional, Tuple
import redis
from flask import current_app, request
from workshop.errors import WorkshopError
from workshop.services.cache import get_redis

logger = logging.getLogger(__name__)


class RateLimitExceeded(WorkshopError):
    code = 429
    error_code = 'rate_limited'


def hit(scope: str, identity: str, limit: int, window: int) -> Tuple[bool, int, Optional[int]]:
    """Count one request. Returns (allowed, current_count, retry_after_seconds)."""
    client = get_redis()
    if client is None:
        return True, 0, None
    key = f"ratelimit:{scope}:{identity}"
    try:
        pipe = client.pipeline()
        pipe.incr(key)
        pipe.ttl(key)
        count, ttl = pipe.execute()
        if int(ttl) < 0:
            # first hit in this window
            client.expire(key, window)
            ttl = window
    except redis.RedisError as e:
        logger.warning('Rate limiter unavailable, allowing request: %s', e)
        return True, 0, None
    count = int(count)
    if count > limit:
        return False, count, int(ttl) if ttl and int(ttl) > 0 else window
    return True, count, None


def rate_limit(scope: str, max_key: str, window_key: str):
    """Limit a view to app.config[max_key] hits per app.config[window_key] seconds per IP."""
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            limit = int(current_app.config.get(max_key, 10))
            window = int(current_app.config.get(window_key, 3600))
            ident = request.remote_addr or 'unknown'
            allowed, count, retry_after = hit(scope, ident, limit, window)
            if not allowed:
                logger.warning('Rate limit hit for %s from %s (%s/%s)', scope, ident, count, limit)
                raise RateLimitExceeded('Too many requests, try again later', retry_after=retry_after)
            return fn(*args, **kwargs)
        return wrapper
    return outer
