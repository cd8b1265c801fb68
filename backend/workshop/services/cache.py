from __future__ import annotations
"""Redis read-through cache for read endpoints.

Every operation fails open: with no REDIS_URL, or with Redis unreachable,
reads miss and writes are dropped (logged). The workflow never consults it.
"""
import json
import logging
from typing import Any, Callable, Optional
import redis
from flask import Flask, current_app

logger = logging.getLogger(__name__)

KEY_PREFIX = 'cache'


def init_redis(app: Flask):
    """Attach a lazily connecting client (or None) to app.extensions['redis']."""
    url = app.config.get('REDIS_URL')
    client = None
    if url:
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        logger.info('Redis cache/rate limit enabled')
    else:
        logger.info('REDIS_URL not set; cache and rate limiting disabled')
    app.extensions['redis'] = client
    return client


def get_redis():
    return current_app.extensions.get('redis')


def cache_key(*parts: Any) -> str:
    return ':'.join([KEY_PREFIX] + [str(p) for p in parts])


class CacheService:
    """Thin JSON cache over the app's redis client."""

    def __init__(self, client_getter: Callable[[], Any] = get_redis):
        self._client_getter = client_getter

    def _client(self):
        try:
            return self._client_getter()
        except RuntimeError:
            # outside an application context
            return None

    def get(self, key: str) -> Optional[Any]:
        client = self._client()
        if client is None:
            return None
        try:
            raw = client.get(key)
        except redis.RedisError as e:
            logger.warning('Cache get failed for %s: %s', key, e)
            return None
        if raw is None:
            logger.debug('Cache miss %s', key)
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        client = self._client()
        if client is None:
            return False
        ttl = ttl or current_app.config.get('CACHE_TTL_DEFAULT', 300)
        try:
            client.setex(key, ttl, json.dumps(value, default=str))
            return True
        except redis.RedisError as e:
            logger.warning('Cache set failed for %s: %s', key, e)
            return False

    def delete(self, key: str) -> bool:
        client = self._client()
        if client is None:
            return False
        try:
            client.delete(key)
            return True
        except redis.RedisError as e:
            logger.warning('Cache delete failed for %s: %s', key, e)
            return False

    def delete_pattern(self, pattern: str) -> int:
        """SCAN + DEL every key matching pattern; returns deleted count."""
        client = self._client()
        if client is None:
            return 0
        try:
            keys = list(client.scan_iter(match=pattern, count=100))
            if not keys:
                return 0
            deleted = client.delete(*keys)
            logger.debug('Cache invalidated %s (%s keys)', pattern, deleted)
            return deleted
        except redis.RedisError as e:
            logger.warning('Cache invalidation failed for %s: %s', pattern, e)
            return 0

    def get_or_set(self, key: str, loader: Callable[[], Any], ttl: Optional[int] = None):
        cached = self.get(key)
        if cached is not None:
            return cached
        value = loader()
        if value is not None:
            self.set(key, value, ttl)
        return value

    # Domain invalidation helpers, called after every committed mutation
    def invalidate_quotes(self, quote_id: Optional[int] = None, client_id: Optional[int] = None):
        self.delete_pattern(cache_key('quotes', '*'))
        if quote_id is not None:
            self.delete(cache_key('quote', quote_id))
        else:
            self.delete_pattern(cache_key('quote', '*'))
        self._invalidate_client_stats(client_id)
        self.invalidate_dashboard()

    def invalidate_orders(self, order_id: Optional[int] = None, client_id: Optional[int] = None):
        self.delete_pattern(cache_key('orders', '*'))
        if order_id is not None:
            self.delete(cache_key('order', order_id))
        else:
            self.delete_pattern(cache_key('order', '*'))
        self._invalidate_client_stats(client_id)
        self.invalidate_dashboard()

    def _invalidate_client_stats(self, client_id: Optional[int]):
        # client detail embeds quote and order counts
        if client_id is not None:
            self.delete(cache_key('client', client_id))
        else:
            self.delete_pattern(cache_key('client', '*'))

    def invalidate_clients(self, client_id: Optional[int] = None):
        self.delete_pattern(cache_key('clients', '*'))
        if client_id is not None:
            self.delete(cache_key('client', client_id))
        else:
            self.delete_pattern(cache_key('client', '*'))

    def invalidate_mechanics(self, mechanic_id: Optional[int] = None):
        self.delete_pattern(cache_key('mechanics', '*'))
        if mechanic_id is not None:
            self.delete(cache_key('mechanic', mechanic_id))
        self.invalidate_dashboard()

    def invalidate_dashboard(self):
        self.delete_pattern(cache_key('dashboard', '*'))


# Global cache instance
cache = CacheService()
