"""
Redis cache for tenant dashboard counters.

Entries live under {prefix}:t{tenant_id}:{module}:{name}. Writes to delivery
notes invalidate the "notes" module; invoice writes invalidate "invoices"
and "notes". With CACHE_ENABLED off or Redis down every read is a miss and
every write is dropped.
"""

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Optional

import redis
from flask import Flask, current_app
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

DECIMAL_TAG = '__decimal__'


def _encode(value: Any) -> str:
    def default(obj):
        if isinstance(obj, Decimal):
            return {DECIMAL_TAG: str(obj)}
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")
    return json.dumps(value, default=default)


def _decode(raw: str) -> Any:
    return json.loads(raw, object_hook=lambda d: Decimal(d[DECIMAL_TAG]) if DECIMAL_TAG in d else d)


class TenantCache:
    """Cache-aside store keyed by tenant and module."""

    def __init__(self, app: Optional[Flask] = None):
        self.client: Optional[redis.Redis] = None
        self.prefix = 'ealbaran'
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        self.prefix = app.config.get('CACHE_KEY_PREFIX', 'ealbaran')
        if not app.config.get('CACHE_ENABLED', True):
            logger.info("[CACHE] Disabled by config")
            return

        url = app.config.get('REDIS_URL', 'redis://localhost:6379/0')
        try:
            client = redis.from_url(
                url,
                decode_responses=True,
                socket_connect_timeout=3,
                socket_timeout=3,
                retry_on_timeout=True,
                health_check_interval=30
            )
            client.ping()
        except RedisError as e:
            logger.warning(f"[CACHE] Redis unreachable at {url}: {e}. Running without cache")
            return
        self.client = client
        logger.info(f"[CACHE] Redis connected: {url}")

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def key(self, tenant_id: int, module: str, name: str) -> str:
        return f"{self.prefix}:t{tenant_id}:{module}:{name}"

    def get(self, tenant_id: int, module: str, name: str) -> Optional[Any]:
        if not self.enabled:
            return None
        try:
            raw = self.client.get(self.key(tenant_id, module, name))
        except RedisError as e:
            logger.warning(f"[CACHE] Read failed: {e}")
            return None
        return _decode(raw) if raw is not None else None

    def set(self, tenant_id: int, module: str, name: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self.enabled:
            return False
        ttl = ttl or current_app.config.get('CACHE_DEFAULT_TTL', 60)
        try:
            self.client.setex(self.key(tenant_id, module, name), ttl, _encode(value))
        except (RedisError, TypeError) as e:
            logger.warning(f"[CACHE] Write failed: {e}")
            return False
        return True

    def memoize(self, tenant_id: int, module: str, name: str,
                loader: Callable[[], Any], ttl: Optional[int] = None) -> Any:
        cached = self.get(tenant_id, module, name)
        if cached is not None:
            return cached
        value = loader()
        self.set(tenant_id, module, name, value, ttl)
        return value

    def invalidate(self, tenant_id: int, *modules: str) -> int:
        """Drop every entry of the given modules for one tenant."""
        if not self.enabled:
            return 0
        removed = 0
        try:
            for module in modules:
                keys = list(self.client.scan_iter(match=self.key(tenant_id, module, '*'), count=100))
                if keys:
                    removed += self.client.delete(*keys)
        except RedisError as e:
            logger.warning(f"[CACHE] Invalidation failed for tenant {tenant_id}: {e}")
            return removed
        if removed:
            logger.info(f"[CACHE] Invalidated {removed} keys for tenant {tenant_id} ({', '.join(modules)})")
        return removed


_cache: Optional[TenantCache] = None


def init_cache(app: Flask) -> None:
    global _cache
    _cache = TenantCache(app)
    app.extensions['cache'] = _cache


def get_cache() -> TenantCache:
    if _cache is None:
        raise RuntimeError("Cache not initialized.")
    return _cache
