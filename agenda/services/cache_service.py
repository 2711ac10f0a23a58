"""
Redis cache for per-company catalog data.

Services and spaces lists are kept for a few minutes per company and query;
writes to either module invalidate it for that company so every session
sees the change on its next read. Redis being down only disables caching.
"""

import hashlib
import logging
import json
from typing import Any, Optional, Callable, Dict
from datetime import datetime, date
from decimal import Decimal

import redis
from redis.exceptions import RedisError, ConnectionError, TimeoutError
from flask import Flask, current_app

logger = logging.getLogger(__name__)

# module name -> config key holding its TTL
MODULE_TTL_SETTINGS = {
    'services': 'CACHE_SERVICES_TTL',
    'spaces': 'CACHE_SPACES_TTL',
    'currencies': 'CACHE_CURRENCIES_TTL',
}


class CacheService:
    """
    Redis-backed cache with company isolation.

    Keys pattern: {prefix}:company:{company_id}:{module}:{key}
    """

    def __init__(self, app: Optional[Flask] = None):
        self.client: Optional[redis.Redis] = None
        self._enabled: bool = False
        self._prefix: str = ""

        if app:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Connect to Redis using the app config."""
        self._enabled = app.config.get('CACHE_ENABLED', True)
        self._prefix = app.config.get('CACHE_KEY_PREFIX', 'agenda')
        redis_url = app.config.get('REDIS_URL', 'redis://localhost:6379/0')

        if not self._enabled:
            logger.info("[CACHE] Cache is DISABLED via config")
            return

        try:
            self.client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
                socket_timeout=3,
                retry_on_timeout=True,
                health_check_interval=30
            )
            self.client.ping()
            logger.info(f"[CACHE] Redis connected: {redis_url}")
        except (ConnectionError, TimeoutError, RedisError) as e:
            logger.warning(f"[CACHE] Redis connection failed: {e}. Cache DISABLED.")
            self._enabled = False
            self.client = None

    @property
    def enabled(self) -> bool:
        return self._enabled and self.client is not None

    def build_key(self, company_id: int, module: str, key: str) -> str:
        return f"{self._prefix}:company:{company_id}:{module}:{key}"

    @staticmethod
    def query_key(**params: Any) -> str:
        """Stable short key for a set of query parameters."""
        raw = json.dumps(params, sort_keys=True, default=str)
        return hashlib.sha1(raw.encode('utf-8')).hexdigest()[:16]

    def _serialize(self, value: Any) -> str:
        def default_handler(obj: Any) -> Any:
            if isinstance(obj, (datetime, date)):
                return obj.isoformat()
            if isinstance(obj, Decimal):
                return {"__decimal__": str(obj)}
            raise TypeError(f"Object of type {type(obj)} is not JSON serializable")
        return json.dumps(value, default=default_handler)

    def _deserialize(self, value: str) -> Any:
        def object_hook(dct: Dict[str, Any]) -> Any:
            if "__decimal__" in dct:
                return Decimal(dct["__decimal__"])
            return dct
        return json.loads(value, object_hook=object_hook)

    def get(self, company_id: int, module: str, key: str) -> Optional[Any]:
        if not self.enabled:
            return None
        try:
            value = self.client.get(self.build_key(company_id, module, key))
            if value is None:
                return None
            return self._deserialize(value)
        except (RedisError, json.JSONDecodeError) as e:
            logger.warning(f"[CACHE] Get error: {e}")
            return None

    def set(self, company_id: int, module: str, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self.enabled:
            return False
        if ttl is None:
            ttl = self.module_ttl(module)
        try:
            self.client.setex(self.build_key(company_id, module, key), ttl, self._serialize(value))
            return True
        except (RedisError, TypeError) as e:
            logger.warning(f"[CACHE] Set error: {e}")
            return False

    def module_ttl(self, module: str) -> int:
        setting = MODULE_TTL_SETTINGS.get(module, 'CACHE_DEFAULT_TTL')
        return int(current_app.config.get(setting, current_app.config.get('CACHE_DEFAULT_TTL', 60)))

    def memoize(self, company_id: int, module: str, key: str, loader_fn: Callable[[], Any],
                ttl: Optional[int] = None) -> Any:
        """Cache-aside: return the cached value or load and store it."""
        cached = self.get(company_id, module, key)
        if cached is not None:
            logger.debug(f"[CACHE] HIT {module}:{key} (company {company_id})")
            return cached
        value = loader_fn()
        self.set(company_id, module, key, value, ttl)
        return value

    def invalidate_module(self, company_id: int, module: str) -> int:
        """Drop every cached entry of a module for one company."""
        if not self.enabled:
            return 0
        pattern = self.build_key(company_id, module, "*")
        deleted = 0
        try:
            for cache_key in self.client.scan_iter(match=pattern, count=100):
                self.client.delete(cache_key)
                deleted += 1
        except RedisError as e:
            logger.warning(f"[CACHE] Invalidate error: {e}")
            return deleted
        if deleted:
            logger.info(f"[CACHE] INVALIDATE: {pattern} ({deleted} keys)")
        return deleted


_cache_service: Optional[CacheService] = None


def init_cache(app: Flask) -> None:
    """Initialize the cache singleton."""
    global _cache_service
    _cache_service = CacheService(app)
    app.extensions['cache'] = _cache_service


def get_cache() -> CacheService:
    if _cache_service is None:
        raise RuntimeError("Cache not initialized.")
    return _cache_service
