import json
import time
from dataclasses import dataclass
from typing import Any

from redis import Redis
from redis.exceptions import RedisError

from sync_api.core.config import get_settings


@dataclass
class CacheResult:
    hit: bool
    value: Any | None


class CacheClient:
    def __init__(self) -> None:
        self.settings = get_settings()
        # key -> (expires_at monotonic, encoded payload)
        self._fallback: dict[str, tuple[float, str]] = {}
        self._redis: Redis | None = None
        if self.settings.cache_enabled:
            try:
                self._redis = Redis.from_url(self.settings.redis_url, decode_responses=True)
                self._redis.ping()
            except RedisError:
                self._redis = None

    def get_json(self, key: str) -> CacheResult:
        value: str | None = None
        try:
            if self._redis:
                value = self._redis.get(key)
            else:
                value = self._fallback_get(key)
        except RedisError:
            value = self._fallback_get(key)
        if value is None:
            return CacheResult(hit=False, value=None)
        return CacheResult(hit=True, value=json.loads(value))

    def set_json(self, key: str, payload: Any, ttl_seconds: int) -> None:
        encoded = json.dumps(payload, default=str)
        try:
            if self._redis:
                self._redis.setex(key, ttl_seconds, encoded)
            else:
                self._fallback[key] = (time.monotonic() + ttl_seconds, encoded)
        except RedisError:
            self._fallback[key] = (time.monotonic() + ttl_seconds, encoded)

    def delete(self, key: str) -> None:
        self._fallback.pop(key, None)
        try:
            if self._redis:
                self._redis.delete(key)
        except RedisError:
            pass

    def _fallback_get(self, key: str) -> str | None:
        entry = self._fallback.get(key)
        if entry is None:
            return None
        expires_at, encoded = entry
        if expires_at <= time.monotonic():
            self._fallback.pop(key, None)
            return None
        return encoded


cache_client = CacheClient()
