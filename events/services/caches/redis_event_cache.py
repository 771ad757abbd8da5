import json
import logging
import re
from typing import Any

from redis import Redis, RedisError

from events.exceptions import EventCacheError


logger = logging.getLogger(__name__)

_GLOB_SPECIAL_CHARS = re.compile(r"([*?\[\]\\])")


class RedisEventCache:
    """
    EventCache on top of Redis. Values are stored as JSON and every key is
    prefixed with ``namespace`` so test and production data never collide.
    """

    def __init__(self, redis_connection: Redis, namespace: str = ""):
        self.redis = redis_connection
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}" if self.namespace else key

    def get(self, key: str) -> Any | None:
        try:
            raw_value = self.redis.get(self._key(key))
        except RedisError as e:
            raise EventCacheError(f"Failed to read cache key {key}: {e}") from e

        if raw_value is None:
            return None
        try:
            return json.loads(raw_value)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", key)
            return None

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:  # noqa: A003
        payload = json.dumps(value, default=str)
        try:
            self.redis.setex(self._key(key), ttl_seconds, payload)
        except RedisError as e:
            raise EventCacheError(f"Failed to write cache key {key}: {e}") from e

    def invalidate_by_prefix(self, prefix: str) -> int:
        pattern = _GLOB_SPECIAL_CHARS.sub(r"\\\1", self._key(prefix)) + "*"
        try:
            keys = list(self.redis.scan_iter(match=pattern))
            if not keys:
                return 0
            removed = self.redis.delete(*keys)
        except RedisError as e:
            raise EventCacheError(f"Failed to invalidate cache prefix {prefix}: {e}") from e

        logger.debug("Invalidated %s cache keys with prefix %s", removed, prefix)
        return removed

    def delete_key(self, key: str) -> None:
        try:
            self.redis.delete(self._key(key))
        except RedisError as e:
            raise EventCacheError(f"Failed to delete cache key {key}: {e}") from e
