"""Redis-backed store for counters and locks.

Shares counters across workers and hosts. Values are JSON-encoded; Redis
expiry handles TTLs, so nothing is ever deleted explicitly.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any

import redis

from route_guard.adapters.store.base import CounterStore
from route_guard.core.errors import StoreUnavailableAppError

logger = logging.getLogger(__name__)


class RedisStore(CounterStore):
    """CounterStore over a synchronous ``redis.Redis`` client."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str, *, socket_timeout: float = 2.0) -> "RedisStore":
        """Build a store from a Redis URL.

        Args:
            url: Redis connection URL (e.g. ``redis://localhost:6379/0``).
            socket_timeout: Connect/read timeout in seconds.

        Returns:
            RedisStore bound to a new client.
        """
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=socket_timeout,
            socket_timeout=socket_timeout,
        )
        return cls(client)

    def get(self, key: str) -> dict[str, Any] | None:
        try:
            raw = self._client.get(key)
        except redis.RedisError as exc:
            raise self._unavailable("get", exc) from exc

        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return json.loads(raw)

    def set(self, key: str, value: dict[str, Any], ttl_seconds: float) -> bool:
        # Redis EX takes whole seconds; round up so an entry never dies early
        ttl = max(1, int(math.ceil(ttl_seconds)))
        try:
            result = self._client.set(key, json.dumps(value), ex=ttl)
        except redis.RedisError as exc:
            raise self._unavailable("set", exc) from exc
        return bool(result)

    @staticmethod
    def _unavailable(operation: str, exc: Exception) -> StoreUnavailableAppError:
        logger.error(
            "store.redis_error",
            extra={
                "operation": operation,
                "error_type": type(exc).__name__,
                "error_msg": str(exc),
            },
        )
        return StoreUnavailableAppError(
            code="store_unavailable",
            message="Rate limit store is unavailable",
            details={"backend": "redis"},
        )
