"""Factory for the configured counter/lock store."""

from __future__ import annotations

import time
from typing import Callable

from route_guard.adapters.store.base import CounterStore
from route_guard.adapters.store.in_memory import InMemoryTTLStore
from route_guard.adapters.store.redis_store import RedisStore
from route_guard.core.config import LimiterSettings
from route_guard.core.errors import ValidationAppError


def create_store(
    limiter_settings: LimiterSettings,
    *,
    clock: Callable[[], float] = time.time,
) -> CounterStore:
    """Instantiate the store selected by ``LIMITER_STORE_BACKEND``.

    Args:
        limiter_settings: Resolved limiter settings.
        clock: Time source for the in-memory backend.

    Returns:
        CounterStore: Configured store instance.

    Raises:
        ValidationAppError: If the backend is unknown or misconfigured.
    """
    backend = limiter_settings.store_backend.lower()

    if backend == "memory":
        return InMemoryTTLStore(clock=clock)

    if backend == "redis":
        if not limiter_settings.redis_url:
            raise ValidationAppError(
                code="store_missing_redis_url",
                message="Redis store requires LIMITER_REDIS_URL environment variable",
            )
        return RedisStore.from_url(limiter_settings.redis_url)

    raise ValidationAppError(
        code="store_unknown_backend",
        message=(
            f"Unknown store backend: '{backend}'. Supported backends: memory, redis"
        ),
    )
