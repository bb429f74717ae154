"""In-memory expiring store for counters and locks.

Notes:
- Per-process only: running multiple workers gives each worker its own
  counters, multiplying the effective limit.
- Thread-safe: a lock guards the shared map.
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from route_guard.adapters.store.base import CounterStore

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    value: dict[str, Any]
    expires_at: float


class InMemoryTTLStore(CounterStore):
    """Thread-safe dict with a per-key expiry time.

    Expired entries are dropped lazily on read and swept on every write, so the
    map never grows beyond the set of live keys plus those written since the
    last sweep.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        """Initialize the store.

        Args:
            clock: Time source returning UNIX time in seconds. Tests pass a
                fake clock shared with the limiter engine.
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: dict[str, _Entry] = {}
        self._expirations = 0

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"InMemoryTTLStore(size={len(self._entries)}, expirations={self._expirations})"

    def get(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                self._drop(key)
                return None
            # Hand out a copy so callers can't mutate stored state
            return copy.deepcopy(entry.value)

    def set(self, key: str, value: dict[str, Any], ttl_seconds: float) -> bool:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")

        with self._lock:
            now = self._clock()
            self._sweep_locked(now)
            self._entries[key] = _Entry(
                value=copy.deepcopy(value),
                expires_at=now + ttl_seconds,
            )

        logger.debug(
            "store.set",
            extra={"store_key": key[-36:], "ttl_s": ttl_seconds},
        )
        return True

    def clear(self) -> None:
        """Remove every entry (test scopes only)."""

        with self._lock:
            self._entries.clear()
            self._expirations = 0

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "expirations": self._expirations,
            }

    def _drop(self, key: str) -> None:
        if self._entries.pop(key, None) is not None:
            self._expirations += 1

    def _sweep_locked(self, now: float) -> None:
        expired = [k for k, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            self._drop(key)
