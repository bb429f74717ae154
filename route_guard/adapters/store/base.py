"""Counter/lock store interface.

The limiter depends on this abstraction so the storage backend (in-process
map, Redis) can be swapped without touching the decision logic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class CounterStore(ABC):
    """Expiring key-value store holding counter and lock records.

    Implementations must make single-key reads and writes atomic and honor the
    TTL passed to ``set``. Values are small JSON-compatible dicts and must
    round-trip exactly.
    """

    @abstractmethod
    def get(self, key: str) -> dict[str, Any] | None:
        """Return the value stored under ``key``, or None if absent/expired."""
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: dict[str, Any], ttl_seconds: float) -> bool:
        """Store ``value`` under ``key`` for ``ttl_seconds``.

        Args:
            key: Opaque key (already prefixed by the caller).
            value: Record to store.
            ttl_seconds: Lifetime of the entry; must be positive.

        Returns:
            True if the value was written.
        """
        raise NotImplementedError
