"""Counter/lock store adapters.

The limiter only needs ``get`` and ``set`` with a TTL. Start with the
in-memory store for a single process and switch to Redis when several
workers must share counters.
"""

from route_guard.adapters.store.base import CounterStore
from route_guard.adapters.store.factory import create_store
from route_guard.adapters.store.in_memory import InMemoryTTLStore
from route_guard.adapters.store.redis_store import RedisStore

__all__ = [
    "CounterStore",
    "InMemoryTTLStore",
    "RedisStore",
    "create_store",
]
