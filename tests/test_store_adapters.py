"""Unit tests for counter/lock store adapters."""

import json
import threading
from unittest.mock import MagicMock, patch

import pytest
import redis

from route_guard.adapters.store import InMemoryTTLStore, RedisStore, create_store
from route_guard.core.config import LimiterSettings
from route_guard.core.errors import StoreUnavailableAppError, ValidationAppError


class TestInMemoryTTLStore:
    def test_get_missing_returns_none(self, clock) -> None:
        assert InMemoryTTLStore(clock=clock).get("missing") is None

    def test_set_and_get(self, clock) -> None:
        store = InMemoryTTLStore(clock=clock)

        assert store.set("k", {"value": 1, "started_counting_at": 1000.0}, 5) is True
        assert store.get("k") == {"value": 1, "started_counting_at": 1000.0}

    def test_entry_expires_after_ttl(self, clock) -> None:
        store = InMemoryTTLStore(clock=clock)
        store.set("k", {"value": 1}, 5)

        clock.advance(4)
        assert store.get("k") == {"value": 1}

        clock.advance(1)
        assert store.get("k") is None
        assert store.stats()["expirations"] == 1

    def test_overwrite_replaces_ttl(self, clock) -> None:
        store = InMemoryTTLStore(clock=clock)
        store.set("k", {"value": 1}, 5)
        clock.advance(4)
        store.set("k", {"value": 2}, 5)

        clock.advance(4)

        assert store.get("k") == {"value": 2}

    def test_returned_values_are_copies(self, clock) -> None:
        store = InMemoryTTLStore(clock=clock)
        store.set("k", {"value": 1}, 5)

        store.get("k")["value"] = 99

        assert store.get("k") == {"value": 1}

    def test_write_sweeps_expired_entries(self, clock) -> None:
        store = InMemoryTTLStore(clock=clock)
        store.set("a", {"v": 1}, 1)
        store.set("b", {"v": 2}, 10)
        clock.advance(2)

        store.set("c", {"v": 3}, 10)

        assert store.stats() == {"entries": 2, "expirations": 1}

    def test_invalid_ttl(self, clock) -> None:
        with pytest.raises(ValueError):
            InMemoryTTLStore(clock=clock).set("k", {"v": 1}, 0)

    def test_clear(self, clock) -> None:
        store = InMemoryTTLStore(clock=clock)
        store.set("a", {"v": 1}, 10)

        store.clear()

        assert store.get("a") is None
        assert store.stats() == {"entries": 0, "expirations": 0}

    def test_concurrent_writes(self) -> None:
        store = InMemoryTTLStore()

        def _writer(idx: int) -> None:
            store.set(f"k-{idx}", {"v": idx}, 60)

        threads = [threading.Thread(target=_writer, args=(i,)) for i in range(50)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.stats()["entries"] == 50
        assert store.get("k-49") == {"v": 49}


class TestRedisStore:
    def test_get_decodes_json(self) -> None:
        client = MagicMock()
        client.get.return_value = json.dumps({"lockout": 30, "lock_set": 1000.5})

        assert RedisStore(client).get("lock") == {"lockout": 30, "lock_set": 1000.5}
        client.get.assert_called_once_with("lock")

    def test_get_decodes_bytes(self) -> None:
        client = MagicMock()
        client.get.return_value = b'{"value": 3}'

        assert RedisStore(client).get("counter") == {"value": 3}

    def test_get_missing(self) -> None:
        client = MagicMock()
        client.get.return_value = None

        assert RedisStore(client).get("counter") is None

    def test_set_encodes_json_with_whole_second_ttl(self) -> None:
        client = MagicMock()
        client.set.return_value = True

        assert RedisStore(client).set("counter", {"value": 1}, 4.2) is True
        client.set.assert_called_once_with("counter", json.dumps({"value": 1}), ex=5)

    def test_set_ttl_at_least_one_second(self) -> None:
        client = MagicMock()

        RedisStore(client).set("counter", {"value": 1}, 0.3)

        assert client.set.call_args.kwargs["ex"] == 1

    @pytest.mark.parametrize("operation", ["get", "set"])
    def test_redis_errors_become_store_unavailable(self, operation: str) -> None:
        client = MagicMock()
        getattr(client, operation).side_effect = redis.ConnectionError("connection refused")
        store = RedisStore(client)

        with pytest.raises(StoreUnavailableAppError) as exc_info:
            if operation == "get":
                store.get("k")
            else:
                store.set("k", {"value": 1}, 5)

        assert exc_info.value.code == "store_unavailable"
        assert exc_info.value.details == {"backend": "redis"}

    def test_from_url(self) -> None:
        with patch("route_guard.adapters.store.redis_store.redis.Redis.from_url") as from_url:
            store = RedisStore.from_url("redis://localhost:6379/0")

        assert isinstance(store, RedisStore)
        assert from_url.call_args.args == ("redis://localhost:6379/0",)
        assert from_url.call_args.kwargs["decode_responses"] is True


class TestCreateStore:
    def test_memory_backend(self) -> None:
        store = create_store(LimiterSettings(store_backend="memory"))

        assert isinstance(store, InMemoryTTLStore)

    def test_redis_backend(self) -> None:
        with patch("route_guard.adapters.store.redis_store.redis.Redis.from_url"):
            store = create_store(
                LimiterSettings(store_backend="redis", redis_url="redis://localhost:6379/0")
            )

        assert isinstance(store, RedisStore)

    def test_redis_backend_requires_url(self) -> None:
        with pytest.raises(ValidationAppError) as exc_info:
            create_store(LimiterSettings(store_backend="redis", redis_url=None))

        assert exc_info.value.code == "store_missing_redis_url"

    def test_unknown_backend(self) -> None:
        with pytest.raises(ValidationAppError) as exc_info:
            create_store(LimiterSettings(store_backend="memcached"))

        assert exc_info.value.code == "store_unknown_backend"
