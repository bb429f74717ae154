"""Rate limiting decision engine.

For each request the engine walks every registered rule, keeps those whose
route and method match, and for each match:

1. looks up a lock for the rule (or for its any-method twin). A lock means
   the request is rejected with a retry-after derived from the lock record;
2. otherwise increments the rule's counter. The counter's TTL shrinks as the
   window elapses instead of resetting;
3. sets a lock once the counter reaches the rule's limit. The request that
   tips the counter over is still admitted; the next one is rejected.

Every matched rule is processed even after one has rejected the request, so
counters grow for all overlapping rules. Concurrent requests may race on the
read-increment-write of a counter; counts converge but are not exact.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping

from route_guard.adapters.store.base import CounterStore
from route_guard.services.matching import method_matches, route_matches
from route_guard.services.rules import Rule, RuleRegistry, any_variant

logger = logging.getLogger(__name__)

DEFAULT_LOCK_PREFIX = "route_guard_lock_"
DEFAULT_COUNTER_PREFIX = "route_guard_counter_"


@dataclass(frozen=True)
class Verdict:
    """Admit/reject decision for one request.

    Attributes:
        allowed: Whether the request may reach its handler.
        retry_after_seconds: Seconds the client should wait (None when allowed).
        rule_keys: Keys of every rule that matched the request.
    """

    allowed: bool
    retry_after_seconds: int | None = None
    rule_keys: tuple[str, ...] = ()

    @classmethod
    def admit(cls, rule_keys: tuple[str, ...] = ()) -> "Verdict":
        return cls(allowed=True, rule_keys=rule_keys)

    @classmethod
    def reject(cls, retry_after_seconds: int, rule_keys: tuple[str, ...] = ()) -> "Verdict":
        return cls(
            allowed=False,
            retry_after_seconds=retry_after_seconds,
            rule_keys=rule_keys,
        )


class LimiterEngine:
    """Matches requests to rules and applies counters and lockouts.

    The engine owns its ``RuleRegistry``; the store is shared state owned by
    the deployment. One instance is built per application and held on the app
    state, never in a module global.
    """

    def __init__(
        self,
        store: CounterStore,
        *,
        registry: RuleRegistry | None = None,
        lock_prefix: str = DEFAULT_LOCK_PREFIX,
        counter_prefix: str = DEFAULT_COUNTER_PREFIX,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Expiring key-value store for counters and locks.
            registry: Rule registry; a new empty one is created if omitted.
            lock_prefix: Prefix for lock keys.
            counter_prefix: Prefix for counter keys.
            clock: Time source returning UNIX time in seconds.

        Raises:
            ValueError: If the prefixes are empty or identical.
        """
        if not lock_prefix or not counter_prefix:
            raise ValueError("lock_prefix and counter_prefix must be non-empty")
        if lock_prefix == counter_prefix:
            raise ValueError("lock_prefix and counter_prefix must differ")

        self.store = store
        self.registry = registry if registry is not None else RuleRegistry()
        self._lock_prefix = lock_prefix
        self._counter_prefix = counter_prefix
        self._clock = clock

    # Registration API

    def add_rule(self, rule: Mapping[str, Any]) -> bool:
        """Register a rule; returns False if it is invalid or a duplicate."""
        return self.registry.add(rule)

    def add_rules(self, rules: Iterable[Mapping[str, Any]]) -> None:
        """Register several rules, ignoring individual failures."""
        self.registry.add_many(rules)

    def reset(self) -> None:
        """Forget every registered rule. Store records expire on their own."""
        self.registry.clear()

    # Decision

    def matching_rules(self, path: str, method: str) -> list[tuple[str, Rule]]:
        """Return every registered (key, rule) pair matching the request."""
        return [
            (key, rule)
            for key, rule in self.registry
            if route_matches(path, rule) and method_matches(method, rule)
        ]

    def evaluate(self, path: str, method: str) -> Verdict:
        """Decide whether a request may proceed.

        Args:
            path: Request path (e.g. ``/v1/posts/3``).
            method: Upper-case HTTP method.

        Returns:
            Verdict: rejected if any matched rule is locked, with the longest
                retry-after among the locked rules; admitted otherwise.
        """
        matched = self.matching_rules(path, method)
        if not matched:
            return Verdict.admit()

        rule_keys = tuple(key for key, _ in matched)
        retry_after: int | None = None
        for key, rule in matched:
            verdict = self.check_and_record(key, rule)
            if not verdict.allowed:
                retry_after = max(retry_after or 0, verdict.retry_after_seconds or 1)

        if retry_after is not None:
            logger.warning(
                "route_limit.rejected",
                extra={
                    "path": path,
                    "method": method,
                    "retry_after_s": retry_after,
                    "rule_keys": [k[:16] for k in rule_keys],
                },
            )
            return Verdict.reject(retry_after, rule_keys)

        return Verdict.admit(rule_keys)

    def check_and_record(self, rule_key: str, rule: Rule) -> Verdict:
        """Apply the lock check, counter increment and lock set for one rule.

        Args:
            rule_key: Registry key of the rule.
            rule: The matched rule.

        Returns:
            Verdict for this rule alone.
        """
        lock = self._get_lock(rule_key)
        if lock is not None:
            return Verdict.reject(self._retry_after(lock), (rule_key,))

        count = self._increment_counter(rule_key, rule)
        if count >= rule.limit:
            self._set_lock(rule_key, rule)

        return Verdict.admit((rule_key,))

    def _get_lock(self, rule_key: str) -> dict[str, Any] | None:
        lock_key = self._lock_prefix + rule_key
        any_lock_key = self._lock_prefix + any_variant(rule_key)

        found = self.store.get(lock_key)
        if found is None and lock_key != any_lock_key:
            # A lock on the any-method twin covers every method
            found = self.store.get(any_lock_key)
        return found

    def _set_lock(self, rule_key: str, rule: Rule) -> None:
        lock = {"lockout": rule.lockout, "lock_set": self._clock()}
        self.store.set(self._lock_prefix + rule_key, lock, rule.lockout)
        logger.warning(
            "route_limit.locked",
            extra={
                "rule_key": rule_key[:16],
                "route": rule.route,
                "method": rule.method,
                "lockout_s": rule.lockout,
            },
        )

    def _retry_after(self, lock: Mapping[str, Any]) -> int:
        # The lock record is authoritative; the rule may have changed since
        lockout = lock.get("lockout", 1)
        lock_set = lock.get("lock_set")
        if lock_set is None:
            return max(int(math.ceil(lockout)), 1)
        remaining = lockout - (self._clock() - lock_set)
        return max(int(math.ceil(remaining)), 1)

    def _increment_counter(self, rule_key: str, rule: Rule) -> int:
        counter_key = self._counter_prefix + rule_key
        now = self._clock()
        counter = self.store.get(counter_key)

        if counter is None:
            new_counter = {"started_counting_at": now, "value": 1}
            ttl = rule.window
        else:
            started = counter["started_counting_at"]
            new_counter = {"started_counting_at": started, "value": counter["value"] + 1}
            ttl = max(1, rule.window - (now - started))

        self.store.set(counter_key, new_counter, ttl)
        logger.debug(
            "route_limit.counted",
            extra={
                "rule_key": rule_key[:16],
                "count": new_counter["value"],
                "limit": rule.limit,
                "ttl_s": ttl,
            },
        )
        return new_counter["value"]
