"""Rate limit rules: validation, identity keys and the registry.

A rule binds a route pattern and a method specifier to a counting window, a
request limit and a lockout period. Its identity key is a SHA-256 digest of
everything except the method, suffixed with the method. The suffix lets the
registry spot a concrete-method rule that collides with an ``any`` rule for
the same route/window/limit/lockout.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
import re
from dataclasses import asdict, dataclass
from typing import Any, Iterable, Iterator, Mapping

logger = logging.getLogger(__name__)

ANY_METHOD = "any"
KEY_SEPARATOR = "_"

# Starlette routes accept any of these; HEAD is always included
SUPPORTED_METHODS: frozenset[str] = frozenset(
    {"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"}
)

REQUIRED_FIELDS: tuple[str, ...] = (
    "route",
    "method",
    "window",
    "limit",
    "lockout",
    "treat_head_like_get",
)

RULE_DEFAULTS: dict[str, Any] = {
    "method": ANY_METHOD,
    "treat_head_like_get": True,
}


@dataclass(frozen=True)
class Rule:
    """A registered, validated rate limit policy.

    Attributes:
        route: Regular expression matched (anchored, case-insensitive)
            against request paths.
        method: ``any``, a single HTTP method, or a comma-separated list.
        window: Counting window in seconds.
        limit: Requests within ``window`` that trigger the lockout.
        lockout: Seconds the rule stays locked once triggered.
        treat_head_like_get: Count HEAD requests as GET.
    """

    route: str
    method: str
    window: float
    limit: float
    lockout: float
    treat_head_like_get: bool = True

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Rule":
        return cls(**{name: data[name] for name in REQUIRED_FIELDS})

    def methods(self) -> list[str]:
        """Return the method specifier split into its list items."""
        return [m.strip() for m in self.method.split(",")]


def _is_valid_method(method: Any) -> bool:
    if not isinstance(method, str) or not method:
        return False
    if method == ANY_METHOD:
        return True
    return all(item.strip() in SUPPORTED_METHODS for item in method.split(","))


# Decimal or exponent notation with optional surrounding whitespace
_NUMERIC_STRING = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")
_INTEGER_STRING = re.compile(r"^\s*[+-]?\d+\s*$")

NUMERIC_FIELDS: tuple[str, ...] = ("window", "limit", "lockout")


def _as_number(value: Any) -> int | float | None:
    """Return ``value`` as a number, or None if it is not numeric.

    Numbers pass through; strings such as ``"5"`` or ``"2.5"`` are parsed.
    """
    # bool is an int subclass; True must not pass as 1
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str) and _NUMERIC_STRING.match(value):
        if _INTEGER_STRING.match(value):
            return int(value)
        return float(value)
    return None


def _is_positive_number(value: Any) -> bool:
    number = _as_number(value)
    if number is None:
        return False
    return math.isfinite(number) and number > 0


def normalize_rule(candidate: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of a valid rule with numeric strings converted.

    ``{"window": "5"}`` and ``{"window": 5}`` then share one identity key.
    """
    normalized = dict(candidate)
    for name in NUMERIC_FIELDS:
        normalized[name] = _as_number(normalized[name])
    return normalized


def validate_rule(candidate: Mapping[str, Any]) -> bool:
    """Check that a candidate rule has every field with a valid value.

    Fields are checked in ``REQUIRED_FIELDS`` order and the first failure
    short-circuits. The route is only required to be a non-empty string; it is
    never compiled here.

    Args:
        candidate: Rule mapping, defaults already applied.

    Returns:
        True when the rule can be registered.
    """

    for name in REQUIRED_FIELDS:
        value = candidate.get(name)
        if value is None:
            return False

        if name == "route":
            valid = isinstance(value, str) and bool(value)
        elif name == "method":
            valid = _is_valid_method(value)
        elif name in NUMERIC_FIELDS:
            valid = _is_positive_number(value)
        else:
            valid = isinstance(value, bool)

        if not valid:
            return False

    return True


def fingerprint(rule: Rule | Mapping[str, Any]) -> str:
    """Build the identity key of a rule.

    The method is left out of the digest and appended after the separator, so
    rules that differ only by method share a digest prefix.

    Examples:
        >>> key = fingerprint({"route": "/posts", "method": "GET", "window": 5,
        ...                    "limit": 2, "lockout": 30, "treat_head_like_get": True})
        >>> key.endswith("_GET")
        True
    """

    data = asdict(rule) if isinstance(rule, Rule) else dict(rule)
    method = data.pop("method")
    identity = {name: data[name] for name in REQUIRED_FIELDS if name != "method"}
    digest = hashlib.sha256(
        json.dumps(identity, sort_keys=True, default=str).encode()
    ).hexdigest()
    return f"{digest}{KEY_SEPARATOR}{method}"


def any_variant(key: str) -> str:
    """Turn a method-suffixed key into its ``_any`` counterpart."""

    digest = key.split(KEY_SEPARATOR, 1)[0]
    return f"{digest}{KEY_SEPARATOR}{ANY_METHOD}"


class RuleRegistry:
    """Registered rules keyed by their fingerprint.

    Rules are added during application setup and only read while serving.
    There is no update or delete: registering an existing rule (or a
    concrete/any-method twin of one) is rejected, never overwritten.
    """

    def __init__(self) -> None:
        self._rules: dict[str, Rule] = {}

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, key: object) -> bool:
        return key in self._rules

    def __iter__(self) -> Iterator[tuple[str, Rule]]:
        return iter(list(self._rules.items()))

    def get(self, key: str) -> Rule | None:
        return self._rules.get(key)

    def add(self, candidate: Mapping[str, Any]) -> bool:
        """Validate and register a rule.

        Args:
            candidate: Rule mapping; ``method`` defaults to ``any`` and
                ``treat_head_like_get`` to True.

        Returns:
            True if the rule was registered, False if it was invalid or
            collides with an already registered rule.
        """

        merged = {**RULE_DEFAULTS, **candidate}
        if not validate_rule(merged):
            logger.warning(
                "route_limit.rule_rejected",
                extra={"reason": "invalid", "route": merged.get("route")},
            )
            return False

        rule = Rule.from_mapping(normalize_rule(merged))
        key = fingerprint(rule)
        if self._collides(key):
            logger.warning(
                "route_limit.rule_rejected",
                extra={"reason": "duplicate", "route": rule.route, "rule_key": key[:16]},
            )
            return False

        self._rules[key] = rule
        logger.info(
            "route_limit.rule_added",
            extra={
                "rule_key": key[:16],
                "route": rule.route,
                "method": rule.method,
                "window_s": rule.window,
                "limit": rule.limit,
                "lockout_s": rule.lockout,
            },
        )
        return True

    def add_many(self, candidates: Iterable[Mapping[str, Any]]) -> None:
        """Register each candidate, ignoring individual failures."""

        for candidate in candidates:
            self.add(candidate)

    def clear(self) -> None:
        """Drop every rule (test scopes and process resets only)."""

        self._rules.clear()

    def _collides(self, key: str) -> bool:
        any_key = any_variant(key)
        if key in self._rules or any_key in self._rules:
            return True
        if key != any_key:
            return False
        # An any-method rule also shadows every concrete method of its digest
        prefix = key[: -len(ANY_METHOD)]
        return any(existing.startswith(prefix) for existing in self._rules)
