"""Unit tests for rule keys and the rule registry."""

from typing import Any

import pytest

from route_guard.services.rules import Rule, RuleRegistry, any_variant, fingerprint


THREE_VALID_RULES: list[dict[str, Any]] = [
    {"route": "/v1/posts", "window": 10, "limit": 25, "lockout": 200, "method": "any"},
    {"route": "/v1/post/1", "window": 100, "limit": 5, "lockout": 60, "method": "GET"},
    {"route": "/v1/post/2", "window": 90, "limit": 2, "lockout": 30, "method": "GET"},
]


@pytest.fixture
def registry() -> RuleRegistry:
    return RuleRegistry()


class TestRuleKey:
    """Fingerprint and any-variant derivation."""

    def test_fingerprint_is_stable_and_method_suffixed(self) -> None:
        rule = {**THREE_VALID_RULES[1], "treat_head_like_get": True}

        key = fingerprint(rule)

        assert key == fingerprint(dict(rule))
        assert key.endswith("_GET")
        digest = key.split("_", 1)[0]
        assert len(digest) == 64

    def test_fingerprint_accepts_rule_objects(self) -> None:
        data = {**THREE_VALID_RULES[1], "treat_head_like_get": True}

        assert fingerprint(Rule.from_mapping(data)) == fingerprint(data)

    def test_method_does_not_change_digest(self) -> None:
        base = {**THREE_VALID_RULES[1], "treat_head_like_get": True}

        get_key = fingerprint(base)
        post_key = fingerprint({**base, "method": "POST"})

        assert get_key != post_key
        assert get_key.split("_")[0] == post_key.split("_")[0]

    @pytest.mark.parametrize("field, value", [("route", "/v1/other"), ("window", 11), ("limit", 26), ("lockout", 201), ("treat_head_like_get", False)])
    def test_identity_fields_change_digest(self, field: str, value: Any) -> None:
        base = {**THREE_VALID_RULES[0], "treat_head_like_get": True}

        assert fingerprint(base) != fingerprint({**base, field: value})

    def test_any_variant(self) -> None:
        base = {**THREE_VALID_RULES[0], "treat_head_like_get": True}
        any_key = fingerprint(base)

        assert any_variant(any_key) == any_key
        assert any_variant(fingerprint({**base, "method": "GET,POST"})) == any_key


class TestRuleRegistry:
    """Registration semantics."""

    @pytest.mark.parametrize("rule", THREE_VALID_RULES)
    def test_add_valid_rule(self, registry: RuleRegistry, rule: dict[str, Any]) -> None:
        assert registry.add(rule) is True
        assert len(registry) == 1

    def test_defaults_applied(self, registry: RuleRegistry) -> None:
        assert registry.add({"route": "/v1/posts", "window": 5, "limit": 2, "lockout": 30})

        [(key, rule)] = list(registry)
        assert rule.method == "any"
        assert rule.treat_head_like_get is True
        assert key.endswith("_any")
        assert registry.get(key) == rule
        assert key in registry

    @pytest.mark.parametrize("field", ["route", "window", "limit", "lockout"])
    def test_add_fails_when_required_field_missing(self, registry: RuleRegistry, field: str) -> None:
        rule = dict(THREE_VALID_RULES[0])
        del rule[field]

        assert registry.add(rule) is False
        assert len(registry) == 0

    def test_invalid_rule_is_not_registered(self, registry: RuleRegistry) -> None:
        assert registry.add({**THREE_VALID_RULES[0], "treat_head_like_get": "yes"}) is False
        assert len(registry) == 0

    def test_numeric_strings_are_converted(self, registry: RuleRegistry) -> None:
        assert registry.add({"route": "/v1/posts", "window": "5", "limit": "2", "lockout": "2.5"}) is True

        [(key, rule)] = list(registry)
        assert (rule.window, rule.limit, rule.lockout) == (5, 2, 2.5)
        assert isinstance(rule.window, int)
        assert key == fingerprint({"route": "/v1/posts", "method": "any", "window": 5,
                                   "limit": 2, "lockout": 2.5, "treat_head_like_get": True})

    def test_string_and_number_forms_collide(self, registry: RuleRegistry) -> None:
        assert registry.add({"route": "/v1/posts", "window": 5, "limit": 2, "lockout": 30}) is True
        assert registry.add({"route": "/v1/posts", "window": "5", "limit": "2", "lockout": "30"}) is False
        assert len(registry) == 1

    def test_add_many(self, registry: RuleRegistry) -> None:
        assert registry.add_many(THREE_VALID_RULES) is None
        assert len(registry) == 3

    def test_add_many_skips_invalid(self, registry: RuleRegistry) -> None:
        rules = [dict(r) for r in THREE_VALID_RULES]
        del rules[1]["lockout"]

        registry.add_many(rules)

        assert len(registry) == 2

    def test_same_rule_twice_is_rejected(self, registry: RuleRegistry) -> None:
        assert registry.add(THREE_VALID_RULES[1]) is True
        assert registry.add(THREE_VALID_RULES[1]) is False
        assert len(registry) == 1

    def test_existing_rule_is_not_overwritten(self, registry: RuleRegistry) -> None:
        registry.add(THREE_VALID_RULES[1])
        [(key, original)] = list(registry)

        registry.add(dict(THREE_VALID_RULES[1]))

        assert registry.get(key) is original

    def test_concrete_after_any_is_rejected(self, registry: RuleRegistry) -> None:
        base = {"route": "/v1/posts", "window": 5, "limit": 2, "lockout": 30}

        assert registry.add({**base, "method": "any"}) is True
        assert registry.add({**base, "method": "GET"}) is False
        assert len(registry) == 1

    def test_any_after_concrete_is_rejected(self, registry: RuleRegistry) -> None:
        base = {"route": "/v1/posts", "window": 5, "limit": 2, "lockout": 30}

        assert registry.add({**base, "method": "POST"}) is True
        assert registry.add({**base, "method": "any"}) is False
        assert len(registry) == 1

    def test_different_concrete_methods_coexist(self, registry: RuleRegistry) -> None:
        base = {"route": "/v1/posts", "window": 5, "limit": 2, "lockout": 30}

        assert registry.add({**base, "method": "GET"}) is True
        assert registry.add({**base, "method": "POST"}) is True
        assert len(registry) == 2

    def test_any_rule_with_different_limits_coexists(self, registry: RuleRegistry) -> None:
        assert registry.add({"route": "/v1/posts", "window": 5, "limit": 2, "lockout": 30, "method": "GET"})
        assert registry.add({"route": "/v1/posts", "window": 5, "limit": 3, "lockout": 30})
        assert len(registry) == 2

    def test_clear(self, registry: RuleRegistry) -> None:
        registry.add_many(THREE_VALID_RULES)

        registry.clear()

        assert len(registry) == 0
        assert registry.add(THREE_VALID_RULES[0]) is True
