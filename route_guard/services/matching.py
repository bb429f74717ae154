"""Request-to-rule matching on path and HTTP method."""

from __future__ import annotations

import logging
import re

from route_guard.services.rules import ANY_METHOD, Rule

logger = logging.getLogger(__name__)

_reported_bad_patterns: set[str] = set()


def method_matches(request_method: str, rule: Rule) -> bool:
    """Decide whether ``request_method`` falls under the rule's method list.

    HEAD is metered as GET unless the rule opts out via
    ``treat_head_like_get=False``.

    Examples:
        >>> rule = Rule("/posts", "GET,POST", 5, 2, 30)
        >>> method_matches("POST", rule), method_matches("HEAD", rule)
        (True, True)
    """

    if request_method == "HEAD" and rule.treat_head_like_get:
        request_method = "GET"

    return (
        rule.method == ANY_METHOD
        or rule.method == request_method
        or request_method in rule.methods()
    )


def route_matches(request_path: str, rule: Rule) -> bool:
    """Match ``request_path`` against the rule's route as ``^<route>$``.

    Matching is case-insensitive. A route that is not a valid regular
    expression never matches; it is logged the first time it is seen.
    """

    try:
        return re.search(f"^{rule.route}$", request_path, re.IGNORECASE) is not None
    except re.error as exc:
        if rule.route not in _reported_bad_patterns:
            _reported_bad_patterns.add(rule.route)
            logger.warning(
                "route_limit.bad_route_pattern",
                extra={"route": rule.route, "error_msg": str(exc)},
            )
        return False
