"""Discovery of rate limit rules declared inline on endpoints.

Endpoints opt in through ``openapi_extra``::

    @router.get("/posts/{post_id}", openapi_extra=route_limit(window=5, limit=2, lockout=30))
    def read_post(post_id: int): ...

At startup the app factory walks the application's routes and turns each
declaration into a full rule. The route pattern is the route's own compiled
path regex, so path parameters match the same segments the router accepts.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from starlette.routing import BaseRoute

from route_guard.services.limiter import LimiterEngine
from route_guard.services.rules import ANY_METHOD

logger = logging.getLogger(__name__)

ROUTE_LIMIT_EXTENSION = "x-route-limit"


def route_limit(
    *,
    window: float,
    limit: float,
    lockout: float,
    treat_head_like_get: bool = True,
) -> dict[str, Any]:
    """Build the ``openapi_extra`` payload declaring a rule on an endpoint."""

    return {
        ROUTE_LIMIT_EXTENSION: {
            "window": window,
            "limit": limit,
            "lockout": lockout,
            "treat_head_like_get": treat_head_like_get,
        }
    }


def _route_pattern(route: BaseRoute) -> str | None:
    path_regex = getattr(route, "path_regex", None)
    if path_regex is None:
        return None
    # The limiter anchors patterns itself
    pattern = path_regex.pattern
    if pattern.startswith("^"):
        pattern = pattern[1:]
    if pattern.endswith("$"):
        pattern = pattern[:-1]
    return pattern


def _route_method(route: BaseRoute) -> str:
    methods = getattr(route, "methods", None)
    if not methods:
        return ANY_METHOD
    return ",".join(sorted(methods))


def discover_route_rules(routes: Iterable[BaseRoute]) -> list[dict[str, Any]]:
    """Collect rule mappings from routes carrying an inline declaration.

    Args:
        routes: Application routes (``app.routes``).

    Returns:
        Rule mappings with ``route`` and ``method`` taken from the route,
        overriding anything in the declaration.
    """

    rules: list[dict[str, Any]] = []
    for route in routes:
        extra = getattr(route, "openapi_extra", None) or {}
        partial = extra.get(ROUTE_LIMIT_EXTENSION)
        if not partial:
            continue

        pattern = _route_pattern(route)
        if pattern is None:
            logger.warning(
                "route_limit.discovery_skipped",
                extra={"route_name": getattr(route, "name", None)},
            )
            continue

        rules.append({**partial, "route": pattern, "method": _route_method(route)})
    return rules


def register_route_rules(engine: LimiterEngine, routes: Iterable[BaseRoute]) -> int:
    """Register every discovered rule with ``engine``.

    Returns:
        Number of rules accepted by the registry.
    """

    added = sum(1 for rule in discover_route_rules(routes) if engine.add_rule(rule))
    logger.info("route_limit.routes_discovered", extra={"rules_added": added})
    return added
