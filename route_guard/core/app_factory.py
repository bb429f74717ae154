"""Application factory for the FastAPI app.

Centralizes app construction (limiter engine, middleware, handlers, routers,
rule registration) so tests can build isolated apps with their own store and
clock.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable

from fastapi import APIRouter, FastAPI

from route_guard.adapters.store import CounterStore, create_store
from route_guard.api.routes import health_router
from route_guard.core.config import settings
from route_guard.core.exception_handlers import setup_exception_handlers
from route_guard.core.logging import configure_logging
from route_guard.core.middleware import request_id_middleware
from route_guard.core.openapi import apply_openapi_customizations
from route_guard.core.rate_limit import ENGINE_STATE_ATTR, enforce_route_limits
from route_guard.services.limiter import LimiterEngine
from route_guard.services.route_discovery import register_route_rules

logger = logging.getLogger(__name__)


def build_engine(
    store: CounterStore | None = None,
    *,
    clock: Callable[[], float] = time.time,
) -> LimiterEngine:
    """Create a limiter engine from settings, with an optional explicit store."""

    limiter_settings = settings.limiter
    return LimiterEngine(
        store if store is not None else create_store(limiter_settings, clock=clock),
        lock_prefix=limiter_settings.lock_prefix,
        counter_prefix=limiter_settings.counter_prefix,
        clock=clock,
    )


def create_app(
    *,
    routers: Iterable[APIRouter] = (),
    store: CounterStore | None = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Rules come from two places: ``LIMITER_RULES`` in the environment, then
    inline declarations on the routes of ``routers``. Both are registered once
    here; the registry is read-only afterwards.

    Args:
        routers: Application routers to mount behind the limiter.
        store: Counter/lock store; built from settings when omitted.
        clock: Time source shared by the engine and in-memory store.

    Returns:
        Configured FastAPI app with the limiter in front of routing.
    """
    # before anything below logs
    configure_logging(settings.log)

    app = FastAPI(
        title=settings.app.name,
        description=(
            "Per-route, per-method rate limiting with lockout. Requests matching "
            "a locked rule receive 429 Too Many Requests with a Retry-After header."
        ),
        version="0.1.0",
        debug=settings.app.debug,
    )

    engine = build_engine(store, clock=clock)
    setattr(app.state, ENGINE_STATE_ATTR, engine)

    # Last registered runs first: request ids must be bound before the limiter logs
    app.middleware("http")(enforce_route_limits)
    app.middleware("http")(request_id_middleware)
    setup_exception_handlers(app)

    app.include_router(health_router)
    for router in routers:
        app.include_router(router)

    engine.add_rules(settings.limiter.rules)
    register_route_rules(engine, app.routes)
    logger.info(
        "route_limit.ready",
        extra={
            "rules": len(engine.registry),
            "store": type(engine.store).__name__,
            "enabled": settings.limiter.enabled,
        },
    )

    apply_openapi_customizations(app)

    return app
