"""Rate limiting hook for the HTTP layer.

The limiter runs as HTTP middleware, ahead of routing, so every request is
evaluated with its raw path and method. Requests the router would answer with
404 or 405 (including HEAD on a GET-only endpoint) still count toward, and
can be rejected by, matching rules.

- The engine lives on ``app.state.route_limiter``; the factory creates it.
- A rejection becomes a 429 with ``Retry-After`` built by the same handler
  that renders every other ``AppError``.
- Store outages follow ``LIMITER_FAIL_OPEN``: admit and log, or answer 503.
"""

from __future__ import annotations

import logging

from fastapi import Request, Response
from fastapi.concurrency import run_in_threadpool

from route_guard.core.config import settings
from route_guard.core.errors import AppError, RateLimitAppError, StoreUnavailableAppError
from route_guard.core.exception_handlers import app_error_handler
from route_guard.services.limiter import LimiterEngine, Verdict

logger = logging.getLogger(__name__)

ENGINE_STATE_ATTR = "route_limiter"


def get_limiter_engine(request: Request) -> LimiterEngine:
    """Return the limiter engine owned by the running application."""

    return getattr(request.app.state, ENGINE_STATE_ATTR)


def check_request(engine: LimiterEngine, path: str, method: str) -> Verdict:
    """Evaluate one request and apply the store failure policy.

    Store calls block (Redis), so callers on the event loop run this in the
    threadpool.

    Raises:
        RateLimitAppError: When a matched rule is locked out.
        StoreUnavailableAppError: When the store fails and fail-open is off.
    """

    try:
        verdict = engine.evaluate(path, method)
    except StoreUnavailableAppError:
        if not settings.limiter.fail_open:
            raise
        logger.error("route_limit.fail_open", extra={"path": path, "method": method})
        return Verdict.admit()

    if not verdict.allowed:
        raise RateLimitAppError(
            code="rate_limit_exceeded",
            message="Too many requests for this endpoint. Retry after the interval in Retry-After.",
            details={
                "retry_after": verdict.retry_after_seconds or 1,
                "rule_keys": [key[:16] for key in verdict.rule_keys],
            },
        )
    return verdict


async def enforce_route_limits(request: Request, call_next) -> Response:
    """HTTP middleware enforcing per-route limits before dispatch."""

    if not settings.limiter.enabled:
        return await call_next(request)

    engine = get_limiter_engine(request)
    try:
        await run_in_threadpool(check_request, engine, request.url.path, request.method.upper())
    except AppError as exc:
        # Raised outside the router, so the app's exception handlers never see it
        return await app_error_handler(request, exc)

    return await call_next(request)
