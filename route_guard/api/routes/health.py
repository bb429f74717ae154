from __future__ import annotations

from fastapi import APIRouter, Depends

from route_guard.core.rate_limit import get_limiter_engine
from route_guard.services.limiter import LimiterEngine

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(engine: LimiterEngine = Depends(get_limiter_engine)) -> dict:
    """Health check endpoint.

    Used by load balancers and monitoring systems to determine service health.

    Returns:
        dict: ``status`` set to "ok" and the number of registered rules.
    """

    return {"status": "ok", "rules": len(engine.registry)}
