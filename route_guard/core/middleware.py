"""Request correlation middleware.

The id comes from the configured header (``X-Request-ID`` by default) or is
generated, lives in the logging context while the request runs, and is sent
back on the response. A 429 from the limiter and the ``route_limit.rejected``
event it logs therefore share one id.
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response

from route_guard.core.config import settings
from route_guard.core.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)

DURATION_HEADER = "X-Request-Duration-ms"


async def request_id_middleware(request: Request, call_next) -> Response:
    id_header = settings.log.request_id_header
    rid = request.headers.get(id_header) or uuid.uuid4().hex
    set_request_id(rid)
    started = time.perf_counter()
    try:
        response: Response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.info(
            "http.request",
            extra={
                "request_method": request.method,
                "request_path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
            },
        )
    finally:
        clear_request_id()

    response.headers[id_header] = rid
    response.headers.setdefault(DURATION_HEADER, f"{elapsed_ms:.2f}")
    return response
