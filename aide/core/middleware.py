"""HTTP middleware for the scheduling API."""
from __future__ import annotations

import logging
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from aide.core.context import bind_request_id, coerce_request_id

REQUEST_ID_HEADER = "X-Request-Id"

logger = logging.getLogger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Bind a request id for the duration of the request and log how it went.

    Malformed or oversized ``X-Request-Id`` headers are replaced with a fresh id.
    """

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:  # type: ignore[override]
        request_id = coerce_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        started = time.perf_counter()

        with bind_request_id(request_id):
            response = await call_next(request)
            logger.info(
                "%s %s -> %s in %.1f ms",
                request.method,
                request.url.path,
                response.status_code,
                (time.perf_counter() - started) * 1000,
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
