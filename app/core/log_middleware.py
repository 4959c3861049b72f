"""
Request id / correlation id propagation.

Both ids are read from the inbound headers (or generated), stored in the
contextvars that structured_logging merges into every record, and echoed
on the response so a caller can match a failed billing call to its logs.
"""
from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.structured_logging import correlation_id_var, request_id_var

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "x-request-id"
CORRELATION_ID_HEADER = "x-correlation-id"

_PROPAGATED = (
    (REQUEST_ID_HEADER, request_id_var),
    (CORRELATION_ID_HEADER, correlation_id_var),
)


class CorrelationMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next) -> Response:
        ids: dict[str, str] = {}
        tokens: list[tuple[ContextVar, object]] = []
        for header, var in _PROPAGATED:
            ids[header] = request.headers.get(header) or uuid.uuid4().hex
            tokens.append((var, var.set(ids[header])))

        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            logger.info(
                "request_completed %s %s -> %s in %.1fms",
                request.method,
                request.url.path,
                status_code,
                (time.perf_counter() - start) * 1000,
            )
            for var, token in reversed(tokens):
                var.reset(token)

        for header, value in ids.items():
            response.headers[header] = value
        return response
