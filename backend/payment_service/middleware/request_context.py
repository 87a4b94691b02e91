from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import sentry_sdk

from ..logging_context import pop_request_context, push_request_context
from ..logging_utils import METRICS_LOGGER

metrics_logger = logging.getLogger(METRICS_LOGGER)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Populate ContextVars with request metadata and record one metric line per request."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        token = push_request_context(request_id)
        request.state.request_id = request_id
        sentry_sdk.get_isolation_scope().set_tag("request_id", request_id)
        started = time.perf_counter()
        status_code = 500
        try:
            response: Response = await call_next(request)
            status_code = response.status_code
        finally:
            metrics_logger.info(
                "request",
                extra={
                    "type": "request",
                    "method": request.method,
                    "endpoint": request.url.path,
                    "status": status_code,
                    "duration": round((time.perf_counter() - started) * 1000, 2),
                    "requestId": request_id,
                },
            )
            pop_request_context(token)
        response.headers.setdefault("X-Request-ID", request_id)
        return response
