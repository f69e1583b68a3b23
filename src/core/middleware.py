"""FastAPI middleware for request context and logging.

Middleware should be added to the FastAPI app in this order, so the request
context exists by the time the logging middleware runs:
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestContextMiddleware)
"""

import time

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from src.core.request_context import (
    REQUEST_ID_HEADER,
    get_request_id,
    resolve_request_id,
    set_request_id,
)

# Paths polled by load balancers and uptime checks
QUIET_PATHS = frozenset({"/health"})


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Inject a request_id into the context and echo it in the response.

    A client-supplied X-Request-ID is honoured so traces can span services;
    otherwise a fresh UUID is generated.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        set_request_id(request_id)

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id

        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with its outcome and duration.

    Ride payloads can carry long GPS paths, so request bodies are not logged;
    the stats engine logs the fields it actually consumes.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path in QUIET_PATHS:
            return await call_next(request)

        request_id = get_request_id()
        start_time = time.perf_counter()

        logger.info(
            "Request started",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            query_params=str(request.query_params),
            client_ip=request.client.host if request.client else None,
        )

        response = await call_next(request)

        duration = time.perf_counter() - start_time
        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            "Request completed",
            request_id=request_id,
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 2),
        )

        return response
