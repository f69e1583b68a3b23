from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

import src.core.database  # noqa: F401 - registers database lifespan
import src.core.logging_config  # noqa: F401 - registers logging lifespan
from src.config import get_settings
from src.core.lifespan import manager
from src.core.logging_config import configure_logging
from src.core.middleware import LoggingMiddleware, RequestContextMiddleware
from src.core.request_context import get_request_id
from src.rides.router import router as rides_router
from src.stats.exceptions import (
    AggregateInconsistent,
    InvalidInput,
    ObjectNotFound,
    StatsException,
)
from src.stats.router import public_router as stats_public_router
from src.stats.router import router as stats_router
from src.users.router import router as users_router

# Configure logging FIRST (before app creation and settings access)
configure_logging()

settings = get_settings()

app_configs = {
    "title": settings.APP_NAME,
    "version": "1.0.0",
    "lifespan": manager,
}

if settings.ENVIRONMENT not in ("local", "staging"):
    app_configs["openapi_url"] = None

app = FastAPI(**app_configs)

# Add middleware (order matters - last added runs first)
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestContextMiddleware)  # Must run before logging

if settings.CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(users_router)
app.include_router(rides_router)
app.include_router(stats_public_router)
app.include_router(stats_router)

STATUS_BY_EXCEPTION = {
    ObjectNotFound: 404,
    InvalidInput: 400,
    AggregateInconsistent: 409,
}


@app.exception_handler(StatsException)
async def stats_exception_handler(request: Request, exc: StatsException):
    """Map statistics engine errors to HTTP responses.

    Parameters
    ----------
    request : Request
        The HTTP request that raised
    exc : StatsException
        The domain error

    Returns
    -------
    JSONResponse
        404 for unknown users/rides, 400 for invalid metrics, 409 for
        drifted aggregates, 500 for anything else
    """
    status_code = STATUS_BY_EXCEPTION.get(type(exc), 500)
    content = {"detail": str(exc), "request_id": get_request_id()}

    if isinstance(exc, AggregateInconsistent):
        content["fields"] = {
            field: {"stored": stored, "recomputed": recomputed}
            for field, (stored, recomputed) in exc.fields.items()
        }

    logger.info(
        "Stats request rejected",
        path=request.url.path,
        status_code=status_code,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    return JSONResponse(status_code=status_code, content=content)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions with structured logging.

    Parameters
    ----------
    request : Request
        The HTTP request that caused the exception
    exc : Exception
        The unhandled exception

    Returns
    -------
    JSONResponse
        Error response with request_id for tracking
    """
    request_id = get_request_id()
    logger.opt(exception=exc).error(
        "Unhandled exception",
        request_id=request_id,
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "request_id": request_id},
    )


@app.get("/health")
async def health():
    return {"status": "healthy"}
