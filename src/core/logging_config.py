"""Logging configuration using loguru.

- Local: colorized console output with source file:line numbers
- Staging/production: one JSON object per line on stderr

Standard library logging from third-party libraries (uvicorn, SQLAlchemy,
aiosqlite) is routed through loguru as well.
"""

import json
import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from loguru import logger

from src.config import get_settings
from src.core.lifespan import manager

# Third-party loggers and the minimum level worth seeing from them
NOISY_LOGGERS = {
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "aiosqlite": logging.WARNING,
    "asyncpg": logging.WARNING,
}


def serialize_record(record: dict[str, Any]) -> str:
    """Flatten a loguru record into a JSON line.

    Structured fields passed as keyword arguments (``user_id=...``) end up
    in ``record["extra"]`` and are promoted to top-level keys.
    """
    payload = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "logger": record["name"],
        "function": record["function"],
        "line": record["line"],
        "message": record["message"],
    }

    for key, value in record["extra"].items():
        if not key.startswith("_"):
            payload[key] = value

    if record["exception"]:
        exc_type, exc_value, _ = record["exception"]
        payload["exception"] = {
            "type": exc_type.__name__ if exc_type else None,
            "value": str(exc_value),
        }

    return json.dumps(payload, default=str)


def json_sink(message) -> None:
    print(serialize_record(message.record), file=sys.stderr)


class InterceptHandler(logging.Handler):
    """Handler that routes standard logging records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk back to the frame that made the logging call
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def configure_logging() -> None:
    """Configure loguru sinks and intercept standard logging."""
    settings = get_settings()

    logger.remove()

    if settings.ENVIRONMENT == "local":
        logger.add(
            sys.stderr,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "<level>{message}</level> {extra}"
            ),
            level=settings.LOG_LEVEL,
            colorize=True,
        )
    else:
        logger.add(json_sink, level=settings.LOG_LEVEL)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    for name, level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


@manager.add
@asynccontextmanager
async def logging_lifespan() -> AsyncIterator[dict]:
    """Log application startup and shutdown."""
    settings = get_settings()

    logger.info(
        "Application starting",
        app_name=settings.APP_NAME,
        environment=settings.ENVIRONMENT,
        log_level=settings.LOG_LEVEL,
        lifespans=manager.registered,
    )

    yield {}

    logger.info("Application shutting down")
