from __future__ import annotations

import logging
from typing import Any

import structlog


def configure_logging(level: str = "INFO", *, fmt: str = "json") -> None:
    """Route structlog through the standard logging module for the whole engine."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )

    renderer: Any
    if fmt == "console":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(*, name: str | None = None, **kwargs: Any) -> structlog.stdlib.BoundLogger:
    logger = structlog.get_logger(name)
    if kwargs:
        return logger.bind(**kwargs)
    return logger


def bind_run_context(**kwargs: Any) -> None:
    """Attach run-scoped fields (run id, project id) to every log line of the current task."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_run_context() -> None:
    structlog.contextvars.clear_contextvars()
