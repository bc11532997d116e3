"""Structured logging setup using structlog.

httputil only emits log events; the host application decides where they go
by calling setup_logging (or its own structlog configuration).
"""

import logging
import sys
from datetime import datetime
from typing import Any

import structlog

from ..config import LoggingSettings


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(json_logs: bool) -> list[structlog.types.Processor]:
    if json_logs:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=True, exception_formatter=structlog.dev.plain_traceback)]


def setup_logging(settings: LoggingSettings | None = None) -> None:
    """Route httputil's log events to stdout.

    Args:
        settings: Level and format to log with. Read from HTTPUTIL_LOG_LEVEL
            and HTTPUTIL_JSON_LOGS when omitted.
    """
    if settings is None:
        settings = LoggingSettings.from_env()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper()),
    )

    structlog.configure(
        processors=_shared_processors() + _renderer(settings.json_logs),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of the calling module)
        **initial_context: Initial context to bind to all log messages

    Returns:
        A bound logger instance with the specified context
    """
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger


class HealthCheckLogContext:
    """Context manager for health check logging.

    Logs the start and outcome of a single check with its duration. Exceptions
    are logged and re-raised untouched.
    """

    def __init__(self, logger: structlog.stdlib.BoundLogger, url: str):
        self.logger = logger.bind(url=url)
        self.url = url
        self.start_time: datetime | None = None
        self.status_code: int | None = None

    def __enter__(self) -> "HealthCheckLogContext":
        self.start_time = datetime.now()
        self.logger.debug("health_check_started")
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        duration = (datetime.now() - self.start_time).total_seconds() if self.start_time else 0

        if exc_val is not None:
            self.logger.warning(
                "health_check_failed",
                error_type=exc_type.__name__ if exc_type else "Unknown",
                error_message=str(exc_val),
                status_code=self.status_code,
                duration_seconds=duration,
            )
            return False

        self.logger.debug(
            "health_check_passed",
            status_code=self.status_code,
            duration_seconds=duration,
        )
        return False

    def set_status_code(self, status_code: int) -> None:
        """Record the status code the target answered with."""
        self.status_code = status_code
