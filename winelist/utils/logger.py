"""
Structured logging for the wine list pipeline.

Every event carries the application name and environment, run-scoped values
bound through ``LogContext`` (``run_id``, ``venue_id``) and never an Airtable
token: tokens are masked both under known keys and inside free-text values
such as request URLs or error messages.
"""

import logging
import re
import sys
from typing import Any, Iterable

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

APP_NAME = "winelist"

SECRET_KEYS = frozenset({"token", "auth_token", "access_token", "authorization"})

# Airtable personal access tokens and legacy API keys
_TOKEN_PATTERN = re.compile(r"\b(?:pat[A-Za-z0-9]{14}\.[A-Za-z0-9]+|key[A-Za-z0-9]{14})\b")

NOISY_LOGGERS: tuple[str, ...] = ("httpx", "httpcore")


def _mask(value: Any) -> Any:
    if isinstance(value, str):
        return _TOKEN_PATTERN.sub("***", value)
    return value


def redact_secrets(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """Mask Airtable credentials found in log context."""
    for key, value in event_dict.items():
        if key.lower() in SECRET_KEYS and value:
            event_dict[key] = "***"
        else:
            event_dict[key] = _mask(value)
    return event_dict


def app_context(environment: str) -> Processor:
    """Processor stamping the application name and environment on each event."""
    def processor(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("app", APP_NAME)
        event_dict.setdefault("env", environment)
        return event_dict
    return processor


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    environment: str = "development",
    quiet_loggers: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """
    Configure structlog and route stdlib logging to stdout.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR).
        json_format: JSON lines when True, coloured console output otherwise.
        environment: Value of the ``env`` key added to every event.
        quiet_loggers: Stdlib loggers capped at WARNING; HTTP client loggers
            print every request URL, formulas with venue ids included.
    """
    numeric_level = getattr(logging, level.upper())
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        app_context(environment),
        redact_secrets,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]
    if json_format:
        processors.append(structlog.processors.JSONRenderer(ensure_ascii=False))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)
    for name in quiet_loggers:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)


class LogContext:
    """
    Bind values to every event logged inside the block.

    Values bound by an enclosing block are restored on exit.

    Example:
        >>> with LogContext(run_id="run-1", venue_id="recXXXXXXXXXXXXXX"):
        ...     logger.info("Pipeline started")
    """

    def __init__(self, **values: Any):
        self.values = values
        self._tokens: dict = {}

    def __enter__(self) -> "LogContext":
        self._tokens = structlog.contextvars.bind_contextvars(**self.values)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)
        self._tokens = {}
