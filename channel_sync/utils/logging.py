"""
Logging utilities for channel sync
Structured logging through structlog with a safe adapter for stdlib loggers
"""

import logging
import sys
import time
from functools import wraps
from typing import Any, Optional
from urllib.parse import urlparse, parse_qs, urlencode, urlunparse

import structlog


class SafeLogger:
    """
    Safe logging adapter that handles both structlog and stdlib logging.
    Converts keyword context to an extra dict when the wrapped logger is stdlib.
    """

    def __init__(self, logger: Any):
        self._logger = logger
        self._is_structlog = hasattr(logger, "bind")

    def _log(self, log_level: str, event: str, **kwargs) -> None:
        if self._is_structlog:
            getattr(self._logger, log_level)(event, **kwargs)
            return

        special_kwargs = {}
        for key in ["exc_info", "stack_info", "stacklevel"]:
            if key in kwargs:
                special_kwargs[key] = kwargs.pop(key)

        extra_dict = dict(kwargs.pop("extra", {}) or {})
        # Remaining kwargs go under 'fields' to avoid LogRecord conflicts
        if kwargs:
            extra_dict["fields"] = kwargs

        getattr(self._logger, log_level)(event, extra=extra_dict, **special_kwargs)

    def bind(self, **kwargs) -> "SafeLogger":
        """Bind context to logger if structlog, otherwise return self"""
        if self._is_structlog:
            return SafeLogger(self._logger.bind(**kwargs))
        return self

    def debug(self, event: str, **kwargs) -> None:
        self._log("debug", event, **kwargs)

    def info(self, event: str, **kwargs) -> None:
        self._log("info", event, **kwargs)

    def warning(self, event: str, **kwargs) -> None:
        self._log("warning", event, **kwargs)

    def error(self, event: str, **kwargs) -> None:
        self._log("error", event, **kwargs)

    def critical(self, event: str, **kwargs) -> None:
        self._log("critical", event, **kwargs)

    warn = warning


def get_safe_logger(name: Optional[str] = None) -> SafeLogger:
    """Get a SafeLogger around a structlog logger"""
    logger = structlog.get_logger(name) if name else structlog.get_logger()
    return SafeLogger(logger)


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """
    Configure structlog and the stdlib root logger.

    JSON output is meant for production log shipping; the console renderer
    is for local runs of the CLI.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=log_level)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def log_performance(operation: str):
    """
    Decorator to log duration of async client calls

    Usage:
        @log_performance("push_availability")
        async def push_availability(self, ...):
            ...
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(self, *args, **kwargs):
            start_time = time.perf_counter()
            error = None

            try:
                return await func(self, *args, **kwargs)
            except Exception as e:
                error = e
                raise
            finally:
                duration_ms = (time.perf_counter() - start_time) * 1000
                logger = getattr(self, "logger", None)
                if logger is not None:
                    if error:
                        logger.error(
                            "channel_call_failed",
                            operation=operation,
                            duration_ms=round(duration_ms, 2),
                            error=str(error),
                        )
                    else:
                        logger.info(
                            "channel_call_completed",
                            operation=operation,
                            duration_ms=round(duration_ms, 2),
                        )

        return wrapper

    return decorator


def sanitize_url(url: str) -> str:
    """
    Sanitize URL for logging by removing credentials and sensitive query parameters
    """
    sensitive_params = {
        "api_key", "apikey", "key", "token", "secret",
        "password", "pwd", "auth", "authorization",
        "client_secret", "access_token", "session", "sid",
    }

    parsed = urlparse(url)
    query_params = parse_qs(parsed.query)

    sanitized_params = {}
    for param, values in query_params.items():
        if param.lower() in sensitive_params:
            sanitized_params[param] = ["<REDACTED>"]
        else:
            sanitized_params[param] = values

    netloc = parsed.hostname or ""
    if parsed.port:
        netloc = f"{netloc}:{parsed.port}"

    return urlunparse((
        parsed.scheme,
        netloc,
        parsed.path,
        parsed.params,
        urlencode(sanitized_params, doseq=True),
        parsed.fragment,
    ))
