"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of witsync, licensed under the MIT License.
See LICENSE file for details.
"""

"""Logging infrastructure with contextual error tracking.

This module provides the trace and exception-telemetry collaborators used by
every migration context: structured records carrying a per-run correlation
ID, redaction of credentials, timed operations, and an error tracker that
collects contained per-entity failures for the final run summary.
"""

import json
import logging
import os
import re
import sys
import threading
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from re import Pattern
from typing import Any

from rich.logging import RichHandler

# Thread-local storage for context data
_context_local = threading.local()


class CorrelationIdManager:
    """
    Manages correlation IDs using thread-local storage.

    A migration run gets one correlation ID so that every progress line and
    every tracked error of that run can be grouped together afterwards.
    """

    def get_correlation_id(self) -> str:
        """
        Get the current correlation ID or generate a new one.
        """
        if not getattr(_context_local, "correlation_id", None):
            _context_local.correlation_id = f"witsync-{uuid.uuid4()}"
        return _context_local.correlation_id

    def set_correlation_id(self, correlation_id: str) -> None:
        """
        Set the current correlation ID.
        """
        _context_local.correlation_id = correlation_id

    def clear_correlation_id(self) -> None:
        """
        Clear the current correlation ID.
        """
        if hasattr(_context_local, "correlation_id"):
            delattr(_context_local, "correlation_id")


# Global correlation ID manager instance
correlation_manager = CorrelationIdManager()


class LogRedactor:
    """
    Redacts sensitive information from log messages.
    """

    def __init__(self) -> None:
        """
        Initialize the log redactor with patterns for sensitive information.

        Collection URLs regularly carry personal access tokens, so both
        key/value style secrets and user-info segments of URLs are covered.
        """
        self.patterns: dict[str, Pattern] = {
            "api_key": re.compile(
                r'(api[_-]?key|token|pat)["\']?\s*[:=]\s*["\']?([^"\'&\s]{8,})', re.IGNORECASE
            ),
            "password": re.compile(
                r'(password|passwd|secret)["\']?\s*[:=]\s*["\']?([^"\'&\s]+)', re.IGNORECASE
            ),
            "bearer_token": re.compile(
                r'(Authorization|Bearer)["\']?\s*[:=]\s*["\']?([^"\'&\s]{8,})', re.IGNORECASE
            ),
            "url_credentials": re.compile(r"(https?://)[^/\s:@]+:[^/\s@]+@"),
        }

    def redact(self, message: str) -> str:
        """
        Redact sensitive information from the message.
        """
        if not isinstance(message, str):
            return message

        for field, pattern in self.patterns.items():
            if field == "url_credentials":
                message = pattern.sub(r"\1[REDACTED]@", message)
            else:
                # For key-value patterns, keep the key but redact the value
                message = pattern.sub(r"\1: [REDACTED]", message)
        return message


# Global redactor instance
redactor = LogRedactor()


class StructuredLogger(logging.Logger):
    """
    Logger that supports structured logging with context data.

    Context can be passed either as ``context={...}`` or through the standard
    ``extra={"context_data": {...}}`` mechanism; both end up on the record as
    ``context_data``.
    """

    def _log(
        self,
        level: int,
        msg: Any,
        args: tuple,
        exc_info: Any = None,
        extra: dict[str, Any] | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        **kwargs: Any,
    ) -> None:
        context = kwargs.pop("context", None)

        extra = dict(extra) if extra else {}
        if context:
            extra["context_data"] = context

        super()._log(level, msg, args, exc_info, extra, stack_info, stacklevel + 1)


class ContextFilter(logging.Filter):
    """
    Stamps the current correlation ID on every record and redacts its message.

    Attached to the handlers installed by configure_logging, so it applies to
    records of every logger, whatever class the logger was created with.
    """

    def __init__(self, log_redactor: LogRedactor | None = None) -> None:
        super().__init__()
        self.redactor = log_redactor or redactor

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", None):
            record.correlation_id = correlation_manager.get_correlation_id()
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            # Leave malformed records for the formatter to report.
            return True
        redacted = self.redactor.redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = ()
        return True


class JSONFormatter(logging.Formatter):
    """
    Formatter that outputs log records as JSON.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if hasattr(record, "correlation_id"):
            log_data["correlation_id"] = record.correlation_id

        if getattr(record, "context_data", None):
            log_data["context"] = record.context_data

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(log_data, default=str)


class RichContextFormatter(logging.Formatter):
    """
    Formatter for Rich console output with context data.
    """

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)

        context_data = getattr(record, "context_data", None)
        if context_data:
            context_str = " ".join(f"[{k}={v}]" for k, v in context_data.items())
            message = f"{message} {context_str}"

        return message


@contextmanager
def log_operation(
    logger: logging.Logger,
    operation_name: str,
    level: int = logging.INFO,
    context: dict[str, Any] | None = None,
) -> Iterator[dict[str, Any]]:
    """
    Context manager for logging operations with timing and context tracking.

    Args:
    ----
        logger: The logger instance to use
        operation_name: Name of the operation being performed
        level: Log level to use
        context: Additional context data to include in the logs

    Yields:
    ------
        The context dictionary, which callers may enrich while running

    Raises:
    ------
        Exception: Re-raises any exception that occurs within the context

    """
    start_time = time.perf_counter()
    context = dict(context or {})
    context["operation_id"] = str(uuid.uuid4())[:8]

    logger.log(level, f"Starting {operation_name}", extra={"context_data": context})

    try:
        yield context
    except Exception as e:
        duration = time.perf_counter() - start_time
        error_context = {
            **context,
            "error_type": type(e).__name__,
            "error": str(e),
            "duration": f"{duration:.2f}s",
        }
        logger.log(
            logging.ERROR,
            f"Failed {operation_name} after {duration:.2f}s",
            extra={"context_data": error_context},
            exc_info=True,
        )
        raise
    duration = time.perf_counter() - start_time
    logger.log(
        level, f"Completed {operation_name} in {duration:.2f}s", extra={"context_data": context}
    )


@contextmanager
def correlation_id(value: str | None = None) -> Iterator[str]:
    """
    Context manager for setting a correlation ID for the current context.

    Args:
    ----
        value: ID to use, or None to generate a new one

    Yields:
    ------
        str: The current correlation ID (either provided or generated)

    """
    previous_id = getattr(_context_local, "correlation_id", None)

    correlation_manager.set_correlation_id(value or f"witsync-{uuid.uuid4()}")

    try:
        yield correlation_manager.get_correlation_id()
    finally:
        if previous_id:
            correlation_manager.set_correlation_id(previous_id)
        else:
            correlation_manager.clear_correlation_id()


class ErrorTracker:
    """
    Tracks errors and their context for later analysis.

    Migration contexts contain entity-level failures instead of aborting the
    run; each contained failure is handed to the tracker so it can be reported
    together with the final counters.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.errors: list[dict[str, Any]] = []
        self.logger = logger or logging.getLogger("witsync.error_tracker")

    def add_error(
        self, error: Exception, context: dict[str, Any] | None = None, log: bool = True
    ) -> None:
        """
        Add an error to the tracker.

        Args:
        ----
            error: The exception that occurred
            context: Additional context information
            log: Whether to log the error as well as tracking it

        """
        error_info = {
            "error_type": type(error).__name__,
            "message": str(error),
            "timestamp": datetime.now().isoformat(),
            "correlation_id": correlation_manager.get_correlation_id(),
            "context": context or {},
        }
        self.errors.append(error_info)

        if log:
            self.logger.warning(
                f"Error tracked: {error_info['error_type']}: {error_info['message']}",
                extra={"context_data": context or {}},
            )

    @contextmanager
    def track_errors(
        self, context: dict[str, Any] | None = None, log: bool = True
    ) -> Iterator["ErrorTracker"]:
        """
        Context manager to track errors that occur during execution.

        The error is recorded and re-raised.
        """
        try:
            yield self
        except Exception as e:
            self.add_error(e, context=context, log=log)
            raise

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def get_error_summary(self) -> dict[str, Any]:
        """
        Get a summary of tracked errors.

        Returns
        -------
            A dictionary containing total_errors, a count per error_type, and
            the first and last error recorded

        """
        error_types: dict[str, int] = {}
        for error in self.errors:
            error_type = error["error_type"]
            error_types[error_type] = error_types.get(error_type, 0) + 1

        return {
            "total_errors": len(self.errors),
            "error_types": error_types,
            "first_error": self.errors[0] if self.errors else None,
            "last_error": self.errors[-1] if self.errors else None,
        }

    def clear(self) -> None:
        self.errors = []


def configure_logging(
    level: int | str = logging.INFO,
    log_file: str | None = None,
    json_format: bool = False,
    include_timestamp: bool = True,
    use_rich: bool = True,
    debug: bool = False,
) -> None:
    """
    Configure application logging.

    Args:
    ----
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL or integer)
        log_file: Optional path to log file
        json_format: Whether to use JSON format for logs
        include_timestamp: Whether to include timestamps in logs
        use_rich: Whether to use Rich for console output
        debug: Whether to force debug mode

    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())

    if debug:
        level = logging.DEBUG

    format_str = (
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
        if include_timestamp
        else "[%(levelname)s] %(name)s: %(message)s"
    )

    handlers: list[logging.Handler] = []

    if use_rich:
        rich_handler = RichHandler(rich_tracebacks=True, markup=False, show_time=include_timestamp)
        rich_handler.setFormatter(RichContextFormatter("%(message)s"))
        handlers.append(rich_handler)
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(
            JSONFormatter() if json_format else logging.Formatter(format_str)
        )
        handlers.append(console_handler)

    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(format_str))
        handlers.append(file_handler)

    context_filter = ContextFilter()
    for handler in handlers:
        handler.addFilter(context_filter)

    root = logging.getLogger()
    root.setLevel(max(level, logging.WARNING))
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)

    logger = logging.getLogger("witsync")
    logger.setLevel(level)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    for handler in handlers:
        logger.addHandler(handler)

    logger.debug(f"Logging configured with level {logging.getLevelName(level)}")


def get_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger.

    Module loggers are created at import time, before configure_logging runs,
    so the logger class is swapped in only for this lookup.

    Args:
    ----
        name: Name of the logger, typically "witsync.<module>"

    Returns:
    -------
        A structured logger instance

    """
    current_logger_class = logging.getLoggerClass()
    logging.setLoggerClass(StructuredLogger)
    try:
        return logging.getLogger(name)
    finally:
        logging.setLoggerClass(current_logger_class)
