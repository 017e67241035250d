"""
Logging infrastructure for the invoicing platform.

- RequestIDFilter: structured logging with request/task correlation
- SensitiveDataFilter: redaction of buyer identification numbers and tokens
- correlation helpers used by middleware and background tasks

Usage:
    from apps.common.logging import correlation_context

    with correlation_context("invoice-42"):
        logger.info("...")  # every record carries request_id="invoice-42"
"""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Generator
from contextlib import contextmanager
from typing import ClassVar

# Thread-local storage for request context
_request_context = threading.local()


# =============================================================================
# REQUEST CONTEXT FUNCTIONS
# =============================================================================


def set_request_id(request_id: str) -> None:
    """Set the current request ID in thread-local storage."""
    _request_context.request_id = request_id


def get_request_id() -> str | None:
    """Get the current request ID from thread-local storage."""
    return getattr(_request_context, "request_id", None)


def clear_request_id() -> None:
    """Clear the request ID from thread-local storage."""
    _request_context.request_id = None


@contextmanager
def correlation_context(request_id: str) -> Generator[str, None, None]:
    """Bind a correlation id for the duration of a task run, restoring the previous one after."""
    previous = get_request_id()
    set_request_id(request_id)
    try:
        yield request_id
    finally:
        if previous is None:
            clear_request_id()
        else:
            set_request_id(previous)


# =============================================================================
# REQUEST ID FILTER - Structured Logging with Request Correlation
# =============================================================================


class RequestIDFilter(logging.Filter):
    """
    Add request ID to log records.

    This filter injects the request ID from thread-local storage
    into every log record, enabling tracing across request and task logs.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = getattr(_request_context, "request_id", None) or "-"  # type: ignore[attr-defined]
        return True


class SensitiveDataFilter(logging.Filter):
    """
    Redact sensitive data from log records.

    Masks buyer identification numbers (10 to 20 digit runs), passwords and
    bearer tokens before records reach a handler.
    """

    PATTERNS: ClassVar[list[tuple[re.Pattern[str], str]]] = [
        (re.compile(r"(Bearer\s+)[A-Za-z0-9\-_.=]+"), r"\1[REDACTED]"),
        (re.compile(r"(password['\"]?\s*[:=]\s*['\"]?)[^'\",\s}]+", re.IGNORECASE), r"\1[REDACTED]"),
        (re.compile(r"\b(\d{3})\d{4,14}(\d{3})\b"), r"\1****\2"),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = self.redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True

    @classmethod
    def redact(cls, text: str) -> str:
        for pattern, replacement in cls.PATTERNS:
            text = pattern.sub(replacement, text)
        return text

