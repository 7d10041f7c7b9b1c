"""
Graph error classification: Turns any exception raised by a Graph call
into a structured, security-conscious error descriptor.

404 and 403 are deliberately collapsed into one generic reason: telling a
caller "not found" apart from "forbidden" would let them probe which
identifiers exist but are hidden from them.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger("graphtools.graph.errors")


class LogLevel(str, Enum):
    ERROR = "Error"
    WARNING = "Warning"
    DEBUG = "Debug"

    @property
    def logging_level(self) -> int:
        return {
            LogLevel.ERROR: logging.ERROR,
            LogLevel.WARNING: logging.WARNING,
            LogLevel.DEBUG: logging.DEBUG,
        }[self]


@dataclass(frozen=True)
class ErrorDescriptor:
    """Classified error. `reason` is safe to show; `error_message` is for diagnostics only."""
    http_status: Optional[int]
    reason: str
    error_message: str
    log_level: LogLevel


# First match wins.
_MESSAGE_PATTERNS: list[tuple[re.Pattern, int]] = [
    (re.compile(r"\b404\b|not found", re.IGNORECASE), 404),
    (re.compile(r"\b403\b|insufficient privileges", re.IGNORECASE), 403),
    (re.compile(r"\b429\b|throttl", re.IGNORECASE), 429),
    (re.compile(r"\b400\b|bad request", re.IGNORECASE), 400),
]


def _status_from_attributes(exc: BaseException) -> Optional[int]:
    response = getattr(exc, "response", None)
    for candidate in (getattr(response, "status_code", None), getattr(exc, "status_code", None)):
        try:
            if candidate is not None:
                return int(candidate)
        except (TypeError, ValueError):
            continue
    return None


def extract_status_code(exc: BaseException) -> Optional[int]:
    """
    Find the HTTP status behind an exception: the exception's own response,
    then its inner exception's, then the message text.
    """
    status = _status_from_attributes(exc)
    if status is not None:
        return status

    inner = exc.__cause__ or exc.__context__
    if inner is not None:
        status = _status_from_attributes(inner)
        if status is not None:
            return status

    message = str(exc)
    for pattern, code in _MESSAGE_PATTERNS:
        if pattern.search(message):
            return code
    return None


def classify(exc: BaseException, resource_type: str = "resource") -> ErrorDescriptor:
    """
    Classify an exception. Never raises.

    `resource_type` is a free-form label ("user", "group", ...) used only in
    the generic 404/403 reason.
    """
    try:
        message = str(exc).strip()
    except Exception:
        message = ""
    # httpx timeouts often stringify to ""
    message = message or type(exc).__name__

    try:
        status = extract_status_code(exc)
    except Exception:
        status = None

    if status in (403, 404):
        return ErrorDescriptor(
            http_status=status,
            reason=f"Operation failed. The {resource_type} could not be processed.",
            error_message=message,
            log_level=LogLevel.ERROR,
        )
    if status == 429:
        return ErrorDescriptor(
            http_status=status,
            reason="Request throttled by Microsoft Graph. Back off and retry later.",
            error_message=message,
            log_level=LogLevel.WARNING,
        )
    if status == 400:
        return ErrorDescriptor(
            http_status=status,
            reason=f"Bad request: {message}",
            error_message=message,
            log_level=LogLevel.ERROR,
        )
    return ErrorDescriptor(
        http_status=status,
        reason=f"Failed: {message}",
        error_message=message,
        log_level=LogLevel.ERROR,
    )


def log_descriptor(log: logging.Logger, descriptor: ErrorDescriptor, context: str):
    """Log the safe reason at the descriptor's level and the raw message at DEBUG."""
    log.log(descriptor.log_level.logging_level, f"{context}: {descriptor.reason}")
    log.debug(
        f"{context}: HTTP {descriptor.http_status or 'n/a'}: {descriptor.error_message}"
    )
