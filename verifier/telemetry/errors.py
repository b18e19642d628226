"""Structured error telemetry helpers."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Canonical error codes for operational telemetry."""

    AI_INITIALIZATION_FAILED = "AI_INITIALIZATION_FAILED"
    AI_EXTRACTION_FAILED = "AI_EXTRACTION_FAILED"
    AI_ADJUDICATION_FAILED = "AI_ADJUDICATION_FAILED"
    AI_SEARCH_FAILED = "AI_SEARCH_FAILED"
    SEARCH_API_FAILED = "SEARCH_API_FAILED"
    PAGE_FETCH_FAILED = "PAGE_FETCH_FAILED"
    PAGE_RENDER_FAILED = "PAGE_RENDER_FAILED"
    SOURCE_ACQUISITION_FAILED = "SOURCE_ACQUISITION_FAILED"
    SIGNAL_SUBSCRIBER_FAILURE = "SIGNAL_SUBSCRIBER_FAILURE"
    BROWSER_CLEANUP_FAILED = "BROWSER_CLEANUP_FAILED"
    VERIFICATION_TIMEOUT = "VERIFICATION_TIMEOUT"
    VERIFICATION_FAILED = "VERIFICATION_FAILED"


def emit_structured_error(
    logger: logging.Logger,
    *,
    code: ErrorCode,
    message: str,
    suppressed: bool,
    verification_id: str | None = None,
    phase: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Emit a structured telemetry event via logging."""
    logger.error(
        "verifier_error",
        extra={
            "error_code": code,
            "error_message": message,
            "suppressed": suppressed,
            "verification_id": verification_id,
            "phase": phase,
            "details": details or {},
        },
    )
