"""Signal type definitions for verification progress events."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class SignalType(str, Enum):
    """All signal types emitted during a verification."""

    PHASE_TRANSITION = "PHASE_TRANSITION"
    SOURCES_LOCATED = "SOURCES_LOCATED"
    SOURCE_ACCEPTED = "SOURCE_ACCEPTED"
    SOURCE_REJECTED = "SOURCE_REJECTED"
    PROGRESS = "PROGRESS"
    LOG = "LOG"
    VERIFICATION_COMPLETE = "VERIFICATION_COMPLETE"
    VERIFICATION_FAILED = "VERIFICATION_FAILED"


class Signal(BaseModel):
    """An immutable event emitted during a verification.

    Callers render these as progress bars and log lines. Signals are
    append-only and cannot be modified after emission.
    """

    sequence: int = Field(description="Monotonic sequence number within the verification")
    signal_type: SignalType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    verification_id: str
    payload: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}
