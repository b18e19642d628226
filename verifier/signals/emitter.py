"""Signal emitter for the verification event stream."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable

from verifier.signals.types import Signal, SignalType
from verifier.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)


class SignalEmitter:
    """Emits and broadcasts signals for a single verification.

    Signals are:
    - Immutable once emitted
    - Assigned monotonic sequence numbers
    - Kept in memory for the lifetime of the verification
    - Streamed to subscribers in emission order
    """

    def __init__(self, verification_id: str) -> None:
        self._verification_id = verification_id
        self._sequence = 0
        self._subscribers: list[Callable[[Signal], Any]] = []
        self._signals: list[Signal] = []
        self._lock = asyncio.Lock()

    @property
    def verification_id(self) -> str:
        return self._verification_id

    @property
    def signals(self) -> list[Signal]:
        """Return all emitted signals (read-only copy)."""
        return list(self._signals)

    def subscribe(self, callback: Callable[[Signal], Any]) -> None:
        """Register a subscriber. Sync and async callbacks are both accepted."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[Signal], Any]) -> None:
        self._subscribers = [s for s in self._subscribers if s != callback]

    async def emit(self, signal_type: SignalType, payload: dict[str, Any] | None = None) -> Signal:
        """Emit a signal. This is the ONLY way to create signals."""
        async with self._lock:
            self._sequence += 1
            signal = Signal(
                sequence=self._sequence,
                signal_type=signal_type,
                timestamp=datetime.now(timezone.utc),
                verification_id=self._verification_id,
                payload=payload or {},
            )
            self._signals.append(signal)

        await self._broadcast(signal)
        return signal

    async def _broadcast(self, signal: Signal) -> None:
        for subscriber in self._subscribers:
            try:
                result = subscriber(signal)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                # Subscribers must not break the verification
                emit_structured_error(
                    logger,
                    code=ErrorCode.SIGNAL_SUBSCRIBER_FAILURE,
                    message=str(exc),
                    suppressed=True,
                    verification_id=self._verification_id,
                    details={"signal_type": signal.signal_type.value},
                )

    async def emit_phase_transition(
        self, from_phase: str, to_phase: str, context: dict[str, Any] | None = None
    ) -> Signal:
        """Convenience: emit a PHASE_TRANSITION signal."""
        return await self.emit(
            SignalType.PHASE_TRANSITION,
            {"from_phase": from_phase, "to_phase": to_phase, **(context or {})},
        )

    async def emit_progress(self, phase: str, sources_found: int, sources_required: int) -> Signal:
        """Convenience: emit a PROGRESS signal."""
        return await self.emit(
            SignalType.PROGRESS,
            {
                "phase": phase,
                "sources_found": sources_found,
                "sources_required": sources_required,
            },
        )

    async def emit_log(self, message: str, level: str = "info") -> Signal:
        """Convenience: emit a human-readable LOG line."""
        return await self.emit(SignalType.LOG, {"message": message, "level": level})

    async def emit_verification_complete(
        self, sources_count: int, consistency_score: int, duration_s: float
    ) -> Signal:
        """Convenience: emit a VERIFICATION_COMPLETE signal."""
        return await self.emit(
            SignalType.VERIFICATION_COMPLETE,
            {
                "sources_count": sources_count,
                "consistency_score": consistency_score,
                "duration_s": duration_s,
            },
        )

    async def emit_verification_failed(
        self, failure_reason: str, phase_at_failure: str, sources_found: int
    ) -> Signal:
        """Convenience: emit a VERIFICATION_FAILED signal."""
        return await self.emit(
            SignalType.VERIFICATION_FAILED,
            {
                "failure_reason": failure_reason,
                "phase_at_failure": phase_at_failure,
                "sources_found": sources_found,
            },
        )
