"""Tests for the verification signal emitter."""

import pytest

from verifier.signals.emitter import SignalEmitter
from verifier.signals.types import SignalType


@pytest.fixture
def emitter():
    return SignalEmitter(verification_id="verify_test_001")


class TestSignalEmitter:
    @pytest.mark.asyncio
    async def test_emit_creates_signal(self, emitter):
        signal = await emitter.emit(SignalType.SOURCE_ACCEPTED, {"source": "Amazon"})
        assert signal.sequence == 1
        assert signal.signal_type == SignalType.SOURCE_ACCEPTED
        assert signal.verification_id == "verify_test_001"
        assert signal.payload["source"] == "Amazon"

    @pytest.mark.asyncio
    async def test_monotonic_sequence(self, emitter):
        s1 = await emitter.emit(SignalType.PHASE_TRANSITION)
        s2 = await emitter.emit(SignalType.PROGRESS)
        s3 = await emitter.emit(SignalType.LOG)
        assert [s1.sequence, s2.sequence, s3.sequence] == [1, 2, 3]
        assert [s.sequence for s in emitter.signals] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_signals_are_immutable(self, emitter):
        signal = await emitter.emit(SignalType.LOG, {"message": "hello"})
        with pytest.raises(Exception):
            signal.payload = {"modified": True}

    @pytest.mark.asyncio
    async def test_signals_property_is_a_copy(self, emitter):
        await emitter.emit(SignalType.LOG)
        emitter.signals.clear()
        assert len(emitter.signals) == 1


class TestSubscribers:
    @pytest.mark.asyncio
    async def test_sync_and_async_subscribers(self, emitter):
        received = []

        def sync_cb(signal):
            received.append(("sync", signal.sequence))

        async def async_cb(signal):
            received.append(("async", signal.sequence))

        emitter.subscribe(sync_cb)
        emitter.subscribe(async_cb)
        await emitter.emit(SignalType.PROGRESS)
        assert received == [("sync", 1), ("async", 1)]

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_break_emission(self, emitter):
        received = []

        def broken(_signal):
            raise RuntimeError("subscriber down")

        emitter.subscribe(broken)
        emitter.subscribe(received.append)
        signal = await emitter.emit(SignalType.LOG)
        assert received == [signal]

    @pytest.mark.asyncio
    async def test_unsubscribe(self, emitter):
        received = []
        emitter.subscribe(received.append)
        emitter.unsubscribe(received.append)
        await emitter.emit(SignalType.LOG)
        assert received == []


class TestConvenienceMethods:
    @pytest.mark.asyncio
    async def test_progress_payload(self, emitter):
        signal = await emitter.emit_progress("PHASE_1", sources_found=2, sources_required=3)
        assert signal.payload == {"phase": "PHASE_1", "sources_found": 2, "sources_required": 3}

    @pytest.mark.asyncio
    async def test_phase_transition_merges_context(self, emitter):
        signal = await emitter.emit_phase_transition("EVALUATE", "PHASE_2", {"trigger": "x"})
        assert signal.payload["from_phase"] == "EVALUATE"
        assert signal.payload["to_phase"] == "PHASE_2"
        assert signal.payload["trigger"] == "x"

    @pytest.mark.asyncio
    async def test_log_line(self, emitter):
        signal = await emitter.emit_log("Found 3 sources", level="warning")
        assert signal.signal_type == SignalType.LOG
        assert signal.payload == {"message": "Found 3 sources", "level": "warning"}

    @pytest.mark.asyncio
    async def test_verification_failed_payload(self, emitter):
        signal = await emitter.emit_verification_failed("no_majority", "EVALUATE", 5)
        assert signal.signal_type == SignalType.VERIFICATION_FAILED
        assert signal.payload["failure_reason"] == "no_majority"
