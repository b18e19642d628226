"""Escalation phases: the verification state machine's states and transitions."""

from __future__ import annotations

from enum import Enum


class Phase(str, Enum):
    """All valid escalation phases."""

    INIT = "INIT"
    PHASE_1 = "PHASE_1"
    EVALUATE = "EVALUATE"
    PHASE_2 = "PHASE_2"
    INFER = "INFER"
    COMPLETE = "COMPLETE"
    TERMINATED = "TERMINATED"


class TerminationReason(str, Enum):
    """Why a verification ended without a trusted result."""

    NO_SOURCES = "no_sources"
    INSUFFICIENT_SOURCES = "insufficient_sources"
    NO_MAJORITY = "no_majority"
    TIMEOUT = "timeout"
    ERROR = "error"


# Valid phase transitions. Each key maps to a set of phases it can transition to.
VALID_TRANSITIONS: dict[Phase, set[Phase]] = {
    Phase.INIT: {Phase.PHASE_1, Phase.TERMINATED},
    Phase.PHASE_1: {Phase.EVALUATE, Phase.TERMINATED},
    Phase.EVALUATE: {Phase.INFER, Phase.PHASE_2, Phase.TERMINATED},
    Phase.PHASE_2: {Phase.EVALUATE, Phase.TERMINATED},
    Phase.INFER: {Phase.COMPLETE, Phase.TERMINATED},
    Phase.COMPLETE: set(),  # terminal
    Phase.TERMINATED: set(),  # terminal
}

TERMINAL_PHASES = {Phase.COMPLETE, Phase.TERMINATED}
