"""The Escalation Controller: verification lifecycle as a finite state machine.

It does not fetch, parse or judge pages itself. It decides how many sources
to acquire, asks the locator and acquirer for them, and applies the majority
rules:

- Phase 1 acquires three independent web sources. Unanimous agreement (and no
  disagreeing database source) completes without any further network calls.
- Otherwise Phase 2 acquires two more and requires 4 of 5, or 3 of 4 when
  only four sources could be found.
- Anything short of that terminates with ``requires_manual_entry``.

MUST NOT:
- Retry a URL that already failed
- Count two sources from the same domain
- Return a partial result after the global timeout
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any

from verifier.config.settings import EscalationConfig, TimeoutConfig
from verifier.consensus.differences import consistency_report
from verifier.consensus.grouper import ConsensusGrouper, GroupingResult
from verifier.escalation.phases import (
    TERMINAL_PHASES,
    VALID_TRANSITIONS,
    Phase,
    TerminationReason,
)
from verifier.grounding.locator import SourceLocator
from verifier.pipeline.acquisition import AcquisitionOutcome, SourceAcquirer
from verifier.pipeline.inference import InferenceResult, infer_allergens_and_diets
from verifier.pipeline.records import (
    CandidateURL,
    ConsensusGroup,
    ProductQuery,
    Source,
    VerificationResult,
)
from verifier.signals.emitter import SignalEmitter
from verifier.signals.types import SignalType
from verifier.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)


class EscalationError(Exception):
    """Raised on an invalid phase transition."""


class EscalationController:
    """Runs one verification at a time from INIT to COMPLETE/TERMINATED."""

    def __init__(
        self,
        locator: SourceLocator,
        acquirer: SourceAcquirer,
        grouper: ConsensusGrouper,
        config: EscalationConfig | None = None,
        timeouts: TimeoutConfig | None = None,
        verification_id: str | None = None,
    ) -> None:
        self._locator = locator
        self._acquirer = acquirer
        self._grouper = grouper
        self._config = config or EscalationConfig()
        self._timeouts = timeouts or TimeoutConfig()
        self._verification_id = verification_id or f"verify_{uuid.uuid4().hex[:12]}"
        self._signals = SignalEmitter(verification_id=self._verification_id)
        self._reset(None, None)

    def _reset(self, query: ProductQuery | None, database_source: Source | None) -> None:
        self._phase = Phase.INIT
        self._query = query
        self._database_source = database_source
        self._sources: list[Source] = []
        self._fallbacks: list[Source] = []
        self._extras: list[Source] = []
        self._seen_urls: set[str] = set()
        self._grouping: GroupingResult | None = None
        self._consensus: ConsensusGroup | None = None
        self._inference: InferenceResult | None = None
        self._phases_run: list[str] = []
        self._termination: TerminationReason | None = None
        self._error: str | None = None
        self._required = self._config.phase1_target
        self._escalated = False
        self._database_agrees: bool | None = None

    @property
    def verification_id(self) -> str:
        return self._verification_id

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def signals(self) -> SignalEmitter:
        return self._signals

    @property
    def phase2_target(self) -> int:
        return self._config.phase1_target + self._config.phase2_extra

    # --- Phase Transition ---

    async def _transition(self, to_phase: Phase, context: dict[str, Any] | None = None) -> None:
        """Every phase change goes through this guard."""
        if to_phase not in VALID_TRANSITIONS.get(self._phase, set()):
            raise EscalationError(f"Invalid transition: {self._phase.value} -> {to_phase.value}")

        from_phase = self._phase
        self._phase = to_phase
        if to_phase in (Phase.PHASE_1, Phase.PHASE_2):
            self._phases_run.append(to_phase.value)

        await self._signals.emit_phase_transition(
            from_phase=from_phase.value,
            to_phase=to_phase.value,
            context=context or {},
        )

    async def _terminate(self, reason: TerminationReason, message: str) -> None:
        if self._phase in TERMINAL_PHASES:
            return
        phase_at_failure = self._phase.value
        self._termination = reason
        self._error = message
        await self._transition(Phase.TERMINATED, {"reason": reason.value})
        await self._signals.emit_log(message, level="warning")
        await self._signals.emit_verification_failed(
            failure_reason=reason.value,
            phase_at_failure=phase_at_failure,
            sources_found=len(self._sources),
        )

    # --- Main Loop ---

    async def verify(
        self, query: ProductQuery, database_source: Source | None = None
    ) -> VerificationResult:
        """Verify one product. Always returns a result; never raises for bad evidence."""
        self._reset(query, database_source)
        start = time.monotonic()

        try:
            await asyncio.wait_for(self._run(), timeout=self._timeouts.global_timeout_s)
        except asyncio.TimeoutError:
            emit_structured_error(
                logger,
                code=ErrorCode.VERIFICATION_TIMEOUT,
                message="Global timeout exceeded",
                suppressed=True,
                verification_id=self._verification_id,
                phase=self._phase.value,
            )
            # Nothing from an interrupted phase is trusted.
            self._consensus = None
            self._inference = None
            self._termination = TerminationReason.TIMEOUT
            self._error = "Verification timed out"
            await self._terminate(TerminationReason.TIMEOUT, "Verification timed out")
        except Exception as e:
            emit_structured_error(
                logger,
                code=ErrorCode.VERIFICATION_FAILED,
                message=str(e),
                suppressed=True,
                verification_id=self._verification_id,
                phase=self._phase.value,
            )
            self._consensus = None
            self._inference = None
            await self._terminate(TerminationReason.ERROR, f"Unhandled exception: {e}")

        if self._phase == Phase.COMPLETE and self._consensus is not None:
            await self._signals.emit_verification_complete(
                sources_count=self._consensus.size,
                consistency_score=self._report_score(),
                duration_s=round(time.monotonic() - start, 2),
            )
        return self._build_result()

    async def _run(self) -> None:
        while self._phase not in TERMINAL_PHASES:
            if self._phase == Phase.INIT:
                await self._transition(
                    Phase.PHASE_1,
                    {"product": self._product.display_name, "target": self._config.phase1_target},
                )
            elif self._phase == Phase.PHASE_1:
                await self._acquire(self._config.phase1_target, self._config.phase1_rounds)
                await self._transition(Phase.EVALUATE, {"sources_found": len(self._sources)})
            elif self._phase == Phase.EVALUATE:
                if self._escalated:
                    await self._evaluate_escalated()
                else:
                    await self._evaluate_initial()
            elif self._phase == Phase.PHASE_2:
                self._escalated = True
                await self._acquire(self.phase2_target, self._config.phase2_rounds)
                await self._transition(Phase.EVALUATE, {"sources_found": len(self._sources)})
            elif self._phase == Phase.INFER:
                await self._phase_infer()

    @property
    def _product(self) -> ProductQuery:
        if self._query is None:
            raise EscalationError("No product query set")
        return self._query

    # --- Acquisition ---

    def _used_domains(self) -> set[str]:
        return {source.domain for source in self._sources}

    def _domain_queues(self, located: list[CandidateURL]) -> dict[str, list[CandidateURL]]:
        """Unseen URLs grouped by domain, for domains not yet represented."""
        used = self._used_domains()
        queues: dict[str, list[CandidateURL]] = {}
        queued: set[str] = set()
        for candidate in located:
            if candidate.url in self._seen_urls or candidate.url in queued:
                continue
            if candidate.domain in used:
                continue
            queues.setdefault(candidate.domain, []).append(candidate)
            queued.add(candidate.url)
        return queues

    async def _acquire(self, target: int, rounds: list[list[str]]) -> None:
        """Acquire sources until ``target`` is reached or the round budget runs out."""
        self._required = target
        for retailers in rounds[: self._config.max_locate_rounds]:
            if len(self._sources) >= target:
                break

            located_lists = await asyncio.gather(
                *(self._locator.locate(self._product, retailer) for retailer in retailers)
            )
            located = [candidate for batch in located_lists for candidate in batch]
            await self._signals.emit(
                SignalType.SOURCES_LOCATED,
                {"retailers": retailers, "candidates": len(located)},
            )

            # One fetch per domain at a time; a miss moves that domain to its next URL.
            queues = self._domain_queues(located)
            while queues and len(self._sources) < target:
                batch = [candidates.pop(0) for candidates in queues.values()]
                self._seen_urls.update(candidate.url for candidate in batch)
                for outcome in await self._acquirer.acquire_all(batch, self._product):
                    await self._record_outcome(outcome, target)
                used = self._used_domains()
                queues = {
                    domain: candidates
                    for domain, candidates in queues.items()
                    if candidates and domain not in used
                }

        if len(self._sources) < target and self._config.allow_unvalidated_fallback:
            await self._top_up_with_fallbacks(target)

    async def _record_outcome(self, outcome: AcquisitionOutcome, target: int) -> None:
        source = outcome.source
        if source is not None:
            if source.domain in self._used_domains() or len(self._sources) >= target:
                self._extras.append(source)
                return
            self._sources.append(source)
            await self._signals.emit(
                SignalType.SOURCE_ACCEPTED,
                {
                    "name": source.name,
                    "url": source.url,
                    "method": source.extraction_method.value,
                    "confidence": source.confidence,
                },
            )
            await self._signals.emit_log(
                f"Found ingredients on {source.name} ({source.extraction_method.value})"
            )
            await self._signals.emit_progress(self._phase.value, len(self._sources), target)
            return

        if outcome.fallback is not None:
            self._fallbacks.append(outcome.fallback)
        await self._signals.emit(
            SignalType.SOURCE_REJECTED,
            {"url": outcome.candidate.url, "reason": outcome.reason},
        )

    async def _top_up_with_fallbacks(self, target: int) -> None:
        for fallback in self._fallbacks:
            if len(self._sources) >= target:
                break
            if fallback.domain in self._used_domains():
                continue
            self._sources.append(fallback)
            await self._signals.emit_log(
                f"Using unvalidated search-reported ingredients from {fallback.name}",
                level="warning",
            )
            await self._signals.emit_progress(self._phase.value, len(self._sources), target)

    # --- Evaluation ---

    async def _database_check(self, group: ConsensusGroup) -> bool | None:
        if self._database_source is None:
            return None
        return await self._grouper.same_formulation(group.representative, self._database_source)

    async def _evaluate_initial(self) -> None:
        found = len(self._sources)
        if found == 0:
            await self._terminate(TerminationReason.NO_SOURCES, "No sources with ingredient lists were found")
            return
        if found < self._config.phase1_target:
            await self._terminate(
                TerminationReason.INSUFFICIENT_SOURCES,
                f"Only {found} of {self._config.phase1_target} required sources found",
            )
            return

        self._grouping = await self._grouper.group(self._sources)
        largest = self._grouping.largest
        if largest is None:
            await self._terminate(TerminationReason.ERROR, "Grouping produced no groups")
            return
        self._database_agrees = await self._database_check(largest)

        if largest.size == found and self._database_agrees is not False:
            self._consensus = largest
            await self._transition(Phase.INFER, {"agreement": f"{largest.size}/{found}"})
            return

        trigger = "database_disagreement" if largest.size == found else "partial_agreement"
        await self._signals.emit_log(
            f"{largest.size} of {found} sources agree; escalating for more evidence"
        )
        await self._transition(
            Phase.PHASE_2,
            {"trigger": trigger, "agreement": f"{largest.size}/{found}", "target": self.phase2_target},
        )

    async def _evaluate_escalated(self) -> None:
        found = len(self._sources)
        minimum = self.phase2_target - 1
        if found < minimum:
            self._required = minimum
            await self._terminate(
                TerminationReason.INSUFFICIENT_SOURCES,
                f"Only {found} sources found after escalation; at least {minimum} required",
            )
            return

        self._grouping = await self._grouper.group(self._sources)
        largest = self._grouping.largest
        if largest is None:
            await self._terminate(TerminationReason.ERROR, "Grouping produced no groups")
            return
        required = found - 1
        self._required = required
        self._database_agrees = await self._database_check(largest)

        if largest.size >= required:
            self._consensus = largest
            await self._transition(Phase.INFER, {"agreement": f"{largest.size}/{found}"})
            return

        await self._terminate(
            TerminationReason.NO_MAJORITY,
            f"Sources disagree: largest group has {largest.size} of {found}; {required} required",
        )

    # --- Inference ---

    async def _phase_infer(self) -> None:
        if self._consensus is None:
            await self._terminate(TerminationReason.ERROR, "No consensus group to infer from")
            return
        self._inference = infer_allergens_and_diets(self._consensus.members)
        await self._transition(
            Phase.COMPLETE,
            {"allergens": self._inference.allergens, "diets": self._inference.diets},
        )

    # --- Result ---

    def _report_score(self) -> int:
        if self._consensus is None or not self._sources:
            return 0
        return round(100 * self._consensus.size / len(self._sources))

    def _candidate_evidence(self) -> list[Source]:
        evidence = [*self._sources, *self._extras]
        evidence.extend(f for f in self._fallbacks if f not in self._sources)
        if self._database_source is not None:
            evidence.append(self._database_source)
        return evidence

    def _build_result(self) -> VerificationResult:
        common: dict[str, Any] = {
            "verification_id": self._verification_id,
            "product": self._product,
            "sources_found": len(self._sources),
            "minimum_sources_required": self._required,
            "candidate_sources": self._candidate_evidence(),
            "database_source_agrees": self._database_agrees,
            "phases_run": list(self._phases_run),
        }

        if self._phase != Phase.COMPLETE or self._consensus is None or self._inference is None:
            return VerificationResult(
                **common,
                requires_manual_entry=True,
                termination_reason=(self._termination or TerminationReason.ERROR).value,
                error=self._error or "Verification did not complete",
                unvalidated_sources_used=any(not s.validated for s in self._sources),
            )

        members = self._consensus.members
        inference = self._inference
        return VerificationResult(
            **common,
            sources=members,
            consistency=consistency_report(members, len(self._sources)),
            consolidated_ingredients=self._consensus.representative.ingredients_text,
            cross_contamination_warnings=inference.cross_contamination_warnings,
            allergens=inference.allergens,
            allergens_inferred=inference.allergens_inferred,
            allergen_triggers=inference.allergen_triggers,
            diets=inference.diets,
            diets_inferred=inference.diets_inferred,
            dietary_compliance=inference.dietary_compliance,
            unvalidated_sources_used=any(not s.validated for s in members),
        )
