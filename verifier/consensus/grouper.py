"""Consensus Grouper: clusters sources that describe the same formulation.

A single greedy pass compares each source with the representative (first
member) of every existing group. Lexical matches that are not exact are
re-checked by the adjudicator, which can only split, never merge. Group
membership lives in a disjoint set so groups can be rebuilt at the end.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from verifier.ai_engine.contracts import Adjudicator
from verifier.pipeline.records import ConsensusGroup, Source
from verifier.pipeline.similarity import SimilarityMatcher
from verifier.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)


class DisjointSet:
    """Union-find over source indices."""

    def __init__(self, size: int) -> None:
        self._parent = list(range(size))
        self._rank = [0] * size

    def find(self, item: int) -> int:
        root = item
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[item] != root:
            self._parent[item], item = root, self._parent[item]
        return root

    def union(self, a: int, b: int) -> int:
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return root_a
        if self._rank[root_a] < self._rank[root_b]:
            root_a, root_b = root_b, root_a
        self._parent[root_b] = root_a
        if self._rank[root_a] == self._rank[root_b]:
            self._rank[root_a] += 1
        return root_a

    def groups(self) -> list[list[int]]:
        """Members per set, sets ordered by their lowest member."""
        by_root: dict[int, list[int]] = {}
        for item in range(len(self._parent)):
            by_root.setdefault(self.find(item), []).append(item)
        return sorted(by_root.values(), key=lambda members: members[0])


@dataclass
class GroupingResult:
    groups: list[ConsensusGroup] = field(default_factory=list)
    adjudications: int = 0
    vetoes: int = 0

    @property
    def largest(self) -> ConsensusGroup | None:
        """Largest group; ties go to higher total confidence, then earlier formation."""
        best: ConsensusGroup | None = None
        for group in self.groups:
            if best is None or (group.size, group.total_confidence) > (
                best.size,
                best.total_confidence,
            ):
                best = group
        return best


class ConsensusGrouper:
    def __init__(
        self,
        matcher: SimilarityMatcher | None = None,
        adjudicator: Adjudicator | None = None,
        timeout_s: float = 45.0,
    ) -> None:
        self._matcher = matcher or SimilarityMatcher()
        self._adjudicator = adjudicator
        self._timeout_s = timeout_s

    async def same_formulation(self, reference: Source, candidate: Source) -> bool:
        """Lexical match, confirmed by the adjudicator unless it is exact."""
        score = self._matcher.score(reference.ingredients_text, candidate.ingredients_text)
        if not score.matched:
            return False
        if score.perfect:
            return True
        return await self._confirm(reference, candidate)

    async def group(self, sources: list[Source]) -> GroupingResult:
        result = GroupingResult()
        disjoint = DisjointSet(len(sources))
        representatives: list[int] = []

        for index, source in enumerate(sources):
            joined = False
            for rep in representatives:
                score = self._matcher.score(sources[rep].ingredients_text, source.ingredients_text)
                if not score.matched:
                    continue
                if not score.perfect:
                    result.adjudications += 1
                    if not await self._confirm(sources[rep], source):
                        result.vetoes += 1
                        continue
                disjoint.union(rep, index)
                joined = True
                break
            if not joined:
                representatives.append(index)

        result.groups = [
            ConsensusGroup(members=[sources[i] for i in members]) for members in disjoint.groups()
        ]
        return result

    async def _confirm(self, reference: Source, candidate: Source) -> bool:
        if self._adjudicator is None:
            return True
        try:
            verdict = await asyncio.wait_for(
                self._adjudicator.same_formulation(
                    reference.ingredients_text, candidate.ingredients_text
                ),
                timeout=self._timeout_s,
            )
        except Exception as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.AI_ADJUDICATION_FAILED,
                message=str(exc) or exc.__class__.__name__,
                suppressed=True,
                details={"reference": reference.name, "candidate": candidate.name},
            )
            return True
        if verdict is None:
            return True
        return verdict
