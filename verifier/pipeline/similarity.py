"""Lexical similarity between two ingredient lists.

The score is the overlap of significant-word sets divided by the size of the
larger set. The stricter threshold applies when either list has at most
``short_list_max_words`` significant words; only two long lists get the
lenient one.
"""

from __future__ import annotations

from dataclasses import dataclass

from verifier.config.settings import ConsensusConfig
from verifier.pipeline.normalizer import significant_words


@dataclass(frozen=True)
class MatchScore:
    """Result of comparing two ingredient lists."""

    ratio: float
    common: int
    size_a: int
    size_b: int
    threshold: float

    @property
    def matched(self) -> bool:
        return self.ratio >= self.threshold

    @property
    def perfect(self) -> bool:
        return self.size_a > 0 and self.common == self.size_a == self.size_b


class SimilarityMatcher:
    """Applies the word-overlap ratio with size-dependent thresholds."""

    def __init__(self, config: ConsensusConfig | None = None) -> None:
        self._config = config or ConsensusConfig()

    def threshold_for(self, size_a: int, size_b: int) -> float:
        if min(size_a, size_b) <= self._config.short_list_max_words:
            return self._config.short_list_threshold
        return self._config.long_list_threshold

    def score(self, a: str | list[str], b: str | list[str]) -> MatchScore:
        words_a = significant_words(a)
        words_b = significant_words(b)
        common = len(words_a & words_b)
        largest = max(len(words_a), len(words_b))
        ratio = common / largest if largest else 0.0
        return MatchScore(
            ratio=ratio,
            common=common,
            size_a=len(words_a),
            size_b=len(words_b),
            threshold=self.threshold_for(len(words_a), len(words_b)),
        )

    def matches(self, a: str | list[str], b: str | list[str]) -> bool:
        return self.score(a, b).matched


def ingredients_match(
    a: str | list[str], b: str | list[str], config: ConsensusConfig | None = None
) -> bool:
    """True when two ingredient lists describe the same formulation lexically."""
    return SimilarityMatcher(config).matches(a, b)
