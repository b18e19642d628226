"""Extraction Validator: checks assisted extractions against the literal page.

Checks, all case-insensitive over whitespace-normalized text:

(a) the first 50 characters of the extraction appear in the page;
(b) at least 60% of the leading phrase fragments appear in the page;
(c) a majority of the significant words appear in the page.

(a) is mandatory. A full verbatim hit is the strongest tier.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from verifier.pipeline.normalizer import STOPWORDS, split_ingredients
from verifier.pipeline.records import RawPage, ValidationTier, collapse_whitespace

PREFIX_CHARS = 50
TOP_PHRASES = 10
PHRASE_RATIO_REQUIRED = 0.6
WORD_RATIO_REQUIRED = 0.5

TIER_CONFIDENCE: dict[ValidationTier, int] = {
    ValidationTier.VERBATIM: 85,
    ValidationTier.CORROBORATED: 75,
    ValidationTier.PARTIAL: 60,
}

_WORD = re.compile(r"[^\W\d_]{3,}")


@dataclass(frozen=True)
class ValidationOutcome:
    """Validator verdict with the evidence behind it."""

    accepted: bool
    tier: ValidationTier | None
    confidence: int
    prefix_found: bool
    phrase_ratio: float
    word_ratio: float
    reason: str = ""


def _fold(text: str) -> str:
    return collapse_whitespace(text).casefold()


def _rejected(reason: str, prefix_found: bool = False, phrase_ratio: float = 0.0, word_ratio: float = 0.0) -> ValidationOutcome:
    return ValidationOutcome(
        accepted=False,
        tier=None,
        confidence=0,
        prefix_found=prefix_found,
        phrase_ratio=phrase_ratio,
        word_ratio=word_ratio,
        reason=reason,
    )


def _accepted(tier: ValidationTier, prefix_found: bool, phrase_ratio: float, word_ratio: float) -> ValidationOutcome:
    return ValidationOutcome(
        accepted=True,
        tier=tier,
        confidence=TIER_CONFIDENCE[tier],
        prefix_found=prefix_found,
        phrase_ratio=phrase_ratio,
        word_ratio=word_ratio,
    )


def phrase_ratio(candidate: str, reference: str) -> float:
    phrases = [_fold(phrase) for phrase in split_ingredients(candidate)][:TOP_PHRASES]
    phrases = [phrase for phrase in phrases if phrase]
    if not phrases:
        return 0.0
    return sum(1 for phrase in phrases if phrase in reference) / len(phrases)


def word_ratio(candidate: str, reference: str) -> float:
    words = {word for word in _WORD.findall(candidate) if word not in STOPWORDS}
    if not words:
        return 0.0
    return sum(1 for word in words if word in reference) / len(words)


def validate_extraction(extraction_text: str, page: RawPage) -> ValidationOutcome:
    """Decide whether an extraction is backed by the page it came from."""
    candidate = _fold(extraction_text)
    if not candidate:
        return _rejected("empty extraction")

    reference = _fold(page.normalized_text)
    if candidate in reference:
        return _accepted(ValidationTier.VERBATIM, True, 1.0, 1.0)

    prefix_found = candidate[:PREFIX_CHARS].strip() in reference
    phrases = phrase_ratio(candidate, reference)
    words = word_ratio(candidate, reference)

    if not prefix_found:
        return _rejected("opening text not found on page", False, phrases, words)

    phrases_ok = phrases >= PHRASE_RATIO_REQUIRED
    words_ok = words > WORD_RATIO_REQUIRED
    if phrases_ok and words_ok:
        return _accepted(ValidationTier.CORROBORATED, True, phrases, words)
    if phrases_ok or words_ok:
        return _accepted(ValidationTier.PARTIAL, True, phrases, words)
    return _rejected("too little of the extraction found on page", True, phrases, words)
