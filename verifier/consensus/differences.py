"""Consistency report for a consensus group.

Sources in one group can still word ingredients differently ("malted barley"
vs "barley malt"). These helpers surface those wording differences for
reviewers; they never affect grouping.
"""

from __future__ import annotations

from verifier.pipeline.records import ConsistencyReport, Source, collapse_whitespace

MAX_DIFFERENCES = 4
ORDER_DIFFERENCE = "Ingredients listed in different order across sources"

SPECIFIC_INGREDIENTS = frozenset(
    {"barley", "malt", "yeast", "wheat", "rice", "oat", "corn", "sugar", "salt", "oil"}
)
GENERIC_DESCRIPTORS = frozenset({"powder", "flavor", "spice", "extract", "seasoning"})
SINGLE_WORD_TRACKED = ("water", "hops", "yeast")


def _phrases(text: str) -> list[str]:
    return [p.strip() for p in text.lower().replace(";", ",").split(",") if p.strip()]


def _topic(phrase: str) -> str | None:
    """Ingredient a multi-word phrase is about, e.g. "cane sugar" -> "sugar"."""
    words = phrase.split()
    if len(words) >= 2 and words[-1] in SPECIFIC_INGREDIENTS and words[-1] not in GENERIC_DESCRIPTORS:
        return words[-1]
    if len(words) >= 3 and words[-2] in SPECIFIC_INGREDIENTS:
        return words[-2]
    return None


def all_texts_match(sources: list[Source]) -> bool:
    texts = {collapse_whitespace(s.ingredients_text).lower() for s in sources}
    return len(texts) <= 1


def find_ingredient_differences(sources: list[Source]) -> list[str]:
    """Wording differences per ingredient topic, or an ordering note.

    Each difference reads ``A, B: "phrase"||C: "other phrase"``.
    """
    if len(sources) < 2 or all_texts_match(sources):
        return []

    per_source = [(s.name, _phrases(s.ingredients_text)) for s in sources]

    tracked: list[str] = []
    for _, phrases in per_source:
        for phrase in phrases:
            multi_word = len(phrase.split()) >= 2
            if (multi_word or any(w in phrase for w in SINGLE_WORD_TRACKED)) and phrase not in tracked:
                tracked.append(phrase)

    topics: dict[str, list[str]] = {}
    for phrase in tracked:
        topic = _topic(phrase)
        if topic:
            topics.setdefault(topic, []).append(phrase)

    differences: list[str] = []
    for variants in topics.values():
        if len(variants) < 2:
            continue
        usage = [frozenset(v for v in variants if v in phrases) for _, phrases in per_source]
        if all(u == usage[0] for u in usage):
            continue
        comparisons = []
        for variant in variants:
            names = [name for name, phrases in per_source if variant in phrases]
            if names:
                comparisons.append(f'{", ".join(names)}: "{variant}"')
        differences.append("||".join(comparisons))

    differences = differences[:MAX_DIFFERENCES]
    if not differences:
        leading = {", ".join(phrases[:3]) for _, phrases in per_source}
        if len(leading) > 1:
            differences.append(ORDER_DIFFERENCE)
    return differences


def consistency_report(group_sources: list[Source], total_sources: int) -> ConsistencyReport:
    """Agreement of the consensus group relative to every source considered."""
    score = round(100 * len(group_sources) / total_sources) if total_sources else 0
    return ConsistencyReport(
        score=score,
        all_match=all_texts_match(group_sources),
        differences=find_ingredient_differences(group_sources),
    )
