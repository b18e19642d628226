"""Verbatim Extractor: pattern-based ingredient extraction without any model.

Strategies run in order and the first plausible candidate wins:

1. Structured data (JSON-LD / embedded JSON) values under ingredient-like keys.
2. Text following an "Ingredients" label, inside a bounded window.
3. Page containers whose class or id mentions "ingredient".

Whatever is returned is a contiguous substring of the page's normalized text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterator

from bs4 import BeautifulSoup, Tag

from verifier.browser.fetcher import STRIPPED_TAGS
from verifier.config.settings import ExtractionConfig
from verifier.pipeline.normalizer import split_ingredients
from verifier.pipeline.records import RawPage, collapse_whitespace

STRUCTURED_DATA_CONFIDENCE = 95
LABELED_TEXT_CONFIDENCE = 92
CONTAINER_CONFIDENCE = 90

_LABEL = re.compile(r"(?im)(?:^[ \t]*ingredients?\b[ \t]*:?|\bingredients?[ \t]*:)[ \t]*")
_LEADING_LABEL = re.compile(r"^\s*ingredients?\s*[:\-]?\s*", re.IGNORECASE)
_STOP_MARKERS = re.compile(
    r"\b(?:allergens?\b|allergy\b|contains\s*:|contains\s+(?:milk|wheat|soy|eggs?|peanuts?|tree\s+nuts?|"
    r"fish|shellfish|sesame)\b|may\s+contain|produced\s+(?:in|on)\s+a\s+facility|nutrition\b|"
    r"directions\b|instructions\b|warnings?\b|storage\b|distributed\s+by|manufactured\s+(?:by|for)|"
    r"net\s+(?:wt|weight)|serving\s+size|keep\s+refrigerated|best\s+(?:by|before))",
    re.IGNORECASE,
)
_PARENTHETICAL = re.compile(r"\([^()]*\)|\[[^\[\]]*\]")
_MARKETING = re.compile(
    r"\b(?:we|our|you|your|delicious|enjoy|perfect\s+for|click|add\s+to\s+cart)\b|!",
    re.IGNORECASE,
)
_SENTENCE_END = re.compile(r"\.\s+(?=[A-Z][a-z])")

NAVIGATION_WORDS = frozenset(
    {
        "ingredients",
        "ingredient",
        "nutrition",
        "nutrition facts",
        "reviews",
        "details",
        "description",
        "specifications",
        "directions",
        "warnings",
        "shipping",
        "returns",
        "questions",
        "about this item",
    }
)


@dataclass(frozen=True)
class VerbatimExtraction:
    text: str
    strategy: str
    confidence: int


def _trim(candidate: str) -> str:
    """Drop a leading label and everything from the first stop marker on."""
    text = _LEADING_LABEL.sub("", candidate.strip())
    stop = _STOP_MARKERS.search(text)
    if stop:
        text = text[: stop.start()]
    return text.strip().rstrip(",;:").strip()


def _words_outside_parentheses(segment: str) -> int:
    previous = None
    while previous != segment:
        previous = segment
        segment = _PARENTHETICAL.sub(" ", segment)
    return len(segment.split())


def is_plausible_ingredient_list(text: str, config: ExtractionConfig | None = None) -> bool:
    """Heuristic gate against marketing prose, tab headers and junk."""
    config = config or ExtractionConfig()
    if not config.min_length <= len(text) <= config.max_length:
        return False
    if "," not in text:
        return False

    visible = [ch for ch in text if not ch.isspace()]
    letters = sum(1 for ch in visible if ch.isalpha())
    if not visible or letters / len(visible) < 0.6:
        return False

    if _MARKETING.search(text):
        return False

    segments = split_ingredients(text)
    if len(segments) < 2:
        return False
    word_counts = [_words_outside_parentheses(segment) for segment in segments]
    if max(word_counts) > 12 or sum(word_counts) / len(word_counts) > 6:
        return False

    navigation = sum(1 for segment in segments if segment.lower() in NAVIGATION_WORDS)
    if navigation / len(segments) >= 0.5:
        return False

    return True


def _cut_at_sentence_end(text: str) -> str:
    end = _SENTENCE_END.search(text)
    if end:
        return text[: end.start() + 1]
    return text


# --- Strategy 1: structured data ---


def _iter_ingredient_values(value: Any) -> Iterator[str]:
    if isinstance(value, dict):
        name = value.get("name")
        prop_value = value.get("value")
        if isinstance(name, str) and "ingredient" in name.lower() and isinstance(prop_value, str):
            yield prop_value
        for key, item in value.items():
            if isinstance(key, str) and "ingredient" in key.lower() and isinstance(item, str):
                yield item
            elif isinstance(item, (dict, list)):
                yield from _iter_ingredient_values(item)
    elif isinstance(value, list):
        for item in value:
            yield from _iter_ingredient_values(item)


def _from_structured_data(page: RawPage, config: ExtractionConfig) -> str | None:
    for value in _iter_ingredient_values(page.structured_data):
        candidate = _trim(collapse_whitespace(value))
        if is_plausible_ingredient_list(candidate, config):
            return candidate
    return None


# --- Strategy 2: labeled text ---


def _from_labeled_text(page: RawPage, config: ExtractionConfig) -> str | None:
    for match in _LABEL.finditer(page.text):
        window = page.text[match.end() : match.end() + config.heading_window_chars]
        candidate = _cut_at_sentence_end(_trim(collapse_whitespace(window)))
        if is_plausible_ingredient_list(candidate, config):
            return candidate
    return None


# --- Strategy 3: ingredient containers ---


def _is_ingredient_container(tag: Tag) -> bool:
    classes = tag.get("class") or []
    markers = [*classes, tag.get("id") or "", tag.get("itemprop") or ""]
    return any("ingredient" in str(marker).lower() for marker in markers)


def _from_containers(page: RawPage, config: ExtractionConfig) -> str | None:
    soup = BeautifulSoup(page.content, "html.parser")
    for tag in soup(STRIPPED_TAGS):
        tag.decompose()
    for element in soup.find_all(_is_ingredient_container):
        candidate = _cut_at_sentence_end(_trim(collapse_whitespace(element.get_text(" "))))
        if is_plausible_ingredient_list(candidate, config):
            return candidate
    return None


def extract_verbatim(page: RawPage, config: ExtractionConfig | None = None) -> VerbatimExtraction | None:
    """Extract an ingredient list that appears literally on the page."""
    config = config or ExtractionConfig()
    strategies = (
        ("structured_data", _from_structured_data, STRUCTURED_DATA_CONFIDENCE),
        ("labeled_text", _from_labeled_text, LABELED_TEXT_CONFIDENCE),
        ("container", _from_containers, CONTAINER_CONFIDENCE),
    )
    reference = page.normalized_text
    for strategy, extractor, confidence in strategies:
        candidate = extractor(page, config)
        if candidate and candidate in reference:
            return VerbatimExtraction(text=candidate, strategy=strategy, confidence=confidence)
    return None
