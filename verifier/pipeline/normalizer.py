"""Ingredient text normalization and tokenization.

Normalization is lossy on purpose: it is only used for comparing lists, never
for the text that is shown to users.
"""

from __future__ import annotations

import re
import unicodedata

BOILERPLATE_PHRASES = (
    "contains 2% or less of",
    "contains less than 2% of",
    "contains 2 percent or less of",
    "less than 2% of",
    "2% or less of",
    "contains one or more of the following",
    "one or more of the following",
)

QUALIFIERS = frozenset(
    {
        "organic",
        "natural",
        "fresh",
        "pure",
        "certified",
        "premium",
        "whole",
        "raw",
    }
)

STOPWORDS = frozenset(
    {
        "a",
        "an",
        "and",
        "as",
        "by",
        "contain",
        "contains",
        "each",
        "for",
        "from",
        "in",
        "ingredient",
        "ingredients",
        "less",
        "of",
        "or",
        "than",
        "the",
        "to",
        "with",
    }
)

_NON_WORD = re.compile(r"[^a-z0-9]+")
_LEADING_LABEL = re.compile(r"^\s*ingredients?\s*[:\-]\s*", re.IGNORECASE)


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def singularize(word: str) -> str:
    """Naive trailing-s singularization ("carrots" -> "carrot")."""
    if len(word) <= 3:
        return word
    if word.endswith("ies"):
        return word[:-3] + "y"
    if word.endswith("oes"):
        return word[:-2]
    if word.endswith("s") and not word.endswith(("ss", "us", "is")):
        return word[:-1]
    return word


def normalize_text(text: str) -> str:
    """Case-fold, strip accents, drop boilerplate and punctuation."""
    lowered = strip_accents(text).casefold()
    for phrase in BOILERPLATE_PHRASES:
        lowered = lowered.replace(phrase, " ")
    return _NON_WORD.sub(" ", lowered).strip()


def tokenize(text: str) -> list[str]:
    """Significant words of an ingredient text, in order, duplicates kept."""
    tokens: list[str] = []
    for word in normalize_text(text).split():
        if word.isdigit() or len(word) < 2:
            continue
        if word in STOPWORDS or word in QUALIFIERS:
            continue
        tokens.append(singularize(word))
    return tokens


def significant_words(text: str | list[str]) -> set[str]:
    if isinstance(text, list):
        text = " ".join(text)
    return set(tokenize(text))


def split_ingredients(text: str) -> list[str]:
    """Split a list on commas and semicolons outside parentheses/brackets."""
    body = _LEADING_LABEL.sub("", text.strip())
    items: list[str] = []
    depth = 0
    current: list[str] = []
    for ch in body:
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth = max(depth - 1, 0)
        if ch in ",;" and depth == 0:
            items.append("".join(current))
            current = []
            continue
        current.append(ch)
    items.append("".join(current))
    return [item.strip().rstrip(".").strip() for item in items if item.strip().rstrip(".").strip()]
