"""Allergen statements, cross-contact warnings and diet labels printed on a page."""

from __future__ import annotations

import re

from verifier.pipeline.records import RawPage, collapse_whitespace

_CONTAINS = re.compile(
    r"\bcontains\s*:\s*[^.\n]{3,200}"
    r"|\bcontains\s+(?:milk|wheat|soy|eggs?|peanuts?|tree\s+nuts?|fish|shellfish|sesame)\b[^.\n]{0,150}",
    re.IGNORECASE,
)
_CROSS_CONTACT = re.compile(
    r"\bmay\s+contain\b[^.\n]{3,200}"
    r"|\b(?:produced|processed|manufactured|made|packaged)\s+(?:in|on)\s+(?:a\s+)?"
    r"(?:shared\s+)?(?:facility|equipment)[^.\n]{0,200}",
    re.IGNORECASE,
)

DIET_LABEL_LINES: dict[str, str] = {
    "vegan": "vegan",
    "certified vegan": "vegan",
    "plant based": "vegan",
    "vegetarian": "vegetarian",
    "certified vegetarian": "vegetarian",
    "gluten free": "gluten_free",
    "certified gluten free": "gluten_free",
}

_LABEL_FOLD = re.compile(r"[^a-z]+")


def find_allergen_statement(page: RawPage) -> str | None:
    """First explicit "Contains ..." declaration on the page."""
    match = _CONTAINS.search(page.text)
    if not match:
        return None
    return collapse_whitespace(match.group(0))


def find_cross_contact_warnings(page: RawPage) -> list[str]:
    warnings: list[str] = []
    for match in _CROSS_CONTACT.finditer(page.text):
        warning = collapse_whitespace(match.group(0))
        if warning.lower() not in (w.lower() for w in warnings):
            warnings.append(warning)
    return warnings


def find_diet_labels(page: RawPage) -> list[str]:
    """Diet claims printed as standalone badges or in the page title."""
    labels: list[str] = []
    lines = [page.title, *page.text.splitlines()]
    for line in lines:
        folded = " ".join(_LABEL_FOLD.sub(" ", line.lower()).split())
        diet = DIET_LABEL_LINES.get(folded)
        if diet and diet not in labels:
            labels.append(diet)
    for phrase, diet in DIET_LABEL_LINES.items():
        title = " ".join(_LABEL_FOLD.sub(" ", page.title.lower()).split())
        if f" {phrase} " in f" {title} " and diet not in labels:
            labels.append(diet)
    return labels
