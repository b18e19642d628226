"""Capability contracts between the verification core and the reasoning service.

The core never talks to a model directly. It depends on these protocols, and
everything that comes back through them is treated as untrusted input that
must be parsed here and validated against page content later.
"""

from __future__ import annotations

import json
from typing import Any, Protocol

from pydantic import BaseModel, Field, field_validator

from verifier.pipeline.records import DietCompliance, ProductQuery


class AssistedExtraction(BaseModel):
    """What the reasoning service reports for one page excerpt."""

    ingredients_text: str
    product_title: str = ""
    explicit_allergen_statement: str | None = None
    cross_contamination_warnings: list[str] = Field(default_factory=list)
    explicit_dietary_labels: list[str] = Field(default_factory=list)
    allergens: list[str] = Field(default_factory=list)
    dietary_compliance: dict[str, DietCompliance] = Field(default_factory=dict)

    @field_validator("ingredients_text")
    @classmethod
    def _strip_text(cls, value: str) -> str:
        return value.strip()

    @field_validator("explicit_allergen_statement")
    @classmethod
    def _blank_statement_is_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip()


class ReportedPage(BaseModel):
    """A product page reported by a web-search-grounded model call."""

    url: str
    title: str = ""
    ingredients_text: str | None = None


class AdjudicationVerdict(BaseModel):
    same_formulation: bool
    differences: list[str] = Field(default_factory=list)


class TextExtractionService(Protocol):
    async def extract_ingredients(
        self, excerpt: str, query: ProductQuery
    ) -> AssistedExtraction | None: ...


class Adjudicator(Protocol):
    async def same_formulation(self, reference: str, candidate: str) -> bool | None: ...


class ProductPageSearch(Protocol):
    async def search_product_pages(
        self, query: ProductQuery, retailer: str, site: str | None = None
    ) -> list[ReportedPage]: ...


def _load(raw: str | dict[str, Any] | list[Any]) -> Any:
    if isinstance(raw, str):
        text = raw.strip()
        if text.startswith("```"):
            text = text.strip("`")
            if text.lower().startswith("json"):
                text = text[4:]
        return json.loads(text)
    return raw


def parse_assisted_extraction(raw: str | dict[str, Any]) -> AssistedExtraction | None:
    """Parse an extraction response. Malformed responses yield None."""
    try:
        return AssistedExtraction.model_validate(_load(raw))
    except ValueError:
        return None


def parse_adjudication(raw: str | dict[str, Any]) -> AdjudicationVerdict | None:
    try:
        return AdjudicationVerdict.model_validate(_load(raw))
    except ValueError:
        return None


def parse_reported_pages(raw: str | list[Any] | dict[str, Any]) -> list[ReportedPage]:
    """Parse a page-search response, keeping only well-formed entries."""
    try:
        data = _load(raw)
    except ValueError:
        return []
    if isinstance(data, dict):
        data = data.get("pages") or data.get("results") or []
    if not isinstance(data, list):
        return []
    pages: list[ReportedPage] = []
    for item in data:
        try:
            pages.append(ReportedPage.model_validate(item))
        except ValueError:
            continue
    return pages
