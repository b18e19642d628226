"""Verification data models: queries, fetched pages, sources and results.

Every Source carries its provenance (URL, extraction method, validation tier
and confidence) so reviewers can see why it was trusted.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from functools import cached_property
from typing import Any, Iterator, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from verifier.config.url_policy import normalize_domain

MAJOR_ALLERGENS = (
    "milk",
    "eggs",
    "fish",
    "shellfish",
    "tree_nuts",
    "peanuts",
    "wheat",
    "soy",
    "sesame",
)

DIETS = ("vegan", "vegetarian", "pescatarian", "gluten_free")

_WHITESPACE = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def iter_strings(value: Any) -> Iterator[str]:
    """Yield every string leaf of a parsed JSON value, depth first."""
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from iter_strings(item)
    elif isinstance(value, list):
        for item in value:
            yield from iter_strings(item)


class ProductQuery(BaseModel):
    """Identity of the product being verified."""

    barcode: str = ""
    brand: str = ""
    name: str

    model_config = {"frozen": True}

    @field_validator("barcode", "brand", "name")
    @classmethod
    def _strip(cls, value: str) -> str:
        return collapse_whitespace(value)

    @field_validator("name")
    @classmethod
    def _require_name(cls, value: str) -> str:
        if not value:
            raise ValueError("product name cannot be empty")
        return value

    @property
    def display_name(self) -> str:
        return f"{self.brand} {self.name}".strip()


class CandidateURL(BaseModel):
    """A URL believed to host the product page. Untrusted until fetched."""

    url: str
    domain: str = ""
    discovery_method: Literal["search_api", "reasoning_search", "database"] = "search_api"
    title: str = ""
    retailer: str = ""
    reported_ingredients: str | None = None

    @model_validator(mode="after")
    def _fill_domain(self) -> CandidateURL:
        self.domain = normalize_domain(self.domain or self.url)
        return self


class RawPage(BaseModel):
    """A fetched page. Lives only until extraction is done."""

    url: str
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    content: str
    title: str = ""
    status_code: int = 200
    text: str = Field(default="", description="Visible text, newlines preserved")
    structured_data: list[Any] = Field(default_factory=list)

    @cached_property
    def normalized_text(self) -> str:
        """Whitespace-collapsed visible text followed by structured-data strings."""
        parts = [self.text, *iter_strings(self.structured_data)]
        return collapse_whitespace(" ".join(parts))


class ExtractionMethod(str, Enum):
    DIRECT_PATTERN = "direct_pattern"
    ASSISTED = "assisted"
    SEARCH_REPORTED = "search_reported"
    DATABASE = "database"


class ValidationTier(str, Enum):
    """How strongly the ingredient text is backed by the page it came from."""

    DIRECT = "direct"
    VERBATIM = "verbatim"
    CORROBORATED = "corroborated"
    PARTIAL = "partial"
    UNVALIDATED = "unvalidated"


class DietCompliance(BaseModel):
    compliant: bool
    causes: list[str] = Field(default_factory=list)


class Source(BaseModel):
    """One independent ingredient report with provenance."""

    name: str
    url: str
    domain: str = ""
    product_title: str = ""
    ingredients_text: str
    explicit_allergen_statement: str | None = None
    explicit_dietary_labels: list[str] = Field(default_factory=list)
    cross_contamination_warnings: list[str] = Field(default_factory=list)
    allergens: list[str] = Field(default_factory=list)
    diets: list[str] = Field(default_factory=list)
    dietary_compliance: dict[str, DietCompliance] = Field(default_factory=dict)
    confidence: int = Field(ge=0, le=100)
    extraction_method: ExtractionMethod
    validated: bool = True
    validation_tier: ValidationTier = ValidationTier.DIRECT

    @model_validator(mode="after")
    def _fill_domain(self) -> Source:
        if not self.domain and self.url:
            self.domain = normalize_domain(self.url)
        return self


class ConsensusGroup(BaseModel):
    """Sources judged to describe the same formulation."""

    members: list[Source]

    @property
    def representative(self) -> Source:
        return self.members[0]

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def total_confidence(self) -> int:
        return sum(member.confidence for member in self.members)


class ConsistencyReport(BaseModel):
    score: int = Field(ge=0, le=100)
    all_match: bool
    differences: list[str] = Field(default_factory=list)


class VerificationResult(BaseModel):
    """Outcome of one verification. Built once, never mutated."""

    verification_id: str
    product: ProductQuery
    sources: list[Source] = Field(default_factory=list)
    consistency: ConsistencyReport | None = None
    consolidated_ingredients: str = ""
    cross_contamination_warnings: str = ""
    allergens: list[str] = Field(default_factory=list)
    allergens_inferred: bool = False
    allergen_triggers: dict[str, list[str]] = Field(default_factory=dict)
    diets: list[str] = Field(default_factory=list)
    diets_inferred: bool = False
    dietary_compliance: dict[str, DietCompliance] = Field(default_factory=dict)
    sources_found: int = 0
    minimum_sources_required: int = 3
    requires_manual_entry: bool = False
    termination_reason: str | None = None
    candidate_sources: list[Source] = Field(default_factory=list)
    unvalidated_sources_used: bool = False
    database_source_agrees: bool | None = None
    phases_run: list[str] = Field(default_factory=list)
    error: str | None = None

    model_config = {"frozen": True}
