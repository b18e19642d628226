"""Turns candidate URLs into Sources: fetch, extract, validate.

Each candidate is processed independently under its own timeout. Failures of
any kind become "no source" for that candidate; they never propagate.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from verifier.browser.fetcher import PageFetcher
from verifier.config.settings import ExtractionConfig
from verifier.pipeline.assisted import AssistedExtractor
from verifier.pipeline.records import (
    CandidateURL,
    ExtractionMethod,
    ProductQuery,
    RawPage,
    Source,
    ValidationTier,
    collapse_whitespace,
)
from verifier.pipeline.statements import (
    find_allergen_statement,
    find_cross_contact_warnings,
    find_diet_labels,
)
from verifier.pipeline.validator import validate_extraction
from verifier.pipeline.verbatim import extract_verbatim
from verifier.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)

DATABASE_CONFIDENCE = 75
UNVALIDATED_CONFIDENCE = 50
MIN_REPORTED_LENGTH = 10


@dataclass
class AcquisitionOutcome:
    """What happened to one candidate URL."""

    candidate: CandidateURL
    source: Source | None = None
    fallback: Source | None = None
    reason: str = "accepted"


def source_name(candidate: CandidateURL) -> str:
    if candidate.retailer and candidate.retailer not in ("general web", "Official Brand"):
        return candidate.retailer
    return candidate.domain


def reported_source(candidate: CandidateURL) -> Source | None:
    """Unvalidated last-resort Source from search-reported ingredient text."""
    text = collapse_whitespace(candidate.reported_ingredients or "")
    if len(text) < MIN_REPORTED_LENGTH:
        return None
    return Source(
        name=source_name(candidate),
        url=candidate.url,
        domain=candidate.domain,
        product_title=candidate.title,
        ingredients_text=text,
        confidence=UNVALIDATED_CONFIDENCE,
        extraction_method=ExtractionMethod.SEARCH_REPORTED,
        validated=False,
        validation_tier=ValidationTier.UNVALIDATED,
    )


def database_source(
    ingredients_text: str,
    name: str = "Open Food Facts",
    url: str = "",
) -> Source:
    """Source for ingredient text supplied by a barcode database lookup."""
    return Source(
        name=name,
        url=url,
        ingredients_text=collapse_whitespace(ingredients_text),
        confidence=DATABASE_CONFIDENCE,
        extraction_method=ExtractionMethod.DATABASE,
        validation_tier=ValidationTier.UNVALIDATED,
        validated=False,
    )


class SourceAcquirer:
    """Fetch -> verbatim extraction -> assisted fallback -> validation."""

    def __init__(
        self,
        fetcher: PageFetcher,
        assisted: AssistedExtractor | None = None,
        config: ExtractionConfig | None = None,
        source_timeout_s: float = 60.0,
    ) -> None:
        self._fetcher = fetcher
        self._assisted = assisted
        self._config = config or ExtractionConfig()
        self._timeout_s = source_timeout_s

    async def acquire_all(
        self, candidates: list[CandidateURL], query: ProductQuery
    ) -> list[AcquisitionOutcome]:
        """Process candidates concurrently; results keep candidate order."""
        return list(await asyncio.gather(*(self.acquire(c, query) for c in candidates)))

    async def acquire(self, candidate: CandidateURL, query: ProductQuery) -> AcquisitionOutcome:
        try:
            return await asyncio.wait_for(self._acquire(candidate, query), timeout=self._timeout_s)
        except asyncio.TimeoutError:
            reason = "timeout"
        except Exception as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.SOURCE_ACQUISITION_FAILED,
                message=str(exc),
                suppressed=True,
                details={"url": candidate.url},
            )
            reason = "error"
        return AcquisitionOutcome(
            candidate=candidate, fallback=reported_source(candidate), reason=reason
        )

    async def _acquire(self, candidate: CandidateURL, query: ProductQuery) -> AcquisitionOutcome:
        page = await self._fetcher.fetch(candidate.url)
        if page is None:
            return self._miss(candidate, "fetch_failed")

        verbatim = extract_verbatim(page, self._config)
        if verbatim is not None:
            source = Source(
                name=source_name(candidate),
                url=candidate.url,
                domain=candidate.domain,
                product_title=page.title or candidate.title,
                ingredients_text=verbatim.text,
                explicit_allergen_statement=find_allergen_statement(page),
                cross_contamination_warnings=find_cross_contact_warnings(page),
                explicit_dietary_labels=find_diet_labels(page),
                confidence=verbatim.confidence,
                extraction_method=ExtractionMethod.DIRECT_PATTERN,
                validation_tier=ValidationTier.DIRECT,
            )
            return AcquisitionOutcome(candidate=candidate, source=source)

        if self._assisted is None:
            return self._miss(candidate, "not_extracted")
        return await self._assist(self._assisted, candidate, page, query)

    async def _assist(
        self,
        assisted: AssistedExtractor,
        candidate: CandidateURL,
        page: RawPage,
        query: ProductQuery,
    ) -> AcquisitionOutcome:
        extraction = await assisted.extract(page, query)
        if extraction is None:
            return self._miss(candidate, "not_extracted")

        outcome = validate_extraction(extraction.ingredients_text, page)
        if not outcome.accepted:
            logger.info(
                "Assisted extraction rejected",
                extra={"url": candidate.url, "reason": outcome.reason},
            )
            return self._miss(candidate, "validation_rejected")

        source = Source(
            name=source_name(candidate),
            url=candidate.url,
            domain=candidate.domain,
            product_title=extraction.product_title or page.title or candidate.title,
            ingredients_text=extraction.ingredients_text,
            explicit_allergen_statement=extraction.explicit_allergen_statement
            or find_allergen_statement(page),
            cross_contamination_warnings=extraction.cross_contamination_warnings
            or find_cross_contact_warnings(page),
            explicit_dietary_labels=extraction.explicit_dietary_labels or find_diet_labels(page),
            allergens=extraction.allergens,
            dietary_compliance=extraction.dietary_compliance,
            confidence=outcome.confidence,
            extraction_method=ExtractionMethod.ASSISTED,
            validation_tier=outcome.tier,
        )
        return AcquisitionOutcome(candidate=candidate, source=source)

    @staticmethod
    def _miss(candidate: CandidateURL, reason: str) -> AcquisitionOutcome:
        return AcquisitionOutcome(
            candidate=candidate, fallback=reported_source(candidate), reason=reason
        )
