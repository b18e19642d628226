"""Source Locator: finds candidate product pages for a product.

Search backends return untrusted URLs. The locator keeps only URLs that pass
the fetch policy, are not search listings or homepages, sit on the requested
retailer's domain, and whose title or URL slug names the product.
"""

from __future__ import annotations

import asyncio
import logging
import re
from urllib.parse import unquote, urlparse

from verifier.ai_engine.contracts import ProductPageSearch
from verifier.config.settings import TargetURLPolicyConfig
from verifier.config.url_policy import validate_candidate_url
from verifier.grounding.search_api import SearchBackend
from verifier.pipeline.normalizer import STOPWORDS, normalize_text, singularize
from verifier.pipeline.records import CandidateURL, ProductQuery
from verifier.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)

GENERAL_WEB = "general web"
OFFICIAL_BRAND = "Official Brand"

RETAILER_DOMAINS: dict[str, str] = {
    "Amazon": "amazon.com",
    "Walmart": "walmart.com",
    "Target": "target.com",
    "Kroger": "kroger.com",
    "MyFitnessPal": "myfitnesspal.com",
    "Nutritionix": "nutritionix.com",
    "Whole Foods": "wholefoodsmarket.com",
    "Costco": "costco.com",
    "Instacart": "instacart.com",
    "Safeway": "safeway.com",
    "Publix": "publix.com",
    "HEB": "heb.com",
    "Wegmans": "wegmans.com",
    "CVS": "cvs.com",
    "Walgreens": "walgreens.com",
    "Open Food Facts": "openfoodfacts.org",
}

NEGATIVE_TERMS = ("recipe", "homemade", "blog", "pinterest", "review", "recall")
CORPORATE_SUFFIXES = frozenset({"inc", "llc", "ltd", "corp", "co", "company", "brand", "brands"})

_SLUG_SPLIT = re.compile(r"[-_/.+]+")


def significant_tokens(text: str) -> set[str]:
    """Comparable tokens of a product title, brand or slug."""
    return {
        singularize(word)
        for word in normalize_text(text).split()
        if len(word) > 1 and word not in STOPWORDS and word not in CORPORATE_SUFFIXES
    }


def slug_text(url: str) -> str:
    return _SLUG_SPLIT.sub(" ", unquote(urlparse(url).path))


def names_product(query: ProductQuery, title: str, url: str) -> bool:
    """Every significant brand and name token appears in the title or slug."""
    required = significant_tokens(query.display_name)
    if not required:
        return True
    available = significant_tokens(title) | significant_tokens(slug_text(url))
    return required <= available


def build_search_query(query: ProductQuery, retailer: str) -> str:
    terms = f"{query.display_name} ingredients"
    domain = RETAILER_DOMAINS.get(retailer)
    if domain:
        return f"{terms} site:{domain}"
    if retailer == OFFICIAL_BRAND:
        return f"{terms} official site"
    return terms


def _on_domain(candidate_domain: str, required: str) -> bool:
    return candidate_domain == required or candidate_domain.endswith(f".{required}")


class SourceLocator:
    """Queries search backends and filters their results into candidates."""

    def __init__(
        self,
        search: SearchBackend | None = None,
        page_search: ProductPageSearch | None = None,
        policy: TargetURLPolicyConfig | None = None,
        results_per_query: int = 5,
        timeout_s: float = 15.0,
    ) -> None:
        self._search = search
        self._page_search = page_search
        self._policy = policy or TargetURLPolicyConfig()
        self._results_per_query = results_per_query
        self._timeout_s = timeout_s

    async def locate(self, query: ProductQuery, retailer: str) -> list[CandidateURL]:
        """Candidate product pages on one retailer (or the general web)."""
        try:
            raw = await asyncio.wait_for(self._discover(query, retailer), timeout=self._timeout_s)
        except asyncio.TimeoutError:
            emit_structured_error(
                logger,
                code=ErrorCode.SEARCH_API_FAILED,
                message="search timed out",
                suppressed=True,
                details={"retailer": retailer},
            )
            return []
        except Exception as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.SEARCH_API_FAILED,
                message=str(exc),
                suppressed=True,
                details={"retailer": retailer},
            )
            return []
        return self.filter_candidates(query, retailer, raw)

    async def _discover(self, query: ProductQuery, retailer: str) -> list[CandidateURL]:
        found: list[CandidateURL] = []
        if self._search is not None:
            hits = await self._search.search(
                build_search_query(query, retailer), num=self._results_per_query
            )
            found.extend(
                CandidateURL(
                    url=hit.url,
                    title=hit.title,
                    retailer=retailer,
                    discovery_method="search_api",
                )
                for hit in hits
            )
        if self._page_search is not None:
            pages = await self._page_search.search_product_pages(
                query, retailer, RETAILER_DOMAINS.get(retailer)
            )
            found.extend(
                CandidateURL(
                    url=page.url,
                    title=page.title,
                    retailer=retailer,
                    discovery_method="reasoning_search",
                    reported_ingredients=page.ingredients_text,
                )
                for page in pages
            )
        return found

    def filter_candidates(
        self, query: ProductQuery, retailer: str, raw: list[CandidateURL]
    ) -> list[CandidateURL]:
        required_domain = RETAILER_DOMAINS.get(retailer)
        seen: set[str] = set()
        accepted: list[CandidateURL] = []

        for candidate in raw:
            reason = self._rejection_reason(query, candidate, required_domain)
            if reason:
                logger.debug(
                    "Rejected candidate URL",
                    extra={"url": candidate.url, "retailer": retailer, "reason": reason},
                )
                continue
            if candidate.url in seen:
                continue
            seen.add(candidate.url)
            accepted.append(candidate)
        return accepted

    def _rejection_reason(
        self, query: ProductQuery, candidate: CandidateURL, required_domain: str | None
    ) -> str | None:
        policy = validate_candidate_url(candidate.url, self._policy)
        if not policy.allowed:
            return policy.reason
        if required_domain and not _on_domain(candidate.domain, required_domain):
            return f"off retailer domain {required_domain}"
        haystack = f"{candidate.title} {candidate.url}".lower()
        for term in NEGATIVE_TERMS:
            if term in haystack:
                return f"negative term '{term}'"
        if not names_product(query, candidate.title, candidate.url):
            return "title does not name the product"
        return None
