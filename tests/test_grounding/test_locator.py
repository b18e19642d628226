"""Tests for the Source Locator."""

import asyncio

import pytest

from verifier.ai_engine.contracts import ReportedPage
from verifier.config.settings import TargetURLPolicyConfig
from verifier.grounding.locator import (
    GENERAL_WEB,
    OFFICIAL_BRAND,
    SourceLocator,
    build_search_query,
    names_product,
)
from verifier.grounding.search_api import SearchHit
from verifier.pipeline.records import ProductQuery

QUERY = ProductQuery(brand="Campbell's", name="Tomato Soup")
PRODUCT_URL = "https://www.target.com/p/campbell-s-condensed-tomato-soup-10-75oz/-/A-12345"
POLICY = TargetURLPolicyConfig(denied_domains=[])


class _FakeSearch:
    def __init__(self, hits=None, error=None, delay=0.0):
        self.hits = hits or []
        self.error = error
        self.delay = delay
        self.queries = []

    async def search(self, query, num=5):
        self.queries.append((query, num))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.hits


class _FakePageSearch:
    def __init__(self, pages):
        self.pages = pages
        self.calls = []

    async def search_product_pages(self, query, retailer, site=None):
        self.calls.append((retailer, site))
        return self.pages


class TestQueryBuilding:
    def test_retailer_query_is_site_restricted(self):
        assert (
            build_search_query(QUERY, "Target")
            == "Campbell's Tomato Soup ingredients site:target.com"
        )

    def test_official_brand_query(self):
        assert build_search_query(QUERY, OFFICIAL_BRAND).endswith("ingredients official site")

    def test_general_web_query(self):
        assert build_search_query(QUERY, GENERAL_WEB) == "Campbell's Tomato Soup ingredients"


class TestNamesProduct:
    def test_title_names_product(self):
        assert names_product(QUERY, "Campbell's Condensed Tomato Soup, 10.75 oz", PRODUCT_URL)

    def test_slug_names_product(self):
        assert names_product(QUERY, "", "https://www.target.com/p/campbells-tomato-soup/-/A-4")

    def test_other_brand_rejected(self):
        assert not names_product(
            QUERY, "Progresso Tomato Basil Soup", "https://www.target.com/p/progresso/-/A-2"
        )


class TestSourceLocator:
    @pytest.mark.asyncio
    async def test_filters_untrusted_results(self):
        hits = [
            SearchHit(title="Campbell's Condensed Tomato Soup - 10.75oz : Target", url=PRODUCT_URL),
            SearchHit(title="tomato soup : Target", url="https://www.target.com/s?searchTerm=tomato+soup"),
            SearchHit(title="Target : Expect More. Pay Less.", url="https://www.target.com/"),
            SearchHit(title="Campbell's Tomato Soup", url="https://www.walmart.com/ip/Campbell-s-Tomato-Soup/1"),
            SearchHit(title="Progresso Tomato Basil Soup", url="https://www.target.com/p/progresso-tomato-basil-soup/-/A-2"),
            SearchHit(title="Campbell's Tomato Soup Recipe", url="https://www.target.com/p/campbell-s-tomato-soup-recipe/-/A-3"),
            SearchHit(title="Campbell's Condensed Tomato Soup", url=PRODUCT_URL),
        ]
        search = _FakeSearch(hits)
        locator = SourceLocator(search=search, policy=POLICY, results_per_query=7)
        candidates = await locator.locate(QUERY, "Target")

        assert [c.url for c in candidates] == [PRODUCT_URL]
        assert candidates[0].retailer == "Target"
        assert candidates[0].domain == "target.com"
        assert candidates[0].discovery_method == "search_api"
        assert search.queries == [("Campbell's Tomato Soup ingredients site:target.com", 7)]

    @pytest.mark.asyncio
    async def test_reasoning_search_carries_reported_ingredients(self):
        page_search = _FakePageSearch(
            [
                ReportedPage(
                    url="https://www.kroger.com/p/campbell-s-tomato-soup/0005100000011",
                    title="Campbell's Tomato Soup",
                    ingredients_text="Tomato Puree, High Fructose Corn Syrup, Wheat Flour",
                )
            ]
        )
        locator = SourceLocator(page_search=page_search, policy=POLICY)
        candidates = await locator.locate(QUERY, "Kroger")
        assert len(candidates) == 1
        assert candidates[0].discovery_method == "reasoning_search"
        assert candidates[0].reported_ingredients.startswith("Tomato Puree")
        assert page_search.calls == [("Kroger", "kroger.com")]

    @pytest.mark.asyncio
    async def test_general_web_accepts_any_domain(self):
        hits = [SearchHit(title="Campbell's Tomato Soup", url="https://www.campbells.com/products/tomato-soup")]
        locator = SourceLocator(search=_FakeSearch(hits), policy=POLICY)
        candidates = await locator.locate(QUERY, GENERAL_WEB)
        assert [c.domain for c in candidates] == ["campbells.com"]

    @pytest.mark.asyncio
    async def test_private_hosts_rejected(self):
        hits = [SearchHit(title="Campbell's Tomato Soup", url="http://10.0.0.5/campbells-tomato-soup")]
        locator = SourceLocator(search=_FakeSearch(hits), policy=POLICY)
        assert await locator.locate(QUERY, GENERAL_WEB) == []

    @pytest.mark.asyncio
    async def test_backend_error_yields_no_candidates(self):
        locator = SourceLocator(search=_FakeSearch(error=RuntimeError("down")), policy=POLICY)
        assert await locator.locate(QUERY, "Target") == []

    @pytest.mark.asyncio
    async def test_backend_timeout_yields_no_candidates(self):
        locator = SourceLocator(
            search=_FakeSearch([SearchHit(url=PRODUCT_URL)], delay=1.0), policy=POLICY, timeout_s=0.01
        )
        assert await locator.locate(QUERY, "Target") == []

    @pytest.mark.asyncio
    async def test_no_backends(self):
        assert await SourceLocator(policy=POLICY).locate(QUERY, "Target") == []
