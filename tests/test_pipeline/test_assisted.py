"""Tests for the model-assisted extraction fallback."""

import asyncio

import pytest

from verifier.ai_engine.contracts import AssistedExtraction
from verifier.config.settings import ExtractionConfig
from verifier.pipeline.assisted import EXCERPT_SEPARATOR, AssistedExtractor, build_excerpt
from verifier.pipeline.records import ProductQuery, RawPage

QUERY = ProductQuery(brand="Annie's", name="Mac & Cheese")


def _page(text="Intro\nIngredients: Pasta (Wheat Flour), Cheese (Milk, Salt), Butter.", **kwargs):
    return RawPage(url="https://www.target.com/p/mac/-/A-9", content="", text=text, **kwargs)


class _FakeService:
    def __init__(self, result=None, error=None, delay=0.0):
        self.result = result
        self.error = error
        self.delay = delay
        self.excerpts = []

    async def extract_ingredients(self, excerpt, query):
        self.excerpts.append(excerpt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.result


class TestBuildExcerpt:
    def test_window_around_ingredient_mention(self):
        excerpt = build_excerpt(_page())
        assert "Pasta (Wheat Flour)" in excerpt

    def test_structured_blocks_first(self):
        page = _page(structured_data=[{"name": "x"}, {"ingredients": "Pasta, Cheese"}])
        excerpt = build_excerpt(page)
        assert excerpt.startswith('{"ingredients": "Pasta, Cheese"}')
        assert '"name"' not in excerpt

    def test_distant_mentions_become_separate_windows(self):
        config = ExtractionConfig(excerpt_window_chars=40)
        text = "Ingredients: A, B" + " filler" * 50 + " More ingredients: C, D"
        excerpt = build_excerpt(_page(text=text), config)
        assert excerpt.count(EXCERPT_SEPARATOR) == 1

    def test_excerpt_is_capped(self):
        config = ExtractionConfig(excerpt_chars=100, excerpt_window_chars=1000)
        text = "Ingredients: " + "water, " * 500
        assert len(build_excerpt(_page(text=text), config)) == 100

    def test_no_mentions_gives_empty_excerpt(self):
        assert build_excerpt(_page(text="Nothing to see")) == ""


class TestAssistedExtractor:
    @pytest.mark.asyncio
    async def test_returns_collapsed_text(self):
        service = _FakeService(
            AssistedExtraction(ingredients_text="Pasta (Wheat Flour),\n  Cheese (Milk, Salt)")
        )
        result = await AssistedExtractor(service).extract(_page(), QUERY)
        assert result.ingredients_text == "Pasta (Wheat Flour), Cheese (Milk, Salt)"
        assert len(service.excerpts) == 1

    @pytest.mark.asyncio
    async def test_service_not_called_without_excerpt(self):
        service = _FakeService(AssistedExtraction(ingredients_text="Pasta, Cheese, Butter"))
        result = await AssistedExtractor(service).extract(_page(text="No list here"), QUERY)
        assert result is None
        assert service.excerpts == []

    @pytest.mark.asyncio
    async def test_service_error_yields_none(self):
        service = _FakeService(error=RuntimeError("quota exceeded"))
        assert await AssistedExtractor(service).extract(_page(), QUERY) is None

    @pytest.mark.asyncio
    async def test_timeout_yields_none(self):
        service = _FakeService(
            AssistedExtraction(ingredients_text="Pasta, Cheese, Butter"), delay=1.0
        )
        assert await AssistedExtractor(service, timeout_s=0.01).extract(_page(), QUERY) is None

    @pytest.mark.asyncio
    async def test_short_answer_yields_none(self):
        service = _FakeService(AssistedExtraction(ingredients_text="Pasta"))
        assert await AssistedExtractor(service).extract(_page(), QUERY) is None

    @pytest.mark.asyncio
    async def test_null_answer_yields_none(self):
        assert await AssistedExtractor(_FakeService(None)).extract(_page(), QUERY) is None
