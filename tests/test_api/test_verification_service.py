"""Tests for how VerificationService wires search, fetch and consensus."""

import pytest

from verifier.ai_engine.engine import ReasoningEngine
from verifier.api import service as service_module
from verifier.api.service import VerificationService
from verifier.config.settings import SearchConfig, VerifierConfig
from verifier.grounding.search_api import CustomSearchClient
from verifier.pipeline.records import ExtractionMethod, ProductQuery, VerificationResult

QUERY = ProductQuery(brand="Campbell's", name="Tomato Soup")


@pytest.fixture
def captured(monkeypatch):
    captured = {}

    class _CapturingLocator:
        def __init__(self, **kwargs):
            captured["locator"] = kwargs

    class _FakeController:
        def __init__(self, locator, acquirer, grouper, config, timeouts):
            captured["grouper"] = grouper

        async def verify(self, query, database=None):
            captured["database"] = database
            return VerificationResult(verification_id="ver_wiring", product=query)

    monkeypatch.setattr(service_module, "SourceLocator", _CapturingLocator)
    monkeypatch.setattr(service_module, "EscalationController", _FakeController)
    return captured


def _reasoning(monkeypatch, available):
    async def _initialize(self):
        return available

    monkeypatch.setattr(ReasoningEngine, "initialize", _initialize)


def _config(**search):
    return VerifierConfig(search=SearchConfig(**search))


class TestSearchWiring:
    @pytest.mark.asyncio
    async def test_missing_search_keys_use_grounded_page_search(self, captured, monkeypatch):
        _reasoning(monkeypatch, True)
        service = VerificationService(_config(backend="search_api", api_key="", engine_id=""))
        await service.verify(QUERY)

        assert captured["locator"]["search"] is None
        assert isinstance(captured["locator"]["page_search"], ReasoningEngine)

    @pytest.mark.asyncio
    async def test_configured_search_api_is_preferred(self, captured, monkeypatch):
        _reasoning(monkeypatch, True)
        service = VerificationService(_config(backend="search_api", api_key="k", engine_id="cx"))
        await service.verify(QUERY)

        assert isinstance(captured["locator"]["search"], CustomSearchClient)
        assert captured["locator"]["page_search"] is None

    @pytest.mark.asyncio
    async def test_reasoning_backend(self, captured, monkeypatch):
        _reasoning(monkeypatch, True)
        service = VerificationService(_config(backend="reasoning", api_key="k", engine_id="cx"))
        await service.verify(QUERY)

        assert captured["locator"]["search"] is None
        assert isinstance(captured["locator"]["page_search"], ReasoningEngine)

    @pytest.mark.asyncio
    async def test_no_reasoning_and_no_keys_locates_nothing(self, captured, monkeypatch):
        _reasoning(monkeypatch, False)
        service = VerificationService(_config(backend="search_api", api_key="", engine_id=""))
        result = await service.verify(QUERY)

        assert result.verification_id == "ver_wiring"
        assert captured["locator"]["search"] is None
        assert captured["locator"]["page_search"] is None


class TestDatabaseSource:
    @pytest.mark.asyncio
    async def test_database_ingredients_become_source(self, captured, monkeypatch):
        _reasoning(monkeypatch, False)
        service = VerificationService(_config(backend="search_api", api_key="", engine_id=""))
        await service.verify(QUERY, "  Tomato Puree,  Water ")

        database = captured["database"]
        assert database.extraction_method == ExtractionMethod.DATABASE
        assert database.ingredients_text == "Tomato Puree, Water"
        assert database.validated is False

    @pytest.mark.asyncio
    async def test_blank_database_ingredients_ignored(self, captured, monkeypatch):
        _reasoning(monkeypatch, False)
        service = VerificationService(_config(backend="search_api", api_key="", engine_id=""))
        await service.verify(QUERY, "   ")
        assert captured["database"] is None
