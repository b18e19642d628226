"""Service layer that wires one verification run from configuration."""

from __future__ import annotations

import logging

from verifier.ai_engine.engine import ReasoningEngine
from verifier.browser.fetcher import PageFetcher
from verifier.config.settings import VerifierConfig
from verifier.consensus.grouper import ConsensusGrouper
from verifier.escalation.controller import EscalationController
from verifier.grounding.locator import SourceLocator
from verifier.grounding.search_api import CustomSearchClient
from verifier.pipeline.acquisition import SourceAcquirer, database_source
from verifier.pipeline.assisted import AssistedExtractor
from verifier.pipeline.records import ProductQuery, VerificationResult
from verifier.pipeline.similarity import SimilarityMatcher

logger = logging.getLogger(__name__)


class VerificationService:
    """Builds the locator, acquirer and grouper for each request and runs it.

    Network clients live for a single verification and are closed afterwards.
    The reasoning engine is optional: without Vertex AI credentials the
    verifier runs on verbatim extraction and lexical matching alone.
    """

    def __init__(self, config: VerifierConfig | None = None) -> None:
        self._config = config or VerifierConfig()

    async def verify(
        self, query: ProductQuery, database_ingredients: str | None = None
    ) -> VerificationResult:
        config = self._config
        engine = ReasoningEngine(config.vertex)
        reasoning = await engine.initialize()

        search_client: CustomSearchClient | None = None
        if config.search.backend == "search_api":
            client = CustomSearchClient(config.search, timeout_s=config.timeouts.search_timeout_s)
            if client.is_configured:
                search_client = client
            else:
                logger.warning("Search API credentials missing; using grounded page search")
        use_page_search = reasoning and search_client is None

        locator = SourceLocator(
            search=search_client,
            page_search=engine if use_page_search else None,
            policy=config.target_url_policy,
            results_per_query=config.search.results_per_query,
            timeout_s=config.timeouts.search_timeout_s,
        )
        fetcher = PageFetcher(config.fetch, config.browser, policy=config.target_url_policy)
        assisted = (
            AssistedExtractor(
                engine, config.extraction, timeout_s=config.timeouts.reasoning_timeout_s
            )
            if reasoning
            else None
        )
        acquirer = SourceAcquirer(
            fetcher,
            assisted,
            config.extraction,
            source_timeout_s=config.timeouts.source_timeout_s,
        )
        grouper = ConsensusGrouper(
            SimilarityMatcher(config.consensus),
            engine if reasoning and config.consensus.use_adjudicator else None,
            timeout_s=config.timeouts.reasoning_timeout_s,
        )
        controller = EscalationController(
            locator, acquirer, grouper, config.escalation, config.timeouts
        )

        database = (
            database_source(database_ingredients)
            if database_ingredients and database_ingredients.strip()
            else None
        )
        try:
            return await controller.verify(query, database)
        finally:
            await fetcher.aclose()
            if search_client is not None:
                await search_client.aclose()
