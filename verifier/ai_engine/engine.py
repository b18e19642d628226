"""Reasoning Engine: the Vertex AI Gemini backed reasoning service.

The engine provides judgement without authority. It reads page excerpts,
compares ingredient lists and reports product pages, but everything it returns
is parsed through the contracts module and validated against fetched page
content before the verifier trusts it.

Authority boundary:
The engine cannot fetch pages, accept sources, change consensus decisions on
its own, or mark a product as verified.
"""

from __future__ import annotations

import logging
from typing import Any

from verifier.ai_engine.contracts import (
    AssistedExtraction,
    ReportedPage,
    parse_adjudication,
    parse_assisted_extraction,
    parse_reported_pages,
)
from verifier.config.settings import VertexConfig
from verifier.pipeline.records import DIETS, MAJOR_ALLERGENS, ProductQuery
from verifier.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)

MAX_EXCERPT_CHARS = 12000

EXTRACTION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "ingredients_text": {"type": "string"},
        "product_title": {"type": "string"},
        "explicit_allergen_statement": {"type": "string", "nullable": True},
        "cross_contamination_warnings": {"type": "array", "items": {"type": "string"}},
        "explicit_dietary_labels": {"type": "array", "items": {"type": "string"}},
        "allergens": {"type": "array", "items": {"type": "string"}},
        "dietary_compliance": {
            "type": "object",
            "properties": {
                diet: {
                    "type": "object",
                    "properties": {
                        "compliant": {"type": "boolean"},
                        "causes": {"type": "array", "items": {"type": "string"}},
                    },
                    "required": ["compliant"],
                }
                for diet in DIETS
            },
        },
    },
    "required": ["ingredients_text"],
}

ADJUDICATION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "same_formulation": {"type": "boolean"},
        "differences": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["same_formulation"],
}


def extraction_prompt(excerpt: str, query: ProductQuery) -> str:
    return (
        "You are reading an excerpt of a retail product page. Copy the product's "
        "ingredient list EXACTLY as it appears in the excerpt.\n\n"
        f"Product: {query.display_name}\n"
        + (f"Barcode: {query.barcode}\n" if query.barcode else "")
        + "\nRules:\n"
        "  1. ingredients_text must be a verbatim copy of text in the excerpt. Do not "
        "reorder, translate, correct spelling, expand abbreviations or summarize.\n"
        "  2. If the excerpt has no ingredient list for this product, return an empty "
        "ingredients_text. Never reconstruct one from memory.\n"
        "  3. explicit_allergen_statement is the page's own 'Contains:' statement, "
        "copied verbatim, or null when the page has none.\n"
        "  4. cross_contamination_warnings are 'may contain' or shared-facility "
        "statements, copied verbatim.\n"
        "  5. explicit_dietary_labels are labels the page itself prints, e.g. "
        "'Vegan', 'Gluten Free'.\n"
        f"  6. allergens may only use these names: {', '.join(MAJOR_ALLERGENS)}.\n"
        f"  7. dietary_compliance covers {', '.join(DIETS)}; list the ingredients that "
        "break each diet as causes.\n\n"
        f"Excerpt:\n{excerpt[:MAX_EXCERPT_CHARS]}"
    )


def adjudication_prompt(reference: str, candidate: str) -> str:
    return (
        "You are comparing two ingredient lists that claim to describe the same "
        "packaged food product. Decide whether they describe the same formulation.\n\n"
        "Rules:\n"
        "  1. Differences in capitalization, punctuation, spacing, plural forms and "
        "parenthetical sub-ingredient detail do not matter.\n"
        "  2. Synonyms for the same ingredient do not matter, e.g. 'vitamin C' and "
        "'ascorbic acid'.\n"
        "  3. An ingredient present in one list and absent from the other means a "
        "DIFFERENT formulation, even if everything else matches.\n"
        "  4. A clearly different ingredient in the same position (e.g. 'carrots' vs "
        "'carrot juice concentrate') means a DIFFERENT formulation.\n"
        "List each difference you found.\n\n"
        f"List A:\n{reference}\n\n"
        f"List B:\n{candidate}"
    )


def page_search_prompt(query: ProductQuery, retailer: str, site: str | None) -> str:
    where = f"on {site}" if site else f"from {retailer}"
    return (
        f"Search the web for the product page {where} for this packaged food product:\n"
        f"  {query.display_name}"
        + (f" (barcode {query.barcode})" if query.barcode else "")
        + "\n\nReturn ONLY a JSON array. Each item is an object with keys 'url', "
        "'title' and 'ingredients_text'. Only include pages you actually found in "
        "search results, with their exact URLs. Only include individual product pages, "
        "never search results, category listings, recipes or blog posts. Set "
        "ingredients_text to the ingredient list shown on that page, or null when the "
        "search result does not show one. Return [] when nothing matches."
    )


class ReasoningEngine:
    """Reasoning service client for Vertex AI Gemini.

    Implements the extraction, adjudication and page search contracts. It is
    stateless; each call is independent and failures are reported as missing
    answers rather than exceptions.
    """

    def __init__(self, config: VertexConfig, client: Any = None) -> None:
        self._config = config
        self._client: Any = client
        self._search_client: Any = client
        self._initialized = client is not None

    async def initialize(self) -> bool:
        """Initialize the Vertex AI client.

        Returns True if initialization succeeds, False otherwise. The verifier
        works without it (verbatim extraction and lexical matching only).
        """
        if self._initialized:
            return True
        if not self._config.project_id:
            return False

        try:
            import vertexai
            from vertexai.generative_models import GenerativeModel

            vertexai.init(
                project=self._config.project_id,
                location=self._config.location,
            )
            self._client = GenerativeModel(self._config.flash_model)
            self._search_client = GenerativeModel(self._config.pro_model)
            self._initialized = True
            return True
        except Exception as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.AI_INITIALIZATION_FAILED,
                message=str(exc),
                suppressed=True,
            )
            self._initialized = False
            return False

    @property
    def is_available(self) -> bool:
        return self._initialized and self._client is not None

    async def extract_ingredients(
        self, excerpt: str, query: ProductQuery
    ) -> AssistedExtraction | None:
        """Ask for the page's ingredient list, copied verbatim from the excerpt."""
        if not self.is_available or not excerpt.strip():
            return None

        try:
            response = await self._client.generate_content_async(
                extraction_prompt(excerpt, query),
                generation_config=self._json_config(EXTRACTION_SCHEMA),
            )
            extraction = parse_assisted_extraction(response.text)
        except Exception as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.AI_EXTRACTION_FAILED,
                message=str(exc),
                suppressed=True,
                details={"product": query.display_name},
            )
            return None

        if extraction is None or not extraction.ingredients_text:
            return None
        return extraction

    async def same_formulation(self, reference: str, candidate: str) -> bool | None:
        """True/False verdict on two lexically similar lists; None when unsure or failed."""
        if not self.is_available:
            return None

        try:
            response = await self._client.generate_content_async(
                adjudication_prompt(reference, candidate),
                generation_config=self._json_config(ADJUDICATION_SCHEMA),
            )
            verdict = parse_adjudication(response.text)
        except Exception as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.AI_ADJUDICATION_FAILED,
                message=str(exc),
                suppressed=True,
            )
            return None

        if verdict is None:
            return None
        if not verdict.same_formulation:
            logger.info(
                "Adjudicator reported different formulations",
                extra={"differences": verdict.differences},
            )
        return verdict.same_formulation

    async def search_product_pages(
        self, query: ProductQuery, retailer: str, site: str | None = None
    ) -> list[ReportedPage]:
        """Web-search-grounded discovery of product pages."""
        if not self.is_available:
            return []

        try:
            tools = self._search_tools()
            response = await self._search_client.generate_content_async(
                page_search_prompt(query, retailer, site),
                tools=tools,
            )
            return parse_reported_pages(response.text)
        except Exception as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.AI_SEARCH_FAILED,
                message=str(exc),
                suppressed=True,
                details={"retailer": retailer},
            )
            return []

    @staticmethod
    def _json_config(schema: dict[str, Any]) -> Any:
        from vertexai.generative_models import GenerationConfig

        return GenerationConfig(
            response_mime_type="application/json",
            response_schema=schema,
            temperature=0.0,
        )

    @staticmethod
    def _search_tools() -> list[Any]:
        from vertexai.generative_models import Tool, grounding

        return [Tool.from_google_search_retrieval(grounding.GoogleSearchRetrieval())]
