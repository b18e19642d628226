"""Assisted Extractor: model-backed fallback when pattern extraction fails.

The model only ever sees a bounded excerpt of the page, and its answer is
treated as a claim. The Extraction Validator decides whether to believe it.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re

from verifier.ai_engine.contracts import AssistedExtraction, TextExtractionService
from verifier.config.settings import ExtractionConfig
from verifier.pipeline.records import ProductQuery, RawPage, collapse_whitespace
from verifier.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)

_INGREDIENT_WORD = re.compile(r"ingredient", re.IGNORECASE)
EXCERPT_SEPARATOR = "\n---\n"


def _merge_windows(spans: list[tuple[int, int]]) -> list[tuple[int, int]]:
    merged: list[tuple[int, int]] = []
    for start, end in sorted(spans):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def build_excerpt(page: RawPage, config: ExtractionConfig | None = None) -> str:
    """Structured-data blocks first, then text windows around "ingredient"."""
    config = config or ExtractionConfig()
    window = config.excerpt_window_chars
    parts: list[str] = []

    for block in page.structured_data:
        serialized = json.dumps(block, ensure_ascii=False)
        if "ingredient" in serialized.lower():
            parts.append(serialized[:window])

    spans = [
        (max(0, match.start() - window // 8), match.start() + window)
        for match in _INGREDIENT_WORD.finditer(page.text)
    ]
    for start, end in _merge_windows(spans):
        parts.append(page.text[start:end])

    return EXCERPT_SEPARATOR.join(parts)[: config.excerpt_chars]


class AssistedExtractor:
    """Runs the verbatim-only extraction contract against a text service."""

    def __init__(
        self,
        service: TextExtractionService,
        config: ExtractionConfig | None = None,
        timeout_s: float = 45.0,
    ) -> None:
        self._service = service
        self._config = config or ExtractionConfig()
        self._timeout_s = timeout_s

    async def extract(self, page: RawPage, query: ProductQuery) -> AssistedExtraction | None:
        excerpt = build_excerpt(page, self._config)
        if not excerpt.strip():
            return None

        try:
            result = await asyncio.wait_for(
                self._service.extract_ingredients(excerpt, query), timeout=self._timeout_s
            )
        except asyncio.TimeoutError:
            emit_structured_error(
                logger,
                code=ErrorCode.AI_EXTRACTION_FAILED,
                message="extraction timed out",
                suppressed=True,
                details={"url": page.url, "timeout_s": self._timeout_s},
            )
            return None
        except Exception as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.AI_EXTRACTION_FAILED,
                message=str(exc),
                suppressed=True,
                details={"url": page.url},
            )
            return None

        if result is None:
            return None

        text = collapse_whitespace(result.ingredients_text)
        if len(text) < self._config.min_assisted_length:
            logger.info(
                "Assisted extraction too short",
                extra={"url": page.url, "length": len(text)},
            )
            return None
        return result.model_copy(update={"ingredients_text": text})
