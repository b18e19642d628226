"""Conventional web search backend for product page discovery.

Wraps the Google Programmable Search JSON API. Results are plain
``{title, url, snippet}`` hits; the locator decides which of them are
product pages.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx
from pydantic import BaseModel

from verifier.config.settings import SearchConfig
from verifier.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)


class SearchHit(BaseModel):
    title: str = ""
    url: str
    snippet: str = ""


class SearchBackend(Protocol):
    async def search(self, query: str, num: int = 5) -> list[SearchHit]: ...


class CustomSearchClient:
    """Async client for the Programmable Search JSON API."""

    def __init__(
        self,
        config: SearchConfig | None = None,
        client: httpx.AsyncClient | None = None,
        timeout_s: float = 15.0,
    ) -> None:
        self._config = config or SearchConfig()
        self._client = client
        self._owns_client = client is None
        self._timeout_s = timeout_s

    @property
    def is_configured(self) -> bool:
        return bool(self._config.api_key and self._config.engine_id)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout_s))
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def search(self, query: str, num: int = 5) -> list[SearchHit]:
        """Run one query. Any failure is logged and yields no hits."""
        if not self.is_configured:
            return []

        params: dict[str, str | int] = {
            "key": self._config.api_key,
            "cx": self._config.engine_id,
            "q": query,
            "num": max(1, min(num, 10)),
        }
        try:
            response = await self._get_client().get(self._config.endpoint, params=params)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.SEARCH_API_FAILED,
                message=str(exc) or exc.__class__.__name__,
                suppressed=True,
                details={"query": query},
            )
            return []

        hits: list[SearchHit] = []
        for item in data.get("items") or []:
            link = item.get("link")
            if not link:
                continue
            hits.append(
                SearchHit(
                    title=item.get("title", ""),
                    url=link,
                    snippet=item.get("snippet", ""),
                )
            )
        return hits
