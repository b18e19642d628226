"""Page Fetcher: plain HTTP retrieval with an optional rendered fallback.

Tier 1 is a single httpx GET with browser-like headers and a short timeout.
Tier 2, when enabled, re-renders the URL through Playwright. Any failure
yields None; the caller moves on to the next candidate and never retries the
same URL.
"""

from __future__ import annotations

import json
import logging

import httpx
from bs4 import BeautifulSoup

from verifier.browser.blocking import detect_block
from verifier.browser.layer import BrowserLayer
from verifier.config.settings import BrowserConfig, FetchConfig, TargetURLPolicyConfig
from verifier.config.url_policy import validate_target_url
from verifier.pipeline.records import RawPage, collapse_whitespace
from verifier.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)

STRIPPED_TAGS = ["script", "style", "noscript", "template", "svg", "iframe", "nav", "footer", "header"]
STRUCTURED_DATA_TYPES = ["application/ld+json", "application/json"]


class PolicyViolation(Exception):
    """A requested or redirected-to URL is outside the fetch policy."""


def browser_headers(config: FetchConfig) -> dict[str, str]:
    return {
        "User-Agent": config.user_agent,
        "Accept": (
            "text/html,application/xhtml+xml,application/xml;q=0.9,"
            "image/webp,image/apng,*/*;q=0.8"
        ),
        "Accept-Language": config.accept_language,
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-Site": "none",
        "Sec-Fetch-User": "?1",
        "Upgrade-Insecure-Requests": "1",
    }


def parse_page(url: str, html: str, status_code: int = 200) -> RawPage:
    """Build a RawPage: structured data blocks, title and visible text."""
    soup = BeautifulSoup(html, "html.parser")

    structured: list = []
    for tag in soup.find_all("script", attrs={"type": STRUCTURED_DATA_TYPES}):
        raw = tag.string or tag.get_text()
        if not raw or not raw.strip():
            continue
        try:
            structured.append(json.loads(raw))
        except ValueError:
            logger.debug("Skipping unparseable structured data block", extra={"url": url})

    title = ""
    if soup.title and soup.title.get_text(strip=True):
        title = soup.title.get_text(strip=True)
    elif soup.h1:
        title = soup.h1.get_text(" ", strip=True)

    for tag in soup(STRIPPED_TAGS):
        tag.decompose()

    lines = [collapse_whitespace(line) for line in soup.get_text("\n").splitlines()]
    text = "\n".join(line for line in lines if line)

    return RawPage(
        url=url,
        content=html,
        title=collapse_whitespace(title),
        status_code=status_code,
        text=text,
        structured_data=structured,
    )


class PageFetcher:
    """Fetches candidate URLs into RawPages.

    The underlying httpx client is created lazily and owned by the fetcher
    unless one is injected.
    """

    def __init__(
        self,
        config: FetchConfig | None = None,
        browser_config: BrowserConfig | None = None,
        client: httpx.AsyncClient | None = None,
        renderer: BrowserLayer | None = None,
        policy: TargetURLPolicyConfig | None = None,
    ) -> None:
        self._config = config or FetchConfig()
        self._browser_config = browser_config or BrowserConfig()
        self._client = client
        self._owns_client = client is None
        self._renderer = renderer
        self._owns_renderer = renderer is None
        self._policy = policy or TargetURLPolicyConfig()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=browser_headers(self._config),
                timeout=httpx.Timeout(self._config.timeout_s),
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
        if self._renderer is not None and self._owns_renderer:
            await self._renderer.stop()
            self._renderer = None

    async def __aenter__(self) -> PageFetcher:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def fetch(self, url: str) -> RawPage | None:
        """Fetch a URL. Returns None for errors, empty bodies and block pages."""
        try:
            self._check_policy(url)
            page = await self._fetch_http(url)
            if page is None and self._config.browser_fallback:
                page = await self._fetch_rendered(url)
        except PolicyViolation as exc:
            logger.info("URL blocked by fetch policy", extra={"url": url, "reason": str(exc)})
            return None
        return page

    def _check_policy(self, url: str) -> None:
        result = validate_target_url(url, self._policy)
        if not result.allowed:
            raise PolicyViolation(f"{url}: {result.reason}")

    async def _get(self, url: str) -> httpx.Response:
        """GET following redirects by hand so every hop passes the policy."""
        client = self._get_client()
        response = await client.get(url, timeout=self._config.timeout_s, follow_redirects=False)
        for _ in range(self._config.max_redirects):
            if response.next_request is None:
                return response
            next_url = str(response.next_request.url)
            self._check_policy(next_url)
            await response.aclose()
            response = await client.get(
                next_url, timeout=self._config.timeout_s, follow_redirects=False
            )
        if response.next_request is not None:
            raise httpx.TooManyRedirects("Exceeded maximum allowed redirects", request=response.request)
        return response

    async def _fetch_http(self, url: str) -> RawPage | None:
        try:
            response = await self._get(url)
        except httpx.HTTPError as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.PAGE_FETCH_FAILED,
                message=str(exc) or exc.__class__.__name__,
                suppressed=True,
                details={"url": url},
            )
            return None

        if response.status_code >= 400:
            logger.info(
                "Page fetch returned error status",
                extra={"url": url, "status_code": response.status_code},
            )
            return None

        html = response.text
        if not html.strip():
            return None

        return self._accept(parse_page(str(response.url), html, response.status_code))

    async def _fetch_rendered(self, url: str) -> RawPage | None:
        if self._renderer is None:
            self._renderer = BrowserLayer(self._browser_config)
        try:
            rendered = await self._renderer.render(
                url, timeout_ms=int(self._config.timeout_s * 1000)
            )
        except Exception as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.PAGE_RENDER_FAILED,
                message=str(exc),
                suppressed=True,
                details={"url": url},
            )
            return None
        if rendered is None or not rendered.html.strip():
            return None
        self._check_policy(rendered.url or url)
        page = parse_page(rendered.url or url, rendered.html)
        if rendered.title and not page.title:
            page = page.model_copy(update={"title": rendered.title})
        return self._accept(page)

    def _accept(self, page: RawPage) -> RawPage | None:
        block = detect_block(page.content, page.text, self._config.soft_block_max_chars)
        if block.blocked:
            logger.info(
                "Page looks like a block page",
                extra={
                    "url": page.url,
                    "block_type": block.block_type.value,
                    "indicator": block.indicator,
                },
            )
            return None
        return page
