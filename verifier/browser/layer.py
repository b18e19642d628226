"""Browser Layer: Playwright rendering for pages that need JavaScript.

Used only as a fallback when a plain HTTP fetch fails or returns a block
shell. It renders, waits briefly for client-side content, and hands back the
final HTML. It never clicks or types.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from playwright.async_api import Browser, BrowserContext, Page, async_playwright

from verifier.config.settings import BrowserConfig
from verifier.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)


class ActionStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"


@dataclass
class ActionResult:
    """Result of a browser action."""

    status: ActionStatus
    detail: str = ""


@dataclass
class RenderedPage:
    """Final HTML of a rendered page."""

    html: str
    url: str
    title: str


class BrowserLayer:
    """Playwright-based renderer shared by all fallbacks in one verification.

    Playwright pages are not safe for concurrent navigation, so renders are
    serialized behind a lock.
    """

    def __init__(self, config: BrowserConfig | None = None) -> None:
        self._config = config or BrowserConfig()
        self._playwright: Any = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._lock = asyncio.Lock()

    @property
    def started(self) -> bool:
        return self._page is not None

    async def start(self) -> None:
        """Launch browser and create an isolated context.

        A partial launch is torn down before the error propagates.
        """
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self._config.headless,
            )
            self._context = await self._browser.new_context(
                viewport={
                    "width": self._config.viewport_width,
                    "height": self._config.viewport_height,
                },
                user_agent=self._config.user_agent,
                locale=self._config.locale,
            )
            self._page = await self._context.new_page()
        except Exception:
            await self.stop()
            raise

    async def stop(self) -> None:
        """Clean up browser resources."""
        try:
            if self._context:
                await self._context.close()
            if self._browser:
                await self._browser.close()
            if self._playwright:
                await self._playwright.stop()
        except Exception as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.BROWSER_CLEANUP_FAILED,
                message=str(exc),
                suppressed=True,
            )
        finally:
            self._context = None
            self._browser = None
            self._playwright = None
            self._page = None

    async def navigate(self, url: str, timeout_ms: int = 30000) -> ActionResult:
        """Navigate to a URL and wait for the DOM to load."""
        if not self._page:
            return ActionResult(status=ActionStatus.FAILURE, detail="Browser not started")
        try:
            response = await self._page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
            if response is not None and response.status >= 400:
                return ActionResult(
                    status=ActionStatus.FAILURE, detail=f"HTTP {response.status}"
                )
            if self._config.settle_ms > 0:
                await self._page.wait_for_timeout(self._config.settle_ms)
            return ActionResult(status=ActionStatus.SUCCESS, detail=f"Navigated to {url}")
        except Exception as e:
            if "timeout" in str(e).lower():
                return ActionResult(status=ActionStatus.TIMEOUT, detail=str(e))
            return ActionResult(status=ActionStatus.FAILURE, detail=str(e))

    async def capture(self) -> RenderedPage | None:
        """Capture the current document, structured-data scripts included."""
        if not self._page:
            return None
        html = await self._page.content()
        title = await self._page.title()
        return RenderedPage(html=html, url=self._page.url, title=title)

    async def render(self, url: str, timeout_ms: int = 30000) -> RenderedPage | None:
        """Start on first use, navigate, and capture. None on any failure."""
        async with self._lock:
            if not self.started:
                await self.start()
            result = await self.navigate(url, timeout_ms=timeout_ms)
            if result.status != ActionStatus.SUCCESS:
                emit_structured_error(
                    logger,
                    code=ErrorCode.PAGE_RENDER_FAILED,
                    message=result.detail,
                    suppressed=True,
                    details={"url": url, "status": result.status.value},
                )
                return None
            return await self.capture()
