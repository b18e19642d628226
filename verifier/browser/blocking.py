"""Soft-block detection for fetched pages.

A soft block is a bot wall or error shell served with a 200 status. It is
recognised by block keywords or challenge widget markup on a page whose
visible text is too short to be a real product page.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class BlockType(str, Enum):
    SOFT_BLOCK = "SOFT_BLOCK"
    CHALLENGE = "CHALLENGE"
    NONE = "NONE"


@dataclass
class BlockResult:
    """Result of block detection."""

    block_type: BlockType
    confidence: float
    indicator: str | None = None

    @property
    def blocked(self) -> bool:
        return self.block_type != BlockType.NONE


BLOCK_KEYWORDS = [
    "access denied",
    "security check",
    "captcha",
    "robot",
    "human verification",
    "please verify you are a human",
    "verify you are human",
    "access to this page has been denied",
    "403 forbidden",
    "404 not found",
    "enable javascript",
    "are you a robot",
]

# Challenge widgets, as CSS selectors
CHALLENGE_INDICATORS = [
    'iframe[src*="recaptcha"]',
    'iframe[src*="hcaptcha"]',
    '[id*="px-captcha"]',
    '[class*="cf-challenge"]',
    "#challenge-form",
    '[class*="captcha"]',
]


def _selector_to_html_pattern(selector: str) -> str:
    """Reduce a CSS selector to a substring that can be found in raw HTML.

    - #id            -> id="id"
    - .class         -> class
    - [attr*="val"]  -> val
    """
    s = selector.lower().strip()
    if s.startswith("#"):
        return f'id="{s[1:]}"'
    if s.startswith("."):
        return s[1:]
    return s.split("[", 1)[-1].strip("[]").split("*=")[-1].strip('"').strip("'")


def detect_block(html: str, visible_text: str, max_chars: int = 500) -> BlockResult:
    """Classify a page as blocked or usable.

    Long pages are never treated as blocks: a product page that mentions a
    robot vacuum or embeds a review captcha is still a product page.
    """
    if len(visible_text.strip()) >= max_chars:
        return BlockResult(block_type=BlockType.NONE, confidence=1.0)

    text_lower = visible_text.lower()
    for keyword in BLOCK_KEYWORDS:
        if keyword in text_lower:
            return BlockResult(
                block_type=BlockType.SOFT_BLOCK,
                confidence=0.8,
                indicator=keyword,
            )

    html_lower = html.lower()
    for selector in CHALLENGE_INDICATORS:
        pattern = _selector_to_html_pattern(selector)
        if pattern and pattern in html_lower:
            return BlockResult(
                block_type=BlockType.CHALLENGE,
                confidence=0.7,
                indicator=selector,
            )

    return BlockResult(block_type=BlockType.NONE, confidence=1.0)
