"""Verifier configuration settings."""

from __future__ import annotations

import os
from typing import Literal
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator


def _csv_env(var_name: str) -> list[str]:
    raw = os.getenv(var_name, "")
    return [item.strip().lower().rstrip(".") for item in raw.split(",") if item.strip()]


def _bool_env(var_name: str, default: str = "") -> bool:
    return os.getenv(var_name, default).strip().lower() in {"1", "true", "yes", "on"}


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class VertexConfig(BaseModel):
    """Vertex AI configuration for the reasoning service."""

    project_id: str = Field(default_factory=lambda: os.getenv("VERTEX_PROJECT_ID", ""))
    location: str = Field(default_factory=lambda: os.getenv("VERTEX_LOCATION", "us-central1"))
    flash_model: str = "gemini-2.5-flash"
    pro_model: str = "gemini-2.5-pro"


class SearchConfig(BaseModel):
    """Product page search backend configuration."""

    backend: Literal["search_api", "reasoning"] = Field(
        default_factory=lambda: os.getenv("VERIFIER_SEARCH_BACKEND", "search_api")  # type: ignore[arg-type]
    )
    api_key: str = Field(default_factory=lambda: os.getenv("VERIFIER_SEARCH_API_KEY", ""))
    engine_id: str = Field(default_factory=lambda: os.getenv("VERIFIER_SEARCH_ENGINE_ID", ""))
    endpoint: str = "https://www.googleapis.com/customsearch/v1"
    results_per_query: int = 5

    @field_validator("results_per_query")
    @classmethod
    def _validate_results_per_query(cls, value: int) -> int:
        if not 1 <= value <= 10:
            raise ValueError("results_per_query must be between 1 and 10")
        return value


class FetchConfig(BaseModel):
    """Plain HTTP page fetch configuration."""

    timeout_s: float = 8.0
    user_agent: str = DEFAULT_USER_AGENT
    accept_language: str = "en-US,en;q=0.9"
    max_redirects: int = 5
    soft_block_max_chars: int = 500
    browser_fallback: bool = Field(
        default_factory=lambda: _bool_env("VERIFIER_BROWSER_FALLBACK")
    )

    @field_validator("timeout_s")
    @classmethod
    def _validate_timeout(cls, value: float) -> float:
        if value <= 0 or value >= 10:
            raise ValueError("fetch timeout must be a single-digit number of seconds")
        return value


class BrowserConfig(BaseModel):
    """Rendered fetch (Playwright) configuration."""

    headless: bool = True
    viewport_width: int = 1280
    viewport_height: int = 720
    user_agent: str | None = DEFAULT_USER_AGENT
    locale: str = "en-US"
    settle_ms: int = 1500


class ExtractionConfig(BaseModel):
    """Bounds used by the verbatim and assisted extractors."""

    min_length: int = 20
    max_length: int = 2000
    heading_window_chars: int = 2000
    excerpt_chars: int = 8000
    excerpt_window_chars: int = 1500
    min_assisted_length: int = 10


class ConsensusConfig(BaseModel):
    """Similarity thresholds for grouping sources by formulation."""

    short_list_threshold: float = 0.90
    long_list_threshold: float = 0.85
    short_list_max_words: int = 15
    use_adjudicator: bool = True

    @field_validator("short_list_threshold", "long_list_threshold")
    @classmethod
    def _validate_threshold(cls, value: float) -> float:
        if not 0.0 < value <= 1.0:
            raise ValueError("similarity thresholds must be in (0, 1]")
        return value


class EscalationConfig(BaseModel):
    """Source acquisition targets and retailer plans per phase."""

    phase1_target: int = 3
    phase2_extra: int = 2
    max_locate_rounds: int = 3
    allow_unvalidated_fallback: bool = True
    phase1_rounds: list[list[str]] = Field(
        default_factory=lambda: [
            ["Amazon", "Walmart", "Target"],
            ["Official Brand", "Kroger"],
            ["MyFitnessPal", "Nutritionix"],
        ]
    )
    phase2_rounds: list[list[str]] = Field(
        default_factory=lambda: [
            ["Whole Foods", "Costco"],
            ["Instacart", "Safeway"],
            ["Publix", "HEB", "Wegmans"],
            ["CVS", "Walgreens", "general web"],
        ]
    )

    @field_validator("phase1_target")
    @classmethod
    def _validate_phase1_target(cls, value: int) -> int:
        if value < 3:
            raise ValueError("phase1_target must be >= 3")
        return value

    @field_validator("max_locate_rounds")
    @classmethod
    def _validate_rounds(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_locate_rounds must be >= 1")
        return value


class TimeoutConfig(BaseModel):
    """Timeout budgets per call and global."""

    global_timeout_s: float = 180.0
    search_timeout_s: float = 15.0
    reasoning_timeout_s: float = 45.0
    source_timeout_s: float = 60.0


class TargetURLPolicyConfig(BaseModel):
    """Policy applied to every candidate URL before it is fetched."""

    allowed_schemes: list[str] = Field(default_factory=lambda: ["http", "https"])
    block_local_hostnames: bool = True
    block_private_ips: bool = True
    resolve_dns: bool = False
    denied_domains: list[str] = Field(
        default_factory=lambda: _csv_env("VERIFIER_DENIED_DOMAINS")
    )


class APIConfig(BaseModel):
    """API/security controls from environment."""

    api_token: str = Field(default_factory=lambda: os.getenv("VERIFIER_API_TOKEN", ""))
    host: str = Field(default_factory=lambda: os.getenv("VERIFIER_HOST", "127.0.0.1"))
    port: int = Field(default_factory=lambda: int(os.getenv("VERIFIER_PORT", "8000")))
    allowed_origins: list[str] = Field(
        default_factory=lambda: APIConfig.parse_allowed_origins(
            os.getenv("VERIFIER_ALLOWED_ORIGINS", "")
        )
    )

    @staticmethod
    def parse_allowed_origins(value: str) -> list[str]:
        if not value.strip():
            return ["http://localhost", "http://127.0.0.1"]
        origins = [origin.strip() for origin in value.split(",") if origin.strip()]
        if "*" in origins:
            raise ValueError("VERIFIER_ALLOWED_ORIGINS cannot include '*'")
        return origins

    @field_validator("allowed_origins")
    @classmethod
    def _validate_allowed_origins(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("allowed_origins cannot be empty")
        for origin in value:
            parsed = urlparse(origin)
            if parsed.scheme not in {"http", "https"} or not parsed.netloc:
                raise ValueError(f"Invalid CORS origin: {origin}")
        return value


class VerifierConfig(BaseModel):
    """Root configuration for ingredient verification."""

    vertex: VertexConfig = Field(default_factory=VertexConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    consensus: ConsensusConfig = Field(default_factory=ConsensusConfig)
    escalation: EscalationConfig = Field(default_factory=EscalationConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    target_url_policy: TargetURLPolicyConfig = Field(default_factory=TargetURLPolicyConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    log_level: str = Field(default_factory=lambda: os.getenv("VERIFIER_LOG_LEVEL", "INFO"))
