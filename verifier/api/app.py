"""FastAPI application entry point for the ingredient verifier."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from verifier.api.routes import router
from verifier.config.settings import APIConfig, VerifierConfig

SERVICE_NAME = "ingredient-verifier"
VERSION = "0.1.0"


def create_app(api_config: APIConfig | None = None) -> FastAPI:
    """Factory function for creating the FastAPI application."""
    api_config = api_config or APIConfig()
    logging.getLogger("verifier").setLevel(VerifierConfig().log_level.upper())

    app = FastAPI(
        title="Ingredient Verifier",
        description="Multi-source ingredient verification engine",
        version=VERSION,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=api_config.allowed_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api/v1")

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy", "service": SERVICE_NAME, "version": VERSION}

    return app


app = create_app()


def main() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    import uvicorn

    config = APIConfig()
    uvicorn.run("verifier.api.app:app", host=config.host, port=config.port)
