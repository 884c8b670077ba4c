"""Application factory for the FastAPI service."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .chat import AutoAnswerOrchestrator
from .config import PROJECT_ROOT, Settings, get_settings
from .logging_config import configure_logging
from .openrouter import OpenRouterClient
from .repository import SearchRepository
from .routers.chat import router as chat_router

logger = logging.getLogger(__name__)


def _resolve_under(base: Path, p: Path) -> Path:
    # Allow absolute paths as-is (useful for tests and external mounts).
    if p.is_absolute():
        return p.resolve()
    resolved = (base / p).resolve()
    if not resolved.is_relative_to(base):
        raise ValueError(f"Configured path {resolved} escapes project root {base}")
    return resolved


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    repository = SearchRepository(_resolve_under(PROJECT_ROOT, settings.database_path))
    client = OpenRouterClient(settings)
    orchestrator = AutoAnswerOrchestrator(settings, client, repository)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await repository.initialize()
        logger.info("Search assistant ready (default model %s)", settings.default_model)
        try:
            yield
        finally:
            try:
                await asyncio.wait_for(orchestrator.aclose(), timeout=2.0)
            except asyncio.TimeoutError:
                logger.warning("Timed out waiting for background search-count updates")
            try:
                await asyncio.wait_for(client.aclose(), timeout=2.0)
            except asyncio.TimeoutError:
                logger.warning("Timed out closing OpenRouter client")
            try:
                await asyncio.wait_for(repository.close(), timeout=2.0)
            except asyncio.TimeoutError:
                logger.warning("Timed out closing repository")

    app = FastAPI(
        title="Search Assistant Backend",
        version="0.1.0",
        description="Search-augmented streaming chat powered by OpenRouter and SearXNG.",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.repository = repository
    app.state.auto_answer_orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(chat_router)

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, str]:
        return {
            "status": "ok",
            "default_model": settings.default_model,
        }

    return app


__all__ = ["create_app"]
