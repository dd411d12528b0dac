"""
FastAPI application entrypoint for the AI analytics orchestrator.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from ai_analytics.api.routes import router as api_router
from ai_analytics.core.config import get_settings
from ai_analytics.core.logging import configure_logging
from ai_analytics.dependencies import get_analytics_api_client, get_orchestrator


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    get_orchestrator().shutdown()
    await get_analytics_api_client().aclose()


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="AI Analytics Orchestrator",
        version="0.1.0",
        description="REST API for dispatching and tracking long-running AI analyses.",
        lifespan=_lifespan,
    )
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
