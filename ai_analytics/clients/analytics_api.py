"""HTTP client for the AI analytics backend (health and analysis endpoints)."""

from __future__ import annotations

import logging
from typing import Any, Dict

import httpx

from ai_analytics.core.config import ApiSettings

logger = logging.getLogger(__name__)


class AnalyticsApiClient:
    """Issue requests against the analytics REST API.

    A single ``httpx.AsyncClient`` is shared by all calls. Analysis calls carry a
    per-request timeout because reasoning-model endpoints take many minutes,
    while the health endpoint is expected to answer within seconds.
    """

    def __init__(
        self,
        settings: ApiSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        headers: Dict[str, str] = {"Accept": "application/json"}
        if settings.api_token:
            headers["Authorization"] = f"Bearer {settings.api_token}"
        self._client = httpx.AsyncClient(
            base_url=settings.base_url,
            headers=headers,
            transport=transport,
        )

    async def get_health(self, *, timeout: float) -> httpx.Response:
        """Return the raw health response; non-2xx statuses are not raised here."""
        return await self._client.get("/health", timeout=timeout)

    async def fetch_analysis(self, endpoint: str, *, timeout: float) -> Any:
        """GET an analysis endpoint and return its decoded JSON body.

        An empty body yields ``None``. Raises ``httpx.HTTPStatusError`` for error
        statuses and the usual ``httpx`` transport exceptions; classification is
        the caller's job.
        """
        path = f"{self._settings.analytics_prefix}{endpoint}"
        logger.info("Requesting AI analysis from %s", path)
        response = await self._client.get(path, timeout=timeout)
        response.raise_for_status()
        if not response.content:
            return None
        return response.json()

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = ["AnalyticsApiClient"]
