"""Websocket connector for the analytics streaming endpoints."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, AsyncIterator, Optional, Protocol

from websockets.asyncio.client import connect

from ai_analytics.core.config import StreamSettings

logger = logging.getLogger(__name__)

STREAM_KINDS: tuple[str, ...] = (
    "overall",
    "daily-trends",
    "monthly-performance",
    "revenue-patterns",
)
_KIND_ALIASES = {"overall-metrics": "overall"}


class StreamChannel(Protocol):
    """Subset of ``websockets`` ClientConnection used by the consumer."""

    def __aiter__(self) -> AsyncIterator[Any]: ...

    async def close(self) -> None: ...


def build_stream_endpoint(kind: str, *, today: Optional[date] = None) -> str:
    """Return the path segment (with query) for a streaming analysis kind."""
    normalized = _KIND_ALIASES.get(kind, kind)
    if normalized not in STREAM_KINDS:
        raise ValueError(f"Unknown stream analysis kind: {kind!r}")
    current = today or date.today()
    if normalized == "daily-trends":
        return f"daily-trends?date={current.isoformat()}"
    if normalized == "monthly-performance":
        return f"monthly-performance?year={current.year}&month={current.month}"
    return normalized


class StreamChannelConnector:
    """Open websocket channels under ``<ws_base_url>/ws/analytics/``."""

    def __init__(self, settings: StreamSettings) -> None:
        self._settings = settings

    def url_for(self, endpoint: str) -> str:
        return f"{self._settings.ws_base_url}/ws/analytics/{endpoint.lstrip('/')}"

    async def __call__(self, endpoint: str) -> StreamChannel:
        url = self.url_for(endpoint)
        logger.info("Connecting to analytics stream %s", url)
        return await connect(url, open_timeout=self._settings.open_timeout_seconds)


__all__ = [
    "STREAM_KINDS",
    "StreamChannel",
    "StreamChannelConnector",
    "build_stream_endpoint",
]
