"""
Health probe for the analytics backend.

Results are cached (failures included, so a down service is not hammered) and
at most one probe request is in flight at any time; callers arriving during a
probe wait for it and share its result.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx

from ai_analytics.clients import AnalyticsApiClient
from ai_analytics.core.config import ProbeSettings
from ai_analytics.schemas import ServiceStatus
from ai_analytics.services.cache import TTLCache

logger = logging.getLogger(__name__)

_CACHE_KEY = "service-status"


class ServiceAvailabilityProbe:
    """Check backend availability with a TTL cache and single-flight guard."""

    def __init__(
        self,
        client: AnalyticsApiClient,
        settings: ProbeSettings,
        *,
        cache: Optional[TTLCache[ServiceStatus]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._settings = settings
        self._cache: TTLCache[ServiceStatus] = (
            cache if cache is not None else TTLCache(settings.ttl_seconds)
        )
        self._sleep = sleep
        self._check_in_progress = False

    @property
    def check_in_progress(self) -> bool:
        return self._check_in_progress

    async def check_availability(self) -> ServiceStatus:
        cached = self._cache.get(_CACHE_KEY)
        if cached is not None:
            logger.debug("Using cached service status: %s", cached.status)
            return cached.model_copy(update={"cached": True})

        if self._check_in_progress:
            return await self._wait_for_inflight_check()

        self._check_in_progress = True
        try:
            status = await self._probe()
            self._cache.set(_CACHE_KEY, status)
        finally:
            self._check_in_progress = False

        if not status.available:
            logger.warning(
                "AI analytics service unavailable (%s): %s", status.status, status.message
            )
        return status

    def clear_cache(self) -> None:
        """Force the next ``check_availability`` call to hit the network."""
        logger.info("Clearing service status cache")
        self._cache.delete(_CACHE_KEY)
        self._check_in_progress = False

    async def _wait_for_inflight_check(self) -> ServiceStatus:
        logger.debug("Service status check already in progress, waiting")
        attempts = 0
        while self._check_in_progress and attempts < self._settings.wait_attempts:
            await self._sleep(self._settings.poll_interval_seconds)
            attempts += 1

        shared = self._cache.get(_CACHE_KEY)
        if shared is not None:
            return shared
        return ServiceStatus(available=False, status="error", message="Check failed")

    async def _probe(self) -> ServiceStatus:
        try:
            response = await self._client.get_health(
                timeout=self._settings.timeout_seconds
            )
        except httpx.TransportError as exc:
            return ServiceStatus(
                available=False,
                status="offline",
                message="Service is offline or unreachable",
                error=str(exc) or type(exc).__name__,
            )
        except httpx.HTTPError as exc:
            return ServiceStatus(
                available=False,
                status="error",
                message="Service health check failed",
                error=str(exc),
            )

        if response.status_code == 404:
            return ServiceStatus(
                available=False,
                status="no-health-endpoint",
                message="Health endpoint not found. Service might not be configured properly.",
                http_status=404,
            )
        if response.status_code != 200:
            return ServiceStatus(
                available=False,
                status="error",
                message="Service health check failed",
                http_status=response.status_code,
                error=f"HTTP {response.status_code}",
            )

        return _classify_healthy_response(response)


def _classify_healthy_response(response: httpx.Response) -> ServiceStatus:
    try:
        body = response.json()
    except ValueError:
        body = None

    message = body.get("message") if isinstance(body, dict) else None
    healthy = (
        isinstance(body, dict)
        and body.get("status") == "OK"
        and isinstance(message, str)
        and bool(message.strip())
    )
    return ServiceStatus(
        available=healthy,
        status="online" if healthy else "degraded",
        message=message if isinstance(message, str) and message else "Service is available",
        http_status=response.status_code,
    )


__all__ = ["ServiceAvailabilityProbe"]
