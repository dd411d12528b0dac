"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache

from ai_analytics.clients import AnalyticsApiClient
from ai_analytics.core.config import get_settings
from ai_analytics.services import (
    AnalyticsOrchestrator,
    LoggingNotificationSink,
    ProgressEstimator,
    RequestDispatcher,
    ServiceAvailabilityProbe,
    TTLCache,
)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_analytics_api_client() -> AnalyticsApiClient:
    """Provide the shared REST client for the analytics backend."""
    return AnalyticsApiClient(_settings().api)


@lru_cache()
def get_availability_probe() -> ServiceAvailabilityProbe:
    """Provide the cached, single-flight health probe."""
    return ServiceAvailabilityProbe(get_analytics_api_client(), _settings().probe)


@lru_cache()
def get_notification_sink() -> LoggingNotificationSink:
    return LoggingNotificationSink(enabled=_settings().dispatch.notifications_enabled)


@lru_cache()
def get_request_dispatcher() -> RequestDispatcher:
    """Provide the dispatcher shared by every analysis job."""
    settings = _settings()
    return RequestDispatcher(
        get_analytics_api_client(),
        progress=ProgressEstimator(),
        probe=get_availability_probe(),
        check_availability=settings.dispatch.check_availability,
        notifier=get_notification_sink(),
    )


@lru_cache()
def get_orchestrator() -> AnalyticsOrchestrator:
    """Provide the orchestrator facade used by the HTTP routes."""
    settings = _settings()
    return AnalyticsOrchestrator(
        get_request_dispatcher(),
        get_availability_probe(),
        report_cache=TTLCache(settings.dispatch.report_cache_ttl_seconds),
    )
