"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_analytics_api_client,
    get_availability_probe,
    get_notification_sink,
    get_orchestrator,
    get_request_dispatcher,
)
from .config import get_app_settings

__all__ = [
    "get_analytics_api_client",
    "get_app_settings",
    "get_availability_probe",
    "get_notification_sink",
    "get_orchestrator",
    "get_request_dispatcher",
]
