"""Expose constructed client wrappers."""

from .analytics_api import AnalyticsApiClient
from .stream_channel import StreamChannelConnector, build_stream_endpoint

__all__ = [
    "AnalyticsApiClient",
    "StreamChannelConnector",
    "build_stream_endpoint",
]
