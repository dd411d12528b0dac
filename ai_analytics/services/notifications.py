"""Completion/error notification sinks for finished analysis jobs."""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    def notify(self, *, title: str, body: str, level: str = "info") -> None: ...


class LoggingNotificationSink:
    """Emit notifications as log records; a desktop bridge can tail them."""

    def __init__(self, *, enabled: bool = True) -> None:
        self._enabled = enabled

    def notify(self, *, title: str, body: str, level: str = "info") -> None:
        if not self._enabled:
            return
        log_level = logging.WARNING if level == "error" else logging.INFO
        logger.log(log_level, "%s: %s", title, body)


__all__ = ["LoggingNotificationSink", "NotificationSink"]
