"""
Logging utilities for the HTTP surface, orchestrator services and CLI tools.

Provides a consistent logging format and configuration.
"""

import logging
import sys


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with a sensible default format."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    # httpx logs every request at INFO; health polling would flood the output.
    logging.getLogger("httpx").setLevel(max(logging.WARNING, logging.getLogger().level))


__all__ = ["configure_logging"]
