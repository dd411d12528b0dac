"""
Failure taxonomy for analysis dispatches.

``classify_failure`` maps whatever ended a dispatch (our own cancellation, a
timeout, an HTTP status, a transport error) onto a ``FailureClassification``.
The first matching rule wins, in the order the rules appear below.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import httpx

DEFAULT_RETRY_AFTER_SEC = 300


class FailureKind(str, Enum):
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    QUOTA_EXHAUSTED = "quota_exhausted"
    BILLING_ISSUE = "billing_issue"
    OFFLINE = "offline"
    GENERIC = "generic"


@dataclass(frozen=True, slots=True)
class FailureClassification:
    kind: FailureKind
    message: str
    http_status: Optional[int] = None
    retry_after_sec: Optional[int] = None


def parse_retry_after(value: Optional[str]) -> int:
    """Seconds from a ``retry-after`` header; HTTP-date forms fall back to the default."""
    if value is None:
        return DEFAULT_RETRY_AFTER_SEC
    try:
        seconds = int(str(value).strip())
    except ValueError:
        return DEFAULT_RETRY_AFTER_SEC
    return max(seconds, 0)


def _response_message(response: httpx.Response) -> Optional[str]:
    try:
        body: Any = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        message = body.get("message") or body.get("detail")
        if isinstance(message, str) and message:
            return message
    return None


def classify_failure(
    exc: BaseException, *, cancelled: bool, endpoint: str = ""
) -> FailureClassification:
    if cancelled or isinstance(exc, asyncio.CancelledError):
        return FailureClassification(FailureKind.CANCELLED, "Request was cancelled")

    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return FailureClassification(
            FailureKind.TIMEOUT,
            "Request timed out. The AI model is taking longer than expected.",
        )

    if isinstance(exc, httpx.HTTPStatusError):
        response = exc.response
        status = response.status_code
        if status == 429:
            retry_after = parse_retry_after(response.headers.get("retry-after"))
            return FailureClassification(
                FailureKind.RATE_LIMITED,
                f"API request failed with status 429: rate limit reached, retry after {retry_after}s",
                http_status=status,
                retry_after_sec=retry_after,
            )
        if status == 503:
            return FailureClassification(
                FailureKind.QUOTA_EXHAUSTED,
                "API request failed with status 503: AI analytics quota exhausted",
                http_status=status,
            )
        if status == 402:
            return FailureClassification(
                FailureKind.BILLING_ISSUE,
                "API request failed with status 402: quota or billing issue",
                http_status=status,
            )
        detail = _response_message(response) or response.reason_phrase or str(exc)
        return FailureClassification(
            FailureKind.GENERIC,
            f"API request failed with status {status}: {detail}",
            http_status=status,
        )

    detail = str(exc) or f"Failed to get AI analysis from {endpoint or 'backend'}"
    return FailureClassification(FailureKind.GENERIC, detail)


__all__ = [
    "DEFAULT_RETRY_AFTER_SEC",
    "FailureClassification",
    "FailureKind",
    "classify_failure",
    "parse_retry_after",
]
