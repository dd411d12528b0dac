#!/usr/bin/env python
"""Lightweight CLI for following a streamed AI analysis in the terminal."""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ai_analytics.clients import StreamChannelConnector, build_stream_endpoint  # noqa: E402
from ai_analytics.clients.stream_channel import STREAM_KINDS  # noqa: E402
from ai_analytics.core.config import StreamSettings  # noqa: E402
from ai_analytics.core.logging import configure_logging  # noqa: E402
from ai_analytics.services import StreamConsumer, StreamState  # noqa: E402

EXIT_OK = 0
EXIT_STREAM_FAILED = 1


class _ConsolePrinter:
    """Echo status changes and newly arrived chunks as the consumer updates."""

    def __init__(self, out=None) -> None:
        self._out = out or sys.stdout
        self._printed = 0
        self._last_status = ""

    def __call__(self, consumer: StreamConsumer) -> None:
        if consumer.status_text and consumer.status_text != self._last_status:
            self._last_status = consumer.status_text
            print(f"[{consumer.state.value}] {consumer.status_text}", file=self._out)
        content = consumer.content
        if len(content) > self._printed:
            self._out.write(content[self._printed :])
            self._out.flush()
            self._printed = len(content)


async def run_stream(
    kind: str,
    *,
    connector=None,
    today: date | None = None,
    out=None,
) -> int:
    endpoint = build_stream_endpoint(kind, today=today)
    consumer = StreamConsumer(connector or StreamChannelConnector(StreamSettings()))  # type: ignore[call-arg]
    consumer.subscribe(_ConsolePrinter(out))
    stream = out or sys.stdout

    try:
        if await consumer.connect(endpoint):
            await consumer.wait_closed()
    finally:
        await consumer.disconnect()

    if consumer.state is StreamState.COMPLETED:
        print("\nAnalysis complete.", file=stream)
        return EXIT_OK
    if consumer.state is StreamState.ERROR:
        print(f"\nAnalysis failed: {consumer.error_message}", file=sys.stderr)
    else:
        print("\nStream closed before the analysis finished.", file=sys.stderr)
    return EXIT_STREAM_FAILED


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Stream an AI analysis from the analytics backend and print it live."
    )
    parser.add_argument(
        "kind",
        choices=sorted(STREAM_KINDS + ("overall-metrics",)),
        help="Which streamed analysis to follow.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Logging level for orchestrator diagnostics (default: WARNING).",
    )

    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    try:
        return asyncio.run(run_stream(args.kind))
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return EXIT_STREAM_FAILED


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
