try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import asyncio
import io
import json
from datetime import date

import pytest
from websockets.exceptions import ConnectionClosedError

from ai_analytics.clients import build_stream_endpoint
from ai_analytics.schemas import StreamMessage
from ai_analytics.services.jobs import InvalidTransitionError
from ai_analytics.services.stream_consumer import (
    StreamConsumer,
    StreamState,
    next_stream_state,
)
from scripts import stream_analysis

_CLOSE = object()


class FakeChannel:
    """In-memory duplex channel; frames are queued by the test."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self.close_calls = 0
        self.fail_with: Exception | None = None

    def feed(self, message_type: str, content: str = "") -> None:
        self._queue.put_nowait(json.dumps({"type": message_type, "content": content}))

    def feed_raw(self, frame) -> None:
        self._queue.put_nowait(frame)

    def drop(self) -> None:
        self._queue.put_nowait(_CLOSE)

    def __aiter__(self):
        return self

    async def __anext__(self):
        frame = await self._queue.get()
        if frame is _CLOSE:
            if self.fail_with is not None:
                raise self.fail_with
            raise StopAsyncIteration
        return frame

    async def close(self) -> None:
        self.close_calls += 1
        self._queue.put_nowait(_CLOSE)

    @property
    def closed(self) -> bool:
        return self.close_calls > 0


class FakeConnector:
    def __init__(self, *channels: FakeChannel, error: Exception | None = None) -> None:
        self._channels = list(channels)
        self._error = error
        self.endpoints: list[str] = []

    async def __call__(self, endpoint: str) -> FakeChannel:
        self.endpoints.append(endpoint)
        if self._error is not None:
            raise self._error
        return self._channels.pop(0)


def _track_states(consumer: StreamConsumer) -> list[StreamState]:
    states: list[StreamState] = []

    def _listener(current: StreamConsumer) -> None:
        if not states or states[-1] is not current.state:
            states.append(current.state)

    consumer.subscribe(_listener)
    return states


@pytest.mark.asyncio
async def test_stream_runs_to_completion() -> None:
    channel = FakeChannel()
    channel.feed("status", "Loading data")
    channel.feed("chunk", "Hello ")
    channel.feed("chunk", "world")
    channel.feed("complete")
    consumer = StreamConsumer(FakeConnector(channel))
    states = _track_states(consumer)

    assert await consumer.connect("overall") is True
    await consumer.wait_closed()

    assert consumer.state is StreamState.COMPLETED
    assert consumer.content == "Hello world"
    assert consumer.status_text == "Loading data"
    assert states == [
        StreamState.CONNECTING,
        StreamState.CONNECTED,
        StreamState.STREAMING,
        StreamState.COMPLETED,
    ]
    assert channel.closed is True


@pytest.mark.asyncio
async def test_status_message_does_not_change_state() -> None:
    channel = FakeChannel()
    consumer = StreamConsumer(FakeConnector(channel))
    await consumer.connect("overall")

    assert consumer.handle_message(StreamMessage(type="status", content="Thinking")) is True
    assert consumer.state is StreamState.CONNECTED
    await consumer.disconnect()


@pytest.mark.asyncio
async def test_chunks_after_complete_do_not_alter_buffer() -> None:
    channel = FakeChannel()
    channel.feed("chunk", "final answer")
    channel.feed("complete")
    channel.feed("chunk", " plus noise")
    consumer = StreamConsumer(FakeConnector(channel))

    await consumer.connect("overall")
    await consumer.wait_closed()

    assert consumer.content == "final answer"
    assert consumer.handle_message(StreamMessage(type="chunk", content="more")) is False
    assert consumer.content == "final answer"


@pytest.mark.asyncio
async def test_error_message_is_terminal() -> None:
    channel = FakeChannel()
    channel.feed("chunk", "partial")
    channel.feed("error", "Model overloaded")
    channel.feed("chunk", "ignored")
    consumer = StreamConsumer(FakeConnector(channel))

    await consumer.connect("revenue-patterns")
    await consumer.wait_closed()

    assert consumer.state is StreamState.ERROR
    assert consumer.error_message == "Model overloaded"
    assert consumer.content == "partial"


@pytest.mark.asyncio
async def test_transport_close_without_terminal_message_disconnects() -> None:
    channel = FakeChannel()
    channel.feed("chunk", "half")
    channel.drop()
    consumer = StreamConsumer(FakeConnector(channel))

    await consumer.connect("overall")
    await consumer.wait_closed()

    assert consumer.state is StreamState.DISCONNECTED
    assert consumer.content == "half"


@pytest.mark.asyncio
async def test_abnormal_close_error_disconnects() -> None:
    channel = FakeChannel()
    channel.fail_with = ConnectionClosedError(None, None)
    channel.feed("chunk", "half")
    channel.drop()
    consumer = StreamConsumer(FakeConnector(channel))

    await consumer.connect("overall")
    await consumer.wait_closed()

    assert consumer.state is StreamState.DISCONNECTED


@pytest.mark.asyncio
async def test_reconnect_supersedes_existing_channel() -> None:
    first, second = FakeChannel(), FakeChannel()
    first.feed("chunk", "stale")
    connector = FakeConnector(first, second)
    consumer = StreamConsumer(connector)

    await consumer.connect("overall")
    await asyncio.sleep(0)
    await consumer.connect("revenue-patterns")

    assert first.closed is True
    assert connector.endpoints == ["overall", "revenue-patterns"]
    assert consumer.state is StreamState.CONNECTED
    assert consumer.content == ""
    assert consumer.endpoint == "revenue-patterns"

    first.feed("chunk", "from old channel")
    second.feed("chunk", "fresh")
    second.feed("complete")
    await consumer.wait_closed()
    assert consumer.content == "fresh"


@pytest.mark.asyncio
async def test_disconnect_is_idempotent() -> None:
    channel = FakeChannel()
    consumer = StreamConsumer(FakeConnector(channel))
    await consumer.connect("overall")

    await consumer.disconnect()
    await consumer.disconnect()

    assert consumer.state is StreamState.DISCONNECTED
    assert channel.close_calls == 1


@pytest.mark.asyncio
async def test_connection_failure_surfaces_error_state() -> None:
    consumer = StreamConsumer(FakeConnector(error=ConnectionRefusedError("refused")))

    assert await consumer.connect("overall") is False
    assert consumer.state is StreamState.ERROR
    assert consumer.error_message.startswith("Failed to connect to analytics stream")


@pytest.mark.asyncio
async def test_malformed_and_unknown_frames_are_ignored() -> None:
    channel = FakeChannel()
    channel.feed_raw("not json")
    channel.feed_raw(json.dumps({"type": "heartbeat"}))
    channel.feed("chunk", "x")
    channel.feed("complete")
    consumer = StreamConsumer(FakeConnector(channel))

    await consumer.connect("overall")
    await consumer.wait_closed()

    assert consumer.state is StreamState.COMPLETED
    assert consumer.content == "x"


def test_stream_transition_table_rejects_leaving_terminal_state() -> None:
    assert next_stream_state(StreamState.COMPLETED, StreamState.CONNECTING) is StreamState.CONNECTING
    with pytest.raises(InvalidTransitionError):
        next_stream_state(StreamState.COMPLETED, StreamState.STREAMING)
    with pytest.raises(InvalidTransitionError):
        next_stream_state(StreamState.ERROR, StreamState.DISCONNECTED)


def test_build_stream_endpoint_adds_date_parameters() -> None:
    today = date(2025, 3, 7)

    assert build_stream_endpoint("overall-metrics", today=today) == "overall"
    assert build_stream_endpoint("daily-trends", today=today) == "daily-trends?date=2025-03-07"
    assert (
        build_stream_endpoint("monthly-performance", today=today)
        == "monthly-performance?year=2025&month=3"
    )
    with pytest.raises(ValueError):
        build_stream_endpoint("weekly", today=today)


@pytest.mark.asyncio
async def test_stream_cli_prints_content_and_exits_cleanly() -> None:
    channel = FakeChannel()
    channel.feed("status", "Analyzing")
    channel.feed("chunk", "Occupancy ")
    channel.feed("chunk", "is up.")
    channel.feed("complete")
    connector = FakeConnector(channel)
    out = io.StringIO()

    exit_code = await stream_analysis.run_stream(
        "daily-trends", connector=connector, today=date(2025, 3, 7), out=out
    )

    assert exit_code == stream_analysis.EXIT_OK
    assert connector.endpoints == ["daily-trends?date=2025-03-07"]
    printed = out.getvalue()
    assert "Analyzing" in printed
    assert "Occupancy is up." in printed


@pytest.mark.asyncio
async def test_stream_cli_fails_on_error_message() -> None:
    channel = FakeChannel()
    channel.feed("error", "quota exhausted")

    exit_code = await stream_analysis.run_stream(
        "overall", connector=FakeConnector(channel), out=io.StringIO()
    )

    assert exit_code == stream_analysis.EXIT_STREAM_FAILED
