"""
Consumer for the analytics streaming channel.

One consumer owns at most one websocket channel. Messages are typed
(``status``, ``chunk``, ``complete``, ``error``); ``complete`` and ``error``
are terminal and nothing is processed after them. A transport close without a
terminal message leaves the consumer ``disconnected``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Optional

from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed, WebSocketException

from ai_analytics.clients.stream_channel import StreamChannel
from ai_analytics.schemas import StreamMessage
from ai_analytics.services.jobs import InvalidTransitionError

logger = logging.getLogger(__name__)


class StreamState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERROR = "error"


TERMINAL_STREAM_STATES: FrozenSet[StreamState] = frozenset(
    {StreamState.COMPLETED, StreamState.ERROR}
)
_OPEN_STATES: FrozenSet[StreamState] = frozenset(
    {StreamState.CONNECTED, StreamState.STREAMING}
)

_TRANSITIONS: Dict[StreamState, FrozenSet[StreamState]] = {
    StreamState.DISCONNECTED: frozenset({StreamState.CONNECTING}),
    StreamState.CONNECTING: frozenset(
        {StreamState.CONNECTED, StreamState.ERROR, StreamState.DISCONNECTED}
    ),
    StreamState.CONNECTED: frozenset(
        {
            StreamState.STREAMING,
            StreamState.COMPLETED,
            StreamState.ERROR,
            StreamState.DISCONNECTED,
        }
    ),
    StreamState.STREAMING: frozenset(
        {StreamState.COMPLETED, StreamState.ERROR, StreamState.DISCONNECTED}
    ),
    StreamState.COMPLETED: frozenset({StreamState.CONNECTING}),
    StreamState.ERROR: frozenset({StreamState.CONNECTING}),
}


def next_stream_state(current: StreamState, target: StreamState) -> StreamState:
    """Validate ``current -> target`` and return ``target``."""
    if target not in _TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Cannot move stream from {current.value} to {target.value}"
        )
    return target


Connector = Callable[[str], Awaitable[StreamChannel]]
StreamListener = Callable[["StreamConsumer"], None]


class StreamConsumer:
    """Drive one streaming analysis over a duplex channel."""

    def __init__(self, connector: Connector) -> None:
        self._connector = connector
        self._state = StreamState.DISCONNECTED
        self._channel: Optional[StreamChannel] = None
        self._receive_task: Optional[asyncio.Task[None]] = None
        self._generation = 0
        self._buffer: List[str] = []
        self._status_text = ""
        self._error_message: Optional[str] = None
        self._endpoint: Optional[str] = None
        self._listeners: List[StreamListener] = []

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def content(self) -> str:
        return "".join(self._buffer)

    @property
    def status_text(self) -> str:
        return self._status_text

    @property
    def error_message(self) -> Optional[str]:
        return self._error_message

    @property
    def endpoint(self) -> Optional[str]:
        return self._endpoint

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STREAM_STATES

    def subscribe(self, listener: StreamListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def connect(self, endpoint: str) -> bool:
        """Open a channel to ``endpoint``, closing any existing one first."""
        await self.disconnect()
        self._generation += 1
        generation = self._generation
        self._endpoint = endpoint
        self._error_message = None
        self._set_state(StreamState.CONNECTING)

        try:
            channel = await self._connector(endpoint)
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            if generation == self._generation:
                logger.warning("Analytics stream connection failed: %s", exc)
                self._error_message = f"Failed to connect to analytics stream: {exc}"
                self._set_state(StreamState.ERROR)
            return False

        if generation != self._generation:
            # A disconnect or newer connect won the race.
            await channel.close()
            return False

        self._channel = channel
        self._buffer.clear()
        self._status_text = ""
        self._set_state(StreamState.CONNECTED)
        self._receive_task = asyncio.create_task(self._receive(channel, generation))
        logger.info("Analytics stream connected: %s", endpoint)
        return True

    async def disconnect(self) -> None:
        """Close the channel if open. Safe to call repeatedly."""
        self._generation += 1
        channel, self._channel = self._channel, None
        task, self._receive_task = self._receive_task, None

        if task is not None and task is not asyncio.current_task():
            task.cancel()
        if channel is not None:
            await channel.close()
        if task is not None and task is not asyncio.current_task():
            await asyncio.gather(task, return_exceptions=True)

        if self._state is StreamState.CONNECTING or self._state in _OPEN_STATES:
            self._set_state(StreamState.DISCONNECTED)
            logger.info("Analytics stream disconnected")

    async def wait_closed(self) -> None:
        """Wait until the current channel's receive loop has finished."""
        task = self._receive_task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    def handle_frame(self, frame: Any) -> bool:
        """Decode a raw channel frame and dispatch it."""
        try:
            payload = json.loads(frame)
        except (TypeError, ValueError):
            logger.warning("Ignoring non-JSON stream frame")
            return False
        try:
            message = StreamMessage.model_validate(payload)
        except ValidationError:
            kind = payload.get("type") if isinstance(payload, dict) else None
            logger.warning("Ignoring unsupported stream message type: %r", kind)
            return False
        return self.handle_message(message)

    def handle_message(self, message: StreamMessage) -> bool:
        """Apply ``message``; returns False when it was not processed."""
        if self._state not in _OPEN_STATES:
            logger.debug(
                "Dropping %s message in state %s", message.type, self._state.value
            )
            return False

        if message.type == "status":
            self._status_text = message.content
            self._notify()
        elif message.type == "chunk":
            self._buffer.append(message.content)
            if self._state is StreamState.CONNECTED:
                self._set_state(StreamState.STREAMING)
            else:
                self._notify()
        elif message.type == "complete":
            self._set_state(StreamState.COMPLETED)
            logger.info("Analytics stream completed (%s chars)", len(self.content))
        else:
            self._error_message = message.content or "Stream reported an error"
            self._set_state(StreamState.ERROR)
            logger.warning("Analytics stream error: %s", self._error_message)
        return True

    async def _receive(self, channel: StreamChannel, generation: int) -> None:
        try:
            async for frame in channel:
                if generation != self._generation:
                    return
                self.handle_frame(frame)
                if self.is_terminal:
                    break
        except ConnectionClosed as exc:
            logger.info("Analytics stream closed by peer: %s", exc)
        except Exception:
            logger.exception("Unexpected error in analytics stream receive loop")
        finally:
            if generation == self._generation:
                self._channel = None
                if self._state in _OPEN_STATES:
                    logger.warning("Analytics stream ended without a terminal message")
                    self._set_state(StreamState.DISCONNECTED)
                else:
                    await channel.close()

    def _set_state(self, target: StreamState) -> None:
        self._state = next_stream_state(self._state, target)
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:  # pragma: no cover - observer bugs must not break the stream
                logger.exception("Stream listener failed")


__all__ = [
    "Connector",
    "StreamConsumer",
    "StreamListener",
    "StreamState",
    "TERMINAL_STREAM_STATES",
    "next_stream_state",
]
