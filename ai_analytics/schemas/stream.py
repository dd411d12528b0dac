"""Messages delivered over the analytics streaming channel."""

from typing import Literal

from pydantic import BaseModel, ConfigDict

StreamMessageType = Literal["status", "chunk", "complete", "error"]


class StreamMessage(BaseModel):
    """Typed incremental message; ``complete`` and ``error`` are terminal."""

    model_config = ConfigDict(extra="ignore")

    type: StreamMessageType
    content: str = ""


__all__ = ["StreamMessage", "StreamMessageType"]
