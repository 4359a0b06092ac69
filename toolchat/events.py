"""
Outbound event stream.

Every request produces, in order:

    session  → once, before the first provider round
    message  → text increments, plus <tool_call>/<tool_result> blocks
    status   → phase changes ("Executing tools...")
    error    → terminal, provider failure
    done     → terminal, normal completion

Events are encoded as Server-Sent Events frames. The EventSink delivering
them is bounded: when the consumer is slow, ``send`` waits instead of
buffering, so events are never dropped or reordered.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict

from toolchat.tools.base import ToolArgumentError, parse_arguments

EXECUTING_TOOLS_STATUS = "Executing tools..."


class ChatEvent(BaseModel):
    """Base class for outbound events."""

    event: ClassVar[str]
    terminal: ClassVar[bool] = False

    model_config = ConfigDict(frozen=True)

    def payload(self) -> dict[str, Any]:
        return self.model_dump()

    def encode(self) -> str:
        """Render as one SSE frame."""
        return f"event: {self.event}\ndata: {json.dumps(self.payload())}\n\n"


class SessionEvent(ChatEvent):
    event: ClassVar[str] = "session"

    session_id: str

    def payload(self) -> dict[str, Any]:
        return {"sessionID": self.session_id}


class MessageEvent(ChatEvent):
    event: ClassVar[str] = "message"

    content: str


class StatusEvent(ChatEvent):
    event: ClassVar[str] = "status"

    status: str


class ErrorEvent(ChatEvent):
    event: ClassVar[str] = "error"
    terminal: ClassVar[bool] = True

    error: str


class DoneEvent(ChatEvent):
    event: ClassVar[str] = "done"
    terminal: ClassVar[bool] = True


def format_tool_call(name: str, arguments: str) -> str:
    """
    Inline block announcing a tool call.

    Arguments are embedded as parsed JSON when they parse, otherwise as the
    raw string, so the block is always valid JSON.
    """
    try:
        parsed: Any = parse_arguments(arguments)
    except ToolArgumentError:
        parsed = arguments
    call_json = json.dumps({"name": name, "arguments": parsed})
    return f"\n<tool_call>\n{call_json}\n</tool_call>\n"


def format_tool_result(result: str) -> str:
    """Inline block carrying a tool's output."""
    return f"\n<tool_result>\n{result}\n</tool_result>\n"


class EventSink(ABC):
    """Ordered channel from the turn loop to the caller."""

    @abstractmethod
    async def send(self, event: ChatEvent) -> None:
        """Deliver one event, waiting while the consumer is behind."""


class QueueEventSink(EventSink):
    """
    EventSink backed by a bounded asyncio.Queue.

    The producer calls ``send``; the consumer iterates the sink with
    ``async for`` until ``close()`` is called. Events queued before
    ``close()`` are still delivered.

    Example:
        sink = QueueEventSink()

        async def produce():
            try:
                await service.handle(request, owner, sink)
            finally:
                await sink.close()

        task = asyncio.create_task(produce())
        async for event in sink:
            write(event.encode())
    """

    _CLOSED = object()

    def __init__(self, maxsize: int = 1):
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1; an unbounded sink is not allowed")
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    async def send(self, event: ChatEvent) -> None:
        if self._closed:
            raise RuntimeError("Cannot send on a closed event sink")
        await self._queue.put(event)

    async def close(self) -> None:
        """Signal that no more events will follow."""
        if self._closed:
            return
        self._closed = True
        await self._queue.put(self._CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChatEvent:
        item = await self._queue.get()
        if item is self._CLOSED:
            raise StopAsyncIteration
        return item
