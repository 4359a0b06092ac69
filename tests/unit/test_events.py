"""
Unit tests for the outbound event stream: SSE encoding, inline tool blocks
and the bounded QueueEventSink.
"""

import asyncio
import json

import pytest

from toolchat.events import (
    DoneEvent,
    ErrorEvent,
    MessageEvent,
    QueueEventSink,
    SessionEvent,
    StatusEvent,
    format_tool_call,
    format_tool_result,
)


def _data(frame):
    lines = frame.split("\n")
    assert frame.endswith("\n\n")
    assert lines[1].startswith("data: ")
    return lines[0], json.loads(lines[1][len("data: "):])


class TestEncoding:
    def test_session_event_uses_wire_key(self):
        name, data = _data(SessionEvent(session_id="abc").encode())
        assert name == "event: session"
        assert data == {"sessionID": "abc"}

    def test_message_event(self):
        name, data = _data(MessageEvent(content="line one\nline two").encode())
        assert name == "event: message"
        assert data == {"content": "line one\nline two"}

    def test_status_event(self):
        _, data = _data(StatusEvent(status="Executing tools...").encode())
        assert data == {"status": "Executing tools..."}

    def test_error_event(self):
        _, data = _data(ErrorEvent(error="AI Provider error: timeout").encode())
        assert data == {"error": "AI Provider error: timeout"}

    def test_done_event(self):
        name, data = _data(DoneEvent().encode())
        assert name == "event: done"
        assert data == {}

    def test_only_error_and_done_are_terminal(self):
        assert ErrorEvent(error="x").terminal
        assert DoneEvent().terminal
        assert not MessageEvent(content="x").terminal
        assert not StatusEvent(status="x").terminal
        assert not SessionEvent(session_id="x").terminal


class TestToolBlocks:
    def test_tool_call_embeds_parsed_arguments(self):
        block = format_tool_call("list_pods", '{"namespace": "default"}')

        assert block.startswith("\n<tool_call>\n")
        assert block.endswith("\n</tool_call>\n")
        body = block[len("\n<tool_call>\n"):-len("\n</tool_call>\n")]
        assert json.loads(body) == {"name": "list_pods", "arguments": {"namespace": "default"}}

    def test_tool_call_keeps_unparseable_arguments_raw(self):
        block = format_tool_call("list_pods", '{"namespace": ')

        body = block[len("\n<tool_call>\n"):-len("\n</tool_call>\n")]
        assert json.loads(body)["arguments"] == '{"namespace": '

    def test_tool_result(self):
        assert format_tool_result("pod-a") == "\n<tool_result>\npod-a\n</tool_result>\n"


class TestQueueEventSink:
    @pytest.mark.asyncio
    async def test_delivers_in_order_then_stops(self):
        sink = QueueEventSink(maxsize=4)
        events = [SessionEvent(session_id="s"), MessageEvent(content="hi"), DoneEvent()]

        async def produce():
            for event in events:
                await sink.send(event)
            await sink.close()

        producer = asyncio.create_task(produce())
        received = [event async for event in sink]
        await producer

        assert received == events

    @pytest.mark.asyncio
    async def test_send_waits_for_slow_consumer(self):
        sink = QueueEventSink(maxsize=1)
        await sink.send(MessageEvent(content="first"))

        blocked = asyncio.create_task(sink.send(MessageEvent(content="second")))
        await asyncio.sleep(0.01)
        assert not blocked.done()

        assert await sink.__anext__() == MessageEvent(content="first")
        await asyncio.wait_for(blocked, timeout=1)
        assert await sink.__anext__() == MessageEvent(content="second")

    @pytest.mark.asyncio
    async def test_send_after_close_raises(self):
        sink = QueueEventSink(maxsize=2)
        await sink.close()

        with pytest.raises(RuntimeError):
            await sink.send(DoneEvent())

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        sink = QueueEventSink(maxsize=2)
        await sink.close()
        await sink.close()

        assert [event async for event in sink] == []

    def test_unbounded_sink_rejected(self):
        with pytest.raises(ValueError):
            QueueEventSink(maxsize=0)
