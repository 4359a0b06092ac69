"""
TurnLoop: the request/response engine between a conversation and the model.

One run handles one user message whose history has already been prepared:

    AwaitingProviderRound ──► Finished            (round without tool calls)
            │         └─────► Aborted             (provider failed)
            ▼
    ExecutingTools ──► AwaitingProviderRound      (history extended)

Each round is streamed: text increments go to the EventSink as they arrive,
tool-call fragments are reassembled by the DeltaAccumulator. When the round
ends exactly one assistant Turn is persisted, and only then are its tool
calls executed, one after another in the order the model produced them. Each
result is announced and persisted as a tool Turn before the next call
starts, so a transcript read back at any point never shows a tool result
whose request is missing.

Design decisions:
- Tool failures (unknown tool, tool raised) are data, not errors: they come
  back from the registry as text, are stored as tool Turns, and the model
  decides what to do next. Only provider failures abort the run.
- ``max_rounds`` bounds the loop. Hitting it ends the run as Finished with
  whatever content was produced; it is a safety valve, not a failure.
- A provider stream that fails mid-round cannot take back what was already
  streamed. The partial text is persisted as an assistant Turn flagged
  ``incomplete`` (partial tool calls are discarded) and the run is Aborted.
- Cancellation is observed while opening a round, while waiting for each
  delta and while each tool runs: the pending operation is abandoned as
  soon as ``cancel_event`` is set. A round cancelled mid-stream persists
  nothing. Once an assistant Turn with tool calls is stored, every one of
  its calls gets a tool Turn; calls interrupted or skipped by cancellation
  (``cancel_event`` or cancellation of the running task) are answered with
  a "cancelled" result.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any

from toolchat.conversation.models import ToolCallRequest, Turn
from toolchat.conversation.store import ConversationStore
from toolchat.events import (
    EXECUTING_TOOLS_STATUS,
    EventSink,
    MessageEvent,
    StatusEvent,
    format_tool_call,
    format_tool_result,
)
from toolchat.llm.accumulator import DeltaAccumulator
from toolchat.llm.models import LoopState, ProviderOpenError, ProviderStreamError, TurnResult
from toolchat.llm.provider import Provider
from toolchat.tools.base import ToolContext
from toolchat.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROUNDS = 50
CANCELLED_TOOL_RESULT = "Error: tool execution cancelled before it started"


_END_OF_ROUND = object()


class _Interrupted(Exception):
    """``cancel_event`` was set while an operation was pending."""


def _cancelled(cancel_event: asyncio.Event | None) -> bool:
    return cancel_event is not None and cancel_event.is_set()


async def _until_cancelled(awaitable, cancel_event: asyncio.Event | None):
    """
    Await ``awaitable`` unless ``cancel_event`` is set first.

    The abandoned operation is cancelled and awaited before returning.

    Raises:
        _Interrupted: If the event won the race
    """
    if cancel_event is None:
        return await awaitable

    work = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not work.done():
            work.cancel()
            await asyncio.gather(work, return_exceptions=True)

    if work.cancelled():
        raise _Interrupted
    return work.result()


async def _next_delta(iterator):
    try:
        return await anext(iterator)
    except StopAsyncIteration:
        return _END_OF_ROUND


class TurnLoop:
    """
    Drives provider rounds and tool execution for one request.

    Args:
        provider: Model client used for every round
        registry: Tools available to this request
        store: Where Turns are appended
        sink: Receives the live message/status events
        max_rounds: Upper bound on provider rounds (default: 50)
    """

    def __init__(
        self,
        provider: Provider,
        registry: ToolRegistry,
        store: ConversationStore,
        sink: EventSink,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
    ):
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        self._provider = provider
        self._registry = registry
        self._store = store
        self._sink = sink
        self._max_rounds = max_rounds

    async def run(
        self,
        session_id: str,
        messages: list[dict[str, Any]],
        tool_context: ToolContext,
        cancel_event: asyncio.Event | None = None,
    ) -> TurnResult:
        """
        Run rounds until the model answers without tool calls.

        Args:
            session_id: Session receiving the new Turns
            messages: Provider history, ending with the new user message;
                not modified, the loop extends its own copy
            tool_context: Passed to every tool execution
            cancel_event: When set, the pending provider or tool operation is
                abandoned and the run ends CANCELLED

        Returns:
            TurnResult with the terminal state and all streamed content
        """
        history = list(messages)
        content: list[str] = []
        tool_definitions = self._registry.definitions()
        rounds = 0

        def result(state: LoopState, error: str | None = None) -> TurnResult:
            return TurnResult(state=state, content="".join(content), rounds=rounds, error=error)

        while rounds < self._max_rounds:
            if _cancelled(cancel_event):
                logger.info(f"Session {session_id}: cancelled before round {rounds + 1}")
                return result(LoopState.CANCELLED)

            rounds += 1
            logger.debug(f"Session {session_id}: opening round {rounds}")

            try:
                stream = await _until_cancelled(
                    self._provider.stream_round(history, tool_definitions), cancel_event
                )
            except _Interrupted:
                logger.info(f"Session {session_id}: cancelled while opening round {rounds}")
                return result(LoopState.CANCELLED)
            except ProviderOpenError as e:
                logger.error(f"Session {session_id}: provider round {rounds} failed to open: {e}")
                return result(LoopState.ABORTED, error=f"AI Provider error: {e}")

            accumulator = DeltaAccumulator()
            try:
                drained = await self._drain(stream, accumulator, content, cancel_event)
            except ProviderStreamError as e:
                logger.error(f"Session {session_id}: provider stream failed in round {rounds}: {e}")
                await self._persist_partial(session_id, accumulator)
                return result(LoopState.ABORTED, error=f"AI Provider error: {e}")

            if not drained:
                logger.info(f"Session {session_id}: cancelled during round {rounds}")
                return result(LoopState.CANCELLED)

            round_result = accumulator.finish()
            tool_calls = [
                call if call.id else call.model_copy(update={"id": f"call_{uuid.uuid4().hex[:24]}"})
                for call in round_result.tool_calls
            ]

            assistant_turn = Turn.assistant(round_result.text, tool_calls)
            await self._store.append_turn(session_id, assistant_turn)
            history.append(assistant_turn.to_message())

            if not tool_calls:
                return result(LoopState.FINISHED)

            # From here on every stored call must end up with a tool Turn
            answered = 0
            try:
                await self._sink.send(StatusEvent(status=EXECUTING_TOOLS_STATUS))
                for call in tool_calls:
                    if _cancelled(cancel_event):
                        raise _Interrupted
                    tool_turn = await self._execute(
                        session_id, call, tool_context, content, cancel_event
                    )
                    answered += 1
                    history.append(tool_turn.to_message())
            except _Interrupted:
                logger.info(f"Session {session_id}: cancelled during tool execution")
                await self._answer_cancelled(session_id, tool_calls[answered:])
                return result(LoopState.CANCELLED)
            except asyncio.CancelledError:
                logger.info(f"Session {session_id}: task cancelled during tool execution")
                await asyncio.shield(self._answer_cancelled(session_id, tool_calls[answered:]))
                raise

        logger.warning(
            f"Session {session_id}: stopped after {self._max_rounds} rounds without a final answer"
        )
        return result(LoopState.FINISHED)

    async def _drain(
        self,
        stream,
        accumulator: DeltaAccumulator,
        content: list[str],
        cancel_event: asyncio.Event | None,
    ) -> bool:
        """
        Feed the round's deltas to the accumulator, forwarding text live.

        Returns:
            False if cancellation interrupted the round
        """
        iterator = aiter(stream)
        try:
            while True:
                try:
                    delta = await _until_cancelled(_next_delta(iterator), cancel_event)
                except _Interrupted:
                    return False
                if delta is _END_OF_ROUND:
                    return True
                # The event may have been set while this delta was produced
                if _cancelled(cancel_event):
                    return False
                text = accumulator.feed(delta)
                if text:
                    content.append(text)
                    await self._sink.send(MessageEvent(content=text))
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _execute(
        self,
        session_id: str,
        call: ToolCallRequest,
        tool_context: ToolContext,
        content: list[str],
        cancel_event: asyncio.Event | None,
    ) -> Turn:
        """
        Announce, run and persist one tool call.

        Raises:
            _Interrupted: If ``cancel_event`` was set while the tool ran; no
                tool Turn has been stored for the call
        """
        logger.info(f"Executing tool: {call.name} args: {call.arguments}")

        call_block = format_tool_call(call.name, call.arguments)
        content.append(call_block)
        await self._sink.send(MessageEvent(content=call_block))

        output = await _until_cancelled(
            self._registry.execute(tool_context, call.name, call.arguments), cancel_event
        )

        result_block = format_tool_result(output)
        content.append(result_block)
        await self._sink.send(MessageEvent(content=result_block))

        tool_turn = Turn.tool(call.id, output)
        await self._store.append_turn(session_id, tool_turn)
        return tool_turn

    async def _answer_cancelled(self, session_id: str, calls: list[ToolCallRequest]) -> None:
        for call in calls:
            await self._store.append_turn(session_id, Turn.tool(call.id, CANCELLED_TOOL_RESULT))

    async def _persist_partial(self, session_id: str, accumulator: DeltaAccumulator) -> None:
        """Store text already streamed before a mid-round failure, flagged incomplete."""
        text = accumulator.text
        if not text:
            return
        await self._store.append_turn(session_id, Turn.assistant(text, incomplete=True))
