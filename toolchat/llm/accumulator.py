"""
Reassembly of one streamed provider round.

Providers stream a tool call as a series of fragments tagged with a slot
index: the first fragment usually carries the call id and function name, and
the JSON argument string arrives split over many later fragments. Fragments
for different calls may interleave, arrive out of index order, or skip lower
indices entirely.

The accumulator keeps one slot per index (padding gaps with empty slots),
overwrites the id, appends name and argument fragments, and at the end of the
round keeps only the slots that ended up with a function name.
"""

from __future__ import annotations

from dataclasses import dataclass

from toolchat.conversation.models import ToolCallRequest
from toolchat.llm.models import RoundEnd, RoundResult, StreamDelta, TextDelta, ToolCallDelta


@dataclass
class _Slot:
    id: str = ""
    name: str = ""
    arguments: str = ""


class DeltaAccumulator:
    """
    Folds one round's StreamDelta sequence into text plus ordered tool calls.

    Single use: create one per round and drain the stream through ``feed``.

    Example:
        >>> acc = DeltaAccumulator()
        >>> acc.feed(ToolCallDelta(index=0, id="call_1", name="list_pods"))
        ''
        >>> acc.feed(ToolCallDelta(index=0, arguments='{"namespace": '))
        ''
        >>> acc.feed(ToolCallDelta(index=0, arguments='"default"}'))
        ''
        >>> acc.finish().tool_calls[0].arguments
        '{"namespace": "default"}'
    """

    def __init__(self) -> None:
        self._text: list[str] = []
        self._slots: list[_Slot] = []
        self._finish_reason: str | None = None
        self._ended = False

    @property
    def text(self) -> str:
        """Text accumulated so far."""
        return "".join(self._text)

    @property
    def ended(self) -> bool:
        return self._ended

    def feed(self, delta: StreamDelta) -> str:
        """
        Consume one delta.

        Returns:
            The text increment to forward to the caller right away, or an
            empty string for non-text deltas.
        """
        if self._ended:
            return ""

        if isinstance(delta, TextDelta):
            if delta.text:
                self._text.append(delta.text)
            return delta.text
        if isinstance(delta, ToolCallDelta):
            self._feed_tool_call(delta)
            return ""
        if isinstance(delta, RoundEnd):
            self._finish_reason = delta.finish_reason
            self._ended = True
            return ""
        raise TypeError(f"Unsupported stream delta: {type(delta).__name__}")

    def _feed_tool_call(self, delta: ToolCallDelta) -> None:
        if delta.index is None:
            slot = _Slot()
            self._slots.append(slot)
        else:
            while len(self._slots) <= delta.index:
                self._slots.append(_Slot())
            slot = self._slots[delta.index]

        if delta.id:
            slot.id = delta.id
        if delta.name:
            slot.name += delta.name
        if delta.arguments:
            slot.arguments += delta.arguments

    def finish(self) -> RoundResult:
        """
        Build the round result.

        Valid whether or not a RoundEnd was seen; a stream that simply stops
        is treated as ended. Slots without a function name are dropped.
        """
        self._ended = True
        tool_calls = [
            ToolCallRequest(id=slot.id, name=slot.name, arguments=slot.arguments)
            for slot in self._slots
            if slot.name
        ]
        return RoundResult(
            text=self.text,
            tool_calls=tool_calls,
            finish_reason=self._finish_reason,
        )
