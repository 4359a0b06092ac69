"""
Unit tests for DeltaAccumulator.

Tests cover:
- Text concatenation and live increments
- Tool-call reassembly from fragments
- Out-of-order and skipped slot indices
- Dropping unnamed slots
- Round end handling
"""

import json
import random

import pytest

from toolchat.llm.accumulator import DeltaAccumulator
from toolchat.llm.models import RoundEnd, TextDelta, ToolCallDelta


def _split(text: str, pieces: int, rng: random.Random) -> list[str]:
    """Split text into `pieces` non-empty-ish chunks at random cut points."""
    if len(text) < 2 or pieces < 2:
        return [text]
    cuts = sorted(rng.sample(range(1, len(text)), min(pieces - 1, len(text) - 1)))
    bounds = [0, *cuts, len(text)]
    return [text[a:b] for a, b in zip(bounds, bounds[1:])]


def _in_order_fragments(calls: list[dict]) -> list[ToolCallDelta]:
    """Each call delivered as one complete fragment, in index order."""
    return [
        ToolCallDelta(index=i, id=c["id"], name=c["name"], arguments=c["arguments"])
        for i, c in enumerate(calls)
    ]


CALLS = [
    {"id": "call_a", "name": "list_pods", "arguments": json.dumps({"namespace": "default"})},
    {"id": "call_b", "name": "get_pod_logs", "arguments": json.dumps({"name": "web-1", "tail": 50})},
    {"id": "call_c", "name": "describe_resource", "arguments": json.dumps({"kind": "svc", "name": "api"})},
]


class TestTextAccumulation:
    def test_feed_returns_increment(self):
        acc = DeltaAccumulator()
        assert acc.feed(TextDelta(text="Hello")) == "Hello"
        assert acc.feed(TextDelta(text=", world")) == ", world"
        assert acc.text == "Hello, world"

    def test_non_text_deltas_return_empty_increment(self):
        acc = DeltaAccumulator()
        assert acc.feed(ToolCallDelta(index=0, id="x", name="list_pods")) == ""
        assert acc.feed(RoundEnd(finish_reason="tool_calls")) == ""

    def test_plain_text_round_has_no_tool_calls(self):
        acc = DeltaAccumulator()
        acc.feed(TextDelta(text="You have "))
        acc.feed(TextDelta(text="2 pods"))
        acc.feed(RoundEnd(finish_reason="stop"))

        result = acc.finish()

        assert result.text == "You have 2 pods"
        assert result.tool_calls == []
        assert result.finish_reason == "stop"

    def test_empty_round(self):
        result = DeltaAccumulator().finish()
        assert result.text == ""
        assert result.tool_calls == []


class TestToolCallReassembly:
    def test_arguments_are_appended_across_fragments(self):
        acc = DeltaAccumulator()
        acc.feed(ToolCallDelta(index=0, id="call_1", name="list_pods"))
        acc.feed(ToolCallDelta(index=0, arguments='{"names'))
        acc.feed(ToolCallDelta(index=0, arguments='pace": "kube-'))
        acc.feed(ToolCallDelta(index=0, arguments='system"}'))

        (call,) = acc.finish().tool_calls

        assert call.id == "call_1"
        assert call.name == "list_pods"
        assert json.loads(call.arguments) == {"namespace": "kube-system"}

    def test_name_fragments_are_appended(self):
        acc = DeltaAccumulator()
        acc.feed(ToolCallDelta(index=0, id="call_1", name="list_"))
        acc.feed(ToolCallDelta(index=0, name="pods"))

        assert acc.finish().tool_calls[0].name == "list_pods"

    def test_id_is_overwritten(self):
        acc = DeltaAccumulator()
        acc.feed(ToolCallDelta(index=0, id="tmp", name="list_pods"))
        acc.feed(ToolCallDelta(index=0, id="call_final"))

        assert acc.finish().tool_calls[0].id == "call_final"

    def test_interleaved_calls_keep_index_order(self):
        acc = DeltaAccumulator()
        acc.feed(ToolCallDelta(index=0, id="a", name="first"))
        acc.feed(ToolCallDelta(index=1, id="b", name="second"))
        acc.feed(ToolCallDelta(index=1, arguments='{"x": '))
        acc.feed(ToolCallDelta(index=0, arguments="{}"))
        acc.feed(ToolCallDelta(index=1, arguments="1}"))

        calls = acc.finish().tool_calls

        assert [c.name for c in calls] == ["first", "second"]
        assert calls[0].arguments == "{}"
        assert calls[1].arguments == '{"x": 1}'

    def test_text_and_tool_calls_in_same_round(self):
        acc = DeltaAccumulator()
        acc.feed(TextDelta(text="Let me check."))
        acc.feed(ToolCallDelta(index=0, id="a", name="list_pods", arguments="{}"))

        result = acc.finish()

        assert result.text == "Let me check."
        assert len(result.tool_calls) == 1

    def test_fragment_without_index_opens_new_slot(self):
        acc = DeltaAccumulator()
        acc.feed(ToolCallDelta(index=0, id="a", name="first", arguments="{}"))
        acc.feed(ToolCallDelta(id="b", name="second", arguments="{}"))

        assert [c.id for c in acc.finish().tool_calls] == ["a", "b"]


class TestOutOfOrderIndices:
    def test_higher_index_first_does_not_crash(self):
        acc = DeltaAccumulator()
        acc.feed(ToolCallDelta(index=2, id="c", name="third", arguments="{}"))
        acc.feed(ToolCallDelta(index=0, id="a", name="first", arguments="{}"))

        calls = acc.finish().tool_calls

        assert [c.name for c in calls] == ["first", "third"]

    def test_skipped_lower_indices_are_dropped(self):
        acc = DeltaAccumulator()
        acc.feed(ToolCallDelta(index=3, id="d", name="only", arguments="{}"))

        calls = acc.finish().tool_calls

        assert len(calls) == 1
        assert calls[0].name == "only"

    def test_slot_without_name_is_dropped(self):
        acc = DeltaAccumulator()
        acc.feed(ToolCallDelta(index=0, id="a", arguments='{"orphan": true}'))
        acc.feed(ToolCallDelta(index=1, id="b", name="kept", arguments="{}"))

        calls = acc.finish().tool_calls

        assert [c.id for c in calls] == ["b"]

    @pytest.mark.parametrize("seed", [0, 1, 7, 42, 1234])
    def test_scrambled_fragments_match_in_order_delivery(self, seed):
        """Shuffling calls and splitting arguments arbitrarily yields the same calls."""
        rng = random.Random(seed)

        expected_acc = DeltaAccumulator()
        for delta in _in_order_fragments(CALLS):
            expected_acc.feed(delta)
        expected = expected_acc.finish().tool_calls

        # Per call: header fragment, then argument pieces in order.
        per_call = []
        for i, call in enumerate(CALLS):
            fragments = [ToolCallDelta(index=i, id=call["id"], name=call["name"])]
            fragments += [
                ToolCallDelta(index=i, arguments=piece)
                for piece in _split(call["arguments"], rng.randint(2, 6), rng)
            ]
            per_call.append(fragments)

        # Interleave calls randomly while keeping each call's own fragment order.
        acc = DeltaAccumulator()
        while any(per_call):
            queue = rng.choice([q for q in per_call if q])
            acc.feed(queue.pop(0))
        acc.feed(RoundEnd(finish_reason="tool_calls"))

        assert acc.finish().tool_calls == expected


class TestRoundEnd:
    def test_deltas_after_round_end_are_ignored(self):
        acc = DeltaAccumulator()
        acc.feed(TextDelta(text="done"))
        acc.feed(RoundEnd())

        assert acc.ended
        assert acc.feed(TextDelta(text=" extra")) == ""
        assert acc.finish().text == "done"

    def test_finish_without_round_end(self):
        acc = DeltaAccumulator()
        acc.feed(TextDelta(text="cut"))

        result = acc.finish()

        assert result.text == "cut"
        assert result.finish_reason is None

    def test_unknown_delta_type_raises(self):
        with pytest.raises(TypeError):
            DeltaAccumulator().feed("not a delta")
