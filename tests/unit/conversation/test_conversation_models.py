"""Unit tests for the conversation Pydantic models."""

import pytest
from pydantic import ValidationError

from toolchat.conversation.models import ChatContext, Role, Session, ToolCallRequest, Turn


class TestTurn:
    def test_user_turn(self):
        turn = Turn.user("list pods")
        assert turn.role is Role.USER
        assert turn.to_message() == {"role": "user", "content": "list pods"}

    def test_assistant_turn_with_tool_calls(self):
        call = ToolCallRequest(id="call_1", name="list_pods", arguments="{}")
        turn = Turn.assistant("", [call])

        assert turn.to_message() == {
            "role": "assistant",
            "content": "",
            "tool_calls": [
                {"id": "call_1", "type": "function", "function": {"name": "list_pods", "arguments": "{}"}}
            ],
        }

    def test_tool_turn(self):
        turn = Turn.tool("call_1", "pod-a, pod-b")
        assert turn.to_message() == {
            "role": "tool",
            "content": "pod-a, pod-b",
            "tool_call_id": "call_1",
        }

    def test_tool_turn_requires_call_id(self):
        with pytest.raises(ValidationError):
            Turn(role=Role.TOOL, content="x")

    def test_only_assistant_carries_tool_calls(self):
        with pytest.raises(ValidationError):
            Turn(role=Role.USER, content="x", tool_calls=[ToolCallRequest(id="a", name="b")])

    def test_only_tool_turn_has_call_id(self):
        with pytest.raises(ValidationError):
            Turn(role=Role.ASSISTANT, content="x", tool_call_id="call_1")

    def test_only_assistant_can_be_incomplete(self):
        with pytest.raises(ValidationError):
            Turn(role=Role.USER, content="x", incomplete=True)

    def test_turns_are_immutable(self):
        turn = Turn.user("hello")
        with pytest.raises(ValidationError):
            turn.content = "changed"

    def test_created_at_is_timezone_aware(self):
        assert Turn.user("hello").created_at.tzinfo is not None

    def test_json_round_trip_keeps_flags(self):
        turn = Turn.assistant("partial", incomplete=True)
        restored = Turn.model_validate_json(turn.model_dump_json())
        assert restored == turn


class TestSession:
    def test_defaults(self):
        session = Session(owner="alice", title="New Chat")
        assert session.id
        assert session.turns == []

    def test_tool_call_ids(self):
        session = Session(owner="alice", title="t")
        session.turns.append(Turn.user("hi"))
        session.turns.append(
            Turn.assistant("", [ToolCallRequest(id="a", name="x"), ToolCallRequest(id="b", name="y")])
        )
        assert session.tool_call_ids() == {"a", "b"}

    def test_to_messages(self):
        session = Session(owner="alice", title="t", turns=[Turn.user("hi"), Turn.assistant("hello")])
        assert [m["role"] for m in session.to_messages()] == ["user", "assistant"]


class TestChatContext:
    def test_kind_or_name_binds_target(self):
        assert ChatContext(kind="Pod").has_target
        assert ChatContext(name="web-1").has_target

    def test_namespace_alone_is_not_a_target(self):
        assert not ChatContext(namespace="prod").has_target
        assert not ChatContext().has_target
