"""
Conversation data model.

A Session owns an append-only, ordered list of Turns. Turns are the unit of
persistence: one per user message, one per provider round (assistant), and
one per executed tool call (tool). The provider-facing chat message format
(OpenAI style, as accepted by LiteLLM) is rendered from Turns on demand and
never stored.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Role(str, Enum):
    """Author of a Turn."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ChatContext(BaseModel):
    """
    Where the user is in the dashboard when they send a message.

    All fields are optional. A context with a kind or name is "bound" to a
    resource, which unlocks tools that act on a specific target.
    """

    route: str = ""
    kind: str = ""
    name: str = ""
    namespace: str = ""

    @property
    def has_target(self) -> bool:
        return bool(self.kind or self.name)


class ToolCallRequest(BaseModel):
    """
    A tool invocation requested by the provider.

    ``arguments`` is the raw JSON text exactly as streamed; it is only parsed
    by the tool that consumes it.
    """

    id: str = Field(description="Opaque provider-assigned call id")
    name: str = Field(description="Tool function name")
    arguments: str = Field(default="", description="Raw JSON argument payload")

    model_config = ConfigDict(frozen=True)

    def to_openai(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


class Turn(BaseModel):
    """One immutable entry in a transcript."""

    role: Role
    content: str = ""
    tool_calls: list[ToolCallRequest] = Field(default_factory=list)
    tool_call_id: str | None = None
    incomplete: bool = Field(
        default=False,
        description="Assistant turn cut short by a provider failure mid-stream",
    )
    created_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_role_fields(self) -> Turn:
        if self.tool_calls and self.role is not Role.ASSISTANT:
            raise ValueError("only assistant turns may carry tool calls")
        if self.incomplete and self.role is not Role.ASSISTANT:
            raise ValueError("only assistant turns may be marked incomplete")
        if self.role is Role.TOOL and not self.tool_call_id:
            raise ValueError("tool turns require a tool_call_id")
        if self.role is not Role.TOOL and self.tool_call_id is not None:
            raise ValueError("tool_call_id is only valid on tool turns")
        return self

    @classmethod
    def user(cls, content: str) -> Turn:
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(
        cls,
        content: str,
        tool_calls: list[ToolCallRequest] | None = None,
        incomplete: bool = False,
    ) -> Turn:
        return cls(
            role=Role.ASSISTANT,
            content=content,
            tool_calls=tool_calls or [],
            incomplete=incomplete,
        )

    @classmethod
    def tool(cls, tool_call_id: str, content: str) -> Turn:
        return cls(role=Role.TOOL, content=content, tool_call_id=tool_call_id)

    def to_message(self) -> dict[str, Any]:
        """Render as a provider chat message."""
        message: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [tc.to_openai() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            message["tool_call_id"] = self.tool_call_id
        return message


class Session(BaseModel):
    """
    A conversation owned by one user.

    The title starts as a placeholder and is renamed at most once; the only
    other mutation is appending Turns.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner: str
    title: str
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    turns: list[Turn] = Field(default_factory=list)

    def tool_call_ids(self) -> set[str]:
        """Ids of every tool call requested by an assistant turn so far."""
        return {tc.id for turn in self.turns for tc in turn.tool_calls}

    def to_messages(self) -> list[dict[str, Any]]:
        return [turn.to_message() for turn in self.turns]
