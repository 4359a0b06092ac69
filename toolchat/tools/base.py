"""
Base classes for tools.

A Tool is one capability the model may ask to run: it advertises a
definition (name, description, JSON-schema parameters) and executes with the
raw JSON argument text the model produced. Failures are raised as exceptions
here; the registry turns them into text for the model to read.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field

from toolchat.conversation.models import ChatContext


class ToolError(Exception):
    """A tool ran but could not complete."""


class ToolArgumentError(ToolError):
    """The argument payload is not a JSON object the tool can use."""


class ToolDefinition(BaseModel):
    """Schema advertised to the provider for one tool."""

    name: str = Field(min_length=1)
    description: str = ""
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    model_config = ConfigDict(frozen=True)

    def to_openai(self) -> dict[str, Any]:
        """
        LiteLLM uses the OpenAI tool format:
            {"type": "function", "function": {"name": ..., "description": ..., "parameters": ...}}
        """
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolContext(BaseModel):
    """Per-request information available to every tool execution."""

    session_id: str
    owner: str
    chat: ChatContext = Field(default_factory=ChatContext)


class Tool(ABC):
    """
    Abstract base class for tools.

    Subclasses set ``requires_target = True`` when they only make sense for a
    request bound to a specific resource (e.g. scaling "this" deployment);
    such tools are left out of the registry for unbound requests.
    """

    requires_target: ClassVar[bool] = False

    @abstractmethod
    def definition(self) -> ToolDefinition:
        """Return the schema advertised to the provider."""

    @property
    def name(self) -> str:
        return self.definition().name

    @abstractmethod
    async def execute(self, ctx: ToolContext, arguments: str) -> str:
        """
        Run the tool.

        Args:
            ctx: Request context (session, owner, dashboard location)
            arguments: Raw JSON text produced by the model

        Returns:
            Text result shown to the model and the user

        Raises:
            ToolError: If the tool cannot complete; any other exception is
                also tolerated and reported to the model as text
        """


def parse_arguments(arguments: str) -> dict[str, Any]:
    """
    Decode a tool argument payload.

    An empty payload is treated as an empty object, since models commonly
    stream nothing at all for parameterless tools.

    Raises:
        ToolArgumentError: If the payload is not valid JSON or not an object
    """
    if not arguments or not arguments.strip():
        return {}
    try:
        value = json.loads(arguments)
    except json.JSONDecodeError as e:
        raise ToolArgumentError(f"invalid JSON arguments: {e}") from e
    if not isinstance(value, dict):
        raise ToolArgumentError(
            f"arguments must be a JSON object, got {type(value).__name__}"
        )
    return value
