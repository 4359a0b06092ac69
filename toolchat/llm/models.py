"""
Data structures shared by the provider client, the delta accumulator and the
turn loop.

A provider round is consumed as a sequence of StreamDelta values:
TextDelta and ToolCallDelta fragments in arrival order, closed by RoundEnd.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from toolchat.conversation.models import ToolCallRequest


class LLMError(Exception):
    """Raised when the provider cannot produce a round."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class ProviderOpenError(LLMError):
    """The round could not be started (auth, network, malformed request)."""


class ProviderStreamError(LLMError):
    """The round started but the stream failed before it finished."""


class TextDelta(BaseModel):
    """A fragment of assistant text."""

    text: str

    model_config = ConfigDict(frozen=True)


class ToolCallDelta(BaseModel):
    """
    A fragment of one tool call.

    ``index`` is the zero-based slot the fragment belongs to. Some providers
    omit it, in which case the fragment opens a new slot.
    """

    index: int | None = Field(default=None, ge=0)
    id: str | None = None
    name: str | None = None
    arguments: str | None = None

    model_config = ConfigDict(frozen=True)


class RoundEnd(BaseModel):
    """Marks the end of a round."""

    finish_reason: str | None = None

    model_config = ConfigDict(frozen=True)


StreamDelta = TextDelta | ToolCallDelta | RoundEnd


class RoundResult(BaseModel):
    """What one provider round produced once its stream is drained."""

    text: str = ""
    tool_calls: list[ToolCallRequest] = Field(default_factory=list)
    finish_reason: str | None = None


class LoopState(str, Enum):
    """Terminal states of a TurnLoop run."""

    FINISHED = "finished"
    ABORTED = "aborted"
    CANCELLED = "cancelled"


class TurnResult(BaseModel):
    """Outcome of one TurnLoop run."""

    state: LoopState
    content: str = Field(default="", description="Every message increment sent during the run")
    rounds: int = Field(default=0, ge=0, description="Provider rounds opened")
    error: str | None = None
