"""Inbound chat request."""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from toolchat.conversation.models import ChatContext


class ChatRequest(BaseModel):
    """
    One user message for a (possibly new) session.

    An empty or missing ``session_id`` starts a new session.
    """

    session_id: str | None = Field(default=None, alias="sessionID")
    message: str = Field(description="The user's message")
    model_override: str | None = Field(default=None, alias="model")
    context: ChatContext = Field(default_factory=ChatContext)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("message")
    @classmethod
    def _message_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Message cannot be empty")
        return value

    @field_validator("session_id", "model_override")
    @classmethod
    def _empty_is_none(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value
