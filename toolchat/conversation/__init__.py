"""
Conversation model and storage.

Sessions hold an append-only list of Turns (user, assistant, tool). Stores
persist them either in memory or as JSON files on disk.
"""

from toolchat.conversation.models import ChatContext, Role, Session, ToolCallRequest, Turn
from toolchat.conversation.store import (
    ConversationStore,
    InMemoryConversationStore,
    JsonlConversationStore,
    SessionNotFoundError,
    TranscriptError,
    create_store,
)

__all__ = [
    "ChatContext",
    "ConversationStore",
    "InMemoryConversationStore",
    "JsonlConversationStore",
    "Role",
    "Session",
    "SessionNotFoundError",
    "ToolCallRequest",
    "TranscriptError",
    "Turn",
    "create_store",
]
