"""
Chat request handling.

Turns an inbound ChatRequest into a session, a history and a TurnLoop run,
and guarantees the caller one terminal event per request.
"""

from toolchat.chat.models import ChatRequest
from toolchat.chat.prompts import build_system_prompt
from toolchat.chat.service import ChatService
from toolchat.conversation.models import ChatContext

__all__ = [
    "ChatContext",
    "ChatRequest",
    "ChatService",
    "build_system_prompt",
]
