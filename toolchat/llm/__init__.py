"""
LLM Orchestration Layer.

Talks to the model provider (via LiteLLM), reassembles streamed rounds and
drives the tool-use loop:

    ChatService.handle(request)
            ↓
    TurnLoop.run(history)  ←→  Provider.stream_round()  →  DeltaAccumulator
            ↓                          ↑
    ToolRegistry.execute()  ───────────┘  (one round per batch of tool calls)
            ↓
    ConversationStore / EventSink
"""

from toolchat.llm.accumulator import DeltaAccumulator
from toolchat.llm.models import (
    LLMError,
    LoopState,
    ProviderOpenError,
    ProviderStreamError,
    RoundEnd,
    RoundResult,
    StreamDelta,
    TextDelta,
    ToolCallDelta,
    TurnResult,
)
from toolchat.llm.orchestrator import TurnLoop
from toolchat.llm.provider import LiteLLMProvider, Provider

__all__ = [
    "DeltaAccumulator",
    "LLMError",
    "LiteLLMProvider",
    "LoopState",
    "Provider",
    "ProviderOpenError",
    "ProviderStreamError",
    "RoundEnd",
    "RoundResult",
    "StreamDelta",
    "TextDelta",
    "ToolCallDelta",
    "TurnLoop",
    "TurnResult",
]
