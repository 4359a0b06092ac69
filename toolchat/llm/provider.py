"""
Provider clients.

A Provider runs one round against a language-model API. ``stream_round``
is awaited to open the round and then iterated for StreamDelta values:

    stream = await provider.stream_round(messages, tools)   # ProviderOpenError
    async for delta in stream:                              # ProviderStreamError
        ...

The stream is lazy, finite and single-pass, and always ends with RoundEnd
when it completes normally.

LiteLLMProvider is the production implementation; swapping between OpenAI,
Anthropic, Ollama, etc. is a matter of changing the model string.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

from litellm import acompletion

from toolchat.config.logging import get_logger
from toolchat.config.settings import LLMSettings
from toolchat.llm.models import (
    LLMError,
    ProviderOpenError,
    ProviderStreamError,
    RoundEnd,
    StreamDelta,
    TextDelta,
    ToolCallDelta,
)

logger = get_logger(__name__)


class Provider(ABC):
    """Abstract base class for language-model providers."""

    @abstractmethod
    async def stream_round(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> AsyncIterator[StreamDelta]:
        """
        Open a streaming round.

        Args:
            messages: Full chat history in OpenAI message format
            tools: Tool definitions in OpenAI tool format (may be empty)

        Returns:
            Async iterator of deltas for this round

        Raises:
            ProviderOpenError: If the round cannot be started
        """

    @abstractmethod
    async def complete_round(self, messages: list[dict[str, Any]]) -> str:
        """
        Non-streaming completion without tools.

        Raises:
            LLMError: If the call fails
        """

    def for_model(self, model: str | None) -> Provider:
        """Provider bound to a different model; the default ignores the request."""
        return self


class LiteLLMProvider(Provider):
    """
    Provider backed by LiteLLM's ``acompletion``.

    Args:
        settings: LLM configuration (model, temperature, max_tokens, api_key)
        model: Overrides ``settings.model`` when given
    """

    def __init__(self, settings: LLMSettings, model: str | None = None):
        self._settings = settings
        self._model = model or settings.model

    @property
    def model(self) -> str:
        return self._model

    def for_model(self, model: str | None) -> Provider:
        if not model or model == self._model:
            return self
        return LiteLLMProvider(self._settings, model=model)

    def _call_kwargs(self, messages: list[dict[str, Any]]) -> dict[str, Any]:
        call_kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "temperature": self._settings.temperature,
            "max_tokens": self._settings.max_tokens,
            "api_key": self._settings.api_key,
        }
        if self._settings.api_base:
            call_kwargs["api_base"] = self._settings.api_base
        return call_kwargs

    async def stream_round(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> AsyncIterator[StreamDelta]:
        # Fail before the network call when no API key is configured
        if not self._settings.api_key:
            raise ProviderOpenError("API key not configured. Set LLM__API_KEY in your environment.")

        call_kwargs = self._call_kwargs(messages)
        call_kwargs["stream"] = True
        # Only advertise tools when there are some; several providers reject an empty list
        if tools:
            call_kwargs["tools"] = tools

        logger.debug(f"Opening round: model={self._model} messages={len(messages)} tools={len(tools)}")
        try:
            response = await acompletion(**call_kwargs)
        except Exception as e:
            raise ProviderOpenError(f"LLM API call failed: {e}", cause=e)

        return self._deltas(response)

    async def _deltas(self, response) -> AsyncIterator[StreamDelta]:
        """Translate LiteLLM stream chunks into StreamDeltas."""
        finish_reason = None
        try:
            async for chunk in response:
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                delta = choice.delta

                if delta.content:
                    yield TextDelta(text=delta.content)

                for tool_call in delta.tool_calls or []:
                    function = tool_call.function
                    yield ToolCallDelta(
                        index=tool_call.index,
                        id=tool_call.id or None,
                        name=(function.name or None) if function else None,
                        arguments=(function.arguments or None) if function else None,
                    )

                if choice.finish_reason:
                    finish_reason = choice.finish_reason
        except Exception as e:
            raise ProviderStreamError(f"LLM stream failed: {e}", cause=e)

        yield RoundEnd(finish_reason=finish_reason)

    async def complete_round(self, messages: list[dict[str, Any]]) -> str:
        if not self._settings.api_key:
            raise LLMError("API key not configured. Set LLM__API_KEY in your environment.")

        try:
            response = await acompletion(**self._call_kwargs(messages))
        except Exception as e:
            raise LLMError(f"LLM API call failed: {e}", cause=e)

        return response.choices[0].message.content or ""
