"""
Tool registry: resolves and executes tools by name.

A registry is built per request, so each conversation only sees the tools
that make sense for it. Lookup and execution failures never raise: they come
back as text so the model can observe the failure and decide what to do next.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from toolchat.config.logging import get_logger
from toolchat.conversation.models import ChatContext
from toolchat.tools.base import Tool, ToolContext

logger = get_logger(__name__)


class ToolRegistry:
    """Name → Tool map that preserves registration order."""

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            self.register(tool)

    @classmethod
    def for_request(cls, tools: Iterable[Tool], context: ChatContext) -> ToolRegistry:
        """
        Build the registry for one request.

        Tools flagged ``requires_target`` are skipped when the request is not
        bound to a resource.
        """
        registry = cls()
        for tool in tools:
            if tool.requires_target and not context.has_target:
                logger.debug(f"Skipping tool '{tool.name}': no target resource in context")
                continue
            registry.register(tool)
        return registry

    def register(self, tool: Tool) -> None:
        """
        Register a tool under its name.

        Registering a name twice replaces the earlier tool; the name keeps its
        original position in ``definitions()``.
        """
        name = tool.name
        if name in self._tools:
            logger.debug(f"Replacing registered tool '{name}'")
        self._tools[name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def definitions(self) -> list[dict[str, Any]]:
        """Tool schemas in LiteLLM's format, in registration order."""
        return [tool.definition().to_openai() for tool in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    async def execute(self, ctx: ToolContext, name: str, arguments: str) -> str:
        """
        Execute a tool by name and return its output as text.

        Unknown names and tool failures are reported as an error string
        instead of raising. Cancellation still propagates.
        """
        tool = self._tools.get(name)
        if tool is None:
            available = ", ".join(self._tools) or "none"
            logger.warning(f"Model requested unknown tool '{name}'")
            return f"Error: unknown tool '{name}'. Available tools: {available}"

        try:
            return await tool.execute(ctx, arguments)
        except Exception as e:
            logger.warning(f"Tool '{name}' failed: {e}")
            return f"Error executing tool: {e}"
