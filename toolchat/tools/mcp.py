"""
MCP-backed tools.

Spawns an MCP server as a subprocess, communicates via JSON-RPC over stdio,
and exposes every tool the server advertises as a regular Tool.
"""

from __future__ import annotations

from typing import Any

from mcp import ClientSession
from mcp.client.stdio import StdioServerParameters, stdio_client

from toolchat.config.logging import get_logger
from toolchat.tools.base import Tool, ToolContext, ToolDefinition, ToolError, parse_arguments

logger = get_logger(__name__)


class MCPTool(Tool):
    """One tool living on an MCP server."""

    def __init__(self, server: MCPToolServer, definition: ToolDefinition):
        self._server = server
        self._definition = definition

    def definition(self) -> ToolDefinition:
        return self._definition

    async def execute(self, ctx: ToolContext, arguments: str) -> str:
        return await self._server.call(self._definition.name, parse_arguments(arguments))


class MCPToolServer:
    """
    Connection to one MCP stdio tool server.

    Use as an async context manager; tools obtained from ``list_tools`` are
    only usable while the connection is open.
    """

    def __init__(self, command: str, args: list[str] | None = None):
        self._command = command
        self._args = list(args or [])
        self._initialized = False
        self._session = None
        self._stdio_context = None
        self._session_context = None

    async def initialize(self) -> None:
        """Start the MCP server subprocess and perform the handshake."""
        server_params = StdioServerParameters(command=self._command, args=self._args)

        self._stdio_context = stdio_client(server_params)
        read_stream, write_stream = await self._stdio_context.__aenter__()

        self._session_context = ClientSession(read_stream, write_stream)
        self._session = await self._session_context.__aenter__()

        await self._session.initialize()
        self._initialized = True
        logger.info(f"MCP tool server ready: {self._command} {' '.join(self._args)}")

    async def shutdown(self) -> None:
        """Cleanly shut down the MCP server subprocess."""
        if not self._initialized:
            return

        if self._session_context is not None:
            await self._session_context.__aexit__(None, None, None)
            self._session_context = None
            self._session = None

        if self._stdio_context is not None:
            await self._stdio_context.__aexit__(None, None, None)
            self._stdio_context = None

        self._initialized = False

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, *_args):
        await self.shutdown()
        return None  # Don't suppress exceptions

    async def list_tools(self) -> list[MCPTool]:
        """Wrap every tool the server advertises."""
        if not self._initialized:
            raise RuntimeError("MCP tool server not initialized")

        result = await self._session.list_tools()
        return [
            MCPTool(
                self,
                ToolDefinition(
                    name=tool.name,
                    description=tool.description or "",
                    parameters=tool.inputSchema,
                ),
            )
            for tool in result.tools
        ]

    async def call(self, tool_name: str, arguments: dict[str, Any]) -> str:
        """Call a tool on the server and return its text content."""
        if not self._initialized:
            raise RuntimeError("MCP tool server not initialized")

        result = await self._session.call_tool(tool_name, arguments)

        # MCP returns content as a list of content blocks
        text_parts = [content.text for content in result.content if hasattr(content, "text")]
        text = " ".join(text_parts)

        if getattr(result, "isError", False):
            raise ToolError(text or f"MCP tool '{tool_name}' reported an error")
        return text
