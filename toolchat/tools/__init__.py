"""
Tool Integration Layer.

Tools are capabilities the model may ask to run mid-conversation. Each
request gets its own ToolRegistry built from the tools supplied for it.
"""

from toolchat.tools.base import Tool, ToolArgumentError, ToolContext, ToolDefinition, ToolError
from toolchat.tools.navigate import NavigateToTool
from toolchat.tools.registry import ToolRegistry

__all__ = [
    "NavigateToTool",
    "Tool",
    "ToolArgumentError",
    "ToolContext",
    "ToolDefinition",
    "ToolError",
    "ToolRegistry",
]
