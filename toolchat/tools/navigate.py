"""
Dashboard navigation tool.

This tool does not fetch anything. The client watches the transcript for
``navigate_to`` calls and moves the user to the requested page; the returned
text only records the action in the conversation history.
"""

from toolchat.tools.base import Tool, ToolArgumentError, ToolContext, ToolDefinition, parse_arguments

PAGES = (
    "pods",
    "deployments",
    "services",
    "ingresses",
    "nodes",
    "namespaces",
    "settings",
    "security",
    "helm",
    "events",
)


class NavigateToTool(Tool):
    """Send the user to a dashboard page or a specific resource path."""

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="navigate_to",
            description=(
                "Navigate the user to a specific page in the dashboard. Use this when the "
                "user asks to see a resource or go to a specific section."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "page": {
                        "type": "string",
                        "description": (
                            f"The page to navigate to. Supported values: {', '.join(PAGES)}. "
                            "For specific resources, use the 'path' argument instead."
                        ),
                    },
                    "path": {
                        "type": "string",
                        "description": (
                            "The specific path to navigate to, if it's a specific resource. "
                            "Format: '/c/:cluster/:kind/:namespace/:name'. "
                            "Example: '/c/local/pods/default/nginx-123'."
                        ),
                    },
                },
                "required": ["page"],
            },
        )

    async def execute(self, ctx: ToolContext, arguments: str) -> str:
        params = parse_arguments(arguments)
        path = params.get("path") or ""
        page = params.get("page") or ""

        if path:
            return f"Navigating to path: {path}"
        if not page:
            raise ToolArgumentError("either 'page' or 'path' is required")
        return f"Navigating to page: {page}"
