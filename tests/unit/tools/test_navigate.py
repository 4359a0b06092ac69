"""Unit tests for NavigateToTool."""

import pytest

from toolchat.tools.base import ToolArgumentError, ToolContext
from toolchat.tools.navigate import PAGES, NavigateToTool


@pytest.fixture
def ctx():
    return ToolContext(session_id="s-1", owner="alice")


class TestNavigateToTool:
    def test_definition(self):
        definition = NavigateToTool().definition()

        assert definition.name == "navigate_to"
        assert definition.parameters["required"] == ["page"]
        assert set(definition.parameters["properties"]) == {"page", "path"}
        for page in PAGES:
            assert page in definition.parameters["properties"]["page"]["description"]

    def test_does_not_require_target(self):
        assert NavigateToTool.requires_target is False

    @pytest.mark.asyncio
    async def test_navigates_to_page(self, ctx):
        result = await NavigateToTool().execute(ctx, '{"page": "pods"}')
        assert result == "Navigating to page: pods"

    @pytest.mark.asyncio
    async def test_path_takes_precedence(self, ctx):
        result = await NavigateToTool().execute(
            ctx, '{"page": "pods", "path": "/c/local/pods/default/nginx-123"}'
        )
        assert result == "Navigating to path: /c/local/pods/default/nginx-123"

    @pytest.mark.asyncio
    async def test_missing_page_and_path_raises(self, ctx):
        with pytest.raises(ToolArgumentError):
            await NavigateToTool().execute(ctx, "{}")

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self, ctx):
        with pytest.raises(ToolArgumentError):
            await NavigateToTool().execute(ctx, "{page")
