"""Tests for the MCP server wiring."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

pytest.importorskip("mcp")

from cli_mcp import TOOL_NAME, build_server  # noqa: E402


def _texts(result):
    """Text blocks from a call_tool result across SDK result shapes."""
    if isinstance(result, tuple):
        result = result[0]
    return [getattr(block, "text", "") for block in result]


@pytest.fixture
def tools():
    handler = MagicMock()
    handler.eval_python = AsyncMock(return_value="Result: 4")
    return handler


class TestServer:
    """Tests for the EvalPython tool registration."""

    def test_single_tool_listed(self, tools):
        server = build_server(tools)

        listed = asyncio.run(server.list_tools())

        assert [tool.name for tool in listed] == [TOOL_NAME]
        properties = listed[0].inputSchema["properties"]
        assert {"script", "scriptFile", "timeoutSeconds"} <= set(properties)

    def test_call_forwards_parameters(self, tools):
        server = build_server(tools)

        result = asyncio.run(
            server.call_tool(TOOL_NAME, {"script": "2 + 2", "timeoutSeconds": 5})
        )

        assert "Result: 4" in _texts(result)
        tools.eval_python.assert_awaited_once_with(
            script_file=None, script="2 + 2", timeout_seconds=5
        )
