"""MCP server for EvalGate exposing script evaluation via the official MCP Python SDK.

This module implements a minimal MCP server with one tool:
  - EvalPython

Transport defaults to stdio JSON-RPC. If --host/--port are provided via CLI,
we'll run with streamable HTTP transport instead.
"""
from __future__ import annotations

import logging
import sys
from typing import Optional

from constants import Constants, ExitCodes
from eval_tools import PythonEvalTools

# Official MCP SDK (FastMCP)
try:
    from mcp.server.fastmcp import FastMCP  # type: ignore
except ImportError:  # pragma: no cover - import error surfaced at runtime
    FastMCP = None  # type: ignore

logger = logging.getLogger(__name__)

SERVER_NAME = "evalgate"
TOOL_NAME = "EvalPython"
TOOL_DESCRIPTION = (
    "Evaluates Python code and returns its output and the value of the last "
    "expression. Either 'script' (inline code) or 'scriptFile' (path to a .py "
    "file) must be given, not both. PyPI packages can be referenced with "
    "directives such as #r \"pypi: requests, 2.32.3\"; they are downloaded "
    "with their dependencies before the code runs."
)


def build_server(tools: PythonEvalTools):
    """Create the FastMCP server with the EvalPython tool bound to ``tools``."""
    if FastMCP is None:
        raise RuntimeError("MCP server requires the 'mcp' package. Install with: pip install mcp")
    mcp = FastMCP(SERVER_NAME)

    @mcp.tool(title="Evaluate Python", name=TOOL_NAME, description=TOOL_DESCRIPTION)
    async def eval_python(
        script: Optional[str] = None,
        scriptFile: Optional[str] = None,
        timeoutSeconds: int = Constants.DEFAULT_EVAL_TIMEOUT,
    ) -> str:
        return await tools.eval_python(
            script_file=scriptFile,
            script=script,
            timeout_seconds=timeoutSeconds,
        )

    return mcp


def run_mcp_server(args, tools: PythonEvalTools) -> None:
    """Serve until the transport closes."""
    try:
        mcp = build_server(tools)
    except RuntimeError as exc:
        sys.stderr.write(f"{exc}\n")
        sys.exit(ExitCodes.FILE_ERROR.value)

    host = getattr(args, "MCP_HOST", None)
    port = getattr(args, "MCP_PORT", None)
    if host and port:
        mcp.settings.host = host
        mcp.settings.port = int(port)
        logger.info("Serving %s over streamable HTTP on %s:%s", TOOL_NAME, host, port)
        mcp.run(transport="streamable-http")
    else:
        logger.info("Serving %s over stdio", TOOL_NAME)
        mcp.run()  # defaults to stdio
