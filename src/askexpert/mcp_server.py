"""
MCP (Model Context Protocol) server for askexpert.

Exposes a remote OpenAI-compatible chat-completion endpoint as two MCP tools:

  ask_expert           — plain text question
  ask_expert_on_image  — question about an image (URL, file path, data URI
                         or raw base64)

Protocol: JSON-RPC 2.0 over stdio (one JSON object per line).  In stdio mode
the API bearer token comes from ASK_EXPERT_API_KEY; the HTTP transport
(askexpert.http_server) takes it from each request's Authorization header.

Usage
-----
    python -m askexpert.mcp_server
    askexpert stdio

Client mcp_servers.json entry
-----------------------------
{
  "mcpServers": {
    "ask-an-expert": {
      "command": "askexpert",
      "args": ["stdio"],
      "env": {
        "ASK_EXPERT_BASE_URL": "https://api.example.com",
        "ASK_EXPERT_API_KEY": "sk-..."
      }
    }
  }
}
"""
from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any

from . import __version__
from .auth import RequestContext, token_from_env
from .client import ExpertClient
from .config import load_config
from .logging_setup import configure_logging
from .tools import ExpertTools

logger = logging.getLogger(__name__)

SERVER_NAME = "ask-an-expert"
SUPPORTED_PROTOCOL_VERSIONS = {"2024-11-05", "2025-03-26"}
DEFAULT_PROTOCOL_VERSION = "2024-11-05"
# Inline base64 images arrive on a single line.
_STDIN_LINE_LIMIT = 64 * 1024 * 1024

_tools: ExpertTools | None = None


def _get_tools() -> ExpertTools:
    global _tools
    if _tools is None:
        _tools = ExpertTools(ExpertClient(load_config()))
    return _tools


# ---------------------------------------------------------------------------
# JSON-RPC 2.0 helpers
# ---------------------------------------------------------------------------

def _ok(request_id: Any, result: Any) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _err(request_id: Any, code: int, message: str) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


async def handle_rpc(req: Any, tools: ExpertTools, context: RequestContext) -> dict | None:
    """Process one JSON-RPC request; return the response, or None for notifications."""
    if not isinstance(req, dict):
        return _err(None, -32600, "Invalid Request")

    req_id = req.get("id")
    method = req.get("method", "")
    params = req.get("params") or {}
    if not isinstance(params, dict):
        return _err(req_id, -32602, "Invalid params")

    if method == "initialize":
        client_ver = params.get("protocolVersion", DEFAULT_PROTOCOL_VERSION)
        agreed_ver = client_ver if client_ver in SUPPORTED_PROTOCOL_VERSIONS else DEFAULT_PROTOCOL_VERSION
        return _ok(req_id, {
            "protocolVersion": agreed_ver,
            "capabilities": {"tools": {}},
            "serverInfo": {"name": SERVER_NAME, "version": __version__},
        })

    if method in ("notifications/initialized", "initialized"):
        return None

    if method == "tools/list":
        return _ok(req_id, {"tools": tools.schemas})

    if method == "tools/call":
        tool_name = params.get("name", "")
        arguments = params.get("arguments") or {}
        if not isinstance(arguments, dict):
            return _err(req_id, -32602, "Invalid params: 'arguments' must be an object")
        result = await tools.call_tool(tool_name, arguments, context)
        return _ok(req_id, result.as_mcp())

    if method == "ping":
        return _ok(req_id, {})

    if req_id is not None:
        return _err(req_id, -32601, f"Method not found: {method}")
    return None


# ---------------------------------------------------------------------------
# stdio transport
# ---------------------------------------------------------------------------

def _write(obj: dict) -> None:
    sys.stdout.write(json.dumps(obj) + "\n")
    sys.stdout.flush()


async def _handle(line: str) -> None:
    try:
        req = json.loads(line)
    except json.JSONDecodeError:
        _write(_err(None, -32700, "Parse error"))
        return

    response = await handle_rpc(req, _get_tools(), RequestContext(token=token_from_env()))
    if response is not None:
        _write(response)


async def _run() -> None:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=_STDIN_LINE_LIMIT)
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin)
    logger.info("Ask Expert MCP server running on stdio")

    while True:
        try:
            line_bytes = await reader.readline()
        except (ValueError, ConnectionError) as exc:
            logger.error("stdin closed: %s", exc)
            break
        if not line_bytes:
            break
        line = line_bytes.decode(errors="replace").strip()
        if line:
            await _handle(line)


def main() -> None:
    configure_logging()
    # Fail at startup, not on the first tools/call, when configuration is bad.
    _get_tools()
    if token_from_env() is None:
        logger.warning("ASK_EXPERT_API_KEY is not set; tool calls will be rejected as unauthorized")
    asyncio.run(_run())


if __name__ == "__main__":
    main()
