"""
Streamable HTTP transport (MCP 2025-03-26) for askexpert.

POST /mcp   — JSON-RPC request; JSON response, or SSE when the client
              sends ``Accept: text/event-stream``
GET  /health

Each request's ``Authorization: Bearer <token>`` header becomes the
RequestContext for that request only; the token is forwarded to the
chat-completion API and never stored on the server.
"""
from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from .auth import RequestContext, bearer_token_from_header
from .client import ExpertClient
from .config import load_config
from .logging_setup import configure_logging
from .mcp_server import handle_rpc
from .tools import ExpertTools

logger = logging.getLogger(__name__)

_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
    "Connection": "keep-alive",
}
_KEEPALIVE_SECONDS = 5.0


def create_app(tools: ExpertTools | None = None) -> FastAPI:
    if tools is None:
        tools = ExpertTools(ExpertClient(load_config()))

    app = FastAPI(title="askexpert")
    app.state.tools = tools

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> Response:
        logger.error("Unhandled error [%s %s]: %s", request.method, request.url.path, exc, exc_info=True)
        return JSONResponse(status_code=500, content={"error": str(exc)})

    @app.post("/mcp")
    async def mcp_post(request: Request) -> Response:
        body = await request.body()
        try:
            rpc = json.loads(body)
        except json.JSONDecodeError:
            return Response(
                content=json.dumps({"jsonrpc": "2.0", "id": None,
                                    "error": {"code": -32700, "message": "Parse error"}}),
                media_type="application/json",
                status_code=400,
            )

        context = RequestContext(token=bearer_token_from_header(request.headers.get("authorization")))
        method = rpc.get("method", "") if isinstance(rpc, dict) else ""

        extra_headers: dict[str, str] = {}
        if method == "initialize":
            extra_headers["Mcp-Session-Id"] = str(uuid.uuid4())

        if "text/event-stream" in request.headers.get("accept", ""):
            async def _stream_result(rpc: Any):
                task = asyncio.create_task(handle_rpc(rpc, app.state.tools, context))
                try:
                    while not task.done():
                        try:
                            await asyncio.wait_for(asyncio.shield(task), timeout=_KEEPALIVE_SECONDS)
                        except asyncio.TimeoutError:
                            yield ": keepalive\n\n"
                    result = task.result()
                    if result is not None:
                        yield f"event: message\ndata: {json.dumps(result)}\n\n"
                finally:
                    # Client went away: stop the image fetch / API call with it.
                    if not task.done():
                        task.cancel()

            return StreamingResponse(_stream_result(rpc), media_type="text/event-stream",
                                     headers={**_SSE_HEADERS, **extra_headers})

        response = await handle_rpc(rpc, app.state.tools, context)
        if response is None:
            return Response(content="", status_code=202, headers=extra_headers)
        return Response(content=json.dumps(response), media_type="application/json",
                        headers=extra_headers)

    @app.get("/health")
    async def health() -> dict:
        return {
            "ok": True,
            "tools": [t["name"] for t in app.state.tools.schemas],
            "transports": ["POST /mcp (streamable-http)"],
        }

    return app


def main(host: str = "127.0.0.1", port: int = 8080) -> None:
    import uvicorn

    configure_logging()
    app = create_app()
    logger.info("Ask Expert MCP server listening on http://%s:%d/mcp", host, port)
    uvicorn.run(app, host=host, port=port, log_level="warning")
