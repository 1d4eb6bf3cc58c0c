"""FastAPI-based HTTP transport for the MCP tool surface.

Endpoints:
- GET /health - runtime startup info (no auth)
- POST {mcp.path} - one JSON-RPC request per body
"""

import json
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from polymarket_veto.core.errors import PARSE_ERROR
from polymarket_veto.mcp.protocol import handle_rpc, make_response
from polymarket_veto.runtime.gateway import VetoRuntime


def create_app(runtime: VetoRuntime, *, simulation_override: bool | None = None) -> FastAPI:
    """Create the FastAPI application bound to one runtime."""
    mcp = runtime.resolved.config.mcp

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"polymarket-veto-mcp listening on http://{mcp.host}:{mcp.port}{mcp.path}")
        yield
        logger.info("HTTP transport shutting down")

    app = FastAPI(
        title="Polymarket Veto MCP",
        description="Policy-guarded Polymarket CLI tools over JSON-RPC",
        lifespan=lifespan,
    )

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, Any]:
        """Health check endpoint (no auth required)."""
        return {"ok": True, "runtime": runtime.get_startup_info()}

    @app.post(mcp.path, tags=["mcp"])
    async def rpc(request: Request) -> JSONResponse:
        raw = await request.body()
        try:
            message = json.loads(raw)
        except ValueError:
            return JSONResponse(
                status_code=400,
                content=make_response(None, error={"code": PARSE_ERROR, "message": "Invalid JSON payload"}),
            )

        response = await handle_rpc(runtime, message, simulation_override=simulation_override)
        return JSONResponse(content=response if response is not None else make_response(None, {"ok": True}))

    return app


def run_server(runtime: VetoRuntime, *, simulation_override: bool | None = None) -> None:
    """Run the HTTP transport. Blocks until interrupted."""
    import uvicorn

    mcp = runtime.resolved.config.mcp
    app = create_app(runtime, simulation_override=simulation_override)
    uvicorn.run(app, host=mcp.host, port=mcp.port, log_level="warning")
