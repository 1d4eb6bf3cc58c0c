"""JSON-RPC 2.0 request handling for the MCP tool surface."""

from __future__ import annotations

from typing import Any

from loguru import logger

from polymarket_veto import __version__
from polymarket_veto.core.errors import INVALID_PARAMS, INVALID_REQUEST, METHOD_NOT_FOUND, VetoRuntimeError
from polymarket_veto.runtime.gateway import VetoRuntime

PROTOCOL_VERSION = "2025-03-26"
SERVER_NAME = "polymarket-veto-mcp"


def make_response(
    request_id: Any,
    result: Any = None,
    error: dict[str, Any] | None = None,
) -> dict[str, Any]:
    response: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id}
    if error is not None:
        response["error"] = error
    else:
        response["result"] = result
    return response


def parse_tool_call_params(value: Any) -> tuple[str, dict[str, Any]]:
    if not isinstance(value, dict):
        raise VetoRuntimeError("Invalid params payload", code=INVALID_PARAMS)

    name = value.get("name")
    if not isinstance(name, str) or not name.strip():
        raise VetoRuntimeError("Invalid params.name", code=INVALID_PARAMS)

    args = value.get("arguments")
    if args is not None and not isinstance(args, dict):
        raise VetoRuntimeError("Invalid params.arguments", code=INVALID_PARAMS)

    return name.strip(), dict(args or {})


async def handle_rpc(
    runtime: VetoRuntime,
    request: Any,
    *,
    simulation_override: bool | None = None,
) -> dict[str, Any] | None:
    """Handle one decoded JSON-RPC message; None means no response (notification)."""
    if not isinstance(request, dict):
        return make_response(None, error={"code": INVALID_REQUEST, "message": "Invalid JSON-RPC request"})

    request_id = request.get("id")
    method = request.get("method")
    if request.get("jsonrpc") != "2.0" or not isinstance(method, str):
        return make_response(request_id, error={"code": INVALID_REQUEST, "message": "Invalid JSON-RPC request"})

    if method == "tools/list":
        return make_response(request_id, {"tools": runtime.list_tools()})

    if method == "tools/call":
        try:
            name, arguments = parse_tool_call_params(request.get("params"))
            result = await runtime.call_tool(name, arguments, simulation_override)
            return make_response(request_id, result.to_mcp())
        except VetoRuntimeError as e:
            return make_response(request_id, error=e.shape.to_dict())
        except Exception as e:
            logger.exception("Unhandled error in tools/call")
            return make_response(request_id, error=runtime.to_rpc_error(e).to_dict())

    if method == "initialize":
        return make_response(
            request_id,
            {
                "protocolVersion": PROTOCOL_VERSION,
                "serverInfo": {"name": SERVER_NAME, "version": __version__},
                "capabilities": {"tools": {"listChanged": False}},
            },
        )

    if "id" not in request:
        return None

    return make_response(
        request_id,
        error={"code": METHOD_NOT_FOUND, "message": f"Unsupported method '{method}'"},
    )
