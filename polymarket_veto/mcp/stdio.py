"""Line-delimited JSON-RPC over standard input/output."""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Any, Callable

from loguru import logger

from polymarket_veto.core.errors import PARSE_ERROR
from polymarket_veto.mcp.protocol import handle_rpc, make_response
from polymarket_veto.runtime.gateway import VetoRuntime


async def serve_stream(
    runtime: VetoRuntime,
    reader: asyncio.StreamReader,
    write: Callable[[str], None],
    *,
    simulation_override: bool | None = None,
) -> None:
    """Serve requests from ``reader`` until EOF, one JSON response per line.

    Each request runs as its own task so a long approval wait does not stall
    other requests; all in-flight tasks finish before returning.
    """
    pending: set[asyncio.Task[None]] = set()

    def emit(payload: dict[str, Any]) -> None:
        write(json.dumps(payload, ensure_ascii=False) + "\n")

    async def dispatch(message: Any) -> None:
        response = await handle_rpc(runtime, message, simulation_override=simulation_override)
        if response is not None:
            emit(response)

    while True:
        line = await reader.readline()
        if not line:
            break
        text = line.decode("utf-8", errors="replace").strip()
        if not text:
            continue

        try:
            message = json.loads(text)
        except ValueError:
            emit(make_response(None, error={"code": PARSE_ERROR, "message": "Invalid JSON payload"}))
            continue

        task = asyncio.create_task(dispatch(message))
        pending.add(task)
        task.add_done_callback(pending.discard)

    if pending:
        await asyncio.gather(*pending)
    logger.info("stdin closed; stdio transport stopped")


async def serve_stdio(runtime: VetoRuntime, *, simulation_override: bool | None = None) -> None:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=16 * 1024 * 1024)
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)

    def write(text: str) -> None:
        sys.stdout.write(text)
        sys.stdout.flush()

    await serve_stream(runtime, reader, write, simulation_override=simulation_override)
