"""Subprocess execution of the polymarket CLI with resource limits."""

from __future__ import annotations

import asyncio
import json
import os
import re
from typing import Any, Awaitable, Callable

from loguru import logger

from polymarket_veto.core.models import ExecutionResult

REDACTION_MARKER = "[redacted-private-key]"
_PRIVATE_KEY_RE = re.compile(r"0x[a-fA-F0-9]{64}")
_READ_CHUNK = 64 * 1024
_KILL_GRACE_SECONDS = 2.0

type Spawner = Callable[..., Awaitable[asyncio.subprocess.Process]]


def redact(text: str) -> str:
    """Best-effort scrub of private-key-shaped hex tokens. Not a security boundary."""
    return _PRIVATE_KEY_RE.sub(REDACTION_MARKER, text)


def maybe_json(text: str) -> Any:
    trimmed = text.strip()
    if not trimmed:
        return None
    try:
        return json.loads(trimmed)
    except ValueError:
        return trimmed


def ensure_json_mode(argv: list[str] | tuple[str, ...]) -> list[str]:
    """Prefix ``-o json`` unless the caller already picked an output format."""
    has_output_flag = any(
        value in ("--output", "-o") and index < len(argv) - 1 for index, value in enumerate(argv)
    )
    if has_output_flag:
        return list(argv)
    return ["-o", "json", *argv]


class _Capture:
    """Bounded accumulation of both output streams of one child."""

    def __init__(self, max_output_bytes: int) -> None:
        self.max_output_bytes = max_output_bytes
        self.stdout = bytearray()
        self.stderr = bytearray()
        self.too_large = False

    async def pump(
        self,
        stream: asyncio.StreamReader | None,
        buffer: bytearray,
        process: asyncio.subprocess.Process,
    ) -> None:
        if stream is None:
            return
        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                return
            if self.too_large:
                continue
            buffer.extend(chunk)
            if len(buffer) > self.max_output_bytes:
                self.too_large = True
                _terminate(process)


def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        process.terminate()
    except ProcessLookupError:
        pass


async def _reap(process: asyncio.subprocess.Process) -> None:
    """Wait for a terminated child, escalating to SIGKILL if it lingers."""
    try:
        await asyncio.wait_for(process.wait(), timeout=_KILL_GRACE_SECONDS)
    except TimeoutError:
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()


def _exit_code(process: asyncio.subprocess.Process) -> int:
    code = process.returncode
    # negative codes mean killed by signal
    return code if code is not None and code >= 0 else -1


async def execute_polymarket(
    binary_path: str,
    argv: list[str] | tuple[str, ...],
    *,
    timeout_ms: int,
    max_output_bytes: int,
    spawn: Spawner | None = None,
) -> ExecutionResult:
    """Run the CLI once, enforcing a wall-clock timeout and an output ceiling."""
    normalized = ensure_json_mode(argv)
    command_preview = f"{binary_path} {' '.join(normalized)}"
    spawn = spawn or asyncio.create_subprocess_exec

    try:
        process = await spawn(
            binary_path,
            *normalized,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=dict(os.environ),
        )
    except (OSError, ValueError) as e:
        logger.warning("Failed to spawn {}: {}", binary_path, e)
        return ExecutionResult(
            ok=False,
            exit_code=-1,
            stdout="",
            stderr=redact(str(e)),
            parsed=None,
            argv=tuple(normalized),
            command_preview=command_preview,
        )

    capture = _Capture(max_output_bytes)
    timed_out = False
    try:
        await asyncio.wait_for(
            asyncio.gather(
                capture.pump(process.stdout, capture.stdout, process),
                capture.pump(process.stderr, capture.stderr, process),
                process.wait(),
            ),
            timeout=timeout_ms / 1000,
        )
    except TimeoutError:
        timed_out = True
        _terminate(process)
        await _reap(process)
    except asyncio.CancelledError:
        _terminate(process)
        raise

    if capture.too_large:
        await _reap(process)
        logger.warning("Command output exceeded {} bytes: {}", max_output_bytes, command_preview)
        return ExecutionResult(
            ok=False,
            exit_code=_exit_code(process),
            stdout="",
            stderr=f"Command output exceeded {max_output_bytes} bytes",
            parsed=None,
            argv=tuple(normalized),
            command_preview=command_preview,
        )

    safe_stdout = redact(capture.stdout.decode("utf-8", errors="replace"))
    safe_stderr = redact(capture.stderr.decode("utf-8", errors="replace"))

    if timed_out:
        logger.warning("Command timed out after {} ms: {}", timeout_ms, command_preview)
        note = f"Command timed out after {timeout_ms} ms"
        return ExecutionResult(
            ok=False,
            exit_code=_exit_code(process),
            stdout=safe_stdout,
            stderr=f"{safe_stderr}\n{note}".strip(),
            parsed=maybe_json(safe_stdout),
            argv=tuple(normalized),
            command_preview=command_preview,
        )

    exit_code = _exit_code(process)
    return ExecutionResult(
        ok=exit_code == 0,
        exit_code=exit_code,
        stdout=safe_stdout,
        stderr=safe_stderr,
        parsed=maybe_json(safe_stdout),
        argv=tuple(normalized),
        command_preview=command_preview,
    )
