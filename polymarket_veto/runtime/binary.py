"""Deterministic discovery of the polymarket CLI binary."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from polymarket_veto.core.models import BinaryResolution, BinarySource

AUTO = "auto"
BINARY_NAME = "polymarket"
BINARY_ENV = "POLYMARKET_BINARY_PATH"


@dataclass(frozen=True, slots=True)
class _Lookup:
    source: BinarySource
    candidate: str
    kind: str  # "path" | "command"


def _uniq(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def _is_executable(file_path: str) -> bool:
    return os.path.isfile(file_path) and os.access(file_path, os.X_OK)


def _has_path_separators(value: str) -> bool:
    return "/" in value or "\\" in value


def _lookup_kind(value: str) -> str:
    return "path" if _has_path_separators(value) or os.path.isabs(value) else "command"


def _resolve_command_on_path(command: str, env_path: str | None) -> tuple[str | None, list[str]]:
    checked: list[str] = []
    if not env_path:
        return None, checked

    suffixes = ["", ".exe", ".cmd", ".bat"] if sys.platform == "win32" else [""]
    for directory in env_path.split(os.pathsep):
        if not directory:
            continue
        for suffix in suffixes:
            candidate = os.path.join(directory, f"{command}{suffix}")
            checked.append(candidate)
            if _is_executable(candidate):
                return candidate, checked
    return None, checked


def _absolute_candidates(candidate: str, base_dir: str, cwd: str) -> list[str]:
    if os.path.isabs(candidate):
        return [candidate]
    return _uniq(
        [
            os.path.normpath(os.path.join(base_dir, candidate)),
            os.path.normpath(os.path.join(cwd, candidate)),
        ]
    )


def _search_roots(base_dir: str, cwd: str) -> list[str]:
    base = Path(base_dir).absolute()
    here = Path(cwd).absolute()
    return _uniq(
        [
            str(base),
            str(here),
            os.path.normpath(base / ".."),
            os.path.normpath(here / ".."),
            os.path.normpath(base / ".." / ".."),
            os.path.normpath(here / ".." / ".."),
        ]
    )


def resolve_polymarket_binary(
    requested_path: str,
    base_dir: str | Path,
    *,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> BinaryResolution:
    """Locate the polymarket executable.

    Order: env override, configured path (unless ``auto``), ``polymarket`` on
    PATH, then ``target/release`` and ``target/debug`` build outputs under the
    base dir, the cwd and their parents. Every candidate checked is reported.
    """
    env = os.environ if env is None else env
    base = str(base_dir)
    here = str(cwd) if cwd is not None else os.getcwd()
    requested = requested_path.strip() or AUTO
    checked: list[str] = []

    queue: list[_Lookup] = []
    env_binary = (env.get(BINARY_ENV) or "").strip()
    if env_binary:
        queue.append(_Lookup("env", env_binary, _lookup_kind(env_binary)))
    if requested != AUTO:
        queue.append(_Lookup("config", requested, _lookup_kind(requested)))
    queue.append(_Lookup("path", BINARY_NAME, "command"))
    for root in _search_roots(base, here):
        queue.append(_Lookup("workspace-release", os.path.join(root, "target", "release", BINARY_NAME), "path"))
        queue.append(_Lookup("workspace-debug", os.path.join(root, "target", "debug", BINARY_NAME), "path"))

    for item in queue:
        if item.kind == "command":
            resolved, seen = _resolve_command_on_path(item.candidate, env.get("PATH"))
            checked.extend(seen)
            if resolved:
                return BinaryResolution(
                    requested_path=requested,
                    resolved_path=resolved,
                    source=item.source,
                    checked_paths=tuple(_uniq(checked)),
                )
            continue

        for candidate in _absolute_candidates(item.candidate, base, here):
            checked.append(candidate)
            if _is_executable(candidate):
                return BinaryResolution(
                    requested_path=requested,
                    resolved_path=candidate,
                    source=item.source,
                    checked_paths=tuple(_uniq(checked)),
                )

    return BinaryResolution(
        requested_path=requested,
        resolved_path=None,
        source=None,
        checked_paths=tuple(_uniq(checked)),
    )
