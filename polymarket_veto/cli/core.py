"""Shared CLI application context and setup helpers."""

from __future__ import annotations

import typer
from rich.console import Console

from polymarket_veto import __logo__, __version__
from polymarket_veto.config.loader import load_config
from polymarket_veto.config.schema import MCP_TRANSPORTS, POLICY_PROFILES, ResolvedConfig

app = typer.Typer(
    name="polymarket-veto-mcp",
    help=f"{__logo__} polymarket-veto-mcp - policy-guarded Polymarket CLI tools over MCP",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    if value:
        console.print(f"{__logo__} polymarket-veto-mcp v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(None, "--version", "-v", callback=version_callback, is_eager=True),
) -> None:
    """polymarket-veto-mcp - policy-guarded Polymarket CLI tools over MCP."""


def parse_simulation(value: str | None) -> bool | None:
    if not value:
        return None
    if value == "on":
        return True
    if value == "off":
        return False
    raise typer.BadParameter("Expected on|off.", param_hint="--simulation")


def load_resolved_config(
    config_path: str | None,
    *,
    policy_profile: str | None = None,
    transport: str | None = None,
    host: str | None = None,
    port: int | None = None,
    guard_factory: str | None = None,
) -> ResolvedConfig:
    """Load config and apply command-line overrides."""
    resolved = load_config(config_path)
    cfg = resolved.config

    if policy_profile:
        if policy_profile not in POLICY_PROFILES:
            raise typer.BadParameter(f"Expected {'|'.join(POLICY_PROFILES)}.", param_hint="--policy-profile")
        cfg.veto.policy_profile = policy_profile  # type: ignore[assignment]

    if transport:
        if transport not in MCP_TRANSPORTS:
            raise typer.BadParameter(f"Expected {'|'.join(MCP_TRANSPORTS)}.", param_hint="--transport")
        cfg.mcp.transport = transport  # type: ignore[assignment]

    if host:
        cfg.mcp.host = host

    if port is not None:
        cfg.mcp.port = port

    if guard_factory:
        cfg.veto.guard_factory = guard_factory

    return resolved
