"""CLI commands for polymarket-veto-mcp."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import typer
from loguru import logger

from polymarket_veto.config.loader import to_json_safe_config
from polymarket_veto.config.schema import ResolvedConfig
from polymarket_veto.policy.guard import GuardLoadError
from polymarket_veto.runtime.gateway import VetoRuntime
from polymarket_veto.tools.catalog import list_tools
from polymarket_veto.utils.logging import configure_logging

from .core import app, console, load_resolved_config, parse_simulation

ConfigOption = typer.Option(None, "--config", "-c", help="Path to polymarket-veto.config.yaml")
GuardOption = typer.Option(None, "--guard", help="Policy guard factory as module:callable")


def _print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, ensure_ascii=False))


def _build_runtime(resolved: ResolvedConfig) -> VetoRuntime:
    try:
        return VetoRuntime(resolved)
    except GuardLoadError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e


@app.command()
def serve(
    config: str | None = ConfigOption,
    policy_profile: str | None = typer.Option(
        None, "--policy-profile", help="defaults|conservative|agent|user"
    ),
    simulation: str | None = typer.Option(None, "--simulation", help="Force simulation on|off"),
    transport: str | None = typer.Option(None, "--transport", help="stdio|sse"),
    host: str | None = typer.Option(None, "--host", help="HTTP bind host (sse transport)"),
    port: int | None = typer.Option(None, "--port", min=1, max=65535, help="HTTP bind port (sse transport)"),
    guard: str | None = GuardOption,
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging to stderr"),
) -> None:
    """Serve Polymarket tools over MCP (stdio or HTTP)."""
    configure_logging(verbose)
    simulation_override = parse_simulation(simulation)
    resolved = load_resolved_config(
        config,
        policy_profile=policy_profile,
        transport=transport,
        host=host,
        port=port,
        guard_factory=guard,
    )
    runtime = _build_runtime(resolved)

    startup = runtime.get_startup_info()
    logger.info("Polymarket Veto MCP | profile={} | transport={}", startup["profile"], startup["transport"])
    logger.info(
        "Simulation default={} | liveAllowed={}",
        startup["simulationDefault"],
        startup["allowLiveTrades"],
    )
    if not startup["binaryAvailable"]:
        logger.warning("Polymarket binary unavailable. Run 'polymarket-veto-mcp doctor' for setup help.")

    if resolved.config.mcp.transport == "sse":
        from polymarket_veto.mcp.server import run_server

        run_server(runtime, simulation_override=simulation_override)
        return

    from polymarket_veto.mcp.stdio import serve_stdio

    asyncio.run(serve_stdio(runtime, simulation_override=simulation_override))


@app.command()
def doctor(config: str | None = ConfigOption, guard: str | None = GuardOption) -> None:
    """Check binary discovery and policy configuration."""
    configure_logging()
    runtime = _build_runtime(load_resolved_config(config, guard_factory=guard))
    report = asyncio.run(runtime.doctor())
    _print_json(report)
    if report["ok"] is not True:
        raise typer.Exit(1)


@app.command("print-config")
def print_config(config: str | None = ConfigOption) -> None:
    """Print the resolved configuration."""
    resolved = load_resolved_config(config)
    _print_json(
        {
            "configPath": str(resolved.path),
            "source": resolved.source,
            "config": to_json_safe_config(resolved.config),
        }
    )


@app.command("print-tools")
def print_tools() -> None:
    """Print the tool catalog exposed over MCP."""
    _print_json({"tools": [tool.to_mcp() for tool in list_tools()]})
