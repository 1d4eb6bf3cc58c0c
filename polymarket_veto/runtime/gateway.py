"""Decision gateway: policy, approval, simulation and execution for tool calls."""

from __future__ import annotations

import json
import math
import os
import time
from datetime import UTC, datetime
from typing import Any, Mapping

import httpx
from loguru import logger

from polymarket_veto.config.loader import load_approval_settings
from polymarket_veto.config.schema import ResolvedConfig
from polymarket_veto.core.errors import (
    ApprovalPollingFailedError,
    ApprovalRequiredError,
    BinaryUnavailableError,
    ExecutionFailedError,
    InvalidArgumentError,
    PolicyDeniedError,
    UnknownToolError,
    VetoRuntimeError,
    to_rpc_error,
)
from polymarket_veto.core.models import (
    ApprovalOutcome,
    BinaryResolution,
    ExecutionResult,
    InvocationPlan,
    LiveState,
    RpcErrorShape,
    ToolResult,
)
from polymarket_veto.core.ports import ApprovalPort, ExecutePort, GuardPort
from polymarket_veto.policy.guard import create_guard, profile_agent_id
from polymarket_veto.runtime.approval import ApprovalPoller
from polymarket_veto.runtime.binary import resolve_polymarket_binary
from polymarket_veto.runtime.executor import execute_polymarket
from polymarket_veto.tools.catalog import OperationSpec, get_tool_spec, list_tools

LIVE_TRADES_ENV = "ALLOW_LIVE_TRADES"
PRICED_TOOLS = frozenset({"order_market", "order_create_limit"})
MIDPOINT_KEYS = ("midpoint", "mid", "price")
ESTIMATE_DIGITS = 6
MIDPOINT_TIMEOUT_MS = 5_000
DOCTOR_TIMEOUT_MS = 4_000

BINARY_FIXES = (
    "Install Polymarket CLI globally (for macOS/Linux: 'brew install polymarket').",
    "Or build this repo binary: 'cargo build --release' and use './target/release/polymarket'.",
    "Or set POLYMARKET_BINARY_PATH to a valid executable.",
    "Or set polymarket.binaryPath in veto-agent/polymarket-veto.config.yaml.",
)


def json_text(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str) and value.strip():
        try:
            parsed = float(value)
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def extract_midpoint(value: Any) -> float | None:
    """First numeric value among the known midpoint aliases."""
    if not isinstance(value, dict):
        return None
    for key in MIDPOINT_KEYS:
        number = as_number(value.get(key))
        if number is not None:
            return number
    return None


class VetoRuntime:
    """Guarded execution pipeline for Polymarket CLI tools.

    One ``call_tool`` runs: build -> guard -> optional approval wait ->
    binary check -> live/simulation gate -> simulate or execute. The resolved
    binary and configuration are the only state shared between calls.
    """

    def __init__(
        self,
        resolved: ResolvedConfig,
        *,
        guard: GuardPort | None = None,
        execute: ExecutePort | None = None,
        approval: ApprovalPort | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.resolved = resolved
        self.session_id = f"session-{int(time.time() * 1000):x}"
        self.agent_id = profile_agent_id(resolved.config.veto.policy_profile)
        self._env = env
        self._http_transport = http_transport
        self._approval = approval
        self._execute: ExecutePort = execute or execute_polymarket

        self._guard = guard if guard is not None else create_guard(resolved)

        configured = resolved.config.polymarket.binary_path
        if execute is not None:
            self.binary = BinaryResolution(
                requested_path=configured,
                resolved_path=configured,
                source="injected",
            )
        else:
            self.binary = resolve_polymarket_binary(configured, resolved.base_dir, env=self.env)

        if self.binary.available:
            logger.info("Polymarket binary={} (source={})", self.binary.resolved_path, self.binary.source)
        else:
            logger.warning(
                "Polymarket binary not found (requested={}, checked {} paths)",
                self.binary.requested_path,
                len(self.binary.checked_paths),
            )

    @property
    def env(self) -> Mapping[str, str]:
        return os.environ if self._env is None else self._env

    # -- discovery ----------------------------------------------------------

    def list_tools(self) -> list[dict[str, Any]]:
        return [tool.to_mcp() for tool in list_tools()]

    def get_startup_info(self) -> dict[str, Any]:
        config = self.resolved.config
        return {
            "configPath": str(self.resolved.path),
            "configSource": self.resolved.source,
            "profile": config.veto.policy_profile,
            "agentId": self.agent_id,
            "simulationDefault": config.execution.simulation_default,
            "allowLiveTrades": config.execution.allow_live_trades,
            "transport": config.mcp.transport,
            "host": config.mcp.host,
            "port": config.mcp.port,
            "path": config.mcp.path,
            "binaryPath": self.binary.resolved_path or config.polymarket.binary_path,
            "binaryRequestedPath": self.binary.requested_path,
            "binaryResolvedPath": self.binary.resolved_path,
            "binarySource": self.binary.source,
            "binaryAvailable": self.binary.available,
        }

    async def doctor(self) -> dict[str, Any]:
        """Probe the binary and the policy config; ``ok`` only if all are healthy."""
        probe: ExecutionResult | None = None
        if self.binary.resolved_path:
            probe = await self._execute(
                self.binary.resolved_path,
                ["--version"],
                timeout_ms=min(self.resolved.config.execution.max_command_timeout_ms, DOCTOR_TIMEOUT_MS),
                max_output_bytes=self.resolved.config.execution.max_output_bytes,
            )

        veto_config_path = self.resolved.veto_config_path
        rules_dir = self.resolved.rules_dir
        binary_ok = probe is not None and probe.ok

        if probe is not None:
            stderr = probe.stderr.strip()
        else:
            stderr = "" if self.binary.resolved_path else self._binary_missing_message()

        return {
            "ok": binary_ok and veto_config_path.exists() and rules_dir.exists(),
            "binary": {
                "requestedPath": self.binary.requested_path,
                "resolvedPath": self.binary.resolved_path,
                "source": self.binary.source,
                "checkedPaths": list(self.binary.checked_paths),
                "ok": binary_ok,
                "exitCode": probe.exit_code if probe is not None else -1,
                "stdout": probe.stdout.strip() if probe is not None else "",
                "stderr": stderr,
                "fixes": list(BINARY_FIXES),
            },
            "veto": {
                "configDir": str(self.resolved.veto_config_dir),
                "configPath": str(veto_config_path),
                "configExists": veto_config_path.exists(),
                "rulesDir": str(rules_dir),
                "rulesDirExists": rules_dir.exists(),
                "profile": self.resolved.config.veto.policy_profile,
                "agentId": self.agent_id,
                "guard": type(self._guard).__name__,
                "guardFactory": self.resolved.config.veto.guard_factory,
            },
            "runtime": self.get_startup_info(),
        }

    # -- tool calls ---------------------------------------------------------

    async def call_tool(
        self,
        tool_name: str,
        args: dict[str, Any] | None = None,
        simulation_override: bool | None = None,
    ) -> ToolResult:
        spec = get_tool_spec(tool_name)
        if spec is None:
            raise UnknownToolError(f"Unknown tool '{tool_name}'")

        try:
            plan = spec.build(args)
        except InvalidArgumentError:
            raise
        except (TypeError, ValueError) as e:
            raise InvalidArgumentError(str(e) or "Invalid tool arguments") from e

        await self._authorize(spec, plan)

        binary_path = self._require_binary_path()
        live_state = self.resolve_live_state(spec, simulation_override)

        if spec.mutating and live_state.simulation:
            logger.info("Simulating {} ({})", spec.name, live_state.reason)
            simulation = await self.simulate(spec, plan, binary_path, live_state.reason)
            return ToolResult(text=json_text(simulation))

        logger.info("Executing {} (live={})", spec.name, spec.mutating)
        execution = await self._execute(
            binary_path,
            list(plan.argv),
            timeout_ms=self.resolved.config.execution.max_command_timeout_ms,
            max_output_bytes=self.resolved.config.execution.max_output_bytes,
        )

        if not execution.ok:
            logger.warning("Command failed for {} (exit {}): {}", spec.name, execution.exit_code, execution.stderr)
            raise ExecutionFailedError(
                f"Command failed: {execution.stderr or f'exit code {execution.exit_code}'}",
                data={
                    "command": execution.command_preview,
                    "exitCode": execution.exit_code,
                    "stderr": execution.stderr,
                },
            )

        return ToolResult(
            text=json_text(
                {
                    "live": spec.mutating,
                    "tool": spec.name,
                    "command": execution.command_preview,
                    "output": execution.parsed,
                }
            )
        )

    async def _authorize(self, spec: OperationSpec, plan: InvocationPlan) -> None:
        """Raise unless policy (and, if required, an approval) lets the call proceed."""
        guard_args = {**plan.guard_args, "timestamp": datetime.now(UTC).isoformat()}
        decision = await self._guard.guard(
            spec.name,
            guard_args,
            session_id=self.session_id,
            agent_id=self.agent_id,
        )
        logger.info("Policy decision for {}: {} ({})", spec.name, decision.decision, decision.reason or "-")

        if decision.decision == "deny":
            raise PolicyDeniedError(
                f"Denied by policy: {decision.reason or 'policy violation'}",
                data={"ruleId": decision.rule_id},
            )

        if decision.decision != "require_approval":
            return

        approval_id = decision.usable_approval_id
        if approval_id is None:
            raise ApprovalRequiredError(
                f"Approval required: {decision.reason or 'awaiting approval'}",
                data={"ruleId": decision.rule_id},
            )

        try:
            outcome = await self._wait_for_approval(approval_id)
        except VetoRuntimeError:
            raise
        except Exception as e:
            raise ApprovalPollingFailedError(
                f"Approval polling failed: {e}",
                data={"ruleId": decision.rule_id, "approvalId": approval_id},
            ) from e

        if outcome.status != "approved":
            raise PolicyDeniedError(
                f"Denied by policy: Approval {outcome.status}: {decision.reason or 'approval not granted'}",
                data={
                    "ruleId": decision.rule_id,
                    "approvalId": approval_id,
                    "resolvedBy": outcome.resolved_by,
                },
            )

    async def _wait_for_approval(self, approval_id: str) -> ApprovalOutcome:
        if self._approval is not None:
            return await self._approval.wait(approval_id)
        settings = load_approval_settings(self.resolved, dict(self.env))
        logger.info("Waiting for approval {} via {}", approval_id, settings.base_url)
        poller = ApprovalPoller(settings, transport=self._http_transport)
        return await poller.wait(approval_id)

    def resolve_live_state(self, spec: OperationSpec, simulation_override: bool | None = None) -> LiveState:
        """Mutating tools run live only if every gate says so."""
        if not spec.mutating:
            return LiveState(simulation=False)

        execution = self.resolved.config.execution
        simulation_enabled = (
            simulation_override if simulation_override is not None else execution.simulation_default
        )
        if simulation_enabled:
            return LiveState(simulation=True, reason="simulation mode enabled")
        if not execution.allow_live_trades:
            return LiveState(simulation=True, reason="live trading disabled in config")
        if (self.env.get(LIVE_TRADES_ENV) or "").lower() != "true":
            return LiveState(simulation=True, reason=f"{LIVE_TRADES_ENV}=true not set")
        return LiveState(simulation=False)

    async def simulate(
        self,
        spec: OperationSpec,
        plan: InvocationPlan,
        binary_path: str,
        reason: str | None = None,
    ) -> dict[str, Any]:
        """Estimate a mutating call without running it."""
        out: dict[str, Any] = {
            "simulation": True,
            "reason": reason,
            "tool": spec.name,
            "command": f"{binary_path} -o json {' '.join(plan.argv)}",
            "guardArgs": dict(plan.guard_args),
            "liveTrading": False,
        }

        token = plan.guard_args.get("token")
        if spec.name not in PRICED_TOOLS or not isinstance(token, str) or not token:
            return out

        execution = self.resolved.config.execution
        probe = await self._execute(
            binary_path,
            ["clob", "midpoint", token],
            timeout_ms=min(execution.max_command_timeout_ms, MIDPOINT_TIMEOUT_MS),
            max_output_bytes=execution.max_output_bytes,
        )

        if not probe.ok:
            logger.warning("Midpoint lookup for {} failed (exit {})", token, probe.exit_code)
            out["marketReference"] = {
                "token": token,
                "warning": probe.stderr or f"midpoint lookup failed with code {probe.exit_code}",
            }
            return out

        midpoint = extract_midpoint(probe.parsed)
        out["marketReference"] = {"token": token, "midpoint": midpoint, "raw": probe.parsed}

        if spec.name == "order_market":
            amount = as_number(plan.guard_args.get("amount"))
            if amount is not None and midpoint is not None and midpoint > 0:
                out["estimatedShares"] = round(amount / midpoint, ESTIMATE_DIGITS)

        if spec.name == "order_create_limit":
            price = as_number(plan.guard_args.get("price"))
            size = as_number(plan.guard_args.get("size"))
            if price is not None and size is not None:
                out["estimatedNotionalUsd"] = round(price * size, ESTIMATE_DIGITS)
            if price is not None and midpoint is not None:
                out["priceVsMidpoint"] = round(price - midpoint, ESTIMATE_DIGITS)

        return out

    # -- errors -------------------------------------------------------------

    def _binary_missing_message(self) -> str:
        return " ".join(
            [
                "Polymarket CLI binary not found.",
                f"requested='{self.binary.requested_path}'",
                f"checked={len(self.binary.checked_paths)}",
                "Run 'polymarket-veto-mcp doctor' for detailed diagnostics.",
            ]
        )

    def _require_binary_path(self) -> str:
        if self.binary.resolved_path:
            return self.binary.resolved_path
        raise BinaryUnavailableError(
            self._binary_missing_message(),
            data={
                "requestedPath": self.binary.requested_path,
                "checkedPaths": list(self.binary.checked_paths),
                "fixes": list(BINARY_FIXES),
            },
        )

    @staticmethod
    def to_rpc_error(error: BaseException | object) -> RpcErrorShape:
        return to_rpc_error(error)
