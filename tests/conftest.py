from pathlib import Path
from typing import Any, Callable

import pytest

from polymarket_veto.config.loader import convert_keys
from polymarket_veto.config.schema import ResolvedConfig, SidecarConfig
from polymarket_veto.core.models import ApprovalOutcome, ExecutionResult, GuardDecision
from polymarket_veto.runtime.gateway import VetoRuntime

BINARY = "/opt/polymarket/bin/polymarket"


def ok_result(argv: list[str], parsed: Any) -> ExecutionResult:
    return ExecutionResult(
        ok=True,
        exit_code=0,
        stdout="",
        stderr="",
        parsed=parsed,
        argv=("-o", "json", *argv),
        command_preview=f"{BINARY} -o json {' '.join(argv)}",
    )


def failed_result(argv: list[str], stderr: str, exit_code: int = 1) -> ExecutionResult:
    return ExecutionResult(
        ok=False,
        exit_code=exit_code,
        stdout="",
        stderr=stderr,
        parsed=None,
        argv=("-o", "json", *argv),
        command_preview=f"{BINARY} -o json {' '.join(argv)}",
    )


class RecordingGuard:
    def __init__(self, decision: GuardDecision | None = None) -> None:
        self.decision = decision or GuardDecision(decision="allow")
        self.calls: list[dict[str, Any]] = []

    async def guard(
        self,
        tool_name: str,
        args: dict[str, Any],
        *,
        session_id: str,
        agent_id: str,
    ) -> GuardDecision:
        self.calls.append(
            {"tool": tool_name, "args": args, "session_id": session_id, "agent_id": agent_id}
        )
        return self.decision


class FakeExecutor:
    """Records every CLI invocation; answers through ``handler`` when given."""

    def __init__(self, handler: Callable[[list[str]], ExecutionResult] | None = None) -> None:
        self.handler = handler
        self.calls: list[list[str]] = []
        self.timeouts: list[int] = []

    async def __call__(
        self,
        binary_path: str,
        argv: list[str] | tuple[str, ...],
        *,
        timeout_ms: int,
        max_output_bytes: int,
    ) -> ExecutionResult:
        args = list(argv)
        self.calls.append(args)
        self.timeouts.append(timeout_ms)
        if self.handler is not None:
            return self.handler(args)
        return ok_result(args, {"ok": True})


class FixedApproval:
    def __init__(self, status: str, resolved_by: str | None = None) -> None:
        self.outcome = ApprovalOutcome(status=status, resolved_by=resolved_by)  # type: ignore[arg-type]
        self.waited: list[str] = []

    async def wait(self, approval_id: str) -> ApprovalOutcome:
        self.waited.append(approval_id)
        return self.outcome


def make_resolved(base_dir: Path, raw: dict[str, Any] | None = None) -> ResolvedConfig:
    config = SidecarConfig.model_validate(convert_keys(raw or {}))
    return ResolvedConfig(
        path=base_dir / "polymarket-veto.config.yaml",
        base_dir=base_dir,
        source="file",
        config=config,
    )


@pytest.fixture
def make_runtime(tmp_path: Path) -> Callable[..., VetoRuntime]:
    def factory(
        *,
        guard: RecordingGuard | None = None,
        executor: FakeExecutor | None = None,
        execution: dict[str, Any] | None = None,
        env: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> VetoRuntime:
        resolved = make_resolved(
            tmp_path / "agent",
            {"polymarket": {"binaryPath": BINARY}, "execution": execution or {}},
        )
        return VetoRuntime(
            resolved,
            guard=guard or RecordingGuard(),
            execute=executor or FakeExecutor(),
            env={} if env is None else env,
            **kwargs,
        )

    return factory
