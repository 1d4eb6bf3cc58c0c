"""Port interfaces for the guarded execution core."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol

from polymarket_veto.core.models import ApprovalOutcome, ExecutionResult, GuardDecision


class GuardPort(Protocol):
    """Policy evaluation port."""

    async def guard(
        self,
        tool_name: str,
        args: dict[str, Any],
        *,
        session_id: str,
        agent_id: str,
    ) -> GuardDecision:
        """Evaluate one tool call and return a typed decision."""


class ApprovalPort(Protocol):
    """Approval wait port."""

    async def wait(self, approval_id: str) -> ApprovalOutcome:
        """Block until the approval reaches a terminal status."""


class ExecutePort(Protocol):
    """Process execution port."""

    async def __call__(
        self,
        binary_path: str,
        argv: list[str] | tuple[str, ...],
        *,
        timeout_ms: int,
        max_output_bytes: int,
    ) -> ExecutionResult:
        """Run the CLI once and return a classified result."""


type Clock = Callable[[], float]
type Sleeper = Callable[[float], Awaitable[None]]
