"""Domain models for the guarded execution core."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

type DecisionKind = Literal["allow", "deny", "require_approval"]
type ApprovalStatus = Literal["approved", "denied", "expired"]
type BinarySource = Literal["env", "config", "path", "workspace-release", "workspace-debug", "injected"]

TERMINAL_APPROVAL_STATUSES: frozenset[str] = frozenset({"approved", "denied", "expired"})


@dataclass(frozen=True, slots=True, kw_only=True)
class InvocationPlan:
    """Validated argv for the CLI plus the normalized guard arguments."""

    argv: tuple[str, ...]
    guard_args: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True, kw_only=True)
class GuardDecision:
    """Typed output of the external policy collaborator."""

    decision: DecisionKind
    reason: str | None = None
    rule_id: str | None = None
    approval_id: str | None = None

    @property
    def usable_approval_id(self) -> str | None:
        """Approval id if it can be polled, else None."""
        if isinstance(self.approval_id, str) and self.approval_id.strip():
            return self.approval_id
        return None


@dataclass(frozen=True, slots=True, kw_only=True)
class ApprovalOutcome:
    """Terminal approval state reported by the approval service."""

    status: ApprovalStatus
    resolved_by: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class BinaryResolution:
    """Result of locating the polymarket executable."""

    requested_path: str
    resolved_path: str | None
    source: BinarySource | None
    checked_paths: tuple[str, ...] = ()

    @property
    def available(self) -> bool:
        return bool(self.resolved_path)


@dataclass(frozen=True, slots=True, kw_only=True)
class ExecutionResult:
    """Outcome of one external CLI invocation."""

    ok: bool
    exit_code: int
    stdout: str
    stderr: str
    parsed: Any
    argv: tuple[str, ...]
    command_preview: str


@dataclass(frozen=True, slots=True, kw_only=True)
class LiveState:
    """Whether a call runs for real or is forced into simulation."""

    simulation: bool
    reason: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class RpcErrorShape:
    """JSON-RPC error object."""

    code: int
    message: str
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        return payload


@dataclass(frozen=True, slots=True, kw_only=True)
class ToolResult:
    """MCP tool result with a single JSON text block."""

    text: str
    is_error: bool = False

    def to_mcp(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"content": [{"type": "text", "text": self.text}]}
        if self.is_error:
            payload["isError"] = True
        return payload
