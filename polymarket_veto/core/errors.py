"""Runtime error taxonomy mapped onto JSON-RPC error codes."""

from __future__ import annotations

from typing import Any

from polymarket_veto.core.models import RpcErrorShape

POLICY_DENIED = -32001
APPROVAL_REQUIRED = -32002
EXECUTION_FAILED = -32003
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
INVALID_REQUEST = -32600
PARSE_ERROR = -32700


class VetoRuntimeError(Exception):
    """Base error carrying a well-formed JSON-RPC error shape."""

    code: int = INTERNAL_ERROR

    def __init__(self, message: str, *, data: Any = None, code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.data = data
        if code is not None:
            self.code = code

    @property
    def shape(self) -> RpcErrorShape:
        return RpcErrorShape(code=self.code, message=self.message, data=self.data)


class UnknownToolError(VetoRuntimeError):
    """Requested tool name is not in the catalog."""

    code = METHOD_NOT_FOUND


class InvalidArgumentError(VetoRuntimeError, ValueError):
    """Tool arguments failed closed-schema validation."""

    code = INVALID_PARAMS


class PolicyDeniedError(VetoRuntimeError):
    """Policy denied the call, or an approval resolved as denied/expired."""

    code = POLICY_DENIED


class ApprovalRequiredError(VetoRuntimeError):
    """Approval is required but cannot be awaited."""

    code = APPROVAL_REQUIRED


class ApprovalPollingFailedError(VetoRuntimeError):
    """Approval service returned a client error or never became reachable."""

    code = EXECUTION_FAILED


class BinaryUnavailableError(VetoRuntimeError):
    """The polymarket binary could not be located."""

    code = EXECUTION_FAILED


class ExecutionFailedError(VetoRuntimeError):
    """The CLI exited non-zero, timed out or exceeded the output cap."""

    code = EXECUTION_FAILED


def to_rpc_error(error: BaseException | object) -> RpcErrorShape:
    """Map any raised object to a JSON-RPC error shape."""
    if isinstance(error, VetoRuntimeError):
        return error.shape
    if isinstance(error, Exception):
        return RpcErrorShape(code=INTERNAL_ERROR, message=str(error))
    return RpcErrorShape(code=INTERNAL_ERROR, message="Unknown runtime error", data={"error": repr(error)})
