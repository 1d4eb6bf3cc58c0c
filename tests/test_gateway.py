import json
from pathlib import Path

import httpx
import pytest

from conftest import BINARY, FakeExecutor, FixedApproval, RecordingGuard, failed_result, make_resolved, ok_result
from polymarket_veto.core.errors import (
    ApprovalPollingFailedError,
    ApprovalRequiredError,
    BinaryUnavailableError,
    ExecutionFailedError,
    InvalidArgumentError,
    PolicyDeniedError,
    UnknownToolError,
)
from polymarket_veto.core.models import GuardDecision
from polymarket_veto.runtime.gateway import VetoRuntime, extract_midpoint
from polymarket_veto.tools.catalog import MUTATING_TOOLS

LIVE = {"simulationDefault": False, "allowLiveTrades": True}
LIVE_ENV = {"ALLOW_LIVE_TRADES": "true"}

SAMPLE_ARGS = {
    "order_create_limit": {"token": "1", "side": "buy", "price": 0.5, "size": 10},
    "order_market": {"token": "1", "side": "buy", "amount": 20},
    "order_cancel": {"orderId": "abc"},
    "order_cancel_all": {},
    "approve_set": {},
    "ctf_split": {"condition": "0xc", "amount": 1},
    "ctf_merge": {"condition": "0xc", "amount": 1},
    "ctf_redeem": {"condition": "0xc"},
}


def _payload(result) -> dict:
    return json.loads(result.text)


def _midpoint(value: dict):
    def handler(argv: list[str]):
        if argv[:2] == ["clob", "midpoint"]:
            return ok_result(argv, value)
        return ok_result(argv, {"orderId": "live-1"})

    return handler


@pytest.mark.parametrize("tool", [spec.name for spec in MUTATING_TOOLS])
async def test_deny_never_executes(make_runtime, tool: str) -> None:
    executor = FakeExecutor()
    guard = RecordingGuard(GuardDecision(decision="deny", reason="too big", rule_id="max-size"))
    runtime = make_runtime(guard=guard, executor=executor, execution=LIVE, env=LIVE_ENV)

    with pytest.raises(PolicyDeniedError) as excinfo:
        await runtime.call_tool(tool, SAMPLE_ARGS[tool])

    assert excinfo.value.code == -32001
    assert excinfo.value.message == "Denied by policy: too big"
    assert excinfo.value.data == {"ruleId": "max-size"}
    assert executor.calls == []


async def test_guard_sees_normalized_args_and_identity(make_runtime) -> None:
    guard = RecordingGuard()
    runtime = make_runtime(guard=guard)

    await runtime.call_tool("order_create_limit", SAMPLE_ARGS["order_create_limit"])

    call = guard.calls[0]
    assert call["tool"] == "order_create_limit"
    assert call["agent_id"] == "profile/defaults"
    assert call["session_id"] == runtime.session_id
    assert call["args"]["amount_usd"] == 5
    assert "timestamp" in call["args"]


async def test_unknown_tool_and_bad_args_skip_the_guard(make_runtime) -> None:
    guard = RecordingGuard()
    runtime = make_runtime(guard=guard)

    with pytest.raises(UnknownToolError, match="Unknown tool 'wallet_reset'"):
        await runtime.call_tool("wallet_reset", {})
    with pytest.raises(InvalidArgumentError) as excinfo:
        await runtime.call_tool("markets_get", {"market": "abc", "unexpected": True})

    assert excinfo.value.code == -32602
    assert guard.calls == []


@pytest.mark.parametrize("approval_id", [None, "", "   "])
async def test_approval_without_id_is_surfaced(make_runtime, approval_id) -> None:
    executor = FakeExecutor()
    approval = FixedApproval("approved")
    guard = RecordingGuard(
        GuardDecision(decision="require_approval", reason="large order", rule_id="r1", approval_id=approval_id)
    )
    runtime = make_runtime(guard=guard, executor=executor, approval=approval)

    with pytest.raises(ApprovalRequiredError) as excinfo:
        await runtime.call_tool("order_market", SAMPLE_ARGS["order_market"])

    assert excinfo.value.code == -32002
    assert excinfo.value.message == "Approval required: large order"
    assert approval.waited == []
    assert executor.calls == []


async def test_approved_call_proceeds(make_runtime) -> None:
    executor = FakeExecutor()
    approval = FixedApproval("approved", resolved_by="alice")
    guard = RecordingGuard(GuardDecision(decision="require_approval", reason="review", approval_id="apr-9"))
    runtime = make_runtime(guard=guard, executor=executor, approval=approval)

    result = await runtime.call_tool("markets_get", {"market": "abc"})

    assert approval.waited == ["apr-9"]
    assert executor.calls == [["markets", "get", "abc"]]
    assert _payload(result)["live"] is False


@pytest.mark.parametrize("status", ["denied", "expired"])
async def test_unapproved_outcome_is_a_denial(make_runtime, status: str) -> None:
    executor = FakeExecutor()
    guard = RecordingGuard(
        GuardDecision(decision="require_approval", reason="review", rule_id="r2", approval_id="apr-9")
    )
    runtime = make_runtime(guard=guard, executor=executor, approval=FixedApproval(status, resolved_by="bob"))

    with pytest.raises(PolicyDeniedError) as excinfo:
        await runtime.call_tool("order_cancel", {"orderId": "abc"})

    assert excinfo.value.message == f"Denied by policy: Approval {status}: review"
    assert excinfo.value.data == {"ruleId": "r2", "approvalId": "apr-9", "resolvedBy": "bob"}
    assert executor.calls == []


async def test_unexpected_approval_failure_is_wrapped(make_runtime) -> None:
    class BrokenApproval:
        async def wait(self, approval_id: str):
            raise RuntimeError("socket closed")

    guard = RecordingGuard(GuardDecision(decision="require_approval", approval_id="apr-1"))
    runtime = make_runtime(guard=guard, approval=BrokenApproval())

    with pytest.raises(ApprovalPollingFailedError, match="Approval polling failed: socket closed") as excinfo:
        await runtime.call_tool("markets_get", {"market": "abc"})

    assert excinfo.value.code == -32003


async def test_missing_api_key_cannot_wait_for_approval(make_runtime) -> None:
    guard = RecordingGuard(GuardDecision(decision="require_approval", approval_id="apr-1"))
    runtime = make_runtime(guard=guard, env={})

    with pytest.raises(ApprovalRequiredError, match="VETO_API_KEY"):
        await runtime.call_tool("markets_get", {"market": "abc"})


async def test_approval_client_error_surfaces_status(make_runtime, tmp_path: Path) -> None:
    veto_dir = tmp_path / "veto"
    veto_dir.mkdir()
    (veto_dir / "veto.config.yaml").write_text("cloud:\n  baseUrl: https://veto.test/\n")
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(403, text="forbidden")

    executor = FakeExecutor()
    guard = RecordingGuard(GuardDecision(decision="require_approval", approval_id="apr-1"))
    runtime = make_runtime(
        guard=guard,
        executor=executor,
        env={"VETO_API_KEY": "key"},
        http_transport=httpx.MockTransport(handler),
    )

    with pytest.raises(ApprovalPollingFailedError) as excinfo:
        await runtime.call_tool("order_cancel_all", {})

    assert excinfo.value.code == -32003
    assert "status 403" in excinfo.value.message
    assert len(requests) == 1
    assert str(requests[0].url) == "https://veto.test/v1/approvals/apr-1"
    assert executor.calls == []


async def test_market_order_simulation_probes_midpoint_only(make_runtime) -> None:
    executor = FakeExecutor(_midpoint({"midpoint": "0.5"}))
    runtime = make_runtime(executor=executor)

    payload = _payload(await runtime.call_tool("order_market", SAMPLE_ARGS["order_market"]))

    assert executor.calls == [["clob", "midpoint", "1"]]
    assert executor.timeouts == [5000]
    assert payload["simulation"] is True
    assert payload["liveTrading"] is False
    assert payload["reason"] == "simulation mode enabled"
    assert payload["estimatedShares"] == 40
    assert payload["marketReference"]["midpoint"] == 0.5
    assert payload["command"] == f"{BINARY} -o json clob market-order --token 1 --side buy --amount 20"


async def test_limit_order_simulation_estimates(make_runtime) -> None:
    executor = FakeExecutor(_midpoint({"mid": "0.45"}))
    runtime = make_runtime(executor=executor)

    payload = _payload(await runtime.call_tool("order_create_limit", SAMPLE_ARGS["order_create_limit"]))

    assert payload["estimatedNotionalUsd"] == 5
    assert payload["priceVsMidpoint"] == 0.05
    assert "estimatedShares" not in payload


async def test_midpoint_failure_becomes_a_warning(make_runtime) -> None:
    executor = FakeExecutor(lambda argv: failed_result(argv, "no orderbook", exit_code=2))
    runtime = make_runtime(executor=executor)

    payload = _payload(await runtime.call_tool("order_market", SAMPLE_ARGS["order_market"]))

    assert payload["simulation"] is True
    assert payload["marketReference"] == {"token": "1", "warning": "no orderbook"}
    assert "estimatedShares" not in payload


async def test_simulation_without_price_skips_the_probe(make_runtime) -> None:
    executor = FakeExecutor()
    runtime = make_runtime(executor=executor)

    payload = _payload(await runtime.call_tool("ctf_redeem", {"condition": "0xc"}))

    assert executor.calls == []
    assert payload["guardArgs"] == {"condition": "0xc"}


@pytest.mark.parametrize(
    ("override", "execution", "env", "reason"),
    [
        (True, LIVE, LIVE_ENV, "simulation mode enabled"),
        (None, {**LIVE, "simulationDefault": True}, LIVE_ENV, "simulation mode enabled"),
        (False, {"simulationDefault": False, "allowLiveTrades": False}, LIVE_ENV, "live trading disabled in config"),
        (None, LIVE, {}, "ALLOW_LIVE_TRADES=true not set"),
        (None, LIVE, {"ALLOW_LIVE_TRADES": "1"}, "ALLOW_LIVE_TRADES=true not set"),
    ],
)
async def test_any_closed_gate_forces_simulation(make_runtime, override, execution, env, reason) -> None:
    executor = FakeExecutor()
    runtime = make_runtime(executor=executor, execution=execution, env=env)

    payload = _payload(await runtime.call_tool("order_cancel", {"orderId": "abc"}, override))

    assert payload["simulation"] is True
    assert payload["reason"] == reason
    assert executor.calls == []


async def test_all_gates_open_runs_live(make_runtime) -> None:
    executor = FakeExecutor(_midpoint({"midpoint": 0.5}))
    runtime = make_runtime(executor=executor, execution={"allowLiveTrades": True}, env={"ALLOW_LIVE_TRADES": "TRUE"})

    payload = _payload(await runtime.call_tool("order_market", SAMPLE_ARGS["order_market"], False))

    assert executor.calls == [["clob", "market-order", "--token", "1", "--side", "buy", "--amount", "20"]]
    assert executor.timeouts == [15000]
    assert payload == {
        "live": True,
        "tool": "order_market",
        "command": f"{BINARY} -o json clob market-order --token 1 --side buy --amount 20",
        "output": {"orderId": "live-1"},
    }


async def test_read_only_tools_ignore_simulation_override(make_runtime) -> None:
    executor = FakeExecutor(lambda argv: ok_result(argv, {"bids": []}))
    runtime = make_runtime(executor=executor)

    payload = _payload(await runtime.call_tool("clob_book", {"token": "7"}, True))

    assert executor.calls == [["clob", "book", "7"]]
    assert payload["live"] is False
    assert payload["output"] == {"bids": []}


async def test_failed_command_raises_execution_error(make_runtime) -> None:
    executor = FakeExecutor(lambda argv: failed_result(argv, "market not found", exit_code=2))
    runtime = make_runtime(executor=executor)

    with pytest.raises(ExecutionFailedError) as excinfo:
        await runtime.call_tool("markets_get", {"market": "nope"})

    assert excinfo.value.code == -32003
    assert excinfo.value.message == "Command failed: market not found"
    assert excinfo.value.data["exitCode"] == 2


async def test_missing_binary_is_reported_after_policy(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    guard = RecordingGuard()
    resolved = make_resolved(tmp_path / "agent", {"polymarket": {"binaryPath": "missing/polymarket"}})
    runtime = VetoRuntime(resolved, guard=guard, env={"PATH": ""})

    with pytest.raises(BinaryUnavailableError) as excinfo:
        await runtime.call_tool("markets_get", {"market": "abc"})

    assert excinfo.value.code == -32003
    assert len(guard.calls) == 1
    assert excinfo.value.data["requestedPath"] == "missing/polymarket"
    assert excinfo.value.data["checkedPaths"]
    assert runtime.get_startup_info()["binaryAvailable"] is False


async def test_doctor_reports_binary_and_policy_paths(make_runtime, tmp_path: Path) -> None:
    executor = FakeExecutor(lambda argv: ok_result(argv, "polymarket 0.1.0"))
    runtime = make_runtime(executor=executor)

    report = await runtime.doctor()
    assert report["ok"] is False
    assert report["binary"]["ok"] is True
    assert report["veto"]["configExists"] is False
    assert executor.calls == [["--version"]]
    assert executor.timeouts == [4000]

    (tmp_path / "veto" / "rules").mkdir(parents=True)
    (tmp_path / "veto" / "veto.config.yaml").write_text("version: 1\n")

    report = await runtime.doctor()
    assert report["ok"] is True
    assert report["veto"]["configDir"] == str((tmp_path / "veto").resolve())


def test_to_rpc_error_falls_back_to_internal() -> None:
    assert VetoRuntime.to_rpc_error(ValueError("boom")).to_dict() == {"code": -32603, "message": "boom"}
    assert VetoRuntime.to_rpc_error(PolicyDeniedError("nope")).code == -32001
    assert VetoRuntime.to_rpc_error("weird").message == "Unknown runtime error"


def test_extract_midpoint_prefers_known_keys_in_order() -> None:
    assert extract_midpoint({"price": "0.7", "mid": "0.4"}) == 0.4
    assert extract_midpoint({"midpoint": "x", "price": 0.3}) == 0.3
    assert extract_midpoint("0.5") is None


async def test_unsafe_arguments_never_reach_the_executor(make_runtime) -> None:
    executor = FakeExecutor(_midpoint({"midpoint": "0.5"}))
    guard = RecordingGuard()
    runtime = make_runtime(guard=guard, executor=executor)

    with pytest.raises(InvalidArgumentError) as nul_token:
        await runtime.call_tool("order_market", {"token": "a\x00b", "side": "buy", "amount": 20})
    with pytest.raises(InvalidArgumentError) as huge_amount:
        await runtime.call_tool("order_market", {"token": "1", "side": "buy", "amount": 10**400})

    assert nul_token.value.code == -32602
    assert huge_amount.value.code == -32602
    assert "'amount'" in huge_amount.value.message
    assert guard.calls == []
    assert executor.calls == []
