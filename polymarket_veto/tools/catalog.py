"""Fixed catalog of Polymarket CLI tools exposed over MCP."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from polymarket_veto.core.models import InvocationPlan
from polymarket_veto.tools.validation import (
    ORDER_TYPES,
    SIDES,
    as_order_type,
    as_positive_number,
    as_side,
    as_string,
    assert_allowed_fields,
    compact,
    format_number,
    maybe_bool,
    maybe_positive_number,
    maybe_string,
    to_flag_bool,
)

NOTIONAL_DIGITS = 8


@dataclass(frozen=True, slots=True, kw_only=True)
class OperationSpec:
    """One named tool: schema, mutability and a pure argv builder."""

    name: str
    description: str
    mutating: bool
    input_schema: dict[str, Any]
    builder: Callable[[dict[str, Any]], InvocationPlan]

    def build(self, args: dict[str, Any] | None) -> InvocationPlan:
        return self.builder(dict(args or {}))

    def to_mcp(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


def _schema(properties: dict[str, Any] | None = None, required: list[str] | None = None) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "object"}
    if required:
        schema["required"] = required
    if properties:
        schema["properties"] = properties
    schema["additionalProperties"] = False
    return schema


_STRING = {"type": "string"}
_BOOL = {"type": "boolean"}
_POSITIVE = {"type": "number", "minimum": 0}
_LIMIT = {"type": "number", "minimum": 1}
_SIDE = {"type": "string", "enum": list(SIDES)}


# -- read-only builders -----------------------------------------------------


def _build_markets_list(args: dict[str, Any]) -> InvocationPlan:
    assert_allowed_fields(args, ("limit", "active", "closed"))
    limit = maybe_positive_number(args.get("limit"), "limit")
    active = maybe_bool(args.get("active"), "active")
    closed = maybe_bool(args.get("closed"), "closed")
    argv = ["markets", "list"]
    if limit is not None:
        argv += ["--limit", format_number(limit)]
    if active is not None:
        argv += ["--active", to_flag_bool(active)]
    if closed is not None:
        argv += ["--closed", to_flag_bool(closed)]
    return InvocationPlan(
        argv=tuple(argv),
        guard_args=compact({"limit": limit, "active": active, "closed": closed}),
    )


def _build_markets_search(args: dict[str, Any]) -> InvocationPlan:
    assert_allowed_fields(args, ("query", "limit"))
    query = as_string(args.get("query"), "query")
    limit = maybe_positive_number(args.get("limit"), "limit")
    argv = ["markets", "search", query]
    if limit is not None:
        argv += ["--limit", format_number(limit)]
    return InvocationPlan(argv=tuple(argv), guard_args=compact({"query": query, "limit": limit}))


def _build_markets_get(args: dict[str, Any]) -> InvocationPlan:
    assert_allowed_fields(args, ("market",))
    market = as_string(args.get("market"), "market")
    return InvocationPlan(argv=("markets", "get", market), guard_args={"market": market})


def _build_clob_book(args: dict[str, Any]) -> InvocationPlan:
    assert_allowed_fields(args, ("token",))
    token = as_string(args.get("token"), "token")
    return InvocationPlan(argv=("clob", "book", token), guard_args={"token": token})


def _build_clob_midpoint(args: dict[str, Any]) -> InvocationPlan:
    assert_allowed_fields(args, ("token",))
    token = as_string(args.get("token"), "token")
    return InvocationPlan(argv=("clob", "midpoint", token), guard_args={"token": token})


def _build_clob_price(args: dict[str, Any]) -> InvocationPlan:
    assert_allowed_fields(args, ("token", "side"))
    token = as_string(args.get("token"), "token")
    side = as_side(args.get("side"), "side")
    return InvocationPlan(
        argv=("clob", "price", token, "--side", side),
        guard_args={"token": token, "side": side},
    )


def _build_portfolio_positions(args: dict[str, Any]) -> InvocationPlan:
    assert_allowed_fields(args, ("address",))
    address = as_string(args.get("address"), "address")
    return InvocationPlan(argv=("data", "positions", address), guard_args={"address": address})


# -- mutating builders ------------------------------------------------------


def _build_order_create_limit(args: dict[str, Any]) -> InvocationPlan:
    assert_allowed_fields(args, ("token", "side", "price", "size", "postOnly", "orderType"))
    token = as_string(args.get("token"), "token")
    side = as_side(args.get("side"), "side")
    price = as_positive_number(args.get("price"), "price")
    size = as_positive_number(args.get("size"), "size")
    post_only = maybe_bool(args.get("postOnly"), "postOnly")
    raw_order_type = maybe_string(args.get("orderType"), "orderType")
    order_type = as_order_type(raw_order_type) if raw_order_type is not None else None

    argv = [
        "clob", "create-order",
        "--token", token,
        "--side", side,
        "--price", format_number(price),
        "--size", format_number(size),
    ]
    if post_only is not None:
        argv += ["--post-only", to_flag_bool(post_only)]
    if order_type is not None:
        argv += ["--order-type", order_type]

    amount_usd = round(price * size, NOTIONAL_DIGITS)
    return InvocationPlan(
        argv=tuple(argv),
        guard_args=compact(
            {
                "token": token,
                "side": side,
                "price": price,
                "size": size,
                "amount_usd": amount_usd,
                "postOnly": post_only,
                "orderType": order_type,
            }
        ),
    )


def _build_order_market(args: dict[str, Any]) -> InvocationPlan:
    assert_allowed_fields(args, ("token", "side", "amount"))
    token = as_string(args.get("token"), "token")
    side = as_side(args.get("side"), "side")
    amount = as_positive_number(args.get("amount"), "amount")
    return InvocationPlan(
        argv=("clob", "market-order", "--token", token, "--side", side, "--amount", format_number(amount)),
        guard_args={"token": token, "side": side, "amount": amount, "amount_usd": amount},
    )


def _build_order_cancel(args: dict[str, Any]) -> InvocationPlan:
    assert_allowed_fields(args, ("orderId",))
    order_id = as_string(args.get("orderId"), "orderId")
    return InvocationPlan(argv=("clob", "cancel", order_id), guard_args={"orderId": order_id})


def _build_order_cancel_all(args: dict[str, Any]) -> InvocationPlan:
    assert_allowed_fields(args, ())
    return InvocationPlan(argv=("clob", "cancel-all"), guard_args={})


def _build_approve_set(args: dict[str, Any]) -> InvocationPlan:
    assert_allowed_fields(args, ())
    return InvocationPlan(argv=("approve", "set"), guard_args={})


def _ctf_amount_builder(action: str) -> Callable[[dict[str, Any]], InvocationPlan]:
    def build(args: dict[str, Any]) -> InvocationPlan:
        assert_allowed_fields(args, ("condition", "amount"))
        condition = as_string(args.get("condition"), "condition")
        amount = as_positive_number(args.get("amount"), "amount")
        return InvocationPlan(
            argv=("ctf", action, "--condition", condition, "--amount", format_number(amount)),
            guard_args={"condition": condition, "amount": amount, "amount_usd": amount},
        )

    return build


def _build_ctf_redeem(args: dict[str, Any]) -> InvocationPlan:
    assert_allowed_fields(args, ("condition",))
    condition = as_string(args.get("condition"), "condition")
    return InvocationPlan(argv=("ctf", "redeem", "--condition", condition), guard_args={"condition": condition})


READ_ONLY_TOOLS: tuple[OperationSpec, ...] = (
    OperationSpec(
        name="markets_list",
        description="List markets with optional filters.",
        mutating=False,
        input_schema=_schema({"limit": _LIMIT, "active": _BOOL, "closed": _BOOL}),
        builder=_build_markets_list,
    ),
    OperationSpec(
        name="markets_search",
        description="Search markets by free text query.",
        mutating=False,
        input_schema=_schema({"query": _STRING, "limit": _LIMIT}, ["query"]),
        builder=_build_markets_search,
    ),
    OperationSpec(
        name="markets_get",
        description="Get market details by id or slug.",
        mutating=False,
        input_schema=_schema({"market": _STRING}, ["market"]),
        builder=_build_markets_get,
    ),
    OperationSpec(
        name="clob_book",
        description="Get order book for token id.",
        mutating=False,
        input_schema=_schema({"token": _STRING}, ["token"]),
        builder=_build_clob_book,
    ),
    OperationSpec(
        name="clob_midpoint",
        description="Get midpoint price for token id.",
        mutating=False,
        input_schema=_schema({"token": _STRING}, ["token"]),
        builder=_build_clob_midpoint,
    ),
    OperationSpec(
        name="clob_price",
        description="Get clob price for token/side.",
        mutating=False,
        input_schema=_schema({"token": _STRING, "side": _SIDE}, ["token", "side"]),
        builder=_build_clob_price,
    ),
    OperationSpec(
        name="portfolio_positions",
        description="Get public portfolio positions for wallet address.",
        mutating=False,
        input_schema=_schema({"address": _STRING}, ["address"]),
        builder=_build_portfolio_positions,
    ),
)

MUTATING_TOOLS: tuple[OperationSpec, ...] = (
    OperationSpec(
        name="order_create_limit",
        description="Create a limit order on CLOB.",
        mutating=True,
        input_schema=_schema(
            {
                "token": _STRING,
                "side": _SIDE,
                "price": _POSITIVE,
                "size": _POSITIVE,
                "postOnly": _BOOL,
                "orderType": {"type": "string", "enum": list(ORDER_TYPES)},
            },
            ["token", "side", "price", "size"],
        ),
        builder=_build_order_create_limit,
    ),
    OperationSpec(
        name="order_market",
        description="Create a market order on CLOB.",
        mutating=True,
        input_schema=_schema({"token": _STRING, "side": _SIDE, "amount": _POSITIVE}, ["token", "side", "amount"]),
        builder=_build_order_market,
    ),
    OperationSpec(
        name="order_cancel",
        description="Cancel a specific order.",
        mutating=True,
        input_schema=_schema({"orderId": _STRING}, ["orderId"]),
        builder=_build_order_cancel,
    ),
    OperationSpec(
        name="order_cancel_all",
        description="Cancel all open orders.",
        mutating=True,
        input_schema=_schema(),
        builder=_build_order_cancel_all,
    ),
    OperationSpec(
        name="approve_set",
        description="Set Polymarket contract approvals.",
        mutating=True,
        input_schema=_schema(),
        builder=_build_approve_set,
    ),
    OperationSpec(
        name="ctf_split",
        description="Split USDC into conditional tokens.",
        mutating=True,
        input_schema=_schema({"condition": _STRING, "amount": _POSITIVE}, ["condition", "amount"]),
        builder=_ctf_amount_builder("split"),
    ),
    OperationSpec(
        name="ctf_merge",
        description="Merge conditional tokens back to USDC.",
        mutating=True,
        input_schema=_schema({"condition": _STRING, "amount": _POSITIVE}, ["condition", "amount"]),
        builder=_ctf_amount_builder("merge"),
    ),
    OperationSpec(
        name="ctf_redeem",
        description="Redeem winning conditional tokens.",
        mutating=True,
        input_schema=_schema({"condition": _STRING}, ["condition"]),
        builder=_build_ctf_redeem,
    ),
)

TOOL_SPECS: tuple[OperationSpec, ...] = READ_ONLY_TOOLS + MUTATING_TOOLS

_TOOL_MAP: dict[str, OperationSpec] = {tool.name: tool for tool in TOOL_SPECS}
if len(_TOOL_MAP) != len(TOOL_SPECS):
    raise RuntimeError("Duplicate tool names in catalog")


def get_tool_spec(name: str) -> OperationSpec | None:
    return _TOOL_MAP.get(name)


def list_tools() -> tuple[OperationSpec, ...]:
    return TOOL_SPECS
