"""Policy collaborator adapters."""

from __future__ import annotations

import importlib
from typing import Any, Callable

from loguru import logger

from polymarket_veto.config.schema import ResolvedConfig
from polymarket_veto.core.models import GuardDecision
from polymarket_veto.core.ports import GuardPort

type GuardFactory = Callable[[ResolvedConfig], GuardPort]


class GuardLoadError(RuntimeError):
    """The configured guard factory could not be imported or produced no guard."""


def profile_agent_id(profile: str) -> str:
    """Agent identity the policy engine sees for a given profile."""
    return f"profile/{profile}"


class NoopGuard(GuardPort):
    """GuardPort implementation that allows everything.

    Simulation gates still apply to mutating tools.
    """

    async def guard(
        self,
        tool_name: str,
        args: dict[str, Any],
        *,
        session_id: str,
        agent_id: str,
    ) -> GuardDecision:
        del tool_name, args, session_id, agent_id
        return GuardDecision(decision="allow", reason="policy_disabled")


def load_guard_factory(reference: str) -> GuardFactory:
    """Import a ``package.module:callable`` guard factory."""
    module_name, _, attr = reference.partition(":")
    if not module_name or not attr:
        raise GuardLoadError(f"Invalid guard factory '{reference}': expected 'module:callable'")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise GuardLoadError(f"Cannot import guard module '{module_name}': {e}") from e

    factory = getattr(module, attr, None)
    if not callable(factory):
        raise GuardLoadError(f"Guard factory '{reference}' is not callable")
    return factory


def create_guard(resolved: ResolvedConfig) -> GuardPort:
    """Build the policy guard named by ``veto.guardFactory``.

    The factory receives the resolved config so it can read the rules under
    ``veto.configDir``. Without a factory every call is allowed by policy.
    """
    reference = resolved.config.veto.guard_factory
    if reference is None:
        logger.warning("No policy engine configured (veto.guardFactory); every tool call is allowed by policy")
        return NoopGuard()

    guard = load_guard_factory(reference)(resolved)
    if not callable(getattr(guard, "guard", None)):
        raise GuardLoadError(f"Guard factory '{reference}' returned {type(guard).__name__}, which has no guard()")

    logger.info("Policy guard {} loaded from {}", type(guard).__name__, reference)
    return guard
