"""Configuration loading utilities."""

import os
from pathlib import Path
from typing import Any

import yaml
from loguru import logger
from pydantic import ValidationError

from polymarket_veto.config.schema import (
    ApprovalSettings,
    ResolvedConfig,
    SidecarConfig,
    optional_positive_int,
    optional_string,
)
from polymarket_veto.core.errors import ApprovalRequiredError

DEFAULT_CONFIG_PATHS = (
    "veto-agent/polymarket-veto.config.yaml",
    "polymarket-veto.config.yaml",
)


def find_config_path(explicit_path: str | Path | None = None) -> Path | None:
    """Return the explicit path (existing or not) or the first default that exists."""
    if explicit_path:
        return Path(explicit_path).expanduser().resolve()

    for relative in DEFAULT_CONFIG_PATHS:
        candidate = Path(relative).resolve()
        if candidate.exists():
            return candidate
    return None


def _read_yaml(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f)


def load_config(explicit_path: str | Path | None = None) -> ResolvedConfig:
    """
    Load gateway configuration from YAML or fall back to defaults.

    Args:
        explicit_path: Optional path to a config file. Default locations are
            searched relative to the current directory when omitted.

    Returns:
        Resolved configuration with its path, base directory and source.
    """
    resolved_path = find_config_path(explicit_path)

    if resolved_path is not None and resolved_path.exists():
        try:
            raw = _read_yaml(resolved_path)
            config = SidecarConfig.model_validate(convert_keys(raw if isinstance(raw, dict) else {}))
            return ResolvedConfig(
                path=resolved_path,
                base_dir=resolved_path.parent,
                source="file",
                config=config,
            )
        except (OSError, yaml.YAMLError, ValidationError) as e:
            logger.warning("Failed to load config from {}: {}", resolved_path, e)
            logger.warning("Using default configuration.")

    synthetic = resolved_path or Path(DEFAULT_CONFIG_PATHS[0]).resolve()
    return ResolvedConfig(
        path=synthetic,
        base_dir=synthetic.parent,
        source="defaults",
        config=SidecarConfig(),
    )


def load_approval_settings(resolved: ResolvedConfig, env: dict[str, str] | None = None) -> ApprovalSettings:
    """Read approval polling settings from the veto config and the environment.

    Raises:
        ApprovalRequiredError: when the API key env var is unset, since an
            approval cannot be awaited without a credential.
    """
    env = dict(os.environ) if env is None else env
    api_key_env = resolved.config.veto.cloud.api_key_env
    api_key = (env.get(api_key_env) or "").strip()
    if not api_key:
        raise ApprovalRequiredError(f"Approval required but {api_key_env} is not set for cloud polling")

    defaults = ApprovalSettings(api_key=api_key, api_key_env=api_key_env)
    base_url = defaults.base_url
    poll_interval_ms = defaults.poll_interval_ms
    timeout_ms = defaults.timeout_ms

    veto_config_path = resolved.veto_config_path
    if veto_config_path.exists():
        try:
            root = _as_record(_read_yaml(veto_config_path))
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Ignoring unreadable veto config {}: {}", veto_config_path, e)
            root = {}
        cloud = _as_record(root.get("cloud"))
        approval = _as_record(root.get("approval"))
        base_url = optional_string(cloud.get("baseUrl")) or base_url
        poll_interval_ms = optional_positive_int(approval.get("pollInterval")) or poll_interval_ms
        timeout_ms = optional_positive_int(approval.get("timeout")) or timeout_ms

    return ApprovalSettings(
        api_key=api_key,
        base_url=base_url.rstrip("/"),
        poll_interval_ms=poll_interval_ms,
        timeout_ms=timeout_ms,
        api_key_env=api_key_env,
    )


def to_json_safe_config(config: SidecarConfig) -> dict[str, Any]:
    """Dump config with camelCase keys, as written in the YAML file."""
    return convert_to_camel(config.model_dump())


def _as_record(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def convert_keys(data: Any) -> Any:
    """Convert camelCase keys to snake_case for Pydantic."""
    if isinstance(data, dict):
        return {camel_to_snake(str(k)): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """Convert snake_case keys to camelCase."""
    if isinstance(data, dict):
        return {snake_to_camel(k): convert_to_camel(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)


def snake_to_camel(name: str) -> str:
    """Convert snake_case to camelCase."""
    components = name.split("_")
    return components[0] + "".join(x.title() for x in components[1:])
