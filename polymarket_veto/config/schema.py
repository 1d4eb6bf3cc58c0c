"""Configuration schema using Pydantic."""

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

McpTransport = Literal["stdio", "sse"]
PolicyProfile = Literal["defaults", "conservative", "agent", "user"]

POLICY_PROFILES: tuple[str, ...] = get_args(PolicyProfile)
MCP_TRANSPORTS: tuple[str, ...] = get_args(McpTransport)


def optional_positive_int(value: Any) -> int | None:
    """Parse a positive integer, returning None for anything unusable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        parsed = int(value)
    else:
        try:
            parsed = int(float(str(value).strip()))
        except (ValueError, OverflowError):
            return None
    return parsed if parsed > 0 else None


def optional_string(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


class ConfigModel(BaseModel):
    """Base model: unknown keys ignored, bad values fall back to defaults."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    @classmethod
    def _default_for(cls, info: ValidationInfo) -> Any:
        field = cls.model_fields.get(info.field_name or "")
        if field is None:
            raise KeyError(f"{cls.__name__} has no field {info.field_name!r}")
        return field.default


class PolymarketConfig(ConfigModel):
    """Where to find the polymarket CLI."""

    binary_path: str = "auto"

    @field_validator("binary_path", mode="before")
    @classmethod
    def _string_or_default(cls, value: Any, info: ValidationInfo) -> Any:
        return optional_string(value) or cls._default_for(info)


class ExecutionConfig(ConfigModel):
    """Simulation gates and subprocess limits."""

    simulation_default: bool = True
    allow_live_trades: bool = False
    max_command_timeout_ms: int = 15_000
    max_output_bytes: int = 1_048_576

    @field_validator("simulation_default", "allow_live_trades", mode="before")
    @classmethod
    def _bool_or_default(cls, value: Any, info: ValidationInfo) -> Any:
        return value if isinstance(value, bool) else cls._default_for(info)

    @field_validator("max_command_timeout_ms", "max_output_bytes", mode="before")
    @classmethod
    def _positive_or_default(cls, value: Any, info: ValidationInfo) -> Any:
        return optional_positive_int(value) or cls._default_for(info)


class McpConfig(ConfigModel):
    """MCP transport settings."""

    transport: McpTransport = "stdio"
    host: str = "127.0.0.1"
    port: int = 9800
    path: str = "/mcp"

    @field_validator("transport", mode="before")
    @classmethod
    def _transport_or_default(cls, value: Any, info: ValidationInfo) -> Any:
        return value if value in MCP_TRANSPORTS else cls._default_for(info)

    @field_validator("host", "path", mode="before")
    @classmethod
    def _string_or_default(cls, value: Any, info: ValidationInfo) -> Any:
        return optional_string(value) or cls._default_for(info)

    @field_validator("port", mode="before")
    @classmethod
    def _port_or_default(cls, value: Any, info: ValidationInfo) -> Any:
        return optional_positive_int(value) or cls._default_for(info)


class VetoCloudConfig(ConfigModel):
    """Veto cloud credentials lookup."""

    api_key_env: str = "VETO_API_KEY"

    @field_validator("api_key_env", mode="before")
    @classmethod
    def _string_or_default(cls, value: Any, info: ValidationInfo) -> Any:
        return optional_string(value) or cls._default_for(info)


class VetoConfig(ConfigModel):
    """Policy engine location and identity."""

    config_dir: str = "../veto"
    policy_profile: PolicyProfile = "defaults"
    guard_factory: str | None = None
    cloud: VetoCloudConfig = Field(default_factory=VetoCloudConfig)

    @field_validator("config_dir", mode="before")
    @classmethod
    def _string_or_default(cls, value: Any, info: ValidationInfo) -> Any:
        return optional_string(value) or cls._default_for(info)

    @field_validator("guard_factory", mode="before")
    @classmethod
    def _optional_reference(cls, value: Any) -> Any:
        return optional_string(value)

    @field_validator("policy_profile", mode="before")
    @classmethod
    def _profile_or_default(cls, value: Any, info: ValidationInfo) -> Any:
        return value if value in POLICY_PROFILES else cls._default_for(info)

    @field_validator("cloud", mode="before")
    @classmethod
    def _mapping_or_default(cls, value: Any) -> Any:
        return value if isinstance(value, (dict, BaseModel)) else {}


class SidecarConfig(BaseSettings):
    """Root configuration for the gateway.

    Built from YAML via ``model_validate``; a bare ``SidecarConfig()`` also
    picks up ``POLYMARKET_VETO_*`` environment overrides.
    """

    model_config = SettingsConfigDict(
        extra="ignore",
        validate_assignment=True,
        env_prefix="POLYMARKET_VETO_",
        env_nested_delimiter="__",
    )

    polymarket: PolymarketConfig = Field(default_factory=PolymarketConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    mcp: McpConfig = Field(default_factory=McpConfig)
    veto: VetoConfig = Field(default_factory=VetoConfig)

    @field_validator("polymarket", "execution", "mcp", "veto", mode="before")
    @classmethod
    def _mapping_or_default(cls, value: Any) -> Any:
        return value if isinstance(value, (dict, BaseModel)) else {}


@dataclass(slots=True)
class ResolvedConfig:
    """Loaded configuration plus where it came from."""

    path: Path
    base_dir: Path
    source: Literal["file", "defaults"]
    config: SidecarConfig

    @property
    def veto_config_dir(self) -> Path:
        return (self.base_dir / self.config.veto.config_dir).resolve()

    @property
    def veto_config_path(self) -> Path:
        return self.veto_config_dir / "veto.config.yaml"

    @property
    def rules_dir(self) -> Path:
        return self.veto_config_dir / "rules"


@dataclass(frozen=True, slots=True, kw_only=True)
class ApprovalSettings:
    """Resolved approval-service polling settings."""

    api_key: str
    base_url: str = "https://api.runveto.com"
    poll_interval_ms: int = 2_000
    timeout_ms: int = 300_000
    api_key_env: str = "VETO_API_KEY"
