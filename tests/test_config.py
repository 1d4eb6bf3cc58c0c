from pathlib import Path
from types import SimpleNamespace

import pytest

from polymarket_veto.config.loader import (
    camel_to_snake,
    convert_keys,
    load_approval_settings,
    load_config,
    to_json_safe_config,
)
from polymarket_veto.config.schema import ExecutionConfig, SidecarConfig
from polymarket_veto.core.errors import ApprovalRequiredError

CONFIG_YAML = """\
polymarket:
  binaryPath: ./bin/polymarket
execution:
  simulationDefault: false
  allowLiveTrades: true
  maxCommandTimeoutMs: 2500
  maxOutputBytes: "4096"
mcp:
  transport: sse
  port: 9911
veto:
  configDir: ../policies
  policyProfile: conservative
  cloud:
    apiKeyEnv: MY_VETO_KEY
"""


def test_load_config_from_yaml(tmp_path: Path) -> None:
    path = tmp_path / "polymarket-veto.config.yaml"
    path.write_text(CONFIG_YAML)

    resolved = load_config(path)
    cfg = resolved.config

    assert resolved.source == "file"
    assert resolved.path == path.resolve()
    assert resolved.base_dir == path.resolve().parent
    assert cfg.polymarket.binary_path == "./bin/polymarket"
    assert cfg.execution.simulation_default is False
    assert cfg.execution.allow_live_trades is True
    assert cfg.execution.max_command_timeout_ms == 2500
    assert cfg.execution.max_output_bytes == 4096
    assert cfg.mcp.transport == "sse"
    assert cfg.mcp.port == 9911
    assert cfg.mcp.host == "127.0.0.1"
    assert cfg.veto.policy_profile == "conservative"
    assert cfg.veto.cloud.api_key_env == "MY_VETO_KEY"
    assert resolved.veto_config_dir == (tmp_path / "policies").resolve()
    assert resolved.rules_dir == (tmp_path / "policies" / "rules").resolve()


def test_invalid_values_fall_back_to_defaults() -> None:
    cfg = SidecarConfig.model_validate(
        convert_keys(
            {
                "polymarket": {"binaryPath": "   "},
                "execution": {"simulationDefault": "no", "allowLiveTrades": "yes", "maxCommandTimeoutMs": -5},
                "mcp": {"transport": "websocket", "port": "abc", "path": ""},
                "veto": {"policyProfile": "root", "cloud": "nope"},
            }
        )
    )

    assert cfg.polymarket.binary_path == "auto"
    assert cfg.execution.simulation_default is True
    assert cfg.execution.allow_live_trades is False
    assert cfg.execution.max_command_timeout_ms == 15000
    assert cfg.mcp.transport == "stdio"
    assert cfg.mcp.port == 9800
    assert cfg.mcp.path == "/mcp"
    assert cfg.veto.policy_profile == "defaults"
    assert cfg.veto.cloud.api_key_env == "VETO_API_KEY"


def test_non_mapping_sections_are_ignored() -> None:
    cfg = SidecarConfig.model_validate({"execution": ["bad"], "mcp": None, "unknown": 1})

    assert cfg.execution.simulation_default is True
    assert cfg.mcp.transport == "stdio"


def test_missing_explicit_path_uses_defaults(tmp_path: Path) -> None:
    path = tmp_path / "absent.yaml"

    resolved = load_config(path)

    assert resolved.source == "defaults"
    assert resolved.path == path.resolve()
    assert resolved.config == SidecarConfig()


def test_broken_yaml_uses_defaults(tmp_path: Path) -> None:
    path = tmp_path / "polymarket-veto.config.yaml"
    path.write_text("execution: [unclosed\n")

    resolved = load_config(path)

    assert resolved.source == "defaults"
    assert resolved.config.execution.simulation_default is True


def test_default_search_is_relative_to_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / "polymarket-veto.config.yaml").write_text("mcp:\n  port: 9100\n")

    resolved = load_config()

    assert resolved.source == "file"
    assert resolved.config.mcp.port == 9100


def test_approval_settings_require_api_key(tmp_path: Path) -> None:
    resolved = load_config(tmp_path / "absent.yaml")

    with pytest.raises(ApprovalRequiredError) as excinfo:
        load_approval_settings(resolved, {})

    assert excinfo.value.code == -32002
    assert "VETO_API_KEY" in excinfo.value.message


def test_approval_settings_read_veto_config(tmp_path: Path) -> None:
    agent = tmp_path / "agent"
    agent.mkdir()
    (agent / "polymarket-veto.config.yaml").write_text("veto:\n  configDir: ../veto\n")
    (tmp_path / "veto").mkdir()
    (tmp_path / "veto" / "veto.config.yaml").write_text(
        "cloud:\n  baseUrl: https://veto.example/\napproval:\n  pollInterval: 500\n  timeout: nope\n"
    )

    settings = load_approval_settings(load_config(agent / "polymarket-veto.config.yaml"), {"VETO_API_KEY": " k "})

    assert settings.api_key == "k"
    assert settings.base_url == "https://veto.example"
    assert settings.poll_interval_ms == 500
    assert settings.timeout_ms == 300000


def test_json_safe_config_uses_camel_case() -> None:
    dumped = to_json_safe_config(SidecarConfig())

    assert dumped["polymarket"] == {"binaryPath": "auto"}
    assert dumped["execution"]["maxCommandTimeoutMs"] == 15000
    assert dumped["veto"]["cloud"] == {"apiKeyEnv": "VETO_API_KEY"}
    assert camel_to_snake("maxOutputBytes") == "max_output_bytes"


def test_defaults_accept_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("POLYMARKET_VETO_MCP__PORT", "9555")
    monkeypatch.setenv("POLYMARKET_VETO_VETO__POLICY_PROFILE", "user")

    cfg = SidecarConfig()

    assert cfg.mcp.port == 9555
    assert cfg.veto.policy_profile == "user"
    assert cfg.execution.allow_live_trades is False


def test_guard_factory_is_optional_string() -> None:
    cfg = SidecarConfig.model_validate(convert_keys({"veto": {"guardFactory": "  rules.engine:build  "}}))
    assert cfg.veto.guard_factory == "rules.engine:build"
    assert SidecarConfig.model_validate({"veto": {"guard_factory": 7}}).veto.guard_factory is None


def test_field_defaults_require_a_known_field() -> None:
    assert ExecutionConfig._default_for(SimpleNamespace(field_name="max_output_bytes")) == 1_048_576
    with pytest.raises(KeyError):
        ExecutionConfig._default_for(SimpleNamespace(field_name=None))
