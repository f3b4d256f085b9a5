"""Tests for environment-driven configuration."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from chatbridge.config import common, settings
from chatbridge.config.schema import RuntimeConfigSchema
from chatbridge.config.settings import RuntimeConfig, load_runtime_config
from chatbridge.const import DEFAULT_BROADCAST_SENDER, DEFAULT_INIT_RETRY_INTERVAL, DEFAULT_PORT


def test_get_env_config_maps_known_variables() -> None:
    environ = {
        "PORT": "8080",
        "CHROMIUM_PATH": "/opt/chrome",
        "CHATBRIDGE_DEBUG": "yes",
        "CHATBRIDGE_SESSION_DIR": "   ",
        "UNRELATED": "ignored",
    }

    raw = common.get_env_config(environ)

    assert raw == {"port": "8080", "browser_path": "/opt/chrome", "debug_logging": "yes"}


def test_get_env_config_reads_dotenv_without_overriding(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("CHATBRIDGE_BROADCAST_SENDER=news@channel\nPORT=9000\n")
    monkeypatch.setattr(os, "environ", {"PORT": "7000"})

    raw = common.get_env_config(dotenv_path=str(env_file))

    assert raw["broadcast_sender"] == "news@channel"
    assert raw["port"] == "7000"


def test_defaults_when_environment_is_empty() -> None:
    config = load_runtime_config({})

    assert config.port == DEFAULT_PORT
    assert config.broadcast_sender == DEFAULT_BROADCAST_SENDER
    assert config.init_retry_interval == DEFAULT_INIT_RETRY_INTERVAL
    assert config.init_max_attempts is None
    assert config.metrics_enabled is True
    assert os.path.isabs(config.session_dir)


def test_environment_values_are_coerced(tmp_path: Path) -> None:
    config = load_runtime_config(
        {
            "HOST": "127.0.0.1",
            "PORT": "8080",
            "CHATBRIDGE_INIT_RETRY_INTERVAL": "2.5",
            "CHATBRIDGE_INIT_MAX_ATTEMPTS": "3",
            "CHATBRIDGE_METRICS_ENABLED": "false",
            "CHATBRIDGE_RENDER_QR": "0",
            "CHATBRIDGE_OBSERVER_QUEUE_LIMIT": "16",
            "CHATBRIDGE_CLIENT_COMMAND": "node client.js --headless",
            "CHATBRIDGE_SESSION_DIR": str(tmp_path / "auth"),
        }
    )

    assert config.host == "127.0.0.1"
    assert config.port == 8080
    assert config.init_retry_interval == 2.5
    assert config.init_max_attempts == 3
    assert config.metrics_enabled is False
    assert config.render_qr is False
    assert config.observer_queue_limit == 16
    assert config.client_argv == ["node", "client.js", "--headless"]
    assert config.session_dir == str(tmp_path / "auth")


@pytest.mark.parametrize(
    "environ",
    [
        {"PORT": "not-a-port"},
        {"PORT": "70000"},
        {"CHATBRIDGE_INIT_MAX_ATTEMPTS": "0"},
        {"CHATBRIDGE_OBSERVER_QUEUE_LIMIT": "0"},
        {"CHATBRIDGE_SHUTDOWN_TIMEOUT": "0"},
    ],
)
def test_invalid_values_raise_value_error(environ: dict[str, str]) -> None:
    with pytest.raises(ValueError, match="Invalid configuration"):
        load_runtime_config(environ)


def test_runtime_config_rejects_blank_command() -> None:
    with pytest.raises(ValueError, match="client_command"):
        RuntimeConfig(client_command="   ")


def test_missing_browser_logs_warning(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level("WARNING", logger=settings.__name__):
        RuntimeConfig(browser_path="/nonexistent/chromium")

    assert "/nonexistent/chromium" in caplog.text


def test_schema_ignores_unknown_keys() -> None:
    config = RuntimeConfigSchema().load({"port": "3001", "mystery": "value"})

    assert isinstance(config, RuntimeConfig)
    assert config.port == 3001



@pytest.mark.parametrize(
    ("value", "expected"),
    [("1", True), ("yes", True), ("ON", True), ("0", False), ("off", False), ("false", False)],
)
def test_boolean_flags_are_coerced_by_schema(value: str, expected: bool) -> None:
    config = load_runtime_config({"CHATBRIDGE_DEBUG": value, "CHATBRIDGE_RENDER_QR": value})

    assert config.debug_logging is expected
    assert config.render_qr is expected


def test_unrecognised_boolean_is_rejected() -> None:
    with pytest.raises(ValueError, match="Invalid configuration"):
        load_runtime_config({"CHATBRIDGE_METRICS_ENABLED": "maybe"})
