import json
import sys
from pathlib import Path

import pytest

from wamcp.config.loader import camel_to_snake, convert_keys, get_config_path, load_config
from wamcp.config.schema import LauncherConfig


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    home = tmp_path / "home"
    monkeypatch.setenv("WAMCP_HOME", str(home))
    for key in ("WAMCP_BRIDGE_PORT", "WAMCP_ROOT_DIR", "WAMCP_LOCK_ENABLED", "WAMCP_BRIDGE_HOST"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr(sys, "platform", "linux")
    monkeypatch.setattr("wamcp.config.schema.is_wsl", lambda: False)
    return home


def _write_config(path: Path, data) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))
    return path


def test_camel_to_snake() -> None:
    assert camel_to_snake("bridgePort") == "bridge_port"
    assert camel_to_snake("initTimeoutMs") == "init_timeout_ms"
    assert camel_to_snake("root_dir") == "root_dir"


def test_convert_keys_recurses() -> None:
    assert convert_keys({"lockEnabled": True, "extra": [{"innerKey": 1}]}) == {
        "lock_enabled": True,
        "extra": [{"inner_key": 1}],
    }


def test_defaults_without_config_file(isolated_env: Path) -> None:
    config = load_config()

    assert get_config_path() == isolated_env / "config.json"
    assert config.bridge_port == 8080
    assert config.max_retries == 20
    assert config.retry_delay_ms == 500
    assert config.init_timeout_ms == 45000
    assert config.reap_on_shutdown is True
    assert config.lock_enabled is False


def test_camel_case_file_is_loaded(isolated_env: Path, tmp_path: Path) -> None:
    _write_config(
        isolated_env / "config.json",
        {"rootDir": str(tmp_path / "wa"), "bridgePort": 9090, "maxRetries": 5, "unknownKey": 1},
    )

    config = load_config()

    assert config.bridge_port == 9090
    assert config.max_retries == 5
    assert config.bridge_path == tmp_path / "wa" / "whatsapp-bridge"


def test_environment_overrides_file(
    isolated_env: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _write_config(isolated_env / "config.json", {"bridgePort": 9090})
    monkeypatch.setenv("WAMCP_BRIDGE_PORT", "7070")

    assert load_config().bridge_port == 7070


def test_malformed_file_falls_back_to_defaults(isolated_env: Path, log_messages) -> None:
    path = isolated_env / "config.json"
    path.parent.mkdir(parents=True)
    path.write_text("{not json")

    config = load_config()

    assert config.bridge_port == 8080
    assert any("Failed to load config" in message for message in log_messages)


def test_non_object_root_falls_back_to_defaults(isolated_env: Path) -> None:
    _write_config(isolated_env / "config.json", ["bridgePort", 9090])

    assert load_config().bridge_port == 8080


def test_invalid_values_fall_back_to_defaults(isolated_env: Path, log_messages) -> None:
    _write_config(isolated_env / "config.json", {"bridgePort": 70000})

    assert load_config().bridge_port == 8080
    assert any("Invalid config" in message for message in log_messages)


def test_explicit_config_path(tmp_path: Path) -> None:
    path = _write_config(tmp_path / "custom.json", {"serviceName": "wa-bridge"})

    assert load_config(path).service_name == "wa-bridge"


def test_derived_paths(tmp_path: Path) -> None:
    config = LauncherConfig(root_dir=str(tmp_path), server_dir="/opt/mcp")

    assert config.bridge_path == tmp_path / "whatsapp-bridge"
    assert config.server_path == Path("/opt/mcp")
    assert config.session_path == tmp_path / "whatsapp-bridge" / "store" / "whatsapp.db"
    assert config.message_db_path == tmp_path / "whatsapp-bridge" / "store" / "messages.db"
    assert config.bridge_binary == tmp_path / "whatsapp-bridge" / "main"
    assert config.server_python == Path("/opt/mcp") / ".venv" / "bin" / "python"
    assert config.go_command == "go"


def test_wsl_uses_windows_binaries(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("wamcp.config.schema.is_wsl", lambda: True)
    config = LauncherConfig(root_dir=str(tmp_path))

    assert config.bridge_binary.name == "main.exe"
    assert config.go_command == "go.exe"
    assert config.server_python == tmp_path / "whatsapp-mcp-server" / ".venv" / "bin" / "python"


def test_supervisor_config_converts_milliseconds(tmp_path: Path) -> None:
    config = LauncherConfig(
        root_dir=str(tmp_path),
        retry_delay_ms=250,
        init_timeout_ms=30000,
        shutdown_grace_ms=1500,
    )

    frozen = config.to_supervisor_config("172.29.16.1")

    assert frozen.bridge_host == "172.29.16.1"
    assert frozen.health_url == "http://172.29.16.1:8080/api/health"
    assert frozen.retry_delay_s == 0.25
    assert frozen.init_timeout_s == 30.0
    assert frozen.shutdown_grace_s == 1.5
    assert frozen.probe_timeout_s == 2.0
    assert frozen.bridge_dir == tmp_path / "whatsapp-bridge"
    assert frozen.lock_path is None


def test_lock_path_only_when_enabled(tmp_path: Path) -> None:
    config = LauncherConfig(root_dir=str(tmp_path), lock_enabled=True)

    assert config.to_supervisor_config("localhost").lock_path == tmp_path / ".whatsapp-mcp.lock"
