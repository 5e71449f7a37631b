from pathlib import Path

import pytest
from loguru import logger

from wamcp.runtime.models import SupervisorConfig


def make_supervisor_config(root: Path, **overrides) -> SupervisorConfig:
    bridge_dir = root / "whatsapp-bridge"
    server_dir = root / "whatsapp-mcp-server"
    values = {
        "bridge_host": "127.0.0.1",
        "bridge_port": 8080,
        "service_name": "whatsapp-bridge",
        "max_retries": 3,
        "retry_delay_s": 0.01,
        "probe_timeout_s": 0.5,
        "init_timeout_s": 2.0,
        "port_release_grace_s": 0.01,
        "shutdown_grace_s": 0.2,
        "session_path": bridge_dir / "store" / "whatsapp.db",
        "message_db_path": bridge_dir / "store" / "messages.db",
        "session_expiry_days": 20.0,
        "bridge_dir": bridge_dir,
        "bridge_binary": bridge_dir / "main",
        "go_command": "go",
        "server_dir": server_dir,
        "server_python": server_dir / ".venv" / "bin" / "python",
        "server_entry": "main.py",
        "bridge_process_name": "main",
        "reap_on_shutdown": True,
        "lock_path": None,
    }
    values.update(overrides)
    return SupervisorConfig(**values)


@pytest.fixture
def log_messages():
    messages: list[str] = []
    handler_id = logger.add(lambda msg: messages.append(msg.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def make_config(tmp_path: Path):
    def _make(**overrides) -> SupervisorConfig:
        return make_supervisor_config(tmp_path, **overrides)

    return _make
