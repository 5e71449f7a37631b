"""Configuration schema using Pydantic."""

import sys
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from wamcp.runtime.host import is_wsl
from wamcp.runtime.models import SupervisorConfig

BRIDGE_DIRNAME = "whatsapp-bridge"
SERVER_DIRNAME = "whatsapp-mcp-server"
LOCK_FILENAME = ".whatsapp-mcp.lock"


def _windows_binaries() -> bool:
    """The bridge is a Windows build both on Windows and under WSL2."""
    return sys.platform == "win32" or is_wsl()


class LauncherConfig(BaseSettings):
    """Root configuration for the launcher."""

    model_config = SettingsConfigDict(
        extra="ignore",
        populate_by_name=True,
        env_prefix="WAMCP_",
        env_nested_delimiter="__",
    )

    root_dir: str = ""
    bridge_dir: str = ""
    server_dir: str = ""
    bridge_host: str = ""
    bridge_port: int = Field(default=8080, ge=1, le=65535)
    service_name: str = "whatsapp-bridge"
    max_retries: int = Field(default=20, ge=1)
    retry_delay_ms: int = Field(default=500, ge=0)
    probe_timeout_ms: int = Field(default=2000, ge=1)
    init_timeout_ms: int = Field(default=45000, ge=1)
    port_release_grace_ms: int = Field(default=2000, ge=0)
    shutdown_grace_ms: int = Field(default=5000, ge=0)
    bridge_process_name: str = "main"
    server_entry: str = "main.py"
    reap_on_shutdown: bool = True
    lock_enabled: bool = False
    lock_file: str = ""
    session_expiry_days: float = Field(default=20.0, gt=0)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment beats the JSON config file, which is passed as init kwargs.
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @property
    def root_path(self) -> Path:
        if self.root_dir.strip():
            return Path(self.root_dir).expanduser()
        return Path.cwd()

    def _under_root(self, value: str, default: str) -> Path:
        if not value.strip():
            return self.root_path / default
        candidate = Path(value).expanduser()
        return candidate if candidate.is_absolute() else self.root_path / candidate

    @property
    def bridge_path(self) -> Path:
        return self._under_root(self.bridge_dir, BRIDGE_DIRNAME)

    @property
    def server_path(self) -> Path:
        return self._under_root(self.server_dir, SERVER_DIRNAME)

    @property
    def session_path(self) -> Path:
        return self.bridge_path / "store" / "whatsapp.db"

    @property
    def message_db_path(self) -> Path:
        return self.bridge_path / "store" / "messages.db"

    @property
    def lock_path(self) -> Path:
        return self._under_root(self.lock_file, LOCK_FILENAME)

    @property
    def bridge_binary(self) -> Path:
        name = "main.exe" if _windows_binaries() else "main"
        return self.bridge_path / name

    @property
    def go_command(self) -> str:
        # Under WSL2 the Windows toolchain builds the bridge.
        return "go.exe" if is_wsl() else "go"

    @property
    def server_python(self) -> Path:
        if sys.platform == "win32":
            return self.server_path / ".venv" / "Scripts" / "python.exe"
        return self.server_path / ".venv" / "bin" / "python"

    def to_supervisor_config(self, host: str) -> SupervisorConfig:
        """Freeze settings plus the resolved bridge host."""
        return SupervisorConfig(
            bridge_host=host,
            bridge_port=self.bridge_port,
            service_name=self.service_name,
            max_retries=self.max_retries,
            retry_delay_s=self.retry_delay_ms / 1000.0,
            probe_timeout_s=self.probe_timeout_ms / 1000.0,
            init_timeout_s=self.init_timeout_ms / 1000.0,
            port_release_grace_s=self.port_release_grace_ms / 1000.0,
            shutdown_grace_s=self.shutdown_grace_ms / 1000.0,
            session_path=self.session_path,
            message_db_path=self.message_db_path,
            session_expiry_days=self.session_expiry_days,
            bridge_dir=self.bridge_path,
            bridge_binary=self.bridge_binary,
            go_command=self.go_command,
            server_dir=self.server_path,
            server_python=self.server_python,
            server_entry=self.server_entry,
            bridge_process_name=self.bridge_process_name,
            reap_on_shutdown=self.reap_on_shutdown,
            lock_path=self.lock_path if self.lock_enabled else None,
        )
