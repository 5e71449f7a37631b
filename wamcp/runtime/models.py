"""Shared runtime types for the launcher."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Literal

HealthStatus = Literal["unreachable", "foreign", "disconnected", "connected"]

LifecycleState = Literal[
    "init",
    "port_check",
    "reusing",
    "cleaning",
    "bridge_starting",
    "server_starting",
    "running",
    "shutting_down",
    "terminated",
]


@dataclass(frozen=True, slots=True, kw_only=True)
class SupervisorConfig:
    """Immutable launcher configuration, resolved once at startup."""

    bridge_host: str
    bridge_port: int
    service_name: str
    max_retries: int
    retry_delay_s: float
    probe_timeout_s: float
    init_timeout_s: float
    port_release_grace_s: float
    shutdown_grace_s: float
    session_path: Path
    message_db_path: Path
    session_expiry_days: float
    bridge_dir: Path
    bridge_binary: Path
    go_command: str
    server_dir: Path
    server_python: Path
    server_entry: str
    bridge_process_name: str
    reap_on_shutdown: bool
    lock_path: Path | None = None

    @property
    def health_url(self) -> str:
        return f"http://{self.bridge_host}:{self.bridge_port}/api/health"


@dataclass(frozen=True, slots=True)
class HealthReport:
    """Result of one health probe."""

    status: HealthStatus
    payload: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @property
    def parseable(self) -> bool:
        return self.status != "unreachable"

    @property
    def service(self) -> str | None:
        value = self.payload.get("service")
        return value if isinstance(value, str) else None

    @property
    def bridge_status(self) -> str | None:
        value = self.payload.get("status")
        return value if isinstance(value, str) else None


@dataclass(frozen=True, slots=True)
class SessionInfo:
    """Snapshot of the persisted session artifact."""

    path: Path
    exists: bool
    modified_at: datetime | None = None
    age_days: float | None = None
    size_bytes: int | None = None
    expiry_days: float = 20.0

    @property
    def possibly_expired(self) -> bool:
        return self.age_days is not None and self.age_days > self.expiry_days
