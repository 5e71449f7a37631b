"""Composition root wiring config into a ready-to-run supervisor."""

from __future__ import annotations

from loguru import logger

from wamcp.config.schema import LauncherConfig
from wamcp.runtime.health import BridgeHealthProber
from wamcp.runtime.host import resolve_bridge_host
from wamcp.runtime.launcher import ProcessLauncher
from wamcp.runtime.lock import RunLock
from wamcp.runtime.reaper import select_reaper
from wamcp.runtime.supervisor import Supervisor


def resolve_host(config: LauncherConfig) -> str:
    """Configured host override, else WSL-aware detection."""
    override = config.bridge_host.strip()
    if override:
        logger.debug("Using configured bridge host {}", override)
        return override
    return resolve_bridge_host(config.bridge_port)


def build_supervisor(config: LauncherConfig, *, install_handlers: bool = True) -> Supervisor:
    host = resolve_host(config)
    runtime = config.to_supervisor_config(host)
    prober = BridgeHealthProber(
        runtime.bridge_host,
        runtime.bridge_port,
        timeout_s=runtime.probe_timeout_s,
        service_name=runtime.service_name,
    )
    lock = RunLock(runtime.lock_path) if runtime.lock_path is not None else None
    return Supervisor(
        runtime,
        prober=prober,
        launcher=ProcessLauncher(runtime),
        reaper=select_reaper(runtime.bridge_dir),
        lock=lock,
        install_handlers=install_handlers,
    )
