"""Best-effort termination of stale bridge processes."""

from __future__ import annotations

import os
import signal
import subprocess
import sys
from pathlib import Path
from typing import Protocol

from loguru import logger

from wamcp.runtime.host import is_wsl
from wamcp.utils.process import list_processes, process_cwd, signal_pid


class ReaperError(RuntimeError):
    """Process enumeration or termination tooling failed."""


class ProcessReaper(Protocol):
    """Kills OS processes by name."""

    def kill_by_name(self, name: str) -> int:
        """Terminate processes called ``name`` and return how many were signalled."""


class WindowsReaper:
    """Stops Windows processes through PowerShell (native Windows and WSL2)."""

    def __init__(self, powershell: str = "powershell.exe", timeout_s: float = 15.0):
        self.powershell = powershell
        self.timeout_s = timeout_s

    def command(self, name: str) -> list[str]:
        script = (
            f"$p = Get-Process -Name '{name}' -ErrorAction SilentlyContinue; "
            "if ($p) { $p | Stop-Process -Force -ErrorAction SilentlyContinue }; "
            "@($p).Count"
        )
        return [self.powershell, "-NoProfile", "-NonInteractive", "-Command", script]

    def kill_by_name(self, name: str) -> int:
        kwargs: dict[str, object] = {}
        if sys.platform == "win32":
            kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW
        try:
            result = subprocess.run(
                self.command(name),
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout_s,
                **kwargs,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise ReaperError(f"powershell unavailable: {e}") from e
        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise ReaperError(f"Stop-Process failed: {stderr[:300]}")
        lines = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        try:
            return int(lines[-1]) if lines else 0
        except ValueError:
            return 0


class PosixReaper:
    """Sends SIGTERM to processes with a matching command name.

    When ``scope_dir`` is set only processes whose working directory is that
    directory are touched, so an unrelated program that happens to be called
    ``main`` survives.
    """

    def __init__(self, scope_dir: Path | None = None):
        self.scope_dir = scope_dir.resolve() if scope_dir else None

    def _in_scope(self, pid: int) -> bool:
        if self.scope_dir is None:
            return True
        cwd = process_cwd(pid)
        return cwd is not None and cwd == self.scope_dir

    def kill_by_name(self, name: str) -> int:
        try:
            processes = list_processes()
        except OSError as e:
            raise ReaperError(f"ps unavailable: {e}") from e

        own_pid = os.getpid()
        killed = 0
        for pid, command in processes:
            if pid == own_pid or Path(command).name != name:
                continue
            if not self._in_scope(pid):
                continue
            if signal_pid(pid, signal.SIGTERM):
                killed += 1
        return killed


def select_reaper(bridge_dir: Path | None = None) -> ProcessReaper:
    """Pick the reaper matching where the bridge binary runs."""
    if sys.platform == "win32" or is_wsl():
        logger.debug("Using PowerShell process reaper")
        return WindowsReaper()
    return PosixReaper(scope_dir=bridge_dir)
