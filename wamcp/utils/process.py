"""Shared process management utilities for the launcher."""

from __future__ import annotations

import os
import subprocess
from pathlib import Path


def pid_alive(pid: int) -> bool:
    """Check if a process with the given PID is alive."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
        return True
    except PermissionError:
        # Exists but belongs to another user.
        return True
    except OSError:
        return False


def process_cwd(pid: int) -> Path | None:
    """Get the current working directory of a process by PID (Linux /proc)."""
    proc_cwd = Path(f"/proc/{pid}/cwd")
    try:
        if proc_cwd.exists():
            return proc_cwd.resolve()
    except OSError:
        return None
    return None


def list_processes() -> list[tuple[int, str]]:
    """Return ``(pid, command name)`` pairs for every visible process.

    Raises:
        OSError: if ``ps`` cannot be executed.
    """
    result = subprocess.run(
        ["ps", "-eo", "pid=,comm="],
        capture_output=True,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        return []

    processes: list[tuple[int, str]] = []
    for line in result.stdout.splitlines():
        text = line.strip()
        if not text:
            continue
        parts = text.split(maxsplit=1)
        if len(parts) != 2:
            continue
        try:
            pid = int(parts[0])
        except ValueError:
            continue
        processes.append((pid, parts[1].strip()))
    return processes


def signal_pid(pid: int, sig: int) -> bool:
    """Send a signal to a process by PID, returning False on any error."""
    try:
        os.kill(pid, sig)
        return True
    except OSError:
        return False


def read_pid_file(path: Path) -> int | None:
    """Read an integer PID from a file, returning None on any error."""
    try:
        return int(path.read_text().strip())
    except (OSError, ValueError):
        return None
