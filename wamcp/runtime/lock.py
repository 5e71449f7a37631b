"""Advisory single-instance lock keyed by the owner's PID."""

from __future__ import annotations

import os
from pathlib import Path

from loguru import logger

from wamcp.utils.process import pid_alive, read_pid_file


class LockHeldError(RuntimeError):
    """Another live launcher owns the lock."""

    def __init__(self, path: Path, pid: int):
        super().__init__(f"Another instance is already running (pid {pid}, lock {path})")
        self.path = path
        self.pid = pid


class RunLock:
    """PID lock file with liveness-based staleness detection.

    A lock whose recorded PID is no longer alive (or unreadable) is stale and
    gets replaced; presence of the file alone never blocks startup.
    """

    def __init__(self, path: Path, pid: int | None = None):
        self.path = path
        self.pid = pid if pid is not None else os.getpid()
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        for _ in range(2):
            try:
                fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                existing = read_pid_file(self.path)
                if existing is not None and existing != self.pid and pid_alive(existing):
                    raise LockHeldError(self.path, existing)
                logger.warning("Previous instance crashed, removing stale lock {}", self.path)
                self.path.unlink(missing_ok=True)
                continue
            with os.fdopen(fd, "w") as f:
                f.write(str(self.pid))
            self._held = True
            logger.debug("Created lock file {} with PID {}", self.path, self.pid)
            return
        existing = read_pid_file(self.path) or 0
        raise LockHeldError(self.path, existing)

    def release(self) -> None:
        if not self._held:
            return
        self._held = False
        if read_pid_file(self.path) != self.pid:
            return
        try:
            self.path.unlink()
            logger.debug("Removed lock file {}", self.path)
        except FileNotFoundError:
            pass
