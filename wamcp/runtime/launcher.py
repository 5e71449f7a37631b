"""Spawning of the bridge and protocol-server subprocesses."""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field
from typing import ClassVar, Protocol

from loguru import logger

from wamcp.runtime.models import SupervisorConfig


class LaunchError(RuntimeError):
    """A child process could not be spawned at all."""


@dataclass(slots=True)
class ChildHandle:
    """Ownership of one child process."""

    name: ClassVar[str] = "child"

    process: asyncio.subprocess.Process | None = None
    owned: bool = True
    pumps: list[asyncio.Task[None]] = field(default_factory=list)

    @property
    def pid(self) -> int | None:
        return self.process.pid if self.process is not None else None

    @property
    def alive(self) -> bool:
        return self.process is not None and self.process.returncode is None

    @property
    def returncode(self) -> int | None:
        return self.process.returncode if self.process is not None else None

    def terminate(self) -> bool:
        """Send SIGTERM if this handle owns a live process."""
        if not self.owned or not self.alive:
            return False
        try:
            self.process.terminate()
        except ProcessLookupError:
            return False
        return True

    def kill(self) -> bool:
        if not self.owned or not self.alive:
            return False
        try:
            self.process.kill()
        except ProcessLookupError:
            return False
        return True


@dataclass(slots=True)
class BridgeHandle(ChildHandle):
    name: ClassVar[str] = "bridge"

    @classmethod
    def external(cls) -> BridgeHandle:
        """Sentinel for a healthy bridge this launcher reuses but does not own."""
        return cls(process=None, owned=False)


@dataclass(slots=True)
class ServerHandle(ChildHandle):
    name: ClassVar[str] = "mcp-server"


class LauncherPort(Protocol):
    """Spawns the two supervised processes."""

    async def launch_bridge(self) -> BridgeHandle:
        """Start the bridge and return its handle."""

    async def launch_server(self) -> ServerHandle:
        """Start the protocol server and return its handle."""


READ_CHUNK_BYTES = 64 * 1024
MAX_LINE_BYTES = 1024 * 1024


def _log_line(raw: bytes, label: str, level: str) -> None:
    line = raw.decode(errors="replace").rstrip()
    if line:
        logger.log(level, "[{}] {}", label, line)


async def _forward_lines(stream: asyncio.StreamReader, label: str, level: str) -> None:
    """Relay a child output stream to the log line by line until EOF.

    Reads raw chunks instead of ``readline`` so a line of any length keeps the
    pipe drained. Lines beyond ``MAX_LINE_BYTES`` are logged in pieces.
    """
    pending = b""
    while True:
        chunk = await stream.read(READ_CHUNK_BYTES)
        if not chunk:
            break
        pending += chunk
        *lines, pending = pending.split(b"\n")
        for raw in lines:
            _log_line(raw, label, level)
        while len(pending) >= MAX_LINE_BYTES:
            _log_line(pending[:MAX_LINE_BYTES], label, level)
            pending = pending[MAX_LINE_BYTES:]
    _log_line(pending, label, level)


def bridge_command(config: SupervisorConfig) -> list[str]:
    """Prefer the precompiled binary, fall back to ``go run``."""
    if config.bridge_binary.exists():
        return [str(config.bridge_binary)]
    return [config.go_command, "run", "main.go"]


def server_command(config: SupervisorConfig) -> list[str]:
    return [str(config.server_python), config.server_entry]


def bridge_env() -> dict[str, str]:
    env = dict(os.environ)
    env["CGO_ENABLED"] = "1"
    return env


class ProcessLauncher:
    """Starts the WhatsApp bridge and the MCP server."""

    def __init__(self, config: SupervisorConfig):
        self.config = config

    async def launch_bridge(self) -> BridgeHandle:
        logger.info("Starting WhatsApp Bridge...")
        cmd = bridge_command(self.config)
        if cmd[0] == str(self.config.bridge_binary):
            logger.info("Using compiled binary for faster startup")
        else:
            logger.info("Compiled binary not found, using go run (slower)")
        logger.info("Bridge command: {}", " ".join(cmd))
        logger.info("Bridge path: {}", self.config.bridge_dir)

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=self.config.bridge_dir,
                env=bridge_env(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise LaunchError(f"Failed to start bridge: {e}") from e

        handle = BridgeHandle(process=proc)
        handle.pumps = [
            asyncio.create_task(_forward_lines(proc.stdout, "BRIDGE STDOUT", "INFO")),
            asyncio.create_task(_forward_lines(proc.stderr, "BRIDGE ERROR", "WARNING")),
        ]
        logger.debug("Bridge started (pid {})", proc.pid)
        return handle

    async def launch_server(self) -> ServerHandle:
        logger.info("Starting MCP Server...")
        cmd = server_command(self.config)
        try:
            # stdio is the MCP transport; pass it through untouched.
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=self.config.server_dir,
                stdin=None,
                stdout=None,
                stderr=None,
            )
        except OSError as e:
            raise LaunchError(f"Failed to start MCP server: {e}") from e
        logger.debug("MCP server started (pid {})", proc.pid)
        return ServerHandle(process=proc)
