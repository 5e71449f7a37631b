"""Bridge host resolution for WSL2 and plain hosts."""

from __future__ import annotations

import ipaddress
import socket
import subprocess
import sys
from pathlib import Path

from loguru import logger

WSL_SENTINEL = Path("/proc/sys/fs/binfmt_misc/WSLInterop")
FALLBACK_GATEWAYS = ("172.30.48.1", "172.31.240.1", "172.28.0.1")
FALLBACK_CONNECT_TIMEOUT_S = 1.0
DEFAULT_HOST = "localhost"


def is_wsl(sentinel: Path = WSL_SENTINEL) -> bool:
    """Return True when running inside WSL with Windows interop enabled."""
    if not sys.platform.startswith("linux"):
        return False
    try:
        return sentinel.exists()
    except OSError:
        return False


def _is_ipv4(value: str) -> bool:
    try:
        ipaddress.IPv4Address(value)
    except ValueError:
        return False
    return True


def default_gateway() -> str | None:
    """Return the default route gateway as reported by ``ip route``."""
    try:
        result = subprocess.run(
            ["ip", "route", "show", "default"],
            capture_output=True,
            text=True,
            check=False,
            timeout=2,
        )
    except (OSError, subprocess.SubprocessError):
        return None
    if result.returncode != 0:
        return None

    for line in result.stdout.splitlines():
        parts = line.split()
        # default via 172.29.16.1 dev eth0 proto kernel
        if len(parts) >= 3 and parts[0] == "default" and parts[1] == "via":
            if _is_ipv4(parts[2]):
                return parts[2]
    return None


def can_connect(host: str, port: int, timeout_s: float = FALLBACK_CONNECT_TIMEOUT_S) -> bool:
    """Try a raw TCP connection, returning False on any error."""
    try:
        with socket.create_connection((host, port), timeout=timeout_s):
            return True
    except OSError:
        return False


def resolve_bridge_host(
    port: int,
    *,
    sentinel: Path = WSL_SENTINEL,
    fallbacks: tuple[str, ...] = FALLBACK_GATEWAYS,
) -> str:
    """Resolve the address at which the bridge health endpoint is reachable.

    Inside WSL2 the bridge runs on the Windows side, so ``localhost`` does not
    route to it. The default gateway is tried first, then a fixed list of
    common WSL2 host addresses probed on ``port``. Every failure falls through
    to the next candidate and finally to ``localhost``.
    """
    if not is_wsl(sentinel):
        return DEFAULT_HOST

    gateway = default_gateway()
    if gateway:
        logger.info("Detected WSL2, using Windows host IP: {}", gateway)
        return gateway

    for candidate in fallbacks:
        if can_connect(candidate, port):
            logger.info("Detected WSL2, using Windows host IP: {}", candidate)
            return candidate
        logger.debug("WSL2 fallback host {} not reachable on port {}", candidate, port)

    logger.warning("Could not detect Windows host IP, using {}", DEFAULT_HOST)
    return DEFAULT_HOST
