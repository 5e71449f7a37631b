"""Bridge health probing and readiness waiting."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx
from loguru import logger

from wamcp.runtime.models import HealthReport

HEALTH_PATH = "/api/health"
EXPECTED_SERVICE = "whatsapp-bridge"
CONNECTED = "connected"


def classify_health(payload: Any, service_name: str = EXPECTED_SERVICE) -> HealthReport:
    """Classify a decoded health body by its ``service`` and ``status`` fields."""
    body = payload if isinstance(payload, dict) else {}
    if body.get("service") != service_name:
        return HealthReport("foreign", body)
    if body.get("status") == CONNECTED:
        return HealthReport("connected", body)
    return HealthReport("disconnected", body)


class BridgeHealthProber:
    """Probes the bridge REST health endpoint at one host/port."""

    def __init__(
        self,
        host: str,
        port: int,
        *,
        timeout_s: float = 2.0,
        service_name: str = EXPECTED_SERVICE,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.host = host
        self.port = port
        self.timeout_s = timeout_s
        self.service_name = service_name
        self._transport = transport

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}{HEALTH_PATH}"

    async def port_in_use(self) -> bool:
        """Return True if something accepts TCP connections on the bridge port."""
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.timeout_s,
            )
        except (OSError, TimeoutError):
            return False
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True

    async def probe(self) -> HealthReport:
        """Issue one bounded health request.

        Connection errors, timeouts, non-2xx responses and bodies that are not
        JSON are all reported as ``unreachable``.
        """
        try:
            # Bridge probes never go through HTTP_PROXY/ALL_PROXY.
            async with httpx.AsyncClient(
                timeout=self.timeout_s,
                transport=self._transport,
                trust_env=False,
            ) as client:
                response = await client.get(self.url)
        except httpx.TimeoutException:
            return HealthReport("unreachable", error="Request timeout")
        except httpx.HTTPError as e:
            return HealthReport("unreachable", error=str(e) or type(e).__name__)

        if not response.is_success:
            return HealthReport("unreachable", error=f"HTTP {response.status_code}")
        try:
            payload = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return HealthReport("unreachable", error="Invalid JSON response")
        return classify_health(payload, self.service_name)

    async def wait_until_ready(
        self,
        *,
        max_retries: int,
        delay_s: float,
        strict: bool = False,
    ) -> bool:
        """Probe until ready, at most ``max_retries`` times.

        With ``strict`` only a ``connected`` bridge counts as ready. Otherwise
        any parseable health body is enough, which is what a freshly booted
        bridge waiting for QR authentication reports.
        """
        for attempt in range(1, max_retries + 1):
            report = await self.probe()
            ready = report.status == "connected" if strict else report.parseable
            if ready:
                logger.info(
                    "REST API ready on port {} (status: {})",
                    self.port,
                    report.bridge_status,
                )
                return True
            logger.info(
                "Waiting for API... ({}/{}) [{}{}]",
                attempt,
                max_retries,
                report.status,
                f": {report.error}" if report.error else "",
            )
            await asyncio.sleep(delay_s)
        return False
