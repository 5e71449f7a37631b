"""Lifecycle coordination for the bridge and the MCP server."""

from __future__ import annotations

import asyncio
import atexit
import signal
from typing import Any, Protocol

from loguru import logger

from wamcp.runtime.launcher import BridgeHandle, ChildHandle, LauncherPort, LaunchError, ServerHandle
from wamcp.runtime.lock import LockHeldError, RunLock
from wamcp.runtime.models import HealthReport, LifecycleState, SessionInfo, SupervisorConfig
from wamcp.runtime.reaper import ProcessReaper, ReaperError
from wamcp.runtime.session import inspect_session


class StartupError(RuntimeError):
    """The bridge never became ready."""


class HealthProberPort(Protocol):
    """Bridge reachability and health checks."""

    async def port_in_use(self) -> bool:
        """Return True if the bridge port accepts connections."""

    async def probe(self) -> HealthReport:
        """Run one bounded health probe."""

    async def wait_until_ready(self, *, max_retries: int, delay_s: float, strict: bool = False) -> bool:
        """Probe repeatedly until ready or out of retries."""


_EXPECTED_FAILURES = (StartupError, LaunchError, LockHeldError)


class Supervisor:
    """Owns both child handles and drives the startup/shutdown state machine.

    Every exit trigger (signals, loop faults, child exits, interpreter exit)
    funnels into :meth:`shutdown`, which runs at most once.
    """

    def __init__(
        self,
        config: SupervisorConfig,
        *,
        prober: HealthProberPort,
        launcher: LauncherPort,
        reaper: ProcessReaper,
        lock: RunLock | None = None,
        install_handlers: bool = True,
    ):
        self.config = config
        self.prober = prober
        self.launcher = launcher
        self.reaper = reaper
        self.lock = lock
        self.install_handlers_on_run = install_handlers

        self.state: LifecycleState = "init"
        self.history: list[LifecycleState] = ["init"]
        self.bridge: BridgeHandle | None = None
        self.server: ServerHandle | None = None
        self.session: SessionInfo | None = None
        self.exit_code = 0

        self._shutdown_started = False
        self._stopped = asyncio.Event()
        self._watchers: list[asyncio.Task[None]] = []

    @property
    def reused_bridge(self) -> bool:
        return self.bridge is not None and not self.bridge.owned

    def _enter(self, state: LifecycleState) -> None:
        self.state = state
        self.history.append(state)
        logger.debug("Lifecycle -> {}", state)

    # ------------------------------------------------------------------ run

    async def run(self) -> int:
        """Start everything, wait for a shutdown trigger, return the exit code."""
        logger.info("WhatsApp MCP Server starting...")
        if self.install_handlers_on_run:
            self.install_handlers(asyncio.get_running_loop())

        startup = asyncio.create_task(self.start(), name="wamcp-startup")
        stopped = asyncio.create_task(self._stopped.wait(), name="wamcp-stopped")
        try:
            done, _ = await asyncio.wait({startup, stopped}, return_when=asyncio.FIRST_COMPLETED)
            if startup in done:
                exc = startup.exception()
                if exc is not None:
                    self._fail(exc)
                else:
                    await stopped
        finally:
            for task in (startup, stopped):
                if not task.done():
                    task.cancel()
            await asyncio.gather(startup, stopped, return_exceptions=True)
            self.shutdown(None)
            await self._reap_children()
        return self.exit_code

    async def start(self) -> None:
        """Run the startup sequence up to the ``running`` state."""
        cfg = self.config
        if self.lock is not None:
            self.lock.acquire()

        self.session = inspect_session(cfg.session_path, expiry_days=cfg.session_expiry_days)
        self._report_session(self.session)

        self._enter("port_check")
        logger.debug("Checking for a bridge at {}", cfg.health_url)
        port_in_use = await self.prober.port_in_use()
        reuse = False
        if port_in_use:
            logger.info("Port {} is in use, checking if it's our WhatsApp bridge...", cfg.bridge_port)
            report = await self.prober.probe()
            if report.status == "connected":
                logger.info("✓ Found existing WhatsApp bridge, status: connected")
                logger.info("Reusing existing bridge on port {}", cfg.bridge_port)
                reuse = True
            elif report.status == "disconnected":
                logger.warning(
                    "Found WhatsApp bridge but not connected (status: {}), will restart...",
                    report.bridge_status,
                )
            else:
                logger.warning(
                    "Port {} used by unknown service ({}), will clean up...",
                    cfg.bridge_port,
                    report.service or report.error or "no service field",
                )

        if reuse:
            self._enter("reusing")
            self.bridge = BridgeHandle.external()
            logger.info("Skipping bridge startup, using existing bridge")
        else:
            if port_in_use:
                self._enter("cleaning")
                await self._clean_port()
            self._enter("bridge_starting")
            await self._start_bridge()

        self._enter("server_starting")
        self.server = await self.launcher.launch_server()
        self._watch(self.server)

        self._enter("running")
        logger.info("All services started successfully")

    async def _clean_port(self) -> None:
        self._reap()
        if await self.prober.port_in_use():
            logger.warning("Port {} still in use after cleanup", self.config.bridge_port)
            logger.info("Waiting for port to be released...")
            await asyncio.sleep(self.config.port_release_grace_s)

    async def _start_bridge(self) -> None:
        cfg = self.config
        self.bridge = await self.launcher.launch_bridge()
        self._watch(self.bridge)
        try:
            ready = await asyncio.wait_for(
                self.prober.wait_until_ready(
                    max_retries=cfg.max_retries,
                    delay_s=cfg.retry_delay_s,
                    strict=False,
                ),
                timeout=cfg.init_timeout_s,
            )
        except TimeoutError:
            raise StartupError(
                f"Initialization timeout after {cfg.init_timeout_s:g} seconds"
            ) from None
        if not ready:
            raise StartupError("Bridge REST API failed to start")
        logger.info("Initialization completed successfully")

    def _report_session(self, info: SessionInfo) -> None:
        if not info.exists:
            logger.warning("⚠️  No WhatsApp session found!")
            logger.warning("Please run the following command to authenticate:")
            logger.warning("  cd {} && go run main.go", self.config.bridge_dir)
            logger.warning("Scan the QR code with WhatsApp, then restart this server.")
            logger.warning("Starting services for initial setup...")
        elif info.possibly_expired:
            logger.warning(
                "WhatsApp session is {:.1f} days old and may be expired (>{:g} days); "
                "re-authenticate with the QR code if messages stop arriving",
                info.age_days,
                info.expiry_days,
            )
        else:
            logger.info("✓ WhatsApp session found, starting in headless mode")

    # ------------------------------------------------------------ children

    def _watch(self, handle: ChildHandle) -> None:
        if handle.process is None:
            return
        task = asyncio.create_task(self._watch_exit(handle), name=f"wamcp-watch-{handle.name}")
        self._watchers.append(task)

    async def _watch_exit(self, handle: ChildHandle) -> None:
        code = await handle.process.wait()
        if handle.pumps:
            await asyncio.gather(*handle.pumps, return_exceptions=True)
        if self._shutdown_started:
            logger.debug("{} exited with code {}", handle.name, code)
            return
        # Negative codes mean death by signal, which carries no exit status.
        if code is not None and code > 0:
            logger.error("{} exited with code {}", handle.name, code)
            self.shutdown(code)
        elif isinstance(handle, ServerHandle):
            logger.info("MCP server exited (code {}), stopping", code)
            self.shutdown(0)
        else:
            logger.warning("{} exited (code {})", handle.name, code)

    def _reap(self) -> int:
        try:
            killed = self.reaper.kill_by_name(self.config.bridge_process_name)
        except (ReaperError, OSError) as e:
            logger.debug("Bridge process cleanup skipped: {}", e)
            return 0
        if killed:
            logger.info("Cleaned up {} existing bridge process(es)", killed)
        return killed

    async def _reap_children(self) -> None:
        grace = self.config.shutdown_grace_s
        for handle in (self.server, self.bridge):
            if handle is None or not handle.owned or handle.process is None:
                continue
            try:
                await asyncio.wait_for(handle.process.wait(), timeout=grace)
            except TimeoutError:
                logger.warning("{} did not exit after SIGTERM, killing", handle.name)
                handle.kill()
                try:
                    await asyncio.wait_for(handle.process.wait(), timeout=grace)
                except TimeoutError:
                    logger.error("{} (pid {}) could not be killed", handle.name, handle.pid)

        for task in self._watchers:
            if not task.done():
                task.cancel()
        await asyncio.gather(*self._watchers, return_exceptions=True)
        self._enter("terminated")

    # ------------------------------------------------------------ shutdown

    def shutdown(self, code: int | None = 0, *, terminate: bool = True, reap: bool | None = None) -> None:
        """Stop both children and end the run. Safe to call any number of times.

        Args:
            code: Exit code to record; ``None`` keeps the current one.
            terminate: End the run after cleanup. The interpreter exit hook
                passes False because the process is already exiting.
            reap: Kill leftover bridge processes by name. Defaults to the
                ``reap_on_shutdown`` setting.
        """
        if self._shutdown_started:
            logger.debug("Shutdown already in progress")
            return
        self._shutdown_started = True
        if code is not None:
            self.exit_code = code
        self._enter("shutting_down")
        logger.info("Shutting down...")

        for handle in (self.server, self.bridge):
            if handle is None:
                continue
            try:
                if handle.terminate():
                    logger.debug("Sent SIGTERM to {} (pid {})", handle.name, handle.pid)
            except (OSError, RuntimeError) as e:
                logger.debug("Could not terminate {}: {}", handle.name, e)

        if self.config.reap_on_shutdown if reap is None else reap:
            self._reap()

        if self.lock is not None and self.lock.held:
            self.lock.release()

        if terminate:
            self._stopped.set()

    def _fail(self, exc: BaseException) -> None:
        if isinstance(exc, _EXPECTED_FAILURES):
            logger.error("{}", exc)
        else:
            logger.opt(exception=exc).error("Fatal error: {}", exc)
        # The lock owner's bridge is not ours to kill.
        self.shutdown(1, reap=not isinstance(exc, LockHeldError))

    # ------------------------------------------------------------- triggers

    def install_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        """Route signals, loop faults and interpreter exit into :meth:`shutdown`."""
        for name in ("SIGINT", "SIGTERM", "SIGHUP"):
            sig = getattr(signal, name, None)
            if sig is None:
                continue
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError):
                signal.signal(
                    sig,
                    lambda signum, _frame: loop.call_soon_threadsafe(
                        self._on_signal, signal.Signals(signum)
                    ),
                )
        loop.set_exception_handler(self._on_loop_exception)
        atexit.register(self._on_exit)

    def _on_signal(self, sig: signal.Signals) -> None:
        logger.info("Received {}", sig.name)
        self.shutdown(0)

    def _on_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        exc = context.get("exception")
        message = context.get("message", "Unhandled exception")
        if exc is not None:
            logger.opt(exception=exc).error("Unhandled rejection: {}", message)
        else:
            logger.error("Unhandled rejection: {}", message)
        self.shutdown(1)

    def _on_exit(self) -> None:
        self.shutdown(None, terminate=False)
