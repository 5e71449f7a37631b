"""Session and connectivity diagnostics."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import typer
from rich.markup import escape

from wamcp.runtime.health import BridgeHealthProber

from .core import app, console

RULE = "=" * 30


@app.command("check-session")
def check_session(
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file path"),
) -> None:
    """Report WhatsApp session and message database status."""
    from wamcp.config.loader import load_config
    from wamcp.runtime.session import inspect_session

    config = load_config(config_path)

    console.print("WhatsApp Session Status Check")
    console.print(RULE + "\n")

    session = inspect_session(config.session_path, expiry_days=config.session_expiry_days)
    if session.exists:
        console.print("[green]✅ Session database found[/green]")
        console.print(f"   Path: {escape(str(session.path))}")
        console.print(f"   Last modified: {session.modified_at:%Y-%m-%d %H:%M:%S}")
        console.print(f"   Days since last activity: {session.age_days:.1f} days")
        if session.possibly_expired:
            console.print(
                f"\n[yellow]⚠️  WARNING: Session may be expired (>{session.expiry_days:g} days old)[/yellow]"
            )
            console.print("   You may need to re-authenticate with QR code")
        else:
            console.print("\n[green]✅ Session appears to be valid[/green]")
    else:
        console.print("[red]❌ No session database found[/red]")
        console.print(f"   Expected at: {escape(str(session.path))}")
        console.print("\n   To authenticate:")
        console.print(f"   1. cd {escape(str(config.bridge_path))}")
        console.print("   2. go run main.go")
        console.print("   3. Scan the QR code with WhatsApp on your phone")

    console.print("\n" + RULE + "\n")
    messages = inspect_session(config.message_db_path)
    if messages.exists:
        console.print("[green]✅ Message database found[/green]")
        console.print(f"   Path: {escape(str(messages.path))}")
        console.print(f"   Size: {(messages.size_bytes or 0) / 1024:.2f} KB")
    else:
        console.print("📝 No message database found (will be created on first use)")

    console.print("\n" + RULE)
    console.print("\nTo start WhatsApp MCP Server:")
    console.print("  wamcp run")


async def _report_health(prober: BridgeHealthProber) -> bool:
    console.print(f"\nTesting health endpoint at {prober.url}")
    report = await prober.probe()
    if report.parseable:
        console.print("Health check response:", report.payload)
        return True
    console.print(f"[red]Health check failed:[/red] {escape(report.error or '')}")
    return False


@app.command("test-connection")
def test_connection(
    host: str | None = typer.Option(None, "--host", help="Bridge host (default: auto-detect)"),
    start_bridge: bool = typer.Option(
        True,
        "--start-bridge/--no-start-bridge",
        help="Start the bridge in the foreground if it is not reachable",
    ),
    wait: float = typer.Option(5.0, "--wait", min=0.0, help="Seconds to wait for a started bridge"),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file path"),
) -> None:
    """Check that the bridge health endpoint answers."""
    import subprocess
    import time

    from wamcp.app.bootstrap import resolve_host
    from wamcp.config.loader import load_config
    from wamcp.runtime.launcher import bridge_command, bridge_env

    config = load_config(config_path)
    resolved = host or resolve_host(config)
    prober = BridgeHealthProber(
        resolved,
        config.bridge_port,
        timeout_s=5.0,
        service_name=config.service_name,
    )

    console.print("WhatsApp MCP Connection Test")
    console.print("=" * 29)
    console.print(f"Platform: {sys.platform}")
    console.print(f"Bridge Host: {escape(resolved)}")
    console.print(f"Bridge Port: {config.bridge_port}")

    console.print("\n1. Testing direct connection to bridge...")
    if asyncio.run(_report_health(prober)):
        return
    if not start_bridge:
        raise typer.Exit(1)

    console.print("\nBridge is not running. Starting it manually for testing...")
    runtime = config.to_supervisor_config(resolved)
    cmd = bridge_command(runtime)
    console.print(f"Running: {escape(' '.join(cmd))} in {escape(str(runtime.bridge_dir))}")
    try:
        proc = subprocess.Popen(cmd, cwd=runtime.bridge_dir, env=bridge_env())
    except OSError as e:
        console.print(f"[red]Failed to start bridge:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    console.print(f"\nWaiting {wait:g} seconds for bridge to start...")
    time.sleep(wait)

    console.print("\n2. Testing connection after starting bridge...")
    ok = asyncio.run(_report_health(prober))

    console.print(f"\n[dim]Bridge running in foreground (pid {proc.pid}); press Ctrl+C to stop.[/dim]")
    try:
        proc.wait()
    except KeyboardInterrupt:
        proc.terminate()
        proc.wait()
    if not ok:
        raise typer.Exit(1)
