"""Supervisor entry command."""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer

from .core import app, configure_logging


@app.command()
def run(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file path"),
) -> None:
    """Launch the WhatsApp bridge and MCP server and supervise both."""
    from wamcp.app.bootstrap import build_supervisor
    from wamcp.config.loader import load_config

    configure_logging(verbose)
    config = load_config(config_path)
    supervisor = build_supervisor(config)
    try:
        code = asyncio.run(supervisor.run())
    except KeyboardInterrupt:
        supervisor.shutdown(0, terminate=False)
        code = supervisor.exit_code
    raise typer.Exit(code)
