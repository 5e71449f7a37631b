"""Shared CLI application context and setup helpers."""

from __future__ import annotations

import sys

import typer
from loguru import logger
from rich.console import Console

from wamcp import __logo__, __version__

app = typer.Typer(
    name="wamcp",
    help=f"{__logo__} wamcp - headless WhatsApp MCP launcher",
    no_args_is_help=True,
)

console = Console()

LOG_FORMAT = (
    "<green>{time:HH:mm:ss}</green> <level>{level: <7}</level> "
    "[WHATSAPP-MCP] <level>{message}</level>"
)


def version_callback(value: bool) -> None:
    if value:
        console.print(f"{__logo__} wamcp v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(None, "--version", "-V", callback=version_callback, is_eager=True),
) -> None:
    """wamcp - headless WhatsApp MCP launcher."""


def configure_logging(verbose: bool = False) -> None:
    """Send all log output to stderr; stdout belongs to the MCP stream."""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO", format=LOG_FORMAT)
