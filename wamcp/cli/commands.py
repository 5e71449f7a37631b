"""CLI commands for wamcp."""

from . import diagnostic_commands, run_commands  # noqa: F401  (registers commands)
from .core import app

__all__ = ["app"]

if __name__ == "__main__":
    app()
