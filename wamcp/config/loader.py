"""Configuration loading utilities."""

import json
import os
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from wamcp.config.schema import LauncherConfig


def get_data_path() -> Path:
    """Get the wamcp data directory.

    Respects WAMCP_HOME; falls back to ~/.wamcp.
    """
    home = os.environ.get("WAMCP_HOME", "").strip()
    if home:
        return Path(home).expanduser()
    return Path.home() / ".wamcp"


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return get_data_path() / "config.json"


def load_config(config_path: Path | None = None) -> LauncherConfig:
    """
    Load configuration from file, environment and defaults.

    Args:
        config_path: Optional path to config file. Uses default if not provided.

    Returns:
        Loaded configuration object. ``WAMCP_*`` environment variables take
        precedence over file values.
    """
    path = config_path or get_config_path()

    data: dict[str, Any] = {}
    if path.exists():
        try:
            with open(path) as f:
                raw = json.load(f)
            if not isinstance(raw, dict):
                raise ValueError("Config root must be a JSON object")
            data = convert_keys(raw)
        except (OSError, ValueError) as e:
            logger.warning("Failed to load config from {}: {}", path, e)
            logger.warning("Using default configuration.")
            data = {}

    try:
        return LauncherConfig(**data)
    except ValidationError as e:
        logger.warning("Invalid config in {}: {}", path, e)
        logger.warning("Using default configuration.")
        return LauncherConfig()


def convert_keys(data: Any) -> Any:
    """Convert camelCase keys to snake_case for Pydantic."""
    if isinstance(data, dict):
        return {camel_to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)
