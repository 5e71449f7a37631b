"""Configuration module for wamcp."""

from wamcp.config.loader import get_config_path, load_config
from wamcp.config.schema import LauncherConfig

__all__ = ["LauncherConfig", "get_config_path", "load_config"]
