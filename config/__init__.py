"""Configuration module for Hellas Launcher."""

from .settings import (
    get_config,
    reset_config,
    LauncherConfig,
    PackConfig,
    GameConfig,
    NetworkConfig,
    AuthConfig,
    LinksConfig,
)

__all__ = [
    "get_config",
    "reset_config",
    "LauncherConfig",
    "PackConfig",
    "GameConfig",
    "NetworkConfig",
    "AuthConfig",
    "LinksConfig",
]
