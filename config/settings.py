"""
Hellas Launcher Configuration Module

Central configuration for all launcher components including paths,
update source settings, pinned game versions and network tuning.

Environment variables always win over values saved in config.json.
"""

import json
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_PACK_URL = "https://hellasregion.com/download/latest"
DEFAULT_WEBSITE_URL = "https://hellasregion.com"
DEFAULT_DYNMAP_URL = "https://map.pixelmon-server.com"
DEFAULT_MC_VERSION = "1.16.5"
DEFAULT_MICROSOFT_CLIENT_ID = "00000000402b5328"


def _env(name: str) -> Optional[str]:
    """Return a stripped environment value, or None when unset/blank."""
    value = os.environ.get(name, "").strip()
    return value or None


def _env_int(name: str) -> Optional[int]:
    value = _env(name)
    if value is None:
        return None
    try:
        parsed = int(float(value))
    except ValueError:
        logger.warning("[Config] Ignoring non-numeric %s=%r", name, value)
        return None
    return parsed if parsed > 0 else None


def _env_flag(name: str, default: bool) -> bool:
    value = _env(name)
    if value is None:
        return default
    return value.lower() not in ("false", "0", "no", "off")


def default_data_root() -> Path:
    """Platform default for launcher data (state, logs, install dir)."""
    override = _env("HELLAS_ROOT")
    if override:
        return Path(override).expanduser()
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA") or str(Path.home() / "AppData" / "Roaming")
        return Path(appdata) / "Hellas"
    return Path.home() / ".hellas"


@dataclass
class PackConfig:
    """Update source configuration."""
    feed_url: Optional[str] = field(default_factory=lambda: _env("PACK_FEED_URL"))
    zip_url: Optional[str] = field(default_factory=lambda: _env("PACK_ZIP_URL"))
    version: Optional[str] = field(default_factory=lambda: _env("PACK_VERSION"))
    expected_sha256: Optional[str] = field(default_factory=lambda: _env("PACK_EXPECTED_SHA256"))
    # Explicit source type from config.json ("feed" / "direct"); None = precedence rules
    source_type: Optional[str] = None
    default_url: str = DEFAULT_PACK_URL
    jar_prefix: str = field(
        default_factory=lambda: _env("HELLAS_MODPACK_JAR_PREFIX") or "hellasforms"
    )


@dataclass
class GameConfig:
    """Pinned game and loader versions."""
    minecraft_version: str = field(
        default_factory=lambda: _env("HELLAS_MC_VERSION") or DEFAULT_MC_VERSION
    )
    # None means "latest Forge for minecraft_version" from the Forge maven
    forge_version: Optional[str] = field(default_factory=lambda: _env("HELLAS_FORGE_VERSION"))
    bundled_java_path: Optional[Path] = field(
        default_factory=lambda: Path(_env("BUNDLED_JAVA_PATH")).resolve()
        if _env("BUNDLED_JAVA_PATH") else None
    )
    memory_max_mb: Optional[int] = field(default_factory=lambda: _env_int("MC_MEMORY_MAX"))
    memory_min_mb: Optional[int] = field(default_factory=lambda: _env_int("MC_MEMORY_MIN"))


@dataclass
class NetworkConfig:
    """HTTP tuning for downloads and metadata requests."""
    download_chunk_size: int = 64 * 1024
    connect_timeout: int = 15
    read_timeout: int = 60
    # Bodies up to this size are sniffed for a JSON descriptor
    descriptor_sniff_limit: int = 512 * 1024


@dataclass
class AuthConfig:
    """Microsoft identity settings."""
    microsoft_client_id: str = field(
        default_factory=lambda: _env("MICROSOFT_CLIENT_ID") or DEFAULT_MICROSOFT_CLIENT_ID
    )


@dataclass
class LinksConfig:
    """External links surfaced in launcher state."""
    website_url: str = field(default_factory=lambda: _env("WEBSITE_URL") or DEFAULT_WEBSITE_URL)
    dynmap_url: str = field(default_factory=lambda: _env("DYNMAP_URL") or DEFAULT_DYNMAP_URL)


@dataclass
class LauncherConfig:
    """Main launcher configuration container."""
    pack: PackConfig = field(default_factory=PackConfig)
    game: GameConfig = field(default_factory=GameConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    links: LinksConfig = field(default_factory=LinksConfig)

    data_root: Path = field(default_factory=default_data_root)
    log_level: str = field(default_factory=lambda: (_env("HELLAS_LOG_LEVEL") or "INFO").upper())
    animation_default: bool = field(
        default_factory=lambda: _env_flag("AETHERVEIL_ANIM_ENABLED", True)
    )

    @property
    def config_file(self) -> Path:
        return self.data_root / "config.json"

    @property
    def state_file(self) -> Path:
        return self.data_root / "state.json"

    @property
    def log_dir(self) -> Path:
        return self.data_root / "logs"

    @property
    def default_install_dir(self) -> Path:
        return self.data_root / "install"

    def ensure_directories(self) -> None:
        """Create all necessary directories."""
        for directory in (self.data_root, self.log_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def save(self) -> None:
        """Save the file-backed part of the configuration."""
        self.ensure_directories()
        config_dict = {
            "pack": {
                "type": self.pack.source_type,
                "feed_url": self.pack.feed_url,
                "zip_url": self.pack.zip_url,
                "version": self.pack.version,
                "expected_sha256": self.pack.expected_sha256,
            },
            "game": {
                "minecraft_version": self.game.minecraft_version,
                "forge_version": self.game.forge_version,
            },
            "network": {
                "download_chunk_size": self.network.download_chunk_size,
                "connect_timeout": self.network.connect_timeout,
                "read_timeout": self.network.read_timeout,
            },
        }
        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(config_dict, f, indent=2)

    @classmethod
    def load(cls, data_root: Optional[Path] = None) -> "LauncherConfig":
        """Load configuration from file (if any) under environment overrides."""
        config = cls()
        if data_root is not None:
            config.data_root = Path(data_root)

        if config.config_file.exists():
            try:
                with open(config.config_file, encoding="utf-8") as f:
                    data = json.load(f)

                pack_data = data.get("pack") or {}
                config.pack.source_type = pack_data.get("type") or None
                # Saved values only fill gaps left by the environment
                config.pack.feed_url = config.pack.feed_url or pack_data.get("feed_url") or None
                config.pack.zip_url = config.pack.zip_url or pack_data.get("zip_url") or None
                config.pack.version = config.pack.version or pack_data.get("version") or None
                config.pack.expected_sha256 = (
                    config.pack.expected_sha256 or pack_data.get("expected_sha256") or None
                )

                game_data = data.get("game") or {}
                if not _env("HELLAS_MC_VERSION") and game_data.get("minecraft_version"):
                    config.game.minecraft_version = game_data["minecraft_version"]
                config.game.forge_version = config.game.forge_version or game_data.get("forge_version")

                network_data = data.get("network") or {}
                config.network.download_chunk_size = network_data.get(
                    "download_chunk_size", config.network.download_chunk_size
                )
                config.network.connect_timeout = network_data.get(
                    "connect_timeout", config.network.connect_timeout
                )
                config.network.read_timeout = network_data.get(
                    "read_timeout", config.network.read_timeout
                )
            except (json.JSONDecodeError, OSError, AttributeError) as e:
                logger.warning("[Config] Could not load %s, using defaults: %s", config.config_file, e)

        return config


# Global configuration instance
_config: Optional[LauncherConfig] = None


def get_config() -> LauncherConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = LauncherConfig.load()
    return _config


def reset_config() -> None:
    """Reset global configuration (useful for testing)."""
    global _config
    _config = None
