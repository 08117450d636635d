"""
Hellas Store - Base Runtime Provisioning

Makes sure the install root holds what the modpack runs on top of:
the Minecraft version profile and client jar, the Forge installer and
the Log4j configuration. Each step is skipped when its file exists.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from ..clients.game_meta_client import LOG4J_CONFIG_URL, GameMetaClient, GameMetaError
from .errors import TransferError
from .layout import InstallLayout

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str], None]


def _noop(message: str) -> None:
    pass


@dataclass
class RuntimeInfo:
    """Versions the base runtime was provisioned for."""
    minecraft_version: str
    forge_version: str
    forge_installer_path: Path
    log4j_config_path: Path


class RuntimeService:
    """Provisions Minecraft, Forge and Log4j files under an install root."""

    def __init__(
        self,
        meta_client: GameMetaClient,
        minecraft_version: str,
        forge_version: Optional[str] = None,
    ):
        self.meta_client = meta_client
        self.minecraft_version = minecraft_version
        self.forge_version = forge_version

    def resolve_forge_version(self) -> str:
        """Pinned Forge version, else the latest build from the Forge maven."""
        if self.forge_version:
            return self.forge_version
        try:
            return self.meta_client.latest_forge_version(self.minecraft_version)
        except GameMetaError as e:
            raise TransferError(str(e)) from e

    def ensure_minecraft_version(self, layout: InstallLayout, on_status: StatusCallback = _noop) -> Path:
        """Version JSON plus client jar for the pinned game version."""
        version = self.minecraft_version
        json_path = layout.version_json_path(version)
        jar_path = layout.version_jar_path(version)
        if json_path.is_file() and jar_path.is_file():
            return json_path

        on_status(f"Fetching Minecraft {version} metadata…")
        try:
            profile = self.meta_client.get_version_profile(version)
            self.meta_client.write_json(profile, json_path)

            client_url = self.meta_client.client_jar_url(profile)
            if not client_url:
                raise TransferError(f"Minecraft {version} profile is missing client download info.")

            on_status(f"Downloading Minecraft {version} client…")
            self.meta_client.download_file(client_url, jar_path)
        except GameMetaError as e:
            raise TransferError(f"Failed while downloading Minecraft {version}: {e}") from e

        logger.info("[RuntimeService] Minecraft %s ready in %s", version, layout.version_dir(version))
        return json_path

    def ensure_forge_installer(
        self, layout: InstallLayout, forge_version: str, on_status: StatusCallback = _noop
    ) -> Path:
        installer_path = layout.forge_installer_path(forge_version)
        if installer_path.is_file():
            return installer_path

        on_status(f"Downloading Forge {forge_version}...")
        try:
            self.meta_client.download_file(self.meta_client.forge_installer_url(forge_version), installer_path)
        except GameMetaError as e:
            raise TransferError(f"Failed while downloading Forge {forge_version}: {e}") from e

        logger.info("[RuntimeService] Forge installer ready: %s", installer_path)
        return installer_path

    def ensure_log4j_config(self, layout: InstallLayout, on_status: StatusCallback = _noop) -> Path:
        path = layout.log4j_config_path
        if path.is_file():
            return path

        on_status("Downloading Log4j configuration…")
        try:
            self.meta_client.download_file(LOG4J_CONFIG_URL, path)
        except GameMetaError as e:
            raise TransferError(f"Failed to prepare Log4j configuration: {e}") from e
        return path

    def ensure_base_runtime(self, install_root: Path, on_status: StatusCallback = _noop) -> RuntimeInfo:
        """
        Provision everything the modpack needs besides its own files.

        Raises:
            TransferError: If a download or metadata lookup fails.
        """
        layout = InstallLayout(install_root)
        layout.ensure_directories()
        forge_version = self.resolve_forge_version()

        on_status("Checking Minecraft files…")
        self.ensure_minecraft_version(layout, on_status)

        on_status("Checking Forge installer…")
        installer = self.ensure_forge_installer(layout, forge_version, on_status)

        log4j = self.ensure_log4j_config(layout, on_status)

        return RuntimeInfo(
            minecraft_version=self.minecraft_version,
            forge_version=forge_version,
            forge_installer_path=installer,
            log4j_config_path=log4j,
        )
