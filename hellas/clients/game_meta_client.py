"""
Game Metadata Client

Talks to the public Minecraft and Forge distribution endpoints:
- Mojang version manifest and per-version profiles
- Forge maven metadata (latest build for a game version)
- Plain file downloads (client jar, Forge installer, Log4j config)
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

VERSION_MANIFEST_URL = "https://launchermeta.mojang.com/mc/game/version_manifest_v2.json"
FORGE_MAVEN_URL = "https://maven.minecraftforge.net/net/minecraftforge/forge"
FORGE_METADATA_URL = f"{FORGE_MAVEN_URL}/maven-metadata.xml"
LOG4J_CONFIG_URL = (
    "https://launcher.mojang.com/v1/objects/"
    "02937d122c86ce73319ef9975b58896fc1b491d1/log4j2_112-116.xml"
)

_VERSION_TAG = re.compile(r"<version>([^<]+)</version>")


class GameMetaError(Exception):
    """A metadata endpoint failed or returned something unusable."""
    pass


class GameMetaClient:
    """
    Client for Mojang and Forge metadata.

    The resolved Forge version is cached per game version for the
    lifetime of the client.
    """

    def __init__(self, timeout: int = 30, chunk_size: int = 64 * 1024):
        self.timeout = timeout
        self.chunk_size = chunk_size
        self._forge_cache: Dict[str, str] = {}

        self.session = requests.Session()
        self.session.headers.update({
            "User-Agent": "Mozilla/5.0 (compatible; HellasLauncher/1.0)",
        })

    def _get(self, url: str, error_message: str, **kwargs) -> requests.Response:
        try:
            response = self.session.get(url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise GameMetaError(f"{error_message}: {e}") from e
        if not response.ok:
            response.close()
            raise GameMetaError(f"{error_message} ({response.status_code})")
        return response

    def _get_json(self, url: str, error_message: str) -> Any:
        response = self._get(url, error_message)
        try:
            return response.json()
        except ValueError as e:
            raise GameMetaError(f"{error_message}: invalid JSON") from e

    # =========================================================================
    # Forge
    # =========================================================================

    def list_forge_versions(self, minecraft_version: str) -> List[str]:
        """All Forge builds for a game version, in maven order (oldest first)."""
        response = self._get(FORGE_METADATA_URL, "Failed to resolve Forge metadata")
        versions = _VERSION_TAG.findall(response.text)
        return [v for v in versions if v.startswith(f"{minecraft_version}-")]

    def latest_forge_version(self, minecraft_version: str) -> str:
        """Latest Forge build for a game version, e.g. ``1.16.5-36.2.39``."""
        cached = self._forge_cache.get(minecraft_version)
        if cached:
            return cached

        versions = self.list_forge_versions(minecraft_version)
        if not versions:
            raise GameMetaError(f"No Forge versions found for Minecraft {minecraft_version}")

        latest = versions[-1]
        self._forge_cache[minecraft_version] = latest
        logger.info("[GameMetaClient] Latest Forge for %s: %s", minecraft_version, latest)
        return latest

    @staticmethod
    def forge_installer_url(forge_version: str) -> str:
        return f"{FORGE_MAVEN_URL}/{forge_version}/forge-{forge_version}-installer.jar"

    # =========================================================================
    # Minecraft
    # =========================================================================

    def get_version_profile(self, minecraft_version: str) -> Dict[str, Any]:
        """The version JSON for a release, looked up through the manifest."""
        manifest = self._get_json(
            VERSION_MANIFEST_URL,
            f"Failed to resolve Minecraft versions ({VERSION_MANIFEST_URL})",
        )
        entry = next(
            (v for v in manifest.get("versions", []) if v.get("id") == minecraft_version),
            None,
        )
        if not entry or not entry.get("url"):
            raise GameMetaError(f"Minecraft version {minecraft_version} was not found in the manifest.")

        return self._get_json(entry["url"], f"Failed to download Minecraft {minecraft_version} profile")

    @staticmethod
    def client_jar_url(profile: Dict[str, Any]) -> Optional[str]:
        return ((profile.get("downloads") or {}).get("client") or {}).get("url")

    # =========================================================================
    # Files
    # =========================================================================

    def download_file(self, url: str, dest: Path) -> Path:
        """Stream url to dest (via a temporary sibling file)."""
        dest.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = dest.with_name(dest.name + ".part")
        response = self._get(url, f"Failed to download {url}", stream=True)
        try:
            with open(tmp_path, "wb") as f:
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    if chunk:
                        f.write(chunk)
            tmp_path.replace(dest)
        except requests.RequestException as e:
            raise GameMetaError(f"Failed to download {url}: {e}") from e
        finally:
            response.close()
            if tmp_path.exists():
                tmp_path.unlink()
        logger.debug("[GameMetaClient] Downloaded %s -> %s", url, dest)
        return dest

    @staticmethod
    def write_json(data: Dict[str, Any], dest: Path) -> Path:
        dest.parent.mkdir(parents=True, exist_ok=True)
        with open(dest, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        return dest
