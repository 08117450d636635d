"""
Hellas Store - Install Root Layout

Manages the install root owned by the launcher:
- modpack/                  game directory
  - mods/                   canonical mod location
  - resourcepacks/          canonical resource pack location
  - servers.dat
- forge/<forge>/forge-<forge>-installer.jar
- versions/<id>/<id>.json, <id>.jar
- log4j2_112-116.xml

Older packs shipped mods/ and resourcepacks/ directly under the root.
Those legacy locations are declared as data (LEGACY_RELOCATIONS) and
migrated by the reconciler; nothing else probes for them ad hoc.
"""

from __future__ import annotations

import errno
import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

MODPACK_DIR = "modpack"
MODS_DIR = "mods"
RESOURCEPACKS_DIR = "resourcepacks"
FORGE_DIR = "forge"
VERSIONS_DIR = "versions"
LOG4J_CONFIG_FILENAME = "log4j2_112-116.xml"


@dataclass(frozen=True)
class RelocationRule:
    """A legacy location and where its content belongs now."""
    source: str
    target: str
    is_directory: bool


LEGACY_RELOCATIONS: Tuple[RelocationRule, ...] = (
    RelocationRule(MODS_DIR, f"{MODPACK_DIR}/{MODS_DIR}", is_directory=True),
    RelocationRule(RESOURCEPACKS_DIR, f"{MODPACK_DIR}/{RESOURCEPACKS_DIR}", is_directory=True),
    RelocationRule("servers.dat", f"{MODPACK_DIR}/servers.dat", is_directory=False),
    RelocationRule("servers.dat_old", f"{MODPACK_DIR}/servers.dat_old", is_directory=False),
)

# Directories whose contents are fully replaced on every update
REPLACED_DIRECTORIES: Tuple[str, ...] = (
    f"{MODPACK_DIR}/{MODS_DIR}",
    f"{MODPACK_DIR}/{RESOURCEPACKS_DIR}",
)

# Mod directories scanned by detection, in priority order. Nested
# "<child>/mods" directories are appended at scan time.
MOD_DIRECTORY_CANDIDATES: Tuple[str, ...] = (
    f"{MODPACK_DIR}/{MODS_DIR}",
    MODS_DIR,
)


def forge_installed_id(forge_version: str) -> str:
    """Version id a Forge installer writes: 1.16.5-36.2.39 -> 1.16.5-forge-36.2.39."""
    if "-" not in forge_version:
        return forge_version
    mc_version, build = forge_version.split("-", 1)
    return f"{mc_version}-forge-{build}"


class InstallLayout:
    """
    Paths of one install root.

    Pure path arithmetic plus a handful of filesystem helpers shared by
    the reconciler and the runtime service.
    """

    def __init__(self, root: Path):
        self.root = Path(root).expanduser()

    # =========================================================================
    # Path Properties
    # =========================================================================

    @property
    def modpack_path(self) -> Path:
        """Game directory passed to the client."""
        return self.root / MODPACK_DIR

    @property
    def mods_path(self) -> Path:
        return self.modpack_path / MODS_DIR

    @property
    def resourcepacks_path(self) -> Path:
        return self.modpack_path / RESOURCEPACKS_DIR

    @property
    def forge_path(self) -> Path:
        return self.root / FORGE_DIR

    @property
    def versions_path(self) -> Path:
        return self.root / VERSIONS_DIR

    @property
    def log4j_config_path(self) -> Path:
        return self.root / LOG4J_CONFIG_FILENAME

    def resolve(self, relative: str) -> Path:
        """Absolute path of a layout-relative location."""
        return self.root.joinpath(*relative.split("/"))

    # =========================================================================
    # Version Paths
    # =========================================================================

    def version_dir(self, version_id: str) -> Path:
        return self.versions_path / version_id

    def version_json_path(self, version_id: str) -> Path:
        return self.version_dir(version_id) / f"{version_id}.json"

    def version_jar_path(self, version_id: str) -> Path:
        return self.version_dir(version_id) / f"{version_id}.jar"

    def forge_installer_path(self, forge_version: str) -> Path:
        return self.forge_path / forge_version / f"forge-{forge_version}-installer.jar"

    def forge_metadata_candidates(self, forge_version: str) -> List[Path]:
        """Profiles a Forge install may have produced, in lookup order."""
        candidates = [self.version_json_path(forge_version)]
        installed_id = forge_installed_id(forge_version)
        if installed_id != forge_version:
            candidates.append(self.version_json_path(installed_id))
        return candidates

    # =========================================================================
    # Skeleton
    # =========================================================================

    def ensure_directories(self) -> None:
        """Create the root and its top-level sub-directories."""
        for directory in (self.root, self.modpack_path, self.forge_path, self.versions_path):
            directory.mkdir(parents=True, exist_ok=True)

    def ensure_modpack_skeleton(self) -> None:
        """Create modpack/, modpack/mods and modpack/resourcepacks (idempotent)."""
        for directory in (self.modpack_path, self.mods_path, self.resourcepacks_path):
            directory.mkdir(parents=True, exist_ok=True)

    def find_game_directory(self) -> Path:
        """
        Directory the game runs in.

        Prefers modpack/; when it cannot be created, falls back to a
        legacy directory that contains mods/.

        Raises:
            FileNotFoundError: If no candidate directory exists.
        """
        try:
            self.modpack_path.mkdir(parents=True, exist_ok=True)
            return self.modpack_path
        except OSError as e:
            logger.warning("[InstallLayout] Cannot create %s: %s", self.modpack_path, e)

        if (self.root / MODS_DIR).is_dir():
            return self.root
        for child in sorted(self.root.iterdir()):
            if child.is_dir() and (child / MODS_DIR).is_dir():
                return child

        raise FileNotFoundError(
            "Modpack files not found in the installation directory. Please reinstall."
        )


# =============================================================================
# Filesystem helpers
# =============================================================================

def clear_directory(path: Path) -> int:
    """Remove everything inside path, keeping path itself. Returns entries removed."""
    if not path.is_dir():
        return 0
    count = 0
    for item in path.iterdir():
        remove_path(item)
        count += 1
    return count


def remove_path(path: Path) -> None:
    """Delete a file, symlink or directory tree."""
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink(missing_ok=True)


def move_entry(source: Path, target: Path) -> None:
    """
    Move one file or directory, replacing whatever is at target.

    Uses an atomic rename when possible; when the rename crosses a
    filesystem boundary (EXDEV) the entry is copied then deleted.
    """
    target.parent.mkdir(parents=True, exist_ok=True)
    if target.exists() or target.is_symlink():
        remove_path(target)
    try:
        os.replace(source, target)
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise
        logger.debug("[InstallLayout] Cross-device move %s -> %s", source, target)
        if source.is_dir() and not source.is_symlink():
            shutil.copytree(source, target, symlinks=True)
        else:
            shutil.copy2(source, target, follow_symlinks=False)
        remove_path(source)


def merge_directory(source: Path, target: Path) -> int:
    """Move every entry of source into target, then drop source. Returns entries moved."""
    target.mkdir(parents=True, exist_ok=True)
    moved = 0
    for item in sorted(source.iterdir()):
        move_entry(item, target / item.name)
        moved += 1
    source.rmdir()
    return moved


def error_code(error: OSError) -> Optional[str]:
    """Symbolic errno name (EACCES, ENOENT, ...) for diagnostics."""
    if error.errno is None:
        return None
    return errno.errorcode.get(error.errno, str(error.errno))
