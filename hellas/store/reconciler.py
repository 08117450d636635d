"""
Hellas Store - Installation Reconciler

Converges the install root to the content of an update archive and
reports what is installed.

Extraction replaces mods and resource packs wholesale (never merges),
then migrates anything the archive placed in a legacy location.
Detection is read-only and never raises: filesystem failures come back
as diagnostics next to whatever could be determined.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from .cancellation import CancelToken
from .errors import ExtractionError
from .layout import (
    FORGE_DIR,
    LEGACY_RELOCATIONS,
    MOD_DIRECTORY_CANDIDATES,
    MODS_DIR,
    REPLACED_DIRECTORIES,
    InstallLayout,
    clear_directory,
    error_code,
    merge_directory,
    move_entry,
    remove_path,
)
from .models import DetectionResult, Diagnostic, Requirements

logger = logging.getLogger(__name__)


@dataclass
class ExtractionSummary:
    """What an extraction did to the install root."""
    directories: int = 0
    files: int = 0
    relocated: List[str] = field(default_factory=list)


def modpack_requirement_met(
    expected_version_present: bool,
    modpack_version: Optional[str],
    expected_version: Optional[str],
    modpack_present: bool,
) -> bool:
    """
    Single policy for "is the modpack installed".

    The exact expected jar always satisfies it. Otherwise the weak
    signal (any matching jar or any non-empty mods directory) counts
    only when no versioned jar contradicts the expectation.
    """
    if expected_version_present:
        return True
    if expected_version and modpack_version:
        return False
    return modpack_present


class InstallationReconciler:
    """Extraction and detection over one install root layout."""

    def __init__(
        self,
        minecraft_version: str,
        forge_version: Optional[str] = None,
        jar_prefix: str = "hellasforms",
    ):
        self.minecraft_version = minecraft_version
        self.forge_version = forge_version
        self.jar_prefix = jar_prefix
        self._jar_pattern = re.compile(
            rf"^{re.escape(jar_prefix)}-([\w.-]+)\.jar$", re.IGNORECASE
        )

    def jar_name(self, version: str) -> str:
        return f"{self.jar_prefix}-{version}.jar"

    # =========================================================================
    # Extraction
    # =========================================================================

    def extract(
        self,
        archive_path: Path,
        install_root: Path,
        cancel: Optional[CancelToken] = None,
    ) -> ExtractionSummary:
        """
        Replace modpack content under install_root with the archive's.

        Raises:
            ExtractionError: Corrupt archive or entry escaping the root.
            CancelledError: Cancelled before the destructive steps began.
        """
        cancel = cancel or CancelToken()
        layout = InstallLayout(install_root)
        cancel.check("extracting")

        try:
            archive = zipfile.ZipFile(archive_path)
        except (zipfile.BadZipFile, OSError) as e:
            raise ExtractionError(f"Update archive is not a valid ZIP file: {e}") from e

        with archive, cancel.shield():
            members = self._plan_members(archive, layout.root)

            layout.ensure_modpack_skeleton()
            self._clear_replaced(layout)

            summary = ExtractionSummary()
            for info, target in members:
                if info.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    summary.directories += 1
            for info, target in members:
                if info.is_dir():
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                if target.is_dir() and not target.is_symlink():
                    shutil.rmtree(target)
                try:
                    with archive.open(info) as src, open(target, "wb") as dst:
                        shutil.copyfileobj(src, dst)
                except (zipfile.BadZipFile, zipfile.LargeZipFile) as e:
                    raise ExtractionError(f"Corrupt archive entry {info.filename}: {e}") from e
                summary.files += 1

            summary.relocated = self.normalize(layout)

        logger.info(
            "[Reconciler] Extracted %d files, %d directories into %s (relocated %d)",
            summary.files, summary.directories, layout.root, len(summary.relocated),
        )
        return summary

    @staticmethod
    def _plan_members(archive: zipfile.ZipFile, root: Path) -> List[Tuple[zipfile.ZipInfo, Path]]:
        """Map every entry to its target path, rejecting unsafe names up front."""
        base = Path(os.path.abspath(root))
        planned: List[Tuple[zipfile.ZipInfo, Path]] = []
        for info in archive.infolist():
            name = info.filename.replace("\\", "/")
            if not name.strip("/"):
                continue
            # Lexical containment; symlinks inside the root are not followed
            target = Path(os.path.normpath(base / name))
            if target != base and base not in target.parents:
                raise ExtractionError(f"Archive entry escapes the install directory: {info.filename}")
            planned.append((info, target))
        return planned

    @staticmethod
    def _clear_replaced(layout: InstallLayout) -> None:
        removed = sum(clear_directory(layout.resolve(rel)) for rel in REPLACED_DIRECTORIES)
        for rule in LEGACY_RELOCATIONS:
            legacy = layout.resolve(rule.source)
            if rule.is_directory and (legacy.exists() or legacy.is_symlink()):
                remove_path(legacy)
                removed += 1
        logger.debug("[Reconciler] Cleared %d entries before unpacking", removed)

    def normalize(self, layout: InstallLayout) -> List[str]:
        """
        Re-create the skeleton and apply the legacy relocation table.

        Returns:
            Layout-relative sources that were moved.
        """
        layout.ensure_modpack_skeleton()
        relocated: List[str] = []
        for rule in LEGACY_RELOCATIONS:
            source = layout.resolve(rule.source)
            if not source.exists():
                continue
            target = layout.resolve(rule.target)
            if rule.is_directory and source.is_dir():
                moved = merge_directory(source, target)
                logger.info("[Reconciler] Moved %d entries from %s to %s", moved, rule.source, rule.target)
            else:
                move_entry(source, target)
                logger.info("[Reconciler] Moved %s to %s", rule.source, rule.target)
            relocated.append(rule.source)
        return relocated

    # =========================================================================
    # Detection
    # =========================================================================

    def detect(self, install_root: Path, expected_version: Optional[str] = None) -> DetectionResult:
        """Best-effort snapshot of installed components. Never raises."""
        layout = InstallLayout(install_root)
        diagnostics: List[Diagnostic] = []
        expected_version = expected_version or None

        minecraft = self._is_file(layout.version_json_path(self.minecraft_version), diagnostics)
        forge_version, installer_path = self._detect_forge(layout, diagnostics)

        searched: List[str] = []
        missing_dirs: List[str] = []
        modpack_version: Optional[str] = None
        expected_present = False
        modpack_present = False

        for directory in self._mod_directories(layout, diagnostics):
            searched.append(str(directory))
            errors_before = len(diagnostics)
            entries = self._list(directory, diagnostics)
            if entries is None:
                if len(diagnostics) == errors_before:
                    missing_dirs.append(str(directory))
                continue
            if entries:
                modpack_present = True
            for name in entries:
                match = self._jar_pattern.match(name)
                if not match:
                    continue
                version = match.group(1)
                if modpack_version is None:
                    modpack_version = version
                if expected_version and version == expected_version:
                    modpack_version = version
                    expected_present = True
                    break
            if expected_present:
                break

        requirements = Requirements(
            minecraft=minecraft,
            forge=forge_version is not None,
            modpack=modpack_requirement_met(
                expected_present, modpack_version, expected_version, modpack_present
            ),
        )
        return DetectionResult(
            requirements=requirements,
            minecraft_version=self.minecraft_version,
            forge_version=forge_version,
            forge_installer_path=str(installer_path) if installer_path else None,
            modpack_version=modpack_version,
            expected_version=expected_version,
            expected_jar=self.jar_name(expected_version) if expected_version else None,
            expected_version_present=expected_present,
            modpack_present=modpack_present,
            searched_mod_directories=searched,
            missing_mod_directories=missing_dirs,
            diagnostics=diagnostics,
        )

    def _detect_forge(
        self, layout: InstallLayout, diagnostics: List[Diagnostic]
    ) -> Tuple[Optional[str], Optional[Path]]:
        if self.forge_version:
            installer = layout.forge_installer_path(self.forge_version)
            has_installer = self._is_file(installer, diagnostics)
            for candidate in layout.forge_metadata_candidates(self.forge_version):
                if self._is_file(candidate, diagnostics):
                    return self.forge_version, installer if has_installer else None
            if has_installer:
                return self.forge_version, installer
            return None, None

        # Loader not pinned: any Forge build for this game version counts
        prefix = f"{self.minecraft_version}-forge-"
        for name in self._list(layout.versions_path, diagnostics) or []:
            if name.startswith(prefix) and self._is_file(layout.version_json_path(name), diagnostics):
                return f"{self.minecraft_version}-{name[len(prefix):]}", None
        for name in self._list(layout.forge_path, diagnostics) or []:
            if name.startswith(f"{self.minecraft_version}-"):
                installer = layout.forge_installer_path(name)
                return name, installer if self._is_file(installer, diagnostics) else None
        return None, None

    def _mod_directories(self, layout: InstallLayout, diagnostics: List[Diagnostic]) -> List[Path]:
        directories = [layout.resolve(rel) for rel in MOD_DIRECTORY_CANDIDATES]
        for name in self._list(layout.root, diagnostics) or []:
            if name == FORGE_DIR:
                continue
            nested = layout.root / name / MODS_DIR
            if nested not in directories and self._is_dir(nested, diagnostics):
                directories.append(nested)
        return directories

    @staticmethod
    def _list(directory: Path, diagnostics: List[Diagnostic]) -> Optional[List[str]]:
        """Sorted entry names, or None when the directory is absent/unreadable."""
        try:
            return sorted(os.listdir(directory))
        except FileNotFoundError:
            return None
        except NotADirectoryError:
            return None
        except OSError as e:
            diagnostics.append(Diagnostic(
                path=str(directory), message=e.strerror or str(e), code=error_code(e),
            ))
            return None

    @staticmethod
    def _is_file(path: Path, diagnostics: List[Diagnostic]) -> bool:
        try:
            return path.is_file()
        except OSError as e:
            diagnostics.append(Diagnostic(path=str(path), message=e.strerror or str(e), code=error_code(e)))
            return False

    @staticmethod
    def _is_dir(path: Path, diagnostics: List[Diagnostic]) -> bool:
        try:
            return path.is_dir()
        except OSError as e:
            diagnostics.append(Diagnostic(path=str(path), message=e.strerror or str(e), code=error_code(e)))
            return False
