"""
Hellas Store - Launch Readiness Gate

Re-runs detection right before a launch (never cached) and turns the
result into a ReadinessReport. A missing modpack blocks the launch;
missing Minecraft/Forge are reported but left for the launch workflow
to provision.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from .errors import ReadinessError
from .models import ComponentKind, DetectionResult, ReadinessReport
from .reconciler import InstallationReconciler

logger = logging.getLogger(__name__)

BLOCKING_COMPONENTS = (ComponentKind.MODPACK,)


class ReadinessGate:
    """Pre-launch verification over the reconciler's detection."""

    def __init__(self, reconciler: InstallationReconciler):
        self.reconciler = reconciler

    def check_readiness(self, install_root: Path, expected_version: Optional[str] = None) -> ReadinessReport:
        detection = self.reconciler.detect(install_root, expected_version)
        missing = detection.requirements.missing()
        blocking = [kind for kind in missing if kind in BLOCKING_COMPONENTS]

        report = ReadinessReport(
            ready=not blocking,
            missing=missing,
            blocking=blocking,
            expected_version=detection.expected_version,
            detected_version=detection.modpack_version,
            searched_mod_directories=detection.searched_mod_directories,
            diagnostics=detection.diagnostics,
            message=self._compose_message(install_root, detection, blocking),
        )
        if blocking:
            logger.warning("[ReadinessGate] %s", report.message)
        elif missing:
            logger.info(
                "[ReadinessGate] Launch possible, will provision: %s",
                ", ".join(kind.value for kind in missing),
            )
        return report

    def require_ready(self, install_root: Path, expected_version: Optional[str] = None) -> ReadinessReport:
        """
        Same as check_readiness, but raise when something blocks the launch.

        Raises:
            ReadinessError: Carrying the full report.
        """
        report = self.check_readiness(install_root, expected_version)
        if not report.ready:
            raise ReadinessError(report)
        return report

    def _compose_message(
        self,
        install_root: Path,
        detection: DetectionResult,
        blocking: List[ComponentKind],
    ) -> str:
        if not blocking:
            return "Installation is ready to launch."

        lines = [f"Modpack files are missing or outdated in {install_root}."]
        if detection.expected_version:
            found = detection.modpack_version or "none"
            lines.append(
                f"Expected {detection.expected_jar} (version {detection.expected_version}); "
                f"detected version: {found}."
            )
        elif detection.modpack_version is None:
            lines.append(f"No {self.reconciler.jar_prefix}-<version>.jar found and no mods present.")

        missing = set(detection.missing_mod_directories)
        lines.append("Searched: " + ", ".join(
            f"{path} (missing)" if path in missing else path
            for path in detection.searched_mod_directories
        ))

        for diagnostic in detection.diagnostics:
            lines.append("Error: " + diagnostic.describe())

        lines.append("Run an update or a fresh reinstall to restore the modpack.")
        return "\n".join(lines)
