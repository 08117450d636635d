"""
Java Runtime Utility

Finds the Java executable used to run the game and reports its version.

Lookup order:
1. BUNDLED_JAVA_PATH (the path itself, or its bin/ executable)
2. Bundled runtimes shipped next to the launcher (jre8/, jre11/, with a
   -win64 suffix on Windows in development checkouts)
3. "java" on PATH, when nothing bundled is found

Java 8 reports "1.8.0_402" (major is the second segment); Java 9+
reports "11.0.24" (major is the first).
"""

import logging
import re
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)

SYSTEM_JAVA = "java"

_VERSION_PATTERN = re.compile(r'"(?P<version>[\d+_.]+)"')


@dataclass
class JavaVersion:
    """Parsed `java -version` output."""
    version: Optional[str] = None
    major: Optional[int] = None


def parse_java_version(output: str) -> JavaVersion:
    """Extract version string and major from `java -version` output."""
    match = _VERSION_PATTERN.search(output or "")
    if not match:
        return JavaVersion()

    version = match.group("version").replace("_", ".")
    parts = version.split(".")
    segment = parts[1] if parts[0] == "1" and len(parts) > 1 else parts[0]
    try:
        major = int(segment)
    except ValueError:
        major = None
    return JavaVersion(version=version, major=major)


def detect_java_version(executable: str, timeout: float = 15.0) -> JavaVersion:
    """Run `<executable> -version`; unknown version on any failure."""
    try:
        result = subprocess.run(
            [executable, "-version"],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("[JavaRuntime] %s -version failed: %s", executable, e)
        return JavaVersion()

    if result.returncode != 0:
        return JavaVersion()
    # Java prints its version banner on stderr
    return parse_java_version("\n".join(part for part in (result.stderr, result.stdout) if part))


def _executable_names() -> List[str]:
    if sys.platform == "win32":
        return ["javaw.exe", "java.exe"]
    return ["java"]


def _default_search_roots() -> List[Path]:
    package_root = Path(__file__).resolve().parents[2]
    return [Path(sys.prefix), package_root]


class JavaLocator:
    """Bundled Java discovery."""

    def __init__(
        self,
        env_path: Optional[Path] = None,
        search_roots: Optional[Sequence[Path]] = None,
    ):
        self.env_path = env_path
        self.search_roots = list(search_roots) if search_roots is not None else _default_search_roots()

    def candidates(self, preferred_majors: Iterable[int] = (11,)) -> List[Path]:
        names = _executable_names()
        paths: List[Path] = []

        if self.env_path:
            paths.append(self.env_path)
            paths.extend(self.env_path / "bin" / name for name in names)

        for major in preferred_majors:
            folder = f"jre{major}"
            folders = [folder]
            if sys.platform == "win32":
                folders.append(f"{folder}-win64")
            for root in self.search_roots:
                for name in folders:
                    paths.extend(root / name / "bin" / exe for exe in names)
        return paths

    def find_bundled(self, preferred_majors: Iterable[int] = (11,)) -> Optional[Path]:
        """First existing candidate executable, or None."""
        for candidate in self.candidates(preferred_majors):
            try:
                if candidate.is_file():
                    return candidate
            except OSError:
                continue
        return None
