"""
Tests for Java runtime discovery and version parsing.
"""

from __future__ import annotations

import subprocess
import sys
from unittest.mock import MagicMock, patch

import pytest

from hellas.utils.java_runtime import JavaLocator, detect_java_version, parse_java_version

JAVA8_BANNER = """openjdk version "1.8.0_402"
OpenJDK Runtime Environment (Temurin)(build 1.8.0_402-b06)
"""
JAVA11_BANNER = 'openjdk version "11.0.24" 2024-07-16\n'


class TestParseJavaVersion:

    def test_java8(self):
        version = parse_java_version(JAVA8_BANNER)
        assert version.major == 8
        assert version.version == "1.8.0.402"

    def test_java11(self):
        version = parse_java_version(JAVA11_BANNER)
        assert version.major == 11
        assert version.version == "11.0.24"

    def test_unparseable(self):
        assert parse_java_version("command not found").major is None
        assert parse_java_version("").version is None


class TestDetectJavaVersion:

    def test_reads_stderr_banner(self):
        result = MagicMock(returncode=0, stderr=JAVA8_BANNER, stdout="")
        with patch("hellas.utils.java_runtime.subprocess.run", return_value=result) as run:
            assert detect_java_version("/opt/jre8/bin/java").major == 8
        assert run.call_args[0][0] == ["/opt/jre8/bin/java", "-version"]

    def test_missing_executable(self):
        with patch("hellas.utils.java_runtime.subprocess.run", side_effect=FileNotFoundError("java")):
            assert detect_java_version("java").major is None

    def test_timeout(self):
        error = subprocess.TimeoutExpired(cmd="java", timeout=15)
        with patch("hellas.utils.java_runtime.subprocess.run", side_effect=error):
            assert detect_java_version("java").version is None

    def test_non_zero_exit(self):
        result = MagicMock(returncode=1, stderr=JAVA8_BANNER, stdout="")
        with patch("hellas.utils.java_runtime.subprocess.run", return_value=result):
            assert detect_java_version("java").major is None


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX executable names")
class TestJavaLocator:

    def make_java(self, root, folder):
        path = root / folder / "bin" / "java"
        path.parent.mkdir(parents=True)
        path.write_text("")
        return path

    def test_env_path_first(self, tmp_path):
        env = tmp_path / "custom"
        locator = JavaLocator(env_path=env, search_roots=[tmp_path])
        candidates = locator.candidates((8,))
        assert candidates[0] == env
        assert candidates[1] == env / "bin" / "java"
        assert candidates[2] == tmp_path / "jre8" / "bin" / "java"

    def test_preference_order(self, tmp_path):
        self.make_java(tmp_path, "jre11")
        jre8 = self.make_java(tmp_path, "jre8")
        locator = JavaLocator(search_roots=[tmp_path])
        assert locator.find_bundled((8, 11)) == jre8

    def test_falls_back_to_later_major(self, tmp_path):
        jre11 = self.make_java(tmp_path, "jre11")
        locator = JavaLocator(search_roots=[tmp_path])
        assert locator.find_bundled((8, 11)) == jre11
        assert locator.find_bundled((8,)) is None

    def test_env_executable_file(self, tmp_path):
        exe = tmp_path / "java-bin"
        exe.write_text("")
        assert JavaLocator(env_path=exe, search_roots=[]).find_bundled() == exe
