"""
Tests for InstallLayout and filesystem helpers.
"""

from __future__ import annotations

import errno
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from hellas.store.layout import (
    InstallLayout,
    clear_directory,
    forge_installed_id,
    merge_directory,
    move_entry,
)


class TestPaths:

    def test_layout_paths(self, tmp_path):
        layout = InstallLayout(tmp_path)
        assert layout.mods_path == tmp_path / "modpack" / "mods"
        assert layout.version_json_path("1.16.5") == tmp_path / "versions" / "1.16.5" / "1.16.5.json"
        assert layout.forge_installer_path("1.16.5-36.2.39") == (
            tmp_path / "forge" / "1.16.5-36.2.39" / "forge-1.16.5-36.2.39-installer.jar"
        )
        assert layout.log4j_config_path == tmp_path / "log4j2_112-116.xml"

    def test_forge_installed_id(self):
        assert forge_installed_id("1.16.5-36.2.39") == "1.16.5-forge-36.2.39"
        assert forge_installed_id("36.2.39") == "36.2.39"

    def test_forge_metadata_candidates(self, tmp_path):
        layout = InstallLayout(tmp_path)
        candidates = layout.forge_metadata_candidates("1.16.5-36.2.39")
        assert [c.parent.name for c in candidates] == ["1.16.5-36.2.39", "1.16.5-forge-36.2.39"]


class TestGameDirectory:

    def test_prefers_modpack(self, tmp_path):
        assert InstallLayout(tmp_path).find_game_directory() == tmp_path / "modpack"

    def test_falls_back_to_legacy_mods_parent(self, tmp_path):
        (tmp_path / "legacy" / "mods").mkdir(parents=True)
        layout = InstallLayout(tmp_path)
        with patch.object(Path, "mkdir", side_effect=PermissionError(13, "denied")):
            assert layout.find_game_directory() == tmp_path / "legacy"

    def test_nothing_found(self, tmp_path):
        layout = InstallLayout(tmp_path)
        with patch.object(Path, "mkdir", side_effect=PermissionError(13, "denied")):
            with pytest.raises(FileNotFoundError, match="reinstall"):
                layout.find_game_directory()


class TestMoves:

    def test_clear_directory_keeps_directory(self, tmp_path):
        (tmp_path / "d" / "sub").mkdir(parents=True)
        (tmp_path / "d" / "f.txt").write_text("x")
        assert clear_directory(tmp_path / "d") == 2
        assert os.listdir(tmp_path / "d") == []

    def test_move_entry_replaces_target(self, tmp_path):
        source = tmp_path / "a.txt"
        source.write_text("new")
        target = tmp_path / "out" / "a.txt"
        target.parent.mkdir()
        target.write_text("old")

        move_entry(source, target)

        assert target.read_text() == "new"
        assert not source.exists()

    def test_move_entry_cross_device_copies(self, tmp_path):
        source = tmp_path / "src"
        (source / "inner").mkdir(parents=True)
        (source / "inner" / "f.txt").write_text("data")
        target = tmp_path / "dst"

        with patch("hellas.store.layout.os.replace", side_effect=OSError(errno.EXDEV, "cross-device")):
            move_entry(source, target)

        assert (target / "inner" / "f.txt").read_text() == "data"
        assert not source.exists()

    def test_move_entry_other_errors_propagate(self, tmp_path):
        source = tmp_path / "a.txt"
        source.write_text("x")
        with patch("hellas.store.layout.os.replace", side_effect=OSError(errno.EACCES, "denied")):
            with pytest.raises(OSError):
                move_entry(source, tmp_path / "b.txt")

    def test_merge_directory(self, tmp_path):
        source = tmp_path / "mods"
        source.mkdir()
        (source / "a.jar").write_text("a")
        target = tmp_path / "modpack" / "mods"
        target.mkdir(parents=True)
        (target / "a.jar").write_text("old")
        (target / "b.jar").write_text("b")

        assert merge_directory(source, target) == 1
        assert (target / "a.jar").read_text() == "a"
        assert (target / "b.jar").exists()
        assert not source.exists()
