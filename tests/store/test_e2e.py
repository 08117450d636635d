"""
End-to-end tests for the Hellas launcher.

Drives a real Launcher (real state file, real extraction into a temporary
install root) with HTTP served from canned responses. Covers the
load-bearing properties:

1. Progress is monotonic and ends in exactly one terminal state
2. A failed integrity check leaves the install root untouched
3. Cancel is a neutral outcome, never an error
4. Only one install/update/reinstall runs at a time
5. Legacy archives land in modpack/mods
6. Stale modpacks block the launch
7. Queries never write state
"""

import hashlib
import os
import threading
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from hellas.clients.auth_client import MinecraftSession, TokenPollResult
from hellas.store import Launcher, is_newer
from hellas.store.errors import AuthError, ConcurrencyError, ConfigurationError, IntegrityError, ReadinessError
from hellas.store.models import OperationKind, OperationState
from tests.helpers.fixtures import (
    PACK_URL,
    EventRecorder,
    FakeResponse,
    make_config,
    make_launcher,
    modpack_zip,
    patch_sessions,
)

FEED_URL = "https://updates.example/feed.json"
ARTIFACT_URL = "https://cdn.example/hellas-3.1.0.zip"
TERMINAL = {"complete", "cancelled", "error"}


@pytest.fixture
def config(tmp_path: Path):
    config = make_config(tmp_path)
    config.network.download_chunk_size = 1024
    return config


@pytest.fixture
def launcher(config):
    launcher = make_launcher(config)
    yield launcher
    launcher.close()


def install_dir(launcher: Launcher) -> Path:
    return launcher.install_dir()


# =============================================================================
# Install / Update
# =============================================================================

class TestInstallFlow:

    def test_install_progress_and_state(self, launcher, config):
        config.pack.version = "1.2.0"
        recorder = EventRecorder(launcher.events)

        with patch_sessions({PACK_URL: FakeResponse(modpack_zip("1.2.0"))}):
            result = launcher.perform_install()

        assert result.version == "1.2.0"
        assert result.installation.is_installed
        assert result.installation.installed_version == "1.2.0"
        assert result.installation.ready_to_launch

        progress = recorder.topic("update-progress")
        values = [p["progress"] for p in progress if "progress" in p]
        assert values == sorted(values)
        assert [p["state"] for p in progress if p["state"] in TERMINAL] == ["complete"]

        report = launcher.check_readiness()
        assert report.ready
        assert report.blocking == []

    def test_feed_update_reports_available_version(self, launcher, config):
        config.pack.feed_url = FEED_URL
        launcher.state_store.update(installed_version="1.0.0", last_known_version="1.0.0")

        with patch_sessions({FEED_URL: FakeResponse({"url": PACK_URL, "version": "1.1.0"})}):
            info = launcher.get_state().update

        assert info.has_update_source
        assert info.preferred_version == "1.1.0"
        assert info.available

    def test_descriptor_indirection_sets_installed_version(self, launcher):
        descriptor = {"modpack": {"url": ARTIFACT_URL, "version": "3.1.0"}}
        routes = {
            PACK_URL: FakeResponse(descriptor),
            ARTIFACT_URL: FakeResponse(modpack_zip("3.1.0")),
        }

        with patch_sessions(routes) as calls:
            result = launcher.perform_install()

        assert [url for url, _ in calls] == [PACK_URL, ARTIFACT_URL]
        assert result.version == "3.1.0"
        assert launcher.state_store.load().installed_version == "3.1.0"
        assert (install_dir(launcher) / "modpack" / "mods" / "hellasforms-3.1.0.jar").exists()
        assert launcher.check_readiness().ready

    def test_legacy_archive_relocated(self, launcher):
        with patch_sessions({PACK_URL: FakeResponse(modpack_zip("1.0", legacy=True))}):
            launcher.trigger_update()

        root = install_dir(launcher)
        assert (root / "modpack" / "mods" / "hellasforms-1.0.jar").exists()
        assert not (root / "mods").exists()

    def test_update_replaces_mods(self, launcher):
        with patch_sessions({PACK_URL: FakeResponse(modpack_zip("1.0"))}):
            launcher.perform_install()
        with patch_sessions({PACK_URL: FakeResponse(modpack_zip("2.0"))}):
            launcher.trigger_update()

        mods = sorted(os.listdir(install_dir(launcher) / "modpack" / "mods"))
        assert mods == ["hellasforms-2.0.jar", "other-mod.jar"]


# =============================================================================
# Failure / Cancel / Concurrency
# =============================================================================

class TestFailureModes:

    def test_integrity_failure_leaves_install_untouched(self, launcher, config):
        with patch_sessions({PACK_URL: FakeResponse(modpack_zip("1.0"))}):
            launcher.perform_install()
        root = install_dir(launcher)
        before = sorted(str(p.relative_to(root)) for p in root.rglob("*"))

        body = modpack_zip("2.0")
        config.pack.expected_sha256 = hashlib.sha256(b"something else").hexdigest()
        with patch_sessions({PACK_URL: FakeResponse(body)}):
            with pytest.raises(IntegrityError):
                launcher.trigger_update()

        assert sorted(str(p.relative_to(root)) for p in root.rglob("*")) == before
        assert launcher.current_operation().state == OperationState.FAILED

    def test_unconfigured_source(self, launcher, config):
        config.pack.zip_url = None
        config.pack.default_url = ""
        with pytest.raises(ConfigurationError):
            launcher.perform_install()
        assert launcher.get_state().update.has_update_source is False

    def test_cancel_is_neutral(self, launcher):
        recorder = EventRecorder(launcher.events)

        def cancel_on_progress(topic, payload):
            if payload.get("state") == "downloading" and payload.get("progress", 0) > 0:
                launcher.cancel_update()

        launcher.events.subscribe(cancel_on_progress, "update-progress")

        with patch_sessions({PACK_URL: FakeResponse(os.urandom(1024 * 60))}):
            result = launcher.submit(OperationKind.UPDATE).result(timeout=10)

        assert result.cancelled
        terminal = [s for s in recorder.states() if s in TERMINAL]
        assert terminal == ["cancelled"]
        assert launcher.current_operation().state == OperationState.CANCELLED
        assert launcher.state_store.load().installed_version == ""

    def test_single_flight(self, launcher):
        started = threading.Event()
        release = threading.Event()
        source = launcher.update_service.source_provider

        def slow_source():
            started.set()
            release.wait(5)
            return source()

        launcher.update_service.source_provider = slow_source
        with patch_sessions({PACK_URL: FakeResponse(modpack_zip("1.0"))}):
            future = launcher.submit(OperationKind.INSTALL)
            assert started.wait(5)
            with pytest.raises(ConcurrencyError):
                launcher.submit(OperationKind.UPDATE)
            with pytest.raises(ConcurrencyError):
                launcher.set_install_dir(Path("/elsewhere"))
            release.set()
            assert not future.result(timeout=10).cancelled


# =============================================================================
# Launch Gate
# =============================================================================

class TestLaunchGate:

    def sign_in(self, launcher):
        launcher.accounts.client = MagicMock()
        launcher.accounts.client.poll_device_code.return_value = TokenPollResult(
            status="success",
            session=MinecraftSession(username="Steve", uuid="u", access_token="t", refresh_token="r"),
        )
        assert launcher.poll_device_login("dev-1").status == "success"

    def test_launch_requires_login(self, launcher):
        with pytest.raises(AuthError):
            launcher.launch_game()

    def test_stale_modpack_blocks_launch(self, launcher, config):
        config.pack.version = "2.0"
        with patch_sessions({PACK_URL: FakeResponse(modpack_zip("1.0"))}):
            launcher.perform_install()
        self.sign_in(launcher)

        report = launcher.check_readiness()
        assert not report.ready
        assert report.expected_version == "2.0"
        assert report.detected_version == "1.0"

        handle = launcher.launch_game()
        with pytest.raises(ReadinessError):
            handle.result(timeout=10)


# =============================================================================
# Queries
# =============================================================================

class TestQueries:

    def test_get_state_never_persists(self, launcher, config):
        state = launcher.get_state()
        assert state.installation.install_dir_exists is False
        assert state.installation.is_installed is False
        assert not config.state_file.exists()

    def test_preferences_persist(self, launcher, config, tmp_path):
        launcher.set_terms_accepted(True)
        launcher.set_animation_enabled(False)
        target = launcher.set_install_dir(tmp_path / "games")

        reloaded = make_launcher(config)
        try:
            state = reloaded.get_state()
            assert state.terms_accepted
            assert not state.animation_enabled
            assert state.installation.install_dir == str(target)
        finally:
            reloaded.close()

    def test_behavior_log_written_on_close(self, config):
        launcher = make_launcher(config)
        launcher.get_state()
        launcher.close()
        content = (config.data_root / "hellas-behavior.log").read_text()
        assert "app-ready" in content
        assert "app-before-quit" in content


class TestIsNewer:

    def test_semantic_comparison(self):
        assert is_newer("1.10.0", "1.9.0")
        assert not is_newer("1.0.0", "1.0.0")

    def test_unparseable_versions_compare_by_inequality(self):
        assert is_newer("beta-2", "beta-1")
        assert not is_newer("beta", "beta")
