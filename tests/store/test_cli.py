"""
Tests for the Hellas launcher CLI.

The Launcher is replaced with a MagicMock; these tests cover argument
handling, output formats and exit codes.
"""

from __future__ import annotations

import json
import time
from concurrent.futures import Future
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from hellas.store.cli import EXIT_BUSY, EXIT_CANCELLED, EXIT_ERROR, app
from hellas.store.errors import AuthError, ConcurrencyError, ReadinessError, TransferError
from hellas.store.models import (
    AccountInfo,
    ComponentKind,
    DeviceCode,
    DevicePollResult,
    InstallationState,
    LaunchResult,
    LauncherStateView,
    MemorySettings,
    MemoryState,
    OperationKind,
    OperationResult,
    ReadinessReport,
    Requirements,
    UpdateInfo,
)

runner = CliRunner()


# =============================================================================
# Fixtures
# =============================================================================

def done_future(result=None, error=None) -> Future:
    future: Future = Future()
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(result)
    return future


def memory_state(mode: str = "auto") -> MemoryState:
    return MemoryState(
        settings=MemorySettings(mode=mode),
        total_mb=16384,
        recommended_mb=12288,
        applied_min_mb=6144,
        applied_max_mb=12288,
    )


def state_view(update: UpdateInfo) -> LauncherStateView:
    return LauncherStateView(
        website_url="https://hellasregion.com",
        dynmap_url="https://map.example",
        installation=InstallationState(
            install_dir="/games/hellas",
            install_dir_exists=True,
            installed_version="1.0",
            detected_version="1.0",
            requirements=Requirements(minecraft=True, forge=False, modpack=True),
        ),
        account=AccountInfo(username="Steve", logged_in=True),
        terms_accepted=True,
        animation_enabled=False,
        memory=memory_state(),
        update=update,
    )


@pytest.fixture
def mock_launcher():
    """Patch get_launcher with a MagicMock Launcher."""
    with patch("hellas.store.cli.get_launcher") as mock_get_launcher:
        launcher = MagicMock()
        launcher.events.subscribe.return_value = MagicMock()
        mock_get_launcher.return_value = launcher
        yield launcher


# =============================================================================
# Install / Update / Reinstall
# =============================================================================

class TestOperations:

    def test_install(self, mock_launcher):
        mock_launcher.submit.return_value = done_future(
            OperationResult(kind=OperationKind.INSTALL, version="1.2.0")
        )
        result = runner.invoke(app, ["install"])

        assert result.exit_code == 0
        assert "Install finished (version: 1.2.0)" in result.output
        mock_launcher.submit.assert_called_once_with(OperationKind.INSTALL)
        mock_launcher.events.subscribe.return_value.assert_called_once()
        mock_launcher.close.assert_called_once()

    def test_update_json(self, mock_launcher):
        mock_launcher.submit.return_value = done_future(OperationResult(kind=OperationKind.UPDATE))
        result = runner.invoke(app, ["update", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["kind"] == "update"
        assert data["version"] is None
        mock_launcher.events.subscribe.assert_not_called()

    def test_cancelled_operation(self, mock_launcher):
        mock_launcher.submit.return_value = done_future(
            OperationResult(kind=OperationKind.UPDATE, cancelled=True)
        )
        result = runner.invoke(app, ["update"])
        assert result.exit_code == EXIT_CANCELLED
        assert "Update cancelled." in result.output

    def test_failure_exit_code(self, mock_launcher):
        mock_launcher.submit.return_value = done_future(error=TransferError("Download failed (503)"))
        result = runner.invoke(app, ["install"])
        assert result.exit_code == EXIT_ERROR
        assert "Download failed (503)" in result.output

    def test_busy_exit_code(self, mock_launcher):
        mock_launcher.submit.side_effect = ConcurrencyError()
        result = runner.invoke(app, ["update"])
        assert result.exit_code == EXIT_BUSY

    def test_reinstall_requires_confirmation(self, mock_launcher):
        result = runner.invoke(app, ["reinstall"], input="n\n")
        assert result.exit_code != 0
        mock_launcher.submit.assert_not_called()

    def test_reinstall_yes(self, mock_launcher):
        mock_launcher.submit.return_value = done_future(OperationResult(kind=OperationKind.REINSTALL))
        result = runner.invoke(app, ["reinstall", "--yes"])
        assert result.exit_code == 0
        assert "unversioned" in result.output
        mock_launcher.submit.assert_called_once_with(OperationKind.REINSTALL)


# =============================================================================
# Queries
# =============================================================================

class TestStatus:

    def test_status_text(self, mock_launcher):
        mock_launcher.get_state.return_value = state_view(
            UpdateInfo(has_update_source=True, preferred_version="1.1", available=True)
        )
        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "Install directory: /games/hellas" in result.output
        assert "Forge: missing" in result.output
        assert "Steve (signed in)" in result.output
        assert "Update available: 1.1" in result.output

    def test_status_json(self, mock_launcher):
        mock_launcher.get_state.return_value = state_view(UpdateInfo(has_update_source=False))
        result = runner.invoke(app, ["status", "--json"])
        data = json.loads(result.output)
        assert data["installation"]["installed_version"] == "1.0"
        assert data["update"]["has_update_source"] is False


class TestCheck:

    def test_ready_with_remediation(self, mock_launcher):
        mock_launcher.check_readiness.return_value = ReadinessReport(
            ready=True, missing=[ComponentKind.FORGE], message="Installation is ready to launch.",
        )
        result = runner.invoke(app, ["check"])
        assert result.exit_code == 0
        assert "Will be downloaded on launch: forge" in result.output

    def test_not_ready(self, mock_launcher):
        mock_launcher.check_readiness.return_value = ReadinessReport(
            ready=False,
            missing=[ComponentKind.MODPACK],
            blocking=[ComponentKind.MODPACK],
            message="Modpack files are missing or outdated.",
        )
        result = runner.invoke(app, ["check", "--json"])
        assert result.exit_code == EXIT_ERROR
        assert json.loads(result.output)["blocking"] == ["modpack"]


class TestLogs:

    def test_tail(self, mock_launcher):
        mock_launcher.read_log.return_value = "one\ntwo\nthree\n"
        result = runner.invoke(app, ["logs", "-n", "2"])
        assert result.output.splitlines() == ["two", "three"]


# =============================================================================
# Launch
# =============================================================================

class TestLaunch:

    def test_launch(self, mock_launcher):
        handle = MagicMock()
        handle.future = done_future(LaunchResult(username="Steve", install_dir="/g", launched_with="1.16.5-36.2.39"))
        mock_launcher.launch_game.return_value = handle

        result = runner.invoke(app, ["launch"])

        assert result.exit_code == 0
        assert "Forge 1.16.5-36.2.39" in result.output

    def test_launch_not_ready(self, mock_launcher):
        report = ReadinessReport(ready=False, blocking=[ComponentKind.MODPACK], message="Modpack missing.")
        handle = MagicMock()
        handle.future = done_future(error=ReadinessError(report))
        mock_launcher.launch_game.return_value = handle

        result = runner.invoke(app, ["launch"])

        assert result.exit_code == EXIT_ERROR
        assert "Modpack missing." in result.output

    def test_launch_not_signed_in(self, mock_launcher):
        mock_launcher.launch_game.side_effect = AuthError("Please log in with your Minecraft account before launching.")
        result = runner.invoke(app, ["launch"])
        assert result.exit_code == EXIT_ERROR
        assert "Please log in" in result.output


# =============================================================================
# Accounts
# =============================================================================

class TestLogin:

    def device_code(self) -> DeviceCode:
        return DeviceCode(
            device_code="dev-1",
            user_code="ABCD-1234",
            verification_uri="https://microsoft.com/link",
            expires_at=time.time() + 900,
            interval=5,
        )

    def test_login_success_after_pending(self, mock_launcher):
        mock_launcher.start_device_login.return_value = self.device_code()
        mock_launcher.poll_device_login.side_effect = [
            DevicePollResult(status="pending"),
            DevicePollResult(status="slow_down"),
            DevicePollResult(status="success", account=AccountInfo(username="Steve", logged_in=True)),
        ]

        with patch("hellas.store.cli.time.sleep") as sleep:
            result = runner.invoke(app, ["login"])

        assert result.exit_code == 0
        assert "ABCD-1234" in result.output
        assert "Signed in as Steve" in result.output
        assert [c[0][0] for c in sleep.call_args_list] == [5, 5, 10]

    def test_login_declined(self, mock_launcher):
        mock_launcher.start_device_login.return_value = self.device_code()
        mock_launcher.poll_device_login.return_value = DevicePollResult(
            status="declined", message="Sign-in was declined.",
        )
        with patch("hellas.store.cli.time.sleep"):
            result = runner.invoke(app, ["login"])
        assert result.exit_code == EXIT_ERROR
        assert "Sign-in was declined." in result.output

    def test_logout(self, mock_launcher):
        result = runner.invoke(app, ["logout"])
        assert result.exit_code == 0
        mock_launcher.logout.assert_called_once()


# =============================================================================
# Preferences
# =============================================================================

class TestMemory:

    def test_show(self, mock_launcher):
        mock_launcher.get_memory_state.return_value = memory_state()
        result = runner.invoke(app, ["memory"])
        assert "-Xms6144M -Xmx12288M" in result.output
        mock_launcher.set_memory_settings.assert_not_called()

    def test_set_custom(self, mock_launcher):
        mock_launcher.get_memory_state.return_value = memory_state()
        mock_launcher.set_memory_settings.return_value = memory_state("custom")

        result = runner.invoke(app, ["memory", "--custom", "--min", "2048", "--max", "6144", "--json"])

        assert result.exit_code == 0
        settings = mock_launcher.set_memory_settings.call_args[0][0]
        assert (settings.mode, settings.min_mb, settings.max_mb) == ("custom", 2048, 6144)
        assert json.loads(result.output)["settings"]["maxMb"] is None

    def test_auto_and_custom_conflict(self, mock_launcher):
        result = runner.invoke(app, ["memory", "--auto", "--custom"])
        assert result.exit_code == EXIT_ERROR
        mock_launcher.set_memory_settings.assert_not_called()


class TestPrefs:

    def test_set_preferences(self, mock_launcher, tmp_path):
        mock_launcher.get_state.return_value = state_view(UpdateInfo(has_update_source=False))
        result = runner.invoke(app, ["prefs", "--accept-terms", "--no-animation", "--install-dir", str(tmp_path)])

        assert result.exit_code == 0
        mock_launcher.set_terms_accepted.assert_called_once_with(True)
        mock_launcher.set_animation_enabled.assert_called_once_with(False)
        mock_launcher.set_install_dir.assert_called_once_with(tmp_path)
        assert "Animation:         off" in result.output

    def test_show_only(self, mock_launcher):
        mock_launcher.get_state.return_value = state_view(UpdateInfo(has_update_source=False))
        result = runner.invoke(app, ["prefs", "--json"])
        assert json.loads(result.output) == {
            "installDir": "/games/hellas",
            "termsAccepted": True,
            "animationEnabled": False,
        }
        mock_launcher.set_terms_accepted.assert_not_called()

    def test_install_dir_busy(self, mock_launcher, tmp_path):
        mock_launcher.set_install_dir.side_effect = ConcurrencyError()
        result = runner.invoke(app, ["prefs", "--install-dir", str(tmp_path)])
        assert result.exit_code == EXIT_BUSY
