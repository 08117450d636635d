"""
Hellas Store - Main Entry Point

This module provides the Launcher facade that wires the update engine,
readiness gate, launch service and account service together. The CLI
and the HTTP API are thin layers over it.

Usage:
    from hellas.store import Launcher

    launcher = Launcher()
    launcher.start()

    # Install or update the modpack
    result = launcher.perform_install()
    result = launcher.trigger_update()

    # Check and launch
    report = launcher.check_readiness()
    handle = launcher.launch_game()
    handle.result()

    launcher.close()
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from pathlib import Path
from typing import Optional

from packaging.version import InvalidVersion, Version

from config.settings import LauncherConfig, get_config

from ..clients.auth_client import MicrosoftAuthClient
from ..clients.game_meta_client import GameMetaClient
from ..utils.java_runtime import JavaLocator
from ..utils.logging_setup import BEHAVIOR_LOG, BehaviorLog, read_launcher_log
from .account_service import AccountService
from .cancellation import CancelToken
from .download_service import DownloadService
from .errors import (
    AuthError,
    CancelledError,
    ConcurrencyError,
    ConfigurationError,
    ExtractionError,
    IntegrityError,
    LauncherError,
    LaunchError,
    ReadinessError,
    SourceError,
    TransferError,
)
from .events import (
    TOPIC_ACCOUNT_UPDATED,
    TOPIC_INSTALL_STATUS,
    TOPIC_LAUNCH_STATUS,
    TOPIC_UPDATE_PROGRESS,
    EventChannel,
)
from .fetcher import ArchiveFetcher, resolve_update_source
from .launch_service import GameLauncher, LaunchHandle
from .layout import InstallLayout
from .models import (
    AccountInfo,
    DetectionResult,
    DeviceCode,
    DevicePollResult,
    FeedSource,
    InstallationState,
    LauncherStateView,
    MemorySettings,
    MemoryState,
    OperationInfo,
    OperationKind,
    OperationResult,
    ReadinessReport,
    StatusLevel,
    UpdateInfo,
    UpdateSource,
)
from .readiness import ReadinessGate
from .reconciler import InstallationReconciler
from .runtime_service import RuntimeService
from .state import StateStore
from .update_service import UpdateService

logger = logging.getLogger(__name__)


def is_newer(preferred: str, installed: str) -> bool:
    """Version comparison when both parse, plain inequality otherwise."""
    try:
        return Version(preferred) > Version(installed)
    except InvalidVersion:
        return preferred != installed


class Launcher:
    """
    Main facade for the Hellas launcher.

    Provides a unified interface for install/update/reinstall, installation
    queries, readiness, game launch, accounts and preferences.
    """

    def __init__(
        self,
        config: Optional[LauncherConfig] = None,
        *,
        events: Optional[EventChannel] = None,
        fetcher: Optional[ArchiveFetcher] = None,
        downloader: Optional[DownloadService] = None,
        meta_client: Optional[GameMetaClient] = None,
        auth_client: Optional[MicrosoftAuthClient] = None,
        java_locator: Optional[JavaLocator] = None,
        provision_runtime: bool = True,
    ):
        """
        Initialize the launcher.

        Args:
            config: Launcher configuration. Defaults to get_config()
            events: Event channel shared with front-ends
            fetcher: Archive fetcher override (tests)
            downloader: Download service override (tests)
            meta_client: Mojang/Forge metadata client override
            auth_client: Microsoft auth client override
            java_locator: Bundled Java lookup override
            provision_runtime: Provision Minecraft/Forge after install operations
        """
        self.config = config or get_config()
        network = self.config.network
        timeout = (network.connect_timeout, network.read_timeout)

        self.events = events or EventChannel()
        self.state_store = StateStore(
            self.config.state_file,
            default_install_dir=self.config.default_install_dir,
            animation_default=self.config.animation_default,
        )
        self.behavior = BehaviorLog(self.config.data_root / BEHAVIOR_LOG)
        self.events.subscribe(lambda topic, payload: self.behavior.record(topic, payload=payload))

        self.fetcher = fetcher or ArchiveFetcher(
            chunk_size=network.download_chunk_size,
            sniff_limit=network.descriptor_sniff_limit,
            timeout=timeout,
        )
        self.downloader = downloader or DownloadService(
            chunk_size=network.download_chunk_size, timeout=timeout,
        )
        self.reconciler = InstallationReconciler(
            minecraft_version=self.config.game.minecraft_version,
            forge_version=self.config.game.forge_version,
            jar_prefix=self.config.pack.jar_prefix,
        )
        self.readiness = ReadinessGate(self.reconciler)
        self.runtime = RuntimeService(
            meta_client or GameMetaClient(timeout=network.read_timeout),
            minecraft_version=self.config.game.minecraft_version,
            forge_version=self.config.game.forge_version,
        )
        self.update_service = UpdateService(
            fetcher=self.fetcher,
            downloader=self.downloader,
            reconciler=self.reconciler,
            state_store=self.state_store,
            events=self.events,
            source_provider=self.update_source,
            runtime=self.runtime if provision_runtime else None,
            installation_provider=self.get_installation,
            behavior=self.behavior.record,
        )
        self.game_launcher = GameLauncher(
            readiness=self.readiness,
            runtime=self.runtime,
            events=self.events,
            java_locator=java_locator or JavaLocator(env_path=self.config.game.bundled_java_path),
            env_max_mb=self.config.game.memory_max_mb,
            env_min_mb=self.config.game.memory_min_mb,
        )
        self.accounts = AccountService(
            auth_client or MicrosoftAuthClient(self.config.auth.microsoft_client_id),
            self.state_store,
            self.events,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self, restore_account: bool = True) -> None:
        """Prepare directories and restore the stored login."""
        self.config.ensure_directories()
        self.behavior.record("app-ready", dataRoot=str(self.config.data_root))
        if restore_account:
            self.accounts.restore()

    def close(self) -> None:
        """Cancel running work and write the behavior log."""
        self.behavior.record("app-before-quit")
        self.update_service.shutdown()
        self.game_launcher.shutdown()
        self.behavior.flush()

    # =========================================================================
    # Update Source
    # =========================================================================

    def update_source(self) -> UpdateSource:
        """
        Raises:
            ConfigurationError: If no usable source is configured.
        """
        return resolve_update_source(self.config.pack)

    def update_info(self, last_known_version: str, installed_version: str) -> UpdateInfo:
        try:
            source = self.update_source()
        except ConfigurationError:
            return UpdateInfo(has_update_source=False, preferred_version=last_known_version or None)

        preferred = last_known_version or None
        if isinstance(source, FeedSource):
            try:
                manifest = self.fetcher.fetch_feed_manifest(source.feed_url)
                preferred = manifest.version or preferred
            except LauncherError as e:
                logger.warning("[Launcher] Failed to fetch update feed: %s", e)
        elif source.version:
            preferred = source.version

        available = False
        if preferred:
            available = is_newer(preferred, installed_version) if installed_version else True
        return UpdateInfo(has_update_source=True, preferred_version=preferred, available=available)

    # =========================================================================
    # Queries
    # =========================================================================

    def install_dir(self) -> Path:
        return self.state_store.install_dir()

    def expected_version(self) -> Optional[str]:
        state = self.state_store.load()
        return state.installed_version or state.last_known_version or None

    def detect(self) -> DetectionResult:
        return self.reconciler.detect(self.install_dir(), self.expected_version())

    def get_installation(self) -> InstallationState:
        """Filesystem view of the install root. Never persists anything."""
        state = self.state_store.load()
        install_dir = Path(state.install_dir).expanduser()
        exists = install_dir.is_dir()
        detection = self.reconciler.detect(
            install_dir, state.installed_version or state.last_known_version or None
        )
        installed = exists and detection.requirements.modpack
        return InstallationState(
            install_dir=str(install_dir),
            install_dir_exists=exists,
            is_installed=installed,
            ready_to_launch=installed and bool(state.installed_version),
            installed_version=state.installed_version,
            last_known_version=state.last_known_version,
            detected_version=detection.modpack_version,
            requirements=detection.requirements,
            minecraft_version=detection.minecraft_version,
            forge_version=detection.forge_version,
            searched_mod_directories=detection.searched_mod_directories,
            diagnostics=detection.diagnostics,
        )

    def get_state(self) -> LauncherStateView:
        """Everything a front-end needs on start-up."""
        state = self.state_store.load()
        installation = self.get_installation()
        return LauncherStateView(
            website_url=self.config.links.website_url,
            dynmap_url=self.config.links.dynmap_url,
            installation=installation,
            account=self.accounts.account(),
            terms_accepted=state.terms_accepted,
            animation_enabled=state.animation_enabled,
            memory=self.get_memory_state(),
            update=self.update_info(state.last_known_version, state.installed_version),
            operation=self.update_service.current_operation(),
        )

    def check_readiness(self) -> ReadinessReport:
        return self.readiness.check_readiness(self.install_dir(), self.expected_version())

    def current_operation(self) -> OperationInfo:
        return self.update_service.current_operation()

    # =========================================================================
    # Install / Update / Reinstall
    # =========================================================================

    def perform_install(self, cancel: Optional[CancelToken] = None) -> OperationResult:
        return self.update_service.install(cancel)

    def trigger_update(self, cancel: Optional[CancelToken] = None) -> OperationResult:
        return self.update_service.update(cancel)

    def fresh_reinstall(self, cancel: Optional[CancelToken] = None) -> OperationResult:
        return self.update_service.reinstall(cancel)

    def submit(self, kind: OperationKind) -> "Future[OperationResult]":
        """Start an operation in the background (single-flight)."""
        return self.update_service.submit(kind)

    def cancel_update(self) -> bool:
        return self.update_service.cancel()

    # =========================================================================
    # Launch
    # =========================================================================

    def launch_game(self) -> LaunchHandle:
        """
        Start the game for the signed-in account.

        Raises:
            AuthError: Not signed in.
            ConcurrencyError: A launch is already running.
        """
        session = self.accounts.require_session()
        install_dir = self.install_dir()
        expected = self.expected_version()
        self.behavior.record(
            "launch-attempt",
            installDir=str(install_dir),
            expectedModpackVersion=expected,
            account=session.username,
        )
        self.events.launch_status("Starting Minecraft launch…")
        return self.game_launcher.launch(
            install_dir, session, expected, self.state_store.load().memory,
        )

    def cancel_launch(self) -> bool:
        return self.game_launcher.cancel()

    # =========================================================================
    # Preferences
    # =========================================================================

    def get_memory_state(self) -> MemoryState:
        settings = self.state_store.load().memory
        plan = self.game_launcher.memory_plan(settings)
        return MemoryState(
            settings=settings,
            total_mb=plan.total_mb,
            recommended_mb=plan.recommended_mb,
            applied_min_mb=plan.min_mb,
            applied_max_mb=plan.max_mb,
        )

    def set_memory_settings(self, settings: MemorySettings) -> MemoryState:
        self.state_store.set_memory(settings)
        return self.get_memory_state()

    def set_terms_accepted(self, value: bool) -> bool:
        return self.state_store.update(terms_accepted=bool(value)).terms_accepted

    def set_animation_enabled(self, value: bool) -> bool:
        return self.state_store.update(animation_enabled=bool(value)).animation_enabled

    def set_install_dir(self, path: Path) -> Path:
        """Point the launcher at another install root (not while an operation runs)."""
        if self.update_service.is_running:
            raise ConcurrencyError()
        resolved = Path(path).expanduser().resolve()
        self.state_store.update(install_dir=str(resolved))
        return resolved

    # =========================================================================
    # Accounts
    # =========================================================================

    def account(self) -> AccountInfo:
        return self.accounts.account()

    def start_device_login(self) -> DeviceCode:
        return self.accounts.start_device_login()

    def poll_device_login(self, device_code: str) -> DevicePollResult:
        return self.accounts.poll_device_login(device_code)

    def logout(self) -> AccountInfo:
        return self.accounts.logout()

    # =========================================================================
    # Logs
    # =========================================================================

    def read_log(self) -> str:
        return read_launcher_log(self.config.log_dir)


__all__ = [
    # Main facade
    "Launcher",
    "is_newer",
    # Services
    "AccountService",
    "ArchiveFetcher",
    "DownloadService",
    "EventChannel",
    "GameLauncher",
    "InstallationReconciler",
    "InstallLayout",
    "LaunchHandle",
    "ReadinessGate",
    "RuntimeService",
    "StateStore",
    "UpdateService",
    "CancelToken",
    "StatusLevel",
    # Topics
    "TOPIC_ACCOUNT_UPDATED",
    "TOPIC_INSTALL_STATUS",
    "TOPIC_LAUNCH_STATUS",
    "TOPIC_UPDATE_PROGRESS",
    # Errors
    "AuthError",
    "CancelledError",
    "ConcurrencyError",
    "ConfigurationError",
    "ExtractionError",
    "IntegrityError",
    "LauncherError",
    "LaunchError",
    "ReadinessError",
    "SourceError",
    "TransferError",
]
