"""
Hellas Store - Launch Service

Starts the game for a signed-in account:

1. Readiness gate (a missing modpack blocks the launch)
2. Provision missing Minecraft / Forge files
3. Resolve the game directory, Log4j config and memory plan
4. Pick a Java runtime (bundled Java 8 preferred, Java 11 tolerated)
5. Install the Forge profile and build the command (minecraft_launcher_lib)
6. Run the process, streaming its output to the launch-status topic

Launches are single-flight independently of install/update operations.
launch() returns a LaunchHandle wrapping a Future with a cancel() method
that kills the game process.
"""

from __future__ import annotations

import logging
import subprocess
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, List, Optional

import minecraft_launcher_lib
import psutil

from ..utils.java_runtime import SYSTEM_JAVA, JavaLocator, JavaVersion, detect_java_version
from .cancellation import CancelToken
from .errors import CancelledError, ConcurrencyError, LaunchError
from .events import EventChannel
from .layout import InstallLayout
from .models import (
    ComponentKind,
    LaunchResult,
    MemoryPlan,
    MemorySettings,
    Session,
    StatusLevel,
)
from .readiness import ReadinessGate
from .runtime_service import RuntimeService

logger = logging.getLogger(__name__)

MIN_MEMORY_MB = 1024
RECOMMENDED_MEMORY_SHARE = 0.75
SUPPORTED_JAVA_MAJORS = (8, 11)

FML_JVM_ARGS = (
    "-Dfml.ignoreInvalidMinecraftCertificates=true",
    "-Dfml.ignorePatchDiscrepancies=true",
)


def total_memory_mb() -> int:
    return int(psutil.virtual_memory().total // (1024 * 1024))


def build_memory_plan(
    settings: Optional[MemorySettings] = None,
    total_mb: Optional[int] = None,
    env_max_mb: Optional[int] = None,
    env_min_mb: Optional[int] = None,
) -> MemoryPlan:
    """
    Effective -Xmx/-Xms for this machine.

    Environment overrides beat custom settings, which beat the
    recommendation (75% of RAM). Both values are clamped to
    [1024, total] and min never exceeds max.
    """
    settings = settings or MemorySettings()
    total = total_mb if total_mb is not None else total_memory_mb()
    recommended = max(MIN_MEMORY_MB, int(total * RECOMMENDED_MEMORY_SHARE))
    custom = settings.mode == "custom"

    max_mb = env_max_mb or (settings.max_mb if custom else None) or recommended
    max_mb = min(total, max(MIN_MEMORY_MB, max_mb))

    min_mb = env_min_mb or (settings.min_mb if custom else None) or max_mb // 2
    min_mb = min(max_mb, max(MIN_MEMORY_MB, min_mb))

    return MemoryPlan(total_mb=total, recommended_mb=recommended, min_mb=min_mb, max_mb=max_mb)


def build_jvm_args(plan: MemoryPlan, log4j_config: Path, user_args: Optional[List[str]] = None) -> List[str]:
    args = [
        f"-Xmx{plan.max_mb}M",
        f"-Xms{plan.min_mb}M",
        *FML_JVM_ARGS,
        f"-Dlog4j.configurationFile={log4j_config}",
    ]
    args.extend(arg for arg in (user_args or []) if isinstance(arg, str))
    return args


class LaunchHandle:
    """A running (or finished) launch."""

    def __init__(self) -> None:
        self.token = CancelToken()
        self.future: "Future[LaunchResult]" = Future()

    def cancel(self) -> bool:
        """Kill the game (or stop the launch before it starts)."""
        return self.token.cancel("Launch cancelled.")

    def done(self) -> bool:
        return self.future.done()

    def result(self, timeout: Optional[float] = None) -> LaunchResult:
        return self.future.result(timeout)


class GameLauncher:
    """Single-flight game launch."""

    def __init__(
        self,
        readiness: ReadinessGate,
        runtime: RuntimeService,
        events: EventChannel,
        java_locator: Optional[JavaLocator] = None,
        env_max_mb: Optional[int] = None,
        env_min_mb: Optional[int] = None,
        memory_probe: Callable[[], int] = total_memory_mb,
    ):
        self.readiness = readiness
        self.runtime = runtime
        self.events = events
        self.java_locator = java_locator or JavaLocator()
        self.env_max_mb = env_max_mb
        self.env_min_mb = env_min_mb
        self.memory_probe = memory_probe

        self._lock = threading.Lock()
        self._active: Optional[LaunchHandle] = None
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def is_launching(self) -> bool:
        return self._active is not None

    def memory_plan(self, settings: Optional[MemorySettings] = None) -> MemoryPlan:
        return build_memory_plan(
            settings,
            total_mb=self.memory_probe(),
            env_max_mb=self.env_max_mb,
            env_min_mb=self.env_min_mb,
        )

    # =========================================================================
    # Operator API
    # =========================================================================

    def launch(
        self,
        install_root: Path,
        session: Session,
        expected_version: Optional[str] = None,
        memory: Optional[MemorySettings] = None,
    ) -> LaunchHandle:
        """
        Start a launch in the background.

        Raises:
            ConcurrencyError: If a launch is already running.
        """
        handle = self._acquire()
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="hellas-launch")

        def run() -> None:
            if not handle.future.set_running_or_notify_cancel():
                return
            try:
                result = self._run(handle, install_root, session, expected_version, memory)
            except Exception as e:
                handle.future.set_exception(e)
            else:
                handle.future.set_result(result)
            finally:
                self._release(handle)

        self._executor.submit(run)
        return handle

    def run(
        self,
        install_root: Path,
        session: Session,
        expected_version: Optional[str] = None,
        memory: Optional[MemorySettings] = None,
    ) -> LaunchResult:
        """Launch and wait for the game to exit."""
        handle = self._acquire()
        try:
            return self._run(handle, install_root, session, expected_version, memory)
        finally:
            self._release(handle)

    def cancel(self) -> bool:
        handle = self._active
        if handle is None:
            return False
        logger.info("[GameLauncher] Cancel requested")
        return handle.cancel()

    def shutdown(self) -> None:
        self.cancel()
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    def _acquire(self) -> LaunchHandle:
        with self._lock:
            if self._active is not None:
                raise ConcurrencyError("A launch is already running.")
            self._active = LaunchHandle()
            return self._active

    def _release(self, handle: LaunchHandle) -> None:
        with self._lock:
            if self._active is handle:
                self._active = None

    # =========================================================================
    # Launch Pipeline
    # =========================================================================

    def _status(self, message: str, level: StatusLevel = StatusLevel.INFO) -> None:
        self.events.launch_status(message, level)

    def _run(
        self,
        handle: LaunchHandle,
        install_root: Path,
        session: Session,
        expected_version: Optional[str],
        memory: Optional[MemorySettings],
    ) -> LaunchResult:
        token = handle.token
        layout = InstallLayout(install_root)
        try:
            layout.root.mkdir(parents=True, exist_ok=True)
            self._status(f"Checking installation in {layout.root}")
            report = self.readiness.require_ready(layout.root, expected_version)

            if report.missing:
                names = ", ".join(kind.value.upper() for kind in report.missing)
                self._status(f"Preparing runtime. Missing components: {names}")
            if ComponentKind.MINECRAFT in report.missing:
                self.runtime.ensure_minecraft_version(layout, self._status)
            forge_version = self.runtime.resolve_forge_version()
            if ComponentKind.FORGE in report.missing:
                self.runtime.ensure_forge_installer(layout, forge_version, self._status)
            token.check("launch")

            try:
                game_dir = layout.find_game_directory()
            except OSError as e:
                raise LaunchError(f"Could not resolve modpack folder under {layout.root}: {e}") from e
            self._status(f"Launching from {game_dir}")

            log4j = self.runtime.ensure_log4j_config(layout, self._status)
            plan = self.memory_plan(memory)
            jvm_args = build_jvm_args(plan, log4j, (memory or MemorySettings()).jvm_args)
            java = self._select_java()
            token.check("launch")

            self._status(f"Launching with Forge {forge_version}")
            version_id = self._install_forge_profile(layout, forge_version, java)
            options = {
                "username": session.username,
                "uuid": session.uuid or session.username,
                "token": session.access_token,
                "jvmArguments": jvm_args,
                "gameDirectory": str(game_dir),
            }
            if java != SYSTEM_JAVA:
                options["executablePath"] = java
            command = minecraft_launcher_lib.command.get_minecraft_command(version_id, str(layout.root), options)
            token.check("launch")

            exit_code = self._run_process(command, game_dir, token)
        except CancelledError:
            self._status("Launch cancelled.", StatusLevel.WARNING)
            raise
        except Exception as e:
            self._status(str(e) or "Failed to launch.", StatusLevel.ERROR)
            logger.error("[GameLauncher] Launch failed: %s", e)
            raise

        self._status(f"Launch completed with Forge {forge_version}", StatusLevel.SUCCESS)
        return LaunchResult(
            username=session.username,
            install_dir=str(layout.root),
            launched_with=forge_version,
            exit_code=exit_code,
        )

    def _select_java(self) -> str:
        """Pick a Java executable; raises LaunchError for unsupported majors."""
        bundled = self.java_locator.find_bundled((8, 11))
        if bundled is None:
            self._status(
                "Bundled Java runtime not found; falling back to system Java. Compatibility not guaranteed.",
                StatusLevel.WARNING,
            )
        java = str(bundled) if bundled else SYSTEM_JAVA
        detected: JavaVersion = detect_java_version(java)

        warning = None
        if detected.major == 11:
            java8 = self.java_locator.find_bundled((8,))
            if java8 is not None:
                self._status("Detected Java 11; switching to bundled Java 8 for better Forge compatibility.")
                java = str(java8)
                detected = detect_java_version(java)
            else:
                warning = "Java 11 detected without a bundled Java 8 runtime; continuing but Forge may be unstable."

        if java != SYSTEM_JAVA:
            self._status(f"Using bundled Java runtime at {java}")
        if detected.major is not None and detected.major not in SUPPORTED_JAVA_MAJORS:
            raise LaunchError(
                f"Incompatible Java runtime detected (version {detected.version}). Forge requires Java 8. "
                "Please reinstall to include the bundled Java 8 runtime or configure a compatible Java path."
            )
        if warning:
            self._status(warning, StatusLevel.WARNING)
        if detected.major is None:
            self._status(
                "Unable to determine Java version; launching may fail. Please ensure Java 8 is configured.",
                StatusLevel.WARNING,
            )
        return java

    def _install_forge_profile(self, layout: InstallLayout, forge_version: str, java: str) -> str:
        """Install the Forge profile if needed; returns its version id."""
        version_id = minecraft_launcher_lib.forge.forge_to_installed_version(forge_version)
        if layout.version_json_path(version_id).is_file():
            return version_id

        self._status(f"Installing Forge {forge_version} profile…")
        callback = {"setStatus": lambda text: logger.debug("[GameLauncher] forge: %s", text)}
        try:
            minecraft_launcher_lib.forge.install_forge_version(
                forge_version,
                str(layout.root),
                callback=callback,
                java=None if java == SYSTEM_JAVA else java,
            )
        except Exception as e:
            raise LaunchError(f"Failed to install Forge {forge_version}: {e}") from e
        return version_id

    def _run_process(self, command: List[str], game_dir: Path, token: CancelToken) -> int:
        logger.info("[GameLauncher] Starting: %s", command[0])
        try:
            process = subprocess.Popen(
                command,
                cwd=str(game_dir),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
            )
        except OSError as e:
            raise LaunchError(f"Could not start Java ({command[0]}): {e}") from e

        unregister = token.on_cancel(process.kill)
        try:
            if process.stdout is not None:
                for line in process.stdout:
                    line = line.rstrip()
                    if line:
                        self._status(line)
            exit_code = process.wait()
        finally:
            unregister()

        if token.cancelled:
            raise CancelledError("Launch cancelled.", phase="launch")
        if exit_code != 0:
            raise LaunchError(f"Minecraft exited with code {exit_code}")
        return exit_code
