"""
Hellas Store - Update Service

Orchestrates install / update / reinstall of the modpack:

    resolve -> download -> verify -> extract -> normalize -> persist
            -> provision base runtime -> complete

At most one of these operations runs at a time (OperationGuard). Each
operation owns a CancelToken that is threaded through the fetcher, the
download service and the reconciler. Every terminal outcome is published
on the event channel; cancellation is reported as a neutral result, not
an error.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Generator, Optional

from .cancellation import CancelToken
from .download_service import DOWNLOAD_BAND, DownloadService
from .errors import CancelledError, ConcurrencyError
from .events import EventChannel
from .fetcher import ArchiveFetcher
from .layout import remove_path
from .models import (
    FeedSource,
    InstallationState,
    OperationInfo,
    OperationKind,
    OperationResult,
    OperationState,
    StatusLevel,
    UpdatePhase,
    UpdateSource,
)
from .reconciler import InstallationReconciler
from .runtime_service import RuntimeService
from .state import StateStore

logger = logging.getLogger(__name__)

EXTRACTING_PROGRESS = DOWNLOAD_BAND.end
FINALIZING_PROGRESS = 95


@dataclass(frozen=True)
class OperationMessages:
    """User-facing wording for one operation kind."""
    start: str
    success: str
    cancelled: str
    failed: str


MESSAGES: Dict[OperationKind, OperationMessages] = {
    OperationKind.INSTALL: OperationMessages(
        start="Preparing installation into {dir}",
        success="Installation completed successfully.",
        cancelled="Installation cancelled.",
        failed="Installation failed.",
    ),
    OperationKind.UPDATE: OperationMessages(
        start="Starting update…",
        success="Update completed.",
        cancelled="Update cancelled.",
        failed="Update failed.",
    ),
    OperationKind.REINSTALL: OperationMessages(
        start="Starting fresh reinstall…",
        success="Reinstall finished.",
        cancelled="Reinstall cancelled.",
        failed="Reinstall failed.",
    ),
}


# =============================================================================
# Single-flight
# =============================================================================

@dataclass
class ActiveOperation:
    """One running install/update/reinstall."""
    kind: OperationKind
    token: CancelToken = field(default_factory=CancelToken)
    state: OperationState = OperationState.RUNNING
    started_at: str = field(default_factory=lambda: datetime.now().isoformat())
    finished_at: Optional[str] = None
    error: Optional[str] = None

    def finish(self, state: OperationState, error: Optional[str] = None) -> None:
        self.state = state
        self.error = error
        self.finished_at = datetime.now().isoformat()

    def info(self) -> OperationInfo:
        return OperationInfo(
            kind=self.kind,
            state=self.state,
            started_at=self.started_at,
            finished_at=self.finished_at,
            error=self.error,
        )


class OperationGuard:
    """Holds at most one ActiveOperation."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: Optional[ActiveOperation] = None

    @property
    def active(self) -> Optional[ActiveOperation]:
        return self._active

    def try_acquire(self, operation: ActiveOperation) -> bool:
        with self._lock:
            if self._active is not None:
                return False
            self._active = operation
            return True

    def release(self, operation: ActiveOperation) -> None:
        with self._lock:
            if self._active is operation:
                self._active = None


@contextmanager
def temporary_archive(directory: Optional[Path] = None) -> Generator[Path, None, None]:
    """A temp file path for the downloaded archive, removed on every exit path."""
    fd, name = tempfile.mkstemp(
        prefix="hellas-update-",
        suffix=".zip",
        dir=str(directory) if directory else None,
    )
    os.close(fd)
    path = Path(name)
    try:
        yield path
    finally:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("[UpdateService] Could not remove temporary archive %s: %s", path, e)


# =============================================================================
# Update Service
# =============================================================================

class UpdateService:
    """
    Install / update / reinstall orchestrator.

    Operations run synchronously on the calling thread; submit() runs
    them on a single background worker instead.
    """

    def __init__(
        self,
        fetcher: ArchiveFetcher,
        downloader: DownloadService,
        reconciler: InstallationReconciler,
        state_store: StateStore,
        events: EventChannel,
        source_provider: Callable[[], UpdateSource],
        runtime: Optional[RuntimeService] = None,
        installation_provider: Optional[Callable[[], InstallationState]] = None,
        temp_dir: Optional[Path] = None,
        behavior: Optional[Callable[..., None]] = None,
    ):
        """
        Args:
            fetcher: Resolves the update source to an artifact stream
            downloader: Streams the artifact to disk
            reconciler: Extracts and normalizes the archive
            state_store: Persisted installDir / version scalars
            events: Progress and status channel
            source_provider: Returns the configured source; raises ConfigurationError
            runtime: Base runtime provisioning (skipped when None)
            installation_provider: Builds the InstallationState for results
            temp_dir: Where temporary archives go (system temp when None)
            behavior: Callback(event_name, **details) for the behavior log
        """
        self.fetcher = fetcher
        self.downloader = downloader
        self.reconciler = reconciler
        self.state_store = state_store
        self.events = events
        self.source_provider = source_provider
        self.runtime = runtime
        self.installation_provider = installation_provider
        self.temp_dir = temp_dir
        self._behavior = behavior

        self.guard = OperationGuard()
        self._last: Optional[ActiveOperation] = None
        self._executor: Optional[ThreadPoolExecutor] = None

    # =========================================================================
    # Operator API
    # =========================================================================

    def install(self, cancel: Optional[CancelToken] = None) -> OperationResult:
        return self.run(OperationKind.INSTALL, cancel)

    def update(self, cancel: Optional[CancelToken] = None) -> OperationResult:
        return self.run(OperationKind.UPDATE, cancel)

    def reinstall(self, cancel: Optional[CancelToken] = None) -> OperationResult:
        return self.run(OperationKind.REINSTALL, cancel)

    def run(self, kind: OperationKind, cancel: Optional[CancelToken] = None) -> OperationResult:
        """
        Run an operation on the calling thread.

        Raises:
            ConcurrencyError: If another operation is in flight.
            LauncherError: Any failure (already published as an error event).
        """
        operation = self._acquire(kind, cancel)
        return self._execute(operation)

    def submit(self, kind: OperationKind) -> "Future[OperationResult]":
        """
        Start an operation on the background worker.

        The guard is acquired before returning, so a concurrent second
        submit fails immediately with ConcurrencyError.
        """
        operation = self._acquire(kind, None)
        try:
            return self._get_executor().submit(self._execute, operation)
        except RuntimeError:
            self.guard.release(operation)
            raise

    def cancel(self) -> bool:
        """Request cancellation of the active operation. False if none is running."""
        operation = self.guard.active
        if operation is None:
            return False
        logger.info("[UpdateService] Cancel requested for %s", operation.kind.value)
        return operation.token.cancel(MESSAGES[operation.kind].cancelled)

    @property
    def is_running(self) -> bool:
        return self.guard.active is not None

    def current_operation(self) -> OperationInfo:
        """The active operation, else the last finished one, else idle."""
        operation = self.guard.active or self._last
        return operation.info() if operation else OperationInfo()

    def shutdown(self) -> None:
        self.cancel()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    # =========================================================================
    # Internals
    # =========================================================================

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="hellas-update")
        return self._executor

    def _acquire(self, kind: OperationKind, cancel: Optional[CancelToken]) -> ActiveOperation:
        operation = ActiveOperation(kind=kind, token=cancel or CancelToken())
        if not self.guard.try_acquire(operation):
            active = self.guard.active
            logger.warning(
                "[UpdateService] Rejected %s: %s already running",
                kind.value, active.kind.value if active else "another operation",
            )
            raise ConcurrencyError()
        return operation

    def _record(self, event: str, **details) -> None:
        if self._behavior is not None:
            self._behavior(event, **details)

    def _execute(self, operation: ActiveOperation) -> OperationResult:
        kind = operation.kind
        messages = MESSAGES[kind]
        token = operation.token
        self._last = operation

        try:
            # Unconfigured source fails here, before anything is deleted
            source = self.source_provider()
            install_root = self.state_store.install_dir()
            self._record(f"{kind.value}-start", dir=str(install_root), updateSource=source.display_url)
            logger.info("[UpdateService] %s into %s from %s", kind.value, install_root, source.display_url)
            self.events.install_status(messages.start.format(dir=install_root))

            if kind == OperationKind.REINSTALL:
                token.check("reinstall")
                with token.shield():
                    if install_root.exists():
                        logger.info("[UpdateService] Removing %s for reinstall", install_root)
                        remove_path(install_root)

            install_root.mkdir(parents=True, exist_ok=True)
            version = self._download_and_extract(source, install_root, token)

            if version:
                self.state_store.set_versions(version)

            if self.runtime is not None:
                self.events.install_status("Verifying Minecraft and Forge files…")
                self.runtime.ensure_base_runtime(install_root, on_status=self.events.install_status)

            self.events.progress(UpdatePhase.COMPLETE, version=version)
            self.events.install_status(messages.success, StatusLevel.SUCCESS)
            operation.finish(OperationState.COMPLETED)
            self._record(f"{kind.value}-complete", dir=str(install_root), version=version)

            installation = self.installation_provider() if self.installation_provider else None
            return OperationResult(kind=kind, version=version, installation=installation)

        except CancelledError:
            logger.info("[UpdateService] %s cancelled", kind.value)
            self.events.progress(UpdatePhase.CANCELLED, message=messages.cancelled)
            self.events.install_status(messages.cancelled, StatusLevel.WARNING)
            operation.finish(OperationState.CANCELLED)
            self._record(f"{kind.value}-cancelled")
            return OperationResult(kind=kind, cancelled=True)

        except Exception as e:
            message = str(e) or messages.failed
            logger.error("[UpdateService] %s failed: %s", kind.value, message)
            self.events.install_status(message, StatusLevel.ERROR)
            self.events.progress(UpdatePhase.ERROR, message=message)
            operation.finish(OperationState.FAILED, message)
            self._record(f"{kind.value}-error", message=message)
            raise

        finally:
            self.guard.release(operation)

    def _download_and_extract(self, source: UpdateSource, install_root: Path, token: CancelToken) -> Optional[str]:
        """Resolve, download and reconcile. Returns the artifact version."""
        token.check("fetching-feed")
        if isinstance(source, FeedSource):
            self.events.progress(UpdatePhase.FETCHING_FEED)
        self.events.progress(UpdatePhase.DOWNLOADING, 0)

        with temporary_archive(self.temp_dir) as archive_path:
            stream = self.fetcher.open(source, token)
            artifact = stream.artifact
            on_progress = DOWNLOAD_BAND.tracker(
                lambda value: self.events.progress(UpdatePhase.DOWNLOADING, value)
            )
            self.downloader.write_stream(stream, archive_path, progress_callback=on_progress, cancel=token)
            self.events.progress(UpdatePhase.DOWNLOADING, DOWNLOAD_BAND.end)

            token.check("extracting")
            self.events.progress(UpdatePhase.EXTRACTING, EXTRACTING_PROGRESS)
            self.reconciler.extract(archive_path, install_root, token)
            self.events.progress(UpdatePhase.FINALIZING, FINALIZING_PROGRESS)

        return artifact.version
