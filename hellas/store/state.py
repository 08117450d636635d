"""
Hellas Store - Persisted State

state.json under the launcher data root holds the few facts that must
survive restarts: installDir, installedVersion, lastKnownVersion,
preferences, and the account identity (username + refresh token only).

Writes are atomic (temp file + rename) and serialized with a file lock
so a second launcher process cannot interleave a half-written file.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, Optional

import filelock
from pydantic import ValidationError

from .errors import LauncherError
from .models import LauncherState, MemorySettings, StoredAccount

logger = logging.getLogger(__name__)


class StateLockError(LauncherError):
    """Error when the state lock cannot be acquired."""
    pass


class StateStore:
    """Durable key/value state backed by a JSON file."""

    LOCK_TIMEOUT = 10.0  # seconds

    def __init__(self, path: Path, default_install_dir: Optional[Path] = None, animation_default: bool = True):
        self.path = Path(path)
        self.default_install_dir = default_install_dir
        self.animation_default = animation_default

    @property
    def lock_file_path(self) -> Path:
        return self.path.with_suffix(".lock")

    # =========================================================================
    # Locking
    # =========================================================================

    @contextmanager
    def lock(self, timeout: Optional[float] = None) -> Generator[None, None, None]:
        """
        Acquire exclusive lock on the state file.

        Raises:
            StateLockError: If lock cannot be acquired.
        """
        if timeout is None:
            timeout = self.LOCK_TIMEOUT

        self.lock_file_path.parent.mkdir(parents=True, exist_ok=True)

        lock = filelock.FileLock(str(self.lock_file_path))
        try:
            lock.acquire(timeout=timeout)
        except filelock.Timeout:
            raise StateLockError(
                f"Could not acquire state lock within {timeout}s. "
                "Another launcher instance may be writing."
            )
        try:
            yield
        finally:
            lock.release()

    # =========================================================================
    # JSON I/O (Atomic)
    # =========================================================================

    def _write_json(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

        tmp_path = self.path.with_suffix(".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True, ensure_ascii=False)
                f.write("\n")
            tmp_path.replace(self.path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

    def _defaults(self) -> LauncherState:
        return LauncherState(
            install_dir=str(self.default_install_dir) if self.default_install_dir else "",
            animation_enabled=self.animation_default,
        )

    # =========================================================================
    # State Operations
    # =========================================================================

    def load(self) -> LauncherState:
        """Load state, falling back to defaults for a missing or corrupt file."""
        if not self.path.exists():
            return self._defaults()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("[StateStore] Unreadable state file %s, using defaults: %s", self.path, e)
            return self._defaults()

        if not isinstance(data, dict):
            logger.warning(
                "[StateStore] State file %s does not hold an object, using defaults", self.path
            )
            return self._defaults()

        account = data.get("account")
        if isinstance(account, dict) and account.get("accessToken"):
            # Records written by old builds held session tokens; drop them
            logger.info("[StateStore] Scrubbing legacy access token from stored account")
            data["account"] = {"username": account.get("username") or "", "refreshToken": ""}

        try:
            state = LauncherState.model_validate(data)
        except ValidationError as e:
            logger.warning("[StateStore] Invalid state file %s, using defaults: %s", self.path, e)
            return self._defaults()
        if not state.install_dir and self.default_install_dir:
            state.install_dir = str(self.default_install_dir)
        return state

    def save(self, state: LauncherState) -> None:
        with self.lock():
            self._write_json(state.model_dump(by_alias=True, mode="json"))

    def update(self, **fields: Any) -> LauncherState:
        """Read-modify-write of selected fields under the lock."""
        with self.lock():
            state = self.load()
            updated = state.model_copy(update=fields)
            self._write_json(updated.model_dump(by_alias=True, mode="json"))
        return updated

    # =========================================================================
    # Convenience
    # =========================================================================

    def install_dir(self) -> Path:
        return Path(self.load().install_dir).expanduser()

    def set_versions(self, version: str) -> LauncherState:
        """Record a version confirmed by a completed reconciliation."""
        return self.update(installed_version=version, last_known_version=version)

    def set_account(self, username: str, refresh_token: str) -> LauncherState:
        return self.update(account=StoredAccount(username=username, refresh_token=refresh_token))

    def clear_account(self) -> LauncherState:
        return self.update(account=StoredAccount())

    def set_memory(self, settings: MemorySettings) -> LauncherState:
        return self.update(memory=settings)
