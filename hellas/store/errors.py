"""
Hellas Store - Error Taxonomy

Every error raised by the update engine derives from LauncherError so
operator surfaces (CLI, API) can translate them uniformly.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ReadinessReport


class LauncherError(Exception):
    """Base exception for launcher errors."""
    pass


class ConfigurationError(LauncherError):
    """No usable update source (or other unusable configuration)."""
    pass


class SourceError(LauncherError):
    """Feed or descriptor is malformed or unreachable."""
    pass


class TransferError(LauncherError):
    """HTTP non-2xx response or stream failure while downloading."""
    pass


class IntegrityError(LauncherError):
    """Downloaded archive does not match the expected SHA-256."""

    def __init__(self, expected: str, actual: str, url: str = ""):
        self.expected = expected
        self.actual = actual
        self.url = url
        super().__init__(
            "Downloaded archive checksum does not match expected SHA-256 "
            f"(expected {expected}, got {actual})."
        )


class ExtractionError(LauncherError):
    """Archive is corrupt or contains entries escaping the install root."""
    pass


class CancelledError(LauncherError):
    """User-initiated abort. Not a failure."""

    def __init__(self, message: str = "Operation cancelled.", phase: str = ""):
        self.phase = phase
        super().__init__(message)


class ConcurrencyError(LauncherError):
    """Another mutating operation is already in flight."""

    def __init__(self, message: str = "Another operation is in progress."):
        super().__init__(message)


class ReadinessError(LauncherError):
    """A launch prerequisite is missing. Carries structured diagnostics."""

    def __init__(self, report: "ReadinessReport"):
        self.report = report
        super().__init__(report.message)


class LaunchError(LauncherError):
    """The game process could not be prepared, started, or exited abnormally."""
    pass


class AuthError(LauncherError):
    """A step of the sign-in chain failed."""
    pass
