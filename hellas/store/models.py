"""
Hellas Store - Data Models

Pydantic v2 models for update sources, resolved artifacts, detection
results, readiness reports, progress events and the persisted launcher
state (state.json).

All models are JSON-serializable. Persisted models use camelCase keys
on disk (installDir, installedVersion, lastKnownVersion, ...).
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# =============================================================================
# Enums
# =============================================================================

class SourceType(str, Enum):
    """Update source variants."""
    FEED = "feed"
    DIRECT = "direct"


class ComponentKind(str, Enum):
    """Launch prerequisites tracked by detection."""
    MINECRAFT = "minecraft"
    FORGE = "forge"
    MODPACK = "modpack"


class OperationKind(str, Enum):
    """Mutating operator workflows."""
    INSTALL = "install"
    UPDATE = "update"
    REINSTALL = "reinstall"


class OperationState(str, Enum):
    """Lifecycle of an ActiveOperation."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class UpdatePhase(str, Enum):
    """States published on the update-progress channel."""
    FETCHING_FEED = "fetching-feed"
    DOWNLOADING = "downloading"
    EXTRACTING = "extracting"
    FINALIZING = "finalizing"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"


class StatusLevel(str, Enum):
    """Severity of a human-readable status message."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


# =============================================================================
# Update Sources
# =============================================================================

class FeedSource(BaseModel):
    """Feed-mode source: the manifest is re-fetched to find the artifact."""
    model_config = ConfigDict(frozen=True)

    type: Literal[SourceType.FEED] = SourceType.FEED
    feed_url: str

    @property
    def display_url(self) -> str:
        return self.feed_url


class DirectSource(BaseModel):
    """Direct-mode source: URL of the artifact (or of a descriptor)."""
    model_config = ConfigDict(frozen=True)

    type: Literal[SourceType.DIRECT] = SourceType.DIRECT
    url: str
    version: Optional[str] = None
    expected_sha256: Optional[str] = None

    @property
    def display_url(self) -> str:
        return self.url


UpdateSource = Annotated[Union[FeedSource, DirectSource], Field(discriminator="type")]


class ResolvedArtifact(BaseModel):
    """A concrete downloadable artifact."""
    model_config = ConfigDict(frozen=True)

    url: str
    version: Optional[str] = None
    sha256: Optional[str] = None


# =============================================================================
# Detection / Readiness
# =============================================================================

class Diagnostic(BaseModel):
    """A filesystem failure captured during detection."""
    path: str
    message: str
    code: Optional[str] = None

    def describe(self) -> str:
        suffix = f" ({self.code})" if self.code else ""
        return f"{self.path}: {self.message}{suffix}"


class Requirements(BaseModel):
    """Presence of each launch prerequisite."""
    minecraft: bool = False
    forge: bool = False
    modpack: bool = False

    def missing(self) -> List[ComponentKind]:
        return [kind for kind in ComponentKind if not getattr(self, kind.value)]


class DetectionResult(BaseModel):
    """Best-effort snapshot of what is installed under an install root."""
    requirements: Requirements = Field(default_factory=Requirements)
    minecraft_version: str
    forge_version: Optional[str] = None
    forge_installer_path: Optional[str] = None
    modpack_version: Optional[str] = None
    expected_version: Optional[str] = None
    expected_jar: Optional[str] = None
    expected_version_present: bool = False
    # Weak positive: any matching jar OR any non-empty mods directory
    modpack_present: bool = False
    searched_mod_directories: List[str] = Field(default_factory=list)
    # Subset of searched_mod_directories that did not exist
    missing_mod_directories: List[str] = Field(default_factory=list)
    diagnostics: List[Diagnostic] = Field(default_factory=list)


class ReadinessReport(BaseModel):
    """Outcome of the pre-launch verification step."""
    ready: bool
    missing: List[ComponentKind] = Field(default_factory=list)
    blocking: List[ComponentKind] = Field(default_factory=list)
    expected_version: Optional[str] = None
    detected_version: Optional[str] = None
    searched_mod_directories: List[str] = Field(default_factory=list)
    diagnostics: List[Diagnostic] = Field(default_factory=list)
    message: str = ""

    @property
    def remediable(self) -> List[ComponentKind]:
        return [kind for kind in self.missing if kind not in self.blocking]


class InstallationState(BaseModel):
    """Derived view over the filesystem plus the persisted version scalars."""
    install_dir: str
    install_dir_exists: bool
    is_installed: bool = False
    ready_to_launch: bool = False
    installed_version: str = ""
    last_known_version: str = ""
    detected_version: Optional[str] = None
    requirements: Requirements = Field(default_factory=Requirements)
    minecraft_version: Optional[str] = None
    forge_version: Optional[str] = None
    searched_mod_directories: List[str] = Field(default_factory=list)
    diagnostics: List[Diagnostic] = Field(default_factory=list)


# =============================================================================
# Events
# =============================================================================

class ProgressEvent(BaseModel):
    """Payload on the update-progress channel."""
    state: UpdatePhase
    progress: Optional[int] = None
    version: Optional[str] = None
    message: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """Serialize with exactly the keys each state carries."""
        payload: Dict[str, Any] = {"state": self.state.value}
        if self.state in (UpdatePhase.DOWNLOADING, UpdatePhase.EXTRACTING, UpdatePhase.FINALIZING):
            payload["progress"] = self.progress if self.progress is not None else 0
        elif self.state == UpdatePhase.COMPLETE:
            payload["progress"] = 100
            payload["version"] = self.version
        elif self.state in (UpdatePhase.ERROR, UpdatePhase.CANCELLED):
            payload["message"] = self.message or ""
        return payload


class StatusMessage(BaseModel):
    """Human-readable status line (install-status / launch-status)."""
    message: str
    level: StatusLevel = StatusLevel.INFO

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"message": self.message}
        if self.level != StatusLevel.INFO:
            payload["level"] = self.level.value
        return payload


class ChannelEvent(BaseModel):
    """An event recorded by the event channel history."""
    seq: int
    topic: str
    payload: Dict[str, Any]
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())


# =============================================================================
# Operations
# =============================================================================

class OperationResult(BaseModel):
    """Outcome of install / update / reinstall."""
    kind: OperationKind
    cancelled: bool = False
    version: Optional[str] = None
    installation: Optional[InstallationState] = None


class OperationInfo(BaseModel):
    """Snapshot of the active (or last) operation."""
    kind: Optional[OperationKind] = None
    state: OperationState = OperationState.IDLE
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    error: Optional[str] = None


class UpdateInfo(BaseModel):
    """Update availability as reported by get_state."""
    has_update_source: bool
    preferred_version: Optional[str] = None
    available: bool = False


# =============================================================================
# Memory
# =============================================================================

def _positive_int_or_none(value: Any) -> Optional[int]:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if parsed != parsed or parsed <= 0 or parsed == float("inf"):
        return None
    return int(round(parsed))


class MemorySettings(BaseModel):
    """User memory preference. Invalid values normalize to None."""
    mode: Literal["auto", "custom"] = "auto"
    min_mb: Optional[int] = None
    max_mb: Optional[int] = None
    jvm_args: List[str] = Field(default_factory=list)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @field_validator("mode", mode="before")
    @classmethod
    def normalize_mode(cls, v: Any) -> str:
        return "custom" if v == "custom" else "auto"

    @field_validator("min_mb", "max_mb", mode="before")
    @classmethod
    def normalize_mb(cls, v: Any) -> Optional[int]:
        return _positive_int_or_none(v)

    @field_validator("jvm_args", mode="before")
    @classmethod
    def keep_string_args(cls, v: Any) -> List[str]:
        if not isinstance(v, list):
            return []
        return [arg for arg in v if isinstance(arg, str)]


class MemoryPlan(BaseModel):
    """Effective memory allocation for the game process."""
    total_mb: int
    recommended_mb: int
    min_mb: int
    max_mb: int


class MemoryState(BaseModel):
    """Settings plus the plan they produce on this machine."""
    settings: MemorySettings
    total_mb: int
    recommended_mb: int
    applied_min_mb: int
    applied_max_mb: int


# =============================================================================
# Accounts
# =============================================================================

class StoredAccount(BaseModel):
    """Persisted account identity. Never holds an access token."""
    username: str = ""
    refresh_token: str = ""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Session(BaseModel):
    """In-memory signed-in session."""
    username: str
    uuid: str = ""
    access_token: str
    refresh_token: str = ""


class AccountInfo(BaseModel):
    """Account as exposed to operator surfaces."""
    username: str = ""
    logged_in: bool = False


class DeviceCode(BaseModel):
    """Device authorization started for the user to complete in a browser."""
    device_code: str
    user_code: str
    verification_uri: str
    expires_at: float
    interval: int = 5
    message: str = ""


class DevicePollResult(BaseModel):
    """Result of one poll of the device authorization."""
    status: Literal["pending", "slow_down", "declined", "expired", "error", "success"]
    message: Optional[str] = None
    account: Optional[AccountInfo] = None


# =============================================================================
# Persisted launcher state (state.json)
# =============================================================================

class LauncherState(BaseModel):
    """Durable key/value state surviving restarts."""
    schema_: str = Field(default="hellas.state.v1", alias="schema")
    terms_accepted: bool = False
    animation_enabled: bool = True
    install_dir: str = ""
    installed_version: str = ""
    last_known_version: str = ""
    memory: MemorySettings = Field(default_factory=MemorySettings)
    account: StoredAccount = Field(default_factory=StoredAccount)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LauncherStateView(BaseModel):
    """Everything the UI needs on start-up (get_state)."""
    website_url: str
    dynmap_url: str
    installation: InstallationState
    account: AccountInfo
    terms_accepted: bool
    animation_enabled: bool
    memory: MemoryState
    update: UpdateInfo
    operation: OperationInfo = Field(default_factory=OperationInfo)


class LaunchResult(BaseModel):
    """Outcome of a completed game session."""
    username: str
    install_dir: str
    launched_with: Optional[str] = None
    exit_code: int = 0
