"""
Test fixtures and helpers for the Hellas launcher tests.

Provides:
- Fake HTTP responses/sessions for offline fetcher and download tests
- ZIP archive builders
- A fake Mojang/Forge metadata client
- Event recording and Launcher construction helpers
"""

from __future__ import annotations

import hashlib
import io
import json
import zipfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional, Tuple, Union
from unittest.mock import patch

import requests
from requests.structures import CaseInsensitiveDict


def compute_sha256_from_content(content: bytes) -> str:
    """Compute SHA256 hash from bytes."""
    return hashlib.sha256(content).hexdigest().lower()


# =============================================================================
# ZIP Builders
# =============================================================================

def build_zip(entries: Dict[str, Optional[Union[str, bytes]]]) -> bytes:
    """
    Build a ZIP archive in memory.

    Args:
        entries: name -> content; a None value (or a name ending in '/')
            becomes a directory entry
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for name, content in entries.items():
            if content is None or name.endswith("/"):
                archive.writestr(name.rstrip("/") + "/", b"")
            else:
                data = content.encode("utf-8") if isinstance(content, str) else content
                archive.writestr(name, data)
    return buffer.getvalue()


def write_zip(path: Path, entries: Dict[str, Optional[Union[str, bytes]]]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(build_zip(entries))
    return path


def modpack_zip(version: str = "1.2.0", prefix: str = "hellasforms", legacy: bool = False) -> bytes:
    """A small modpack archive with the versioned jar, in modern or legacy layout."""
    mods = "mods" if legacy else "modpack/mods"
    return build_zip({
        f"{mods}/{prefix}-{version}.jar": b"jar-bytes",
        f"{mods}/other-mod.jar": b"other",
        "modpack/config/pixelmon.yml": "spawn: true",
    })


# =============================================================================
# Fake HTTP
# =============================================================================

class FakeResponse:
    """Minimal stand-in for requests.Response with streaming support."""

    def __init__(
        self,
        body: Union[bytes, str, Dict[str, Any]] = b"",
        status_code: int = 200,
        headers: Optional[Dict[str, str]] = None,
        content_length: bool = True,
        fail_after: Optional[int] = None,
    ):
        if isinstance(body, dict):
            body = json.dumps(body)
            headers = {"content-type": "application/json", **(headers or {})}
        self.body = body.encode("utf-8") if isinstance(body, str) else body
        self.status_code = status_code
        self.headers = CaseInsensitiveDict(headers or {})
        if content_length and "content-length" not in self.headers:
            self.headers["content-length"] = str(len(self.body))
        self.fail_after = fail_after
        self.closed = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    @property
    def text(self) -> str:
        return self.body.decode("utf-8")

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8"))

    def iter_content(self, chunk_size: int = 1024):
        sent = 0
        for start in range(0, len(self.body), chunk_size):
            if self.fail_after is not None and sent >= self.fail_after:
                raise requests.ConnectionError("connection reset")
            yield self.body[start:start + chunk_size]
            sent += 1

    def close(self) -> None:
        self.closed = True


Route = Union[FakeResponse, Exception]


class FakeSession:
    """requests.Session replacement serving canned responses by URL."""

    def __init__(self, routes: Dict[str, Route], calls: Optional[List[Tuple[str, Dict[str, Any]]]] = None):
        self.routes = routes
        self.calls = calls if calls is not None else []
        self.headers: Dict[str, str] = {}
        self.closed = False

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append((url, kwargs))
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(b"not found", status_code=404)
        if isinstance(route, Exception):
            raise route
        return route

    def close(self) -> None:
        self.closed = True


@contextmanager
def patch_sessions(routes: Dict[str, Route]) -> Generator[List[Tuple[str, Dict[str, Any]]], None, None]:
    """
    Replace requests.Session for the duration of the block.

    Yields:
        List of (url, kwargs) for every GET issued.
    """
    calls: List[Tuple[str, Dict[str, Any]]] = []
    with patch("requests.Session", side_effect=lambda: FakeSession(routes, calls)):
        yield calls


# =============================================================================
# Fake Metadata Client
# =============================================================================

class FakeMetaClient:
    """GameMetaClient stand-in that writes placeholder files."""

    def __init__(self, forge_version: str = "1.16.5-36.2.39", fail: Optional[Exception] = None):
        self.forge_version = forge_version
        self.fail = fail
        self.downloads: List[Tuple[str, Path]] = []

    def latest_forge_version(self, minecraft_version: str) -> str:
        return self.forge_version

    @staticmethod
    def forge_installer_url(forge_version: str) -> str:
        return f"https://maven.example/forge-{forge_version}-installer.jar"

    def get_version_profile(self, minecraft_version: str) -> Dict[str, Any]:
        if self.fail:
            raise self.fail
        return {
            "id": minecraft_version,
            "downloads": {"client": {"url": f"https://mojang.example/{minecraft_version}.jar"}},
        }

    @staticmethod
    def client_jar_url(profile: Dict[str, Any]) -> Optional[str]:
        return ((profile.get("downloads") or {}).get("client") or {}).get("url")

    def download_file(self, url: str, dest: Path) -> Path:
        if self.fail:
            raise self.fail
        self.downloads.append((url, dest))
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(b"downloaded")
        return dest

    @staticmethod
    def write_json(data: Dict[str, Any], dest: Path) -> Path:
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_text(json.dumps(data), encoding="utf-8")
        return dest


# =============================================================================
# Events
# =============================================================================

class EventRecorder:
    """Collects everything published on an EventChannel."""

    def __init__(self, channel):
        self.events: List[Tuple[str, Dict[str, Any]]] = []
        self.unsubscribe = channel.subscribe(lambda topic, payload: self.events.append((topic, payload)))

    def topic(self, name: str) -> List[Dict[str, Any]]:
        return [payload for topic, payload in self.events if topic == name]

    def states(self) -> List[str]:
        return [payload["state"] for payload in self.topic("update-progress")]

    def messages(self, name: str = "install-status") -> List[str]:
        return [payload["message"] for payload in self.topic(name)]


# =============================================================================
# Launcher Construction
# =============================================================================

PACK_URL = "https://packs.example/hellas.zip"


def make_config(root: Path, zip_url: Optional[str] = PACK_URL, feed_url: Optional[str] = None):
    """LauncherConfig with every path under root."""
    from config.settings import LauncherConfig

    config = LauncherConfig()
    config.data_root = root / "data"
    config.pack.zip_url = zip_url
    config.pack.feed_url = feed_url
    config.pack.version = None
    config.pack.expected_sha256 = None
    config.game.minecraft_version = "1.16.5"
    config.game.forge_version = "1.16.5-36.2.39"
    config.game.bundled_java_path = None
    config.game.memory_max_mb = None
    config.game.memory_min_mb = None
    return config


def make_launcher(config, **kwargs):
    """Started Launcher without runtime provisioning or account restore."""
    from hellas.store import Launcher

    kwargs.setdefault("provision_runtime", False)
    kwargs.setdefault("meta_client", FakeMetaClient())
    launcher = Launcher(config, **kwargs)
    launcher.start(restore_account=False)
    return launcher
