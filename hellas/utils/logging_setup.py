"""
Logging Setup

Console logging plus two files under the launcher log directory:
- launcher.log  INFO and above, shown by `hellas logs` and GET /api/logs
- debug.txt     everything, for support

BehaviorLog keeps an in-memory trail of user-visible events (operation
start/complete/error, progress, launch attempts) and writes it once to
hellas-behavior.log when the launcher exits.
"""

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LAUNCHER_LOG = "launcher.log"
DEBUG_LOG = "debug.txt"
BEHAVIOR_LOG = "hellas-behavior.log"

logger = logging.getLogger(__name__)

_log_dir: Optional[Path] = None


class StatusEndpointFilter(logging.Filter):
    """Filter out noisy polling endpoints from access logs."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        return "/api/events" not in message and "/api/operation" not in message


def configure_logging(log_dir: Optional[Path] = None, level: str = "INFO") -> None:
    """
    Configure root logging. Safe to call more than once.

    Args:
        log_dir: Directory for launcher.log / debug.txt (console only when None)
        level: Console level name (DEBUG, INFO, ...)
    """
    global _log_dir

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_hellas", False):
            root.removeHandler(handler)
            handler.close()

    root.setLevel(logging.DEBUG)
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S")

    console = logging.StreamHandler()
    console.setLevel(getattr(logging, level.upper(), logging.INFO))
    console.setFormatter(formatter)
    console._hellas = True  # type: ignore[attr-defined]
    root.addHandler(console)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_formatter = logging.Formatter(LOG_FORMAT)
        for filename, file_level in ((LAUNCHER_LOG, logging.INFO), (DEBUG_LOG, logging.DEBUG)):
            handler = logging.FileHandler(log_dir / filename, encoding="utf-8")
            handler.setLevel(file_level)
            handler.setFormatter(file_formatter)
            handler._hellas = True  # type: ignore[attr-defined]
            root.addHandler(handler)
        _log_dir = log_dir

    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").addFilter(StatusEndpointFilter())


def launcher_log_path(log_dir: Optional[Path] = None) -> Optional[Path]:
    directory = log_dir or _log_dir
    return directory / LAUNCHER_LOG if directory else None


def read_launcher_log(log_dir: Optional[Path] = None) -> str:
    """Contents of launcher.log; empty when logging to file is not set up."""
    path = launcher_log_path(log_dir)
    if path is None:
        return ""
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return ""


class BehaviorLog:
    """Trail of user-visible events, flushed once to hellas-behavior.log."""

    def __init__(self, path: Path):
        self.path = path
        self._entries: List[Dict[str, Any]] = []
        self._lock = threading.Lock()
        self._written = False

    def record(self, event: str, **details: Any) -> None:
        entry = {"timestamp": datetime.now().isoformat(), "event": event, **details}
        with self._lock:
            self._entries.append(entry)
        logger.info("behavior:%s %s", event, json.dumps(details, default=str) if details else "")

    @property
    def entries(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._entries)

    def flush(self) -> bool:
        """Write the trail. Returns False when already written or empty."""
        with self._lock:
            if self._written or not self._entries:
                return False
            entries = list(self._entries)

        lines = [f"Hellas Launcher behavior log - {datetime.now().isoformat()}"]
        for entry in entries:
            rest = {k: v for k, v in entry.items() if k not in ("timestamp", "event")}
            data = f" {json.dumps(rest, default=str)}" if rest else ""
            lines.append(f"[{entry['timestamp']}] {entry['event']}{data}")

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text("\n".join(lines), encoding="utf-8")
        except OSError as e:
            logger.warning("Failed to write behavior log %s: %s", self.path, e)
            return False

        with self._lock:
            self._written = True
        return True
