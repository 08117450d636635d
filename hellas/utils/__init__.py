"""
Hellas Utils Package

Helpers shared by the launcher services.
"""

from .java_runtime import (
    JavaLocator,
    JavaVersion,
    detect_java_version,
    parse_java_version,
)

from .logging_setup import (
    BehaviorLog,
    configure_logging,
    read_launcher_log,
)

__all__ = [
    "BehaviorLog",
    "JavaLocator",
    "JavaVersion",
    "configure_logging",
    "detect_java_version",
    "parse_java_version",
    "read_launcher_log",
]
