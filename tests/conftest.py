"""
Pytest Configuration and Global Fixtures.

This file is automatically loaded by pytest and provides:
- Shared fixtures available to all tests
- Pytest markers configuration
- Environment isolation for config/settings
"""

import sys
from pathlib import Path
from typing import Generator

import pytest

# Ensure the project root is in Python path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))


# =============================================================================
# Re-export fixtures from helpers module
# =============================================================================

from tests.helpers.fixtures import (  # noqa: E402
    FakeMetaClient,
    FakeResponse,
    FakeSession,
    EventRecorder,
    build_zip,
    compute_sha256_from_content,
    make_config,
    make_launcher,
    patch_sessions,
    write_zip,
)

ENV_VARS = (
    "HELLAS_ROOT",
    "PACK_FEED_URL",
    "PACK_ZIP_URL",
    "PACK_VERSION",
    "PACK_EXPECTED_SHA256",
    "HELLAS_MC_VERSION",
    "HELLAS_FORGE_VERSION",
    "HELLAS_MODPACK_JAR_PREFIX",
    "WEBSITE_URL",
    "DYNMAP_URL",
    "MICROSOFT_CLIENT_ID",
    "MC_MEMORY_MAX",
    "MC_MEMORY_MIN",
    "BUNDLED_JAVA_PATH",
    "HELLAS_LOG_LEVEL",
    "AETHERVEIL_ANIM_ENABLED",
)


# =============================================================================
# Pytest Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests requiring multiple components"
    )
    config.addinivalue_line(
        "markers", "e2e: marks end-to-end tests over the Launcher facade"
    )


# =============================================================================
# Function-Scoped Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def clean_env(monkeypatch) -> None:
    """Keep developer environment variables out of configuration defaults."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Temporary directory for test isolation."""
    return tmp_path


@pytest.fixture
def launcher_config(tmp_path: Path):
    """LauncherConfig rooted in a temp directory with a direct source."""
    return make_config(tmp_path)


@pytest.fixture
def launcher(launcher_config) -> Generator:
    """Launcher over launcher_config without runtime provisioning."""
    instance = make_launcher(launcher_config)
    yield instance
    instance.close()


# =============================================================================
# Collection Hooks
# =============================================================================

def pytest_collection_modifyitems(config, items):
    """
    Automatically mark tests based on their location.

    - tests/store/test_e2e.py -> @pytest.mark.e2e
    """
    for item in items:
        if Path(item.fspath).name == "test_e2e.py":
            item.add_marker(pytest.mark.e2e)
