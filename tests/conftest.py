"""
Pytest configuration and fixtures for the test suite.

Defines markers for selective test execution:
    pytest -m unit          # Fast unit tests
    pytest -m integration   # End-to-end pipeline tests over the local store

Fixtures are centralized in tests/fixtures/ for reuse across all test modules.
"""

import pytest
import sys
import os

# IMPORTANT: Patch tenacity's sleep function BEFORE any other imports
# This must happen before tenacity.Retrying class is defined (which captures defaults)
import tenacity.nap
tenacity.nap.sleep = lambda seconds: None

# Add src to path for imports
src_dir = os.path.join(os.path.dirname(__file__), '..', 'src')
if src_dir not in sys.path:
    sys.path.insert(0, src_dir)

# Add tests directory to path for fixtures import
tests_dir = os.path.dirname(__file__)
if tests_dir not in sys.path:
    # Ensure src directory stays ahead of tests for module resolution
    sys.path.insert(1, tests_dir)

from fixtures import (
    CDM_TREE,
    ENTITY_LIST,
    ARTIFACTS,
    FakeConnection,
    FakeDatabase,
    write_tree,
    load,
)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: End-to-end pipeline tests over the local store")


# =============================================================================
# Manifest tree fixtures
# =============================================================================

@pytest.fixture
def cdm_root(tmp_path):
    """Directory holding the sample manifest tree."""
    return write_tree(tmp_path / "cdm", CDM_TREE)


@pytest.fixture
def local_store(cdm_root):
    """LocalManifestStore over the sample manifest tree."""
    from cdmutil.storage import LocalManifestStore
    return LocalManifestStore(str(cdm_root))


@pytest.fixture
def empty_store(tmp_path):
    """LocalManifestStore over an empty directory."""
    from cdmutil.storage import LocalManifestStore
    root = tmp_path / "empty"
    root.mkdir()
    return LocalManifestStore(str(root))


@pytest.fixture
def entity_list():
    """Parsed entity list used by the creation path."""
    from cdmutil.manifest.models import EntityList
    return EntityList.from_dict(load(ENTITY_LIST))


@pytest.fixture
def artifacts_file(tmp_path):
    """Artifacts catalogue file."""
    path = tmp_path / "Artifacts.json"
    path.write_text(ARTIFACTS, encoding="utf-8")
    return str(path)


@pytest.fixture
def app_dir(tmp_path):
    """Directory for column override and view syntax files (initially empty)."""
    path = tmp_path / "app"
    path.mkdir()
    return path


# =============================================================================
# Database fixtures
# =============================================================================

@pytest.fixture
def fake_db():
    """Empty in-memory object catalogue."""
    return FakeDatabase()


@pytest.fixture
def fake_connection(fake_db):
    """Connection over the in-memory catalogue."""
    return FakeConnection(fake_db)


@pytest.fixture(autouse=True)
def reset_setup_registry():
    """Forget database setup state between tests."""
    from cdmutil.sql import executor
    executor._registry.clear()
    yield
    executor._registry.clear()
