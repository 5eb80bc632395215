"""Pytest configuration for profilekeeper tests."""

import logging
import tempfile
from pathlib import Path

import pytest
from profilekeeper.logging_setup import JsonlHandler
from profilekeeper.manager import ProfileManager
from profilekeeper.manager import reset_for_testing
from profilekeeper.settings import KeeperSettings


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def root(temp_dir):
    """Profiles root (holds profiles.ini); not created up front."""
    return temp_dir / "profiles"


@pytest.fixture
def settings(temp_dir):
    return KeeperSettings(home=temp_dir)


@pytest.fixture
def manager(settings):
    return ProfileManager(settings)


@pytest.fixture(autouse=True)
def _isolate_process_state(monkeypatch, temp_dir):
    """Keep the process-wide manager and log sinks from leaking between tests."""
    monkeypatch.setenv("PROFILEKEEPER_HOME", str(temp_dir))
    yield
    reset_for_testing()
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if isinstance(handler, JsonlHandler):
            root_logger.removeHandler(handler)
