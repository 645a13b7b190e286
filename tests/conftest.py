"""Pytest configuration and shared fixtures for StackDeck tests."""

import logging
import os
import shutil
import tempfile
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test file operations.

    Yields:
        Path to temporary directory

    Cleanup:
        Automatically removes directory after test
    """
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def isolated_env() -> Generator[dict[str, str], None, None]:
    """Provide isolated environment variables for testing.

    Saves current environment and restores after test.
    """
    original_env = os.environ.copy()
    yield original_env
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture(autouse=True)
def no_shutdown_hooks(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep providers created in tests from installing process-wide hooks.

    Providers register with the shutdown guard on construction; tests mark
    the guard as already installed so no atexit or signal handler is added.
    """
    from stackdeck.deploy import shutdown

    monkeypatch.setattr(shutdown, "_registered", True)


# Configure pytest
def pytest_configure(config: Any) -> None:
    """Configure pytest with marker options."""
    config.addinivalue_line(
        "markers",
        "slow: marks tests as slow (deselect with '-m \"not slow\"')",
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests that spawn processes",
    )
    config.addinivalue_line(
        "markers",
        "unit: marks tests as unit tests",
    )


@pytest.fixture(autouse=True)
def reset_stackdeck_logger() -> Generator[None, None, None]:
    """Undo logger changes made by setup_logging in CLI tests."""
    logger = logging.getLogger("stackdeck")
    level = logger.level
    handlers = list(logger.handlers)
    yield
    logger.setLevel(level)
    logger.handlers = handlers
