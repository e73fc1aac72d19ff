"""
Base fixtures for the witsync testing framework.

This module provides foundational fixtures that can be used across all test types
(unit, integration, cli) to ensure consistent test setup and teardown.
"""

import logging
import os
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest


@pytest.fixture
def base_test_env() -> dict[str, str]:
    """
    Provide a standardized set of environment variables for testing.

    Returns:
        Dict[str, str]: Dictionary of environment variables
    """
    return {
        "WITSYNC_LOG_LEVEL": "DEBUG",
        "WITSYNC_LOG_USE_RICH": "false",
        "WITSYNC_SOURCE_PROJECT": "ProjectA",
        "WITSYNC_SOURCE_SNAPSHOT": "/data/source.json",
        "WITSYNC_TARGET_PROJECT": "ProjectB",
        "WITSYNC_TARGET_SNAPSHOT": "/data/target.json",
        "WITSYNC_REFLECTED_ID_FIELD": "Custom.ReflectedWorkItemId",
        "WITSYNC_PREFIX_PROJECT_TO_NODES": "true",
        "WITSYNC_KINDS": "nodes,work_items",
    }


@pytest.fixture
def mock_env_vars(base_test_env: dict[str, str]) -> Generator[dict[str, str], None, None]:
    """
    Set and restore environment variables for tests.

    This fixture applies the environment variables from base_test_env,
    yields control back to the test, and then restores the original
    environment after the test completes.
    """
    original_environ = os.environ.copy()

    os.environ.update(base_test_env)

    yield base_test_env

    os.environ.clear()
    os.environ.update(original_environ)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for test files.

    Yields:
        Path: Path to the temporary directory
    """
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture(autouse=True)
def reset_witsync_logging() -> Generator[None, None, None]:
    """Drop handlers installed by configure_logging so later tests start clean."""
    yield
    for name in ("witsync", ""):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
    logging.getLogger("witsync").propagate = True
    logging.getLogger("witsync").setLevel(logging.NOTSET)
    logging.setLoggerClass(logging.Logger)
