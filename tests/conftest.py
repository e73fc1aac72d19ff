"""
Test configuration and fixtures for the witsync project.

This file is the root pytest configuration file that sets up pytest
markers and imports fixtures from the fixtures modules to make them
available to all tests.
"""

# Import fixtures from the fixtures modules to make them available to all tests
from tests.fixtures.base import base_test_env, mock_env_vars, reset_witsync_logging, temp_dir
from tests.fixtures.integration import (
    engine,
    error_tracker,
    migration_config,
    snapshot_files,
    source,
    target,
)
from tests.fixtures.system import cli_runner, write_config


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: mark a test as a unit test")
    config.addinivalue_line("markers", "integration: mark a test as an integration test")
    config.addinivalue_line("markers", "cli: mark a test that tests CLI functionality")
