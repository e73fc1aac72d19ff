"""
Test fixtures for the witsync test suite.

Fixtures are grouped by test type:
- base: environment variables, temporary directories, logging reset
- factories: model factories and the two scenario collections
- integration: collections, configuration and engine of a migration run
- system: CLI runner and run configuration files
"""

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

__all__ = [
    "base_test_env",
    "mock_env_vars",
    "reset_witsync_logging",
    "temp_dir",
    "engine",
    "error_tracker",
    "migration_config",
    "snapshot_files",
    "source",
    "target",
    "cli_runner",
    "write_config",
]
