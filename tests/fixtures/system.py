"""
CLI test fixtures for the witsync testing framework.

This module provides fixtures for running the typer application in-process
against snapshot files on disk.
"""

import json
from collections.abc import Callable
from pathlib import Path

import pytest
from typer.testing import CliRunner

from tests.fixtures.factories import (
    REFLECTED_ID_FIELD,
    SOURCE_PROJECT,
    TARGET_PROJECT,
    WORK_ITEM_TYPE_MAP,
)


@pytest.fixture
def cli_runner() -> CliRunner:
    """A typer CliRunner."""
    return CliRunner()


@pytest.fixture
def write_config(temp_dir: Path, snapshot_files: dict[str, Path]) -> Callable[..., Path]:
    """
    Return a function writing a JSON run configuration next to the snapshots.

    Keyword arguments are merged into the ``migration`` section.
    """

    def _write(**migration) -> Path:
        data = {
            "logging": {"level": "WARNING", "use_rich": False},
            "source": {"project": SOURCE_PROJECT, "snapshot": str(snapshot_files["source"])},
            "target": {"project": TARGET_PROJECT, "snapshot": str(snapshot_files["target"])},
            "migration": {
                "reflected_id_field": REFLECTED_ID_FIELD,
                "work_item_types": dict(WORK_ITEM_TYPE_MAP),
                **migration,
            },
        }
        path = temp_dir / "migration.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return _write
