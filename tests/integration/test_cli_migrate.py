"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of witsync, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Tests for the witsync command line interface.
"""

import json

import pytest

from tests.fixtures.factories import REFLECTED_ID_FIELD, TARGET_PROJECT
from witsync import __version__
from witsync.cli import app, build_summary_table
from witsync.core.config import MigrationKind
from witsync.memory_store import InMemoryCollection
from witsync.run_state import RunState
from witsync.store import WorkItemQuery


@pytest.mark.cli
@pytest.mark.integration
class TestMigrateCommand:
    """Tests for the migrate command."""

    def test_version(self, cli_runner):
        result = cli_runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_migrate_writes_target_snapshot(self, cli_runner, write_config, snapshot_files):
        config_path = write_config()

        result = cli_runner.invoke(app, ["migrate", "--config", str(config_path)])

        assert result.exit_code == 0, result.stdout
        assert "Migration Summary" in result.stdout
        target = InMemoryCollection.load(snapshot_files["target"])
        items = target.query(WorkItemQuery(project=TARGET_PROJECT))
        assert len(items) == 3
        assert all(item.get(REFLECTED_ID_FIELD) for item in items)
        assert target.query_plans(TARGET_PROJECT)

    def test_second_run_adds_nothing(self, cli_runner, write_config, snapshot_files):
        config_path = write_config()
        cli_runner.invoke(app, ["migrate", "-c", str(config_path)])
        first = json.loads(snapshot_files["target"].read_text())

        result = cli_runner.invoke(app, ["migrate", "-c", str(config_path)])

        second = json.loads(snapshot_files["target"].read_text())
        assert result.exit_code == 0
        assert second["next_id"] == first["next_id"]

    def test_selected_kinds(self, cli_runner, write_config, snapshot_files):
        config_path = write_config()

        result = cli_runner.invoke(
            app, ["migrate", "-c", str(config_path), "--kind", "nodes", "--kind", "queries"]
        )

        assert result.exit_code == 0
        target = InMemoryCollection.load(snapshot_files["target"])
        assert target.query(WorkItemQuery(project=TARGET_PROJECT)) == []
        assert target.find_item(TARGET_PROJECT, "ProjectB/Shared Queries/Team") is not None

    def test_source_snapshot_written_when_marking(self, cli_runner, write_config, snapshot_files):
        config_path = write_config(update_source_reflected_id=True, kinds=["work_items"])

        result = cli_runner.invoke(app, ["migrate", "-c", str(config_path)])

        assert result.exit_code == 0
        source = InMemoryCollection.load(snapshot_files["source"])
        assert source.get_work_item(10).get(REFLECTED_ID_FIELD).startswith(
            "https://target.example.com/tfs/DefaultCollection/ProjectB/"
        )

    def test_unknown_project_fails(self, cli_runner, write_config):
        config_path = write_config()

        result = cli_runner.invoke(
            app, ["migrate", "-c", str(config_path), "--target-project", "Missing"]
        )

        assert result.exit_code == 1
        assert "Project 'Missing' not found" in result.stdout

    def test_project_names_printed_literally(self, cli_runner, write_config):
        config_path = write_config()

        result = cli_runner.invoke(
            app, ["migrate", "-c", str(config_path), "--target-project", "Team[/]"]
        )

        assert result.exit_code == 1
        assert "Migrating ProjectA to Team[/]" in result.stdout
        assert "Project 'Team[/]' not found" in result.stdout

    def test_missing_snapshot_fails(self, cli_runner, mock_env_vars, monkeypatch):
        monkeypatch.delenv("WITSYNC_TARGET_SNAPSHOT")

        result = cli_runner.invoke(app, ["migrate"])

        assert result.exit_code == 1
        assert "snapshot" in result.stdout

    def test_invalid_configuration_fails(self, cli_runner, temp_dir):
        path = temp_dir / "broken.json"
        path.write_text(json.dumps({"source": {"project": "ProjectA"}}))

        result = cli_runner.invoke(app, ["migrate", "-c", str(path)])

        assert result.exit_code == 1
        assert "invalid configuration" in result.stdout


@pytest.mark.cli
class TestSummaryTable:
    """Tests for the run summary."""

    def test_rows_per_kind(self):
        table = build_summary_table(
            {MigrationKind.NODES: RunState(name="nodes", attempted=2, migrated=2)}
        )

        assert table.row_count == 1
        assert [column.header for column in table.columns][:2] == ["Kind", "Attempted"]
