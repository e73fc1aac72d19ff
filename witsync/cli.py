"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of witsync, licensed under the MIT License.
See LICENSE file for details.
"""

"""Command line interface for running migrations between collection snapshots."""

from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from witsync import __version__
from witsync.core.config import AppConfig, EndpointConfig, MigrationKind, init_app_config
from witsync.core.logging import ErrorTracker, get_logger
from witsync.errors import WitsyncError
from witsync.memory_store import InMemoryCollection
from witsync.migration import MigrationEngine, ProjectEndpoint
from witsync.run_state import RunState, format_duration

# Initialize console for rich output
console = Console()

# Initialize the CLI app
app = typer.Typer(help="witsync - Work Item Tracking Sync")

logger = get_logger("witsync.cli")


@app.callback()
def callback(
    version: bool = typer.Option(False, "--version", help="Show the application version and exit"),
):
    """
    witsync - idempotent migration of work items, area and iteration trees,
    test plans and shared queries between team projects.
    """
    if version:
        console.print(f"witsync version: {__version__}")
        raise typer.Exit()


def load_config(
    config_path: Path | None,
    source_project: str | None,
    target_project: str | None,
    source: Path | None,
    target: Path | None,
    debug: bool,
) -> AppConfig:
    """
    Build the run configuration from a JSON file or the environment.

    Command line values win over both.
    """
    overrides = {"debug": True} if debug else {}
    config = (
        AppConfig.from_file(config_path, **overrides)
        if config_path
        else AppConfig.from_env(**overrides)
    )

    config.source = _override_endpoint(config.source, source_project, source)
    config.target = _override_endpoint(config.target, target_project, target)
    return init_app_config(config)


def _override_endpoint(
    endpoint: EndpointConfig, project: str | None, snapshot: Path | None
) -> EndpointConfig:
    update: dict[str, str] = {}
    if project:
        update["project"] = project
    if snapshot:
        update["snapshot"] = str(snapshot)
    return endpoint.model_copy(update=update) if update else endpoint


def build_summary_table(results: dict[MigrationKind, RunState]) -> Table:
    table = Table(title="Migration Summary")
    table.add_column("Kind", style="cyan")
    table.add_column("Attempted", justify="right")
    table.add_column("Migrated", justify="right", style="green")
    table.add_column("Skipped", justify="right", style="yellow")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Elapsed")
    for kind, state in results.items():
        table.add_row(
            kind.value,
            str(state.attempted),
            str(state.migrated),
            str(state.skipped),
            str(state.failed),
            format_duration(state.elapsed),
        )
    return table


@app.command("migrate")
def migrate(
    config_path: Path | None = typer.Option(
        None, "--config", "-c", help="JSON configuration file", exists=True, dir_okay=False
    ),
    source: Path | None = typer.Option(None, "--source", help="Source collection snapshot"),
    target: Path | None = typer.Option(None, "--target", help="Target collection snapshot"),
    source_project: str | None = typer.Option(None, "--source-project", help="Source project"),
    target_project: str | None = typer.Option(None, "--target-project", help="Target project"),
    kinds: list[MigrationKind] | None = typer.Option(
        None, "--kind", "-k", help="Migration kind to run; repeat for several"
    ),
    debug: bool = typer.Option(False, "--debug", help="Enable debug mode with verbose logging"),
):
    """Run the configured migration kinds from the source to the target snapshot."""
    try:
        config = load_config(config_path, source_project, target_project, source, target, debug)
    except (ValidationError, OSError, ValueError) as e:
        console.print(f"Error: invalid configuration: {escape(str(e))}", style="red")
        raise typer.Exit(code=1)

    config.configure_logging()

    if not config.source.snapshot or not config.target.snapshot:
        console.print("Error: both a source and a target snapshot are required", style="red")
        raise typer.Exit(code=1)

    try:
        source_collection = InMemoryCollection.load(config.source.snapshot)
        target_collection = InMemoryCollection.load(config.target.snapshot)
    except (OSError, ValueError) as e:
        console.print(f"Error: cannot load snapshot: {escape(str(e))}", style="red")
        raise typer.Exit(code=1)

    tracker = ErrorTracker()
    engine = MigrationEngine(
        ProjectEndpoint.from_collection(source_collection, config.source.project),
        ProjectEndpoint.from_collection(target_collection, config.target.project),
        config.migration,
        tracker,
    )

    console.print(
        f"Migrating [bold]{escape(config.source.project)}[/bold] "
        f"to [bold]{escape(config.target.project)}[/bold]"
    )
    try:
        results = engine.run(kinds or None)
    except WitsyncError as e:
        console.print(f"Error: {escape(str(e))}", style="red")
        raise typer.Exit(code=1)

    target_collection.dump(config.target.snapshot)
    if config.migration.update_source_reflected_id:
        source_collection.dump(config.source.snapshot)

    console.print(build_summary_table(results))
    summary = tracker.get_error_summary()
    if summary["total_errors"]:
        console.print(f"{summary['total_errors']} errors tracked", style="yellow")
        for error_type, count in summary["error_types"].items():
            console.print(f"  {error_type}: {count}")
    else:
        console.print("✅ Migration completed", style="green")


@app.command("version")
def version():
    """Show the application version."""
    console.print(f"witsync version: {__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
