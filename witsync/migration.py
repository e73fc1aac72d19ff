"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of witsync, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Migration run coordination.

One MigrationContext per migration kind makes a single, restart-safe pass
over the source project: entities already present on the target are skipped,
everything else is created. Entity failures are logged, tracked and counted;
only setup failures such as a missing project end the pass early.
"""

import time
from dataclasses import dataclass
from typing import Any

from witsync.configuration import ConfigurationCatalog, ConfigurationReconciler
from witsync.core.config import MigrationConfig, MigrationKind
from witsync.core.logging import ErrorTracker, correlation_id, get_logger, log_operation
from witsync.errors import AlreadyExistsError, ProjectNotFoundError, UnsupportedTypeError
from witsync.field_policy import PathRewriter
from witsync.identity import IdentityResolver
from witsync.models import (
    CHANGED_DATE_FIELD,
    ClassificationNode,
    NodeStructure,
    TestConfiguration,
    TestPlan,
    TestSuite,
    WorkItem,
)
from witsync.replicator import WorkItemReplicator
from witsync.run_state import RunState, format_duration
from witsync.store import (
    ClassificationStore,
    QueryStore,
    TestManagementStore,
    WorkItemQuery,
    WorkItemStore,
)
from witsync.suites import TestSuiteAdapter
from witsync.tree_sync import ClassificationNodeAdapter, QueryItemAdapter, TreeSynchronizer

logger = get_logger("witsync.migration")


@dataclass
class ProjectEndpoint:
    """A team project and the stores that serve it."""

    project: str
    work_items: WorkItemStore
    nodes: ClassificationStore
    tests: TestManagementStore
    queries: QueryStore

    @classmethod
    def from_collection(cls, collection: Any, project: str) -> "ProjectEndpoint":
        """Serve every concern from one collection object, such as an InMemoryCollection."""
        return cls(
            project=project,
            work_items=collection,
            nodes=collection,
            tests=collection,
            queries=collection,
        )


class MigrationContext:
    """Base class of the per-kind migration passes."""

    name = "MigrationContext"
    kind: MigrationKind

    def __init__(self, engine: "MigrationEngine"):
        self.engine = engine
        self.source = engine.source
        self.target = engine.target
        self.config = engine.config
        self.error_tracker = engine.error_tracker

    def check_projects(self) -> None:
        """
        Fail fast when either project is missing.

        Raises:
            ProjectNotFoundError: If the source or target project does not exist

        """
        for endpoint in (self.source, self.target):
            if endpoint.work_items.get_project(endpoint.project) is None:
                raise ProjectNotFoundError(endpoint.project)

    def execute(self) -> RunState:
        """Run one full pass and return its counters."""
        run_state = RunState(name=self.name)
        context = {"source": self.source.project, "target": self.target.project}
        with log_operation(logger, self.name, context=context):
            self.check_projects()
            self._execute(run_state)
        logger.info(
            f"{self.name}: attempted {run_state.attempted}, migrated {run_state.migrated}, "
            f"skipped {run_state.skipped}, failed {run_state.failed} "
            f"in {format_duration(run_state.elapsed)}",
            extra={"context_data": run_state.summary()},
        )
        return run_state

    def _execute(self, run_state: RunState) -> None:
        raise NotImplementedError

    def _contain(self, run_state: RunState, error: Exception, **context) -> None:
        logger.error(f"{self.name} failed on {context}: {error!s}")
        self.error_tracker.add_error(error, context={"context": self.name, **context}, log=False)
        run_state.failed += 1

    @property
    def path_rewriter(self) -> PathRewriter:
        return PathRewriter.for_run(
            self.source.project, self.target.project, self.config.prefix_project_to_nodes
        )


class NodeStructuresMigration(MigrationContext):
    """
    Mirrors the area and iteration trees.

    With ``prefix_project_to_nodes`` the source tree hangs below a node named
    after the source project; otherwise the source root's children go straight
    under the target root.
    """

    name = "NodeStructuresMigration"
    kind = MigrationKind.NODES

    def _execute(self, run_state: RunState) -> None:
        structures = (NodeStructure.AREA, NodeStructure.ITERATION)
        run_state.total = len(structures)
        for structure in structures:
            started = time.perf_counter()
            self.sync_structure(structure, run_state)
            run_state.record(time.perf_counter() - started)

    def sync_structure(self, structure: NodeStructure, run_state: RunState) -> None:
        source_root = self.source.nodes.get_tree(self.source.project, structure)
        target_root = self.target.nodes.get_root(self.target.project, structure)
        adapter = ClassificationNodeAdapter(self.target.nodes, self.target.project, structure)
        synchronizer = TreeSynchronizer(adapter, run_state, self.error_tracker)

        if self.config.prefix_project_to_nodes:
            dated = structure is NodeStructure.ITERATION
            project_root = ClassificationNode(
                name=self.source.project,
                structure=structure,
                start_date=source_root.start_date if dated else None,
                finish_date=source_root.finish_date if dated else None,
                children=source_root.children,
            )
            synchronizer.sync(project_root, target_root)
            return

        for child in source_root.children:
            synchronizer.sync(child, target_root)


class TestConfigurationsMigration(MigrationContext):
    """Copies test configurations missing by name on the target."""

    __test__ = False

    name = "TestConfigurationsMigration"
    kind = MigrationKind.TEST_CONFIGURATIONS

    def _execute(self, run_state: RunState) -> None:
        configurations = self.source.tests.query_configurations(self.source.project)
        existing = {c.name for c in self.target.tests.query_configurations(self.target.project)}
        run_state.total = len(configurations)
        logger.info(f"Plan to copy {len(configurations)} configurations")

        for configuration in configurations:
            started = time.perf_counter()
            run_state.attempted += 1
            if configuration.name in existing:
                logger.info(f"{configuration.name} - Already exists in target")
                run_state.skipped += 1
            else:
                self.copy_configuration(configuration, existing, run_state)
            run_state.record(time.perf_counter() - started)

    def copy_configuration(
        self, configuration: TestConfiguration, existing: set[str], run_state: RunState
    ) -> None:
        copy = TestConfiguration(
            name=configuration.name,
            description=configuration.description,
            area_path=configuration.area_path.replace(
                self.source.project, self.target.project, 1
            ),
            is_default=configuration.is_default,
            state=configuration.state,
            values=dict(configuration.values),
        )
        try:
            self.target.tests.create_configuration(self.target.project, copy)
        except AlreadyExistsError:
            logger.info(f"{configuration.name} - Created concurrently in target")
            run_state.skipped += 1
        except Exception as e:
            self._contain(run_state, e, configuration=configuration.name)
        else:
            logger.info(f"{configuration.name} - Created in target")
            run_state.migrated += 1
        existing.add(configuration.name)


class TestPlansAndSuitesMigration(MigrationContext):
    """
    Copies test plans, their suite trees and suite test cases.

    Target plans are named ``<source project>-<source plan>``. Configuration
    references are translated through a catalog of the target configurations
    loaded once at the start of the pass.
    """

    __test__ = False

    name = "TestPlansAndSuitesMigration"
    kind = MigrationKind.TEST_PLANS

    def _execute(self, run_state: RunState) -> None:
        catalog = ConfigurationCatalog.load(self.target.tests, self.target.project)
        self.reconciler = ConfigurationReconciler(catalog, self.target.tests, self.error_tracker)
        self.resolver = IdentityResolver(
            self.target.work_items, self.target.project, self.config.reflected_id_field
        )

        plans = self.source.tests.query_plans(self.source.project)
        run_state.total = len(plans)
        logger.info(f"Plan to copy {len(plans)} plans")

        for source_plan in plans:
            started = time.perf_counter()
            try:
                self.migrate_plan(source_plan, run_state)
            except Exception as e:
                self._contain(run_state, e, plan=source_plan.name)
            run_state.record(time.perf_counter() - started)

    def plan_name(self, source_plan: TestPlan) -> str:
        return f"{self.source.project}-{source_plan.name}"

    def find_plan(self, name: str) -> TestPlan | None:
        plans = self.target.tests.query_plans(self.target.project)
        return next((plan for plan in plans if plan.name == name), None)

    def create_plan(self, source_plan: TestPlan, name: str) -> TestPlan:
        rewriter = self.path_rewriter
        plan = TestPlan(
            name=name,
            description=source_plan.description,
            owner=source_plan.owner,
            state=source_plan.state,
            area_path=rewriter.rewrite(source_plan.area_path),
            iteration=rewriter.rewrite(source_plan.iteration),
            start_date=source_plan.start_date,
            end_date=source_plan.end_date,
            manual_test_settings_id=0,
            root_suite=TestSuite(title=name, is_root=True),
        )
        return self.target.tests.create_plan(self.target.project, plan)

    def migrate_plan(self, source_plan: TestPlan, run_state: RunState) -> None:
        name = self.plan_name(source_plan)
        logger.info(f"Process plan {name}")
        run_state.attempted += 1

        target_plan = self.find_plan(name)
        if target_plan is None:
            logger.info("Plan missing...creating")
            target_plan = self.create_plan(source_plan, name)
            self.reconciler.apply_default_configurations(
                source_plan.root_suite, target_plan.root_suite
            )
            self.target.tests.save_plan(self.target.project, target_plan)
            run_state.migrated += 1
        else:
            logger.info("Plan found")
            run_state.skipped += 1

        adapter = TestSuiteAdapter(
            source_items=self.source.work_items,
            target_tests=self.target.tests,
            target_project=self.target.project,
            plan=target_plan,
            resolver=self.resolver,
            reconciler=self.reconciler,
        )
        synchronizer = TreeSynchronizer(adapter, run_state, self.error_tracker)
        for suite in source_plan.root_suite.children:
            synchronizer.sync(suite, target_plan.root_suite)
        adapter.process_test_cases(source_plan.root_suite, target_plan.root_suite)


class WorkItemQueryMigration(MigrationContext):
    """Mirrors the shared query folders and the queries in them."""

    name = "WorkItemQueryMigration"
    kind = MigrationKind.QUERIES

    def _execute(self, run_state: RunState) -> None:
        source_root = self.source.queries.get_hierarchy(self.source.project)
        target_root = self.target.queries.get_hierarchy(self.target.project)
        adapter = QueryItemAdapter(self.target.queries, self.source.project, self.target.project)
        synchronizer = TreeSynchronizer(adapter, run_state, self.error_tracker)

        run_state.total = len(source_root.children)
        logger.info(f"Found {len(source_root.children)} root query folders")
        for folder in source_root.children:
            started = time.perf_counter()
            synchronizer.sync(folder, target_root)
            run_state.record(time.perf_counter() - started)


class WorkItemMigration(MigrationContext):
    """
    Copies work items that have no reflected copy on the target yet.

    Source items are read newest change first. Items whose type has no target
    mapping are skipped as unsupported.
    """

    name = "WorkItemMigration"
    kind = MigrationKind.WORK_ITEMS

    def _execute(self, run_state: RunState) -> None:
        query = WorkItemQuery(
            project=self.source.project,
            conditions=list(self.config.query_conditions),
            order_by=CHANGED_DATE_FIELD,
            descending=True,
        )
        wiql, parameters = query.to_wiql()
        logger.debug(f"Source query: {wiql}", extra={"context_data": parameters})
        items = self.source.work_items.query(query)
        run_state.total = run_state.scanned = len(items)
        logger.info(f"Found {len(items)} work items to migrate")

        resolver = IdentityResolver(
            self.target.work_items, self.target.project, self.config.reflected_id_field
        )
        replicator = WorkItemReplicator(
            target_store=self.target.work_items,
            target_project=self.target.project,
            config=self.config,
            path_rewriter=self.path_rewriter,
            source_store=self.source.work_items,
            error_tracker=self.error_tracker,
        )

        for position, item in enumerate(items):
            started = time.perf_counter()
            run_state.attempted += 1
            logger.info(f"{len(items) - position} - Migrating: {item.id}-{item.type_name}")
            try:
                self.migrate_item(item, resolver, replicator, run_state)
            except Exception as e:
                self._contain(run_state, e, work_item=item.id)
            run_state.record(time.perf_counter() - started)
            logger.info(run_state.progress_line())

    def migrate_item(
        self,
        item: WorkItem,
        resolver: IdentityResolver,
        replicator: WorkItemReplicator,
        run_state: RunState,
    ) -> None:
        if resolver.find_migrated(item) is not None:
            logger.info("...Exists")
            run_state.skipped += 1
            return

        target_type = self.config.work_item_types.get(item.type_name)
        try:
            if target_type is None:
                raise UnsupportedTypeError(item.type_name)
            result = replicator.migrate(item, target_type)
        except UnsupportedTypeError as e:
            logger.info(f"...not supported: {e!s}")
            self.error_tracker.add_error(e, context={"work_item": item.id}, log=False)
            run_state.skipped += 1
            return

        if result.success:
            run_state.migrated += 1
        else:
            run_state.failed += 1


class MigrationEngine:
    """Runs the configured migration kinds, in order, between two project endpoints."""

    CONTEXTS: dict[MigrationKind, type[MigrationContext]] = {
        MigrationKind.NODES: NodeStructuresMigration,
        MigrationKind.WORK_ITEMS: WorkItemMigration,
        MigrationKind.TEST_CONFIGURATIONS: TestConfigurationsMigration,
        MigrationKind.TEST_PLANS: TestPlansAndSuitesMigration,
        MigrationKind.QUERIES: WorkItemQueryMigration,
    }

    def __init__(
        self,
        source: ProjectEndpoint,
        target: ProjectEndpoint,
        config: MigrationConfig | None = None,
        error_tracker: ErrorTracker | None = None,
    ):
        self.source = source
        self.target = target
        self.config = config or MigrationConfig()
        self.error_tracker = error_tracker or ErrorTracker()

    def context_for(self, kind: MigrationKind) -> MigrationContext:
        return self.CONTEXTS[MigrationKind(kind)](self)

    def run(self, kinds: list[MigrationKind] | None = None) -> dict[MigrationKind, RunState]:
        """
        Execute each migration kind once.

        Args:
            kinds: Kinds to run, defaulting to the configured ones

        Returns:
            The RunState of every kind, keyed by kind

        Raises:
            ProjectNotFoundError: If the source or target project does not exist

        """
        kinds = [MigrationKind(kind) for kind in (kinds or self.config.kinds)]
        results: dict[MigrationKind, RunState] = {}
        with correlation_id() as run_id:
            logger.info(
                f"Migrating '{self.source.project}' to '{self.target.project}'",
                extra={"context_data": {"run": run_id, "kinds": [k.value for k in kinds]}},
            )
            for kind in kinds:
                with self.error_tracker.track_errors(context={"kind": kind.value}, log=False):
                    results[kind] = self.context_for(kind).execute()
        if self.error_tracker.has_errors():
            summary = self.error_tracker.get_error_summary()
            logger.warning(
                f"{summary['total_errors']} errors tracked during the run",
                extra={"context_data": summary["error_types"]},
            )
        return results
