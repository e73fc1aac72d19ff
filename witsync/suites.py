"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of witsync, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Test suite trees of a test plan.

TestSuiteAdapter lets a TreeSynchronizer mirror static, dynamic and
requirement suites under a target plan, and adds the test case entries of
static suites once their sub-suites are done.
"""

from typing import assert_never

from witsync.configuration import ConfigurationReconciler
from witsync.core.logging import get_logger
from witsync.errors import NotFoundError, SuiteCreationError, TestValidationError
from witsync.identity import IdentityResolver, compute_identity
from witsync.models import SuiteKind, TestCaseEntry, TestPlan, TestSuite
from witsync.store import TestManagementStore, WorkItemStore
from witsync.tree_sync import BaseNodeAdapter

logger = get_logger("witsync.suites")


class TestSuiteAdapter(BaseNodeAdapter[TestSuite, TestSuite]):
    """
    Suites matched by title under their target parent.

    A requirement suite whose requirement was never migrated, or that the
    target refuses to create, is skipped. When attaching a new suite fails, a
    static placeholder titled ``BROKEN: <title> | <error>`` takes its place and
    the branch is abandoned.
    """

    __test__ = False

    kind = "test suite"
    skip_errors = (NotFoundError, TestValidationError)

    def __init__(
        self,
        source_items: WorkItemStore,
        target_tests: TestManagementStore,
        target_project: str,
        plan: TestPlan,
        resolver: IdentityResolver,
        reconciler: ConfigurationReconciler,
    ):
        self.source_items = source_items
        self.target_tests = target_tests
        self.target_project = target_project
        self.plan = plan
        self.resolver = resolver
        self.reconciler = reconciler

    def natural_key(self, source: TestSuite) -> str:
        return source.title

    def find_child(self, parent: TestSuite, source: TestSuite) -> TestSuite | None:
        return self.target_tests.find_suite(self.target_project, self.plan.id, parent.id, source.title)

    def _requirement_suite(self, source: TestSuite) -> TestSuite:
        requirement = None
        if source.requirement_id is not None:
            requirement = self.source_items.get_work_item(source.requirement_id)
        if requirement is None:
            raise NotFoundError(f"Source requirement {source.requirement_id} does not exist")
        target_requirement = self.resolver.find_by_exact_identity(compute_identity(requirement))
        if target_requirement is None:
            raise NotFoundError(f"Requirement {requirement.id} has not been migrated")
        return self.target_tests.create_requirement_suite(
            self.target_project, target_requirement, source.title
        )

    def build_suite(self, source: TestSuite) -> TestSuite:
        match source.kind:
            case SuiteKind.STATIC:
                suite = TestSuite(title=source.title)
            case SuiteKind.DYNAMIC:
                suite = TestSuite(
                    title=source.title, kind=SuiteKind.DYNAMIC, query_text=source.query_text
                )
            case SuiteKind.REQUIREMENT:
                suite = self._requirement_suite(source)
            case _:
                assert_never(source.kind)
        self.reconciler.apply_default_configurations(source, suite)
        return suite

    def create_child(self, parent: TestSuite, source: TestSuite) -> TestSuite:
        suite = self.build_suite(source)
        try:
            created = self.target_tests.add_suite(
                self.target_project, self.plan.id, parent.id, suite
            )
        except SuiteCreationError as e:
            logger.error(f"FAILED {source.kind.value} suite '{source.title}' | {e}")
            placeholder = TestSuite(title=f"BROKEN: {source.title} | {e}")
            existing = self.target_tests.find_suite(
                self.target_project, self.plan.id, parent.id, placeholder.title
            )
            if existing is None:
                self.target_tests.add_suite(
                    self.target_project, self.plan.id, parent.id, placeholder
                )
                self.target_tests.save_plan(self.target_project, self.plan)
            raise
        self.target_tests.save_plan(self.target_project, self.plan)
        return created

    def on_resolved(self, source: TestSuite, target: TestSuite, created: bool) -> None:
        if created:
            return
        if self.reconciler.apply_default_configurations(source, target):
            self.target_tests.save_plan(self.target_project, self.plan)

    def children(self, source: TestSuite) -> list[TestSuite]:
        if source.kind is SuiteKind.STATIC:
            return source.children
        return []

    def after_children(self, source: TestSuite, target: TestSuite) -> None:
        self.process_test_cases(source, target)

    def process_test_cases(self, source: TestSuite, target: TestSuite) -> None:
        """
        Add the test cases of a static source suite to its target suite.

        Test cases are looked up through the identity index. The first one
        that cannot be found ends the walk; entries collected until then are
        still added.
        """
        if source.kind is not SuiteKind.STATIC or not source.test_cases:
            return
        logger.info(f"Suite '{source.title}' has {len(source.test_cases)} test cases")

        additions: list[TestCaseEntry] = []
        for entry in source.test_cases:
            source_item = self.source_items.get_work_item(entry.test_case_id)
            target_item = self.resolver.find_migrated(source_item) if source_item else None
            if target_item is None:
                logger.error(f"ERROR NOT FOUND test case {entry.test_case_id} - {entry.title}")
                break

            existing = next(
                (e for e in target.test_cases if e.test_case_id == target_item.id), None
            )
            if existing is not None:
                logger.debug(f"EXISTS test case {entry.test_case_id} as {target_item.id}")
                self.reconciler.apply_to_entry(entry, existing)
                continue

            target_entry = self.target_tests.find_test_case(self.target_project, target_item.id)
            if target_entry is None:
                logger.error(f"ERROR NOT FOUND test case {target_item.id} on the target")
                break
            self.reconciler.apply_to_entry(entry, target_entry)
            additions.append(target_entry)
            logger.debug(f"ADDING test case {entry.test_case_id} as {target_item.id}")

        self.target_tests.add_test_cases(self.target_project, self.plan.id, target.id, additions)
        self.target_tests.save_plan(self.target_project, self.plan)
        logger.info(f"SAVED suite '{target.title}'")
