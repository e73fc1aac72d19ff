"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of witsync, licensed under the MIT License.
See LICENSE file for details.
"""

"""
In-memory collection backed by a JSON snapshot.

InMemoryCollection implements every store contract from witsync.store over a
CollectionSnapshot, so a migration can run between two snapshot files and be
inspected afterwards.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from witsync.core.logging import get_logger
from witsync.errors import (
    AlreadyExistsError,
    NotFoundError,
    ProjectNotFoundError,
    SaveError,
    SuiteCreationError,
    TestValidationError,
    UnsupportedTypeError,
)
from witsync.models import (
    CHANGED_DATE_FIELD,
    CREATED_BY_FIELD,
    CREATED_DATE_FIELD,
    PATH_SEPARATOR,
    ClassificationNode,
    ConfigurationRef,
    NodeStructure,
    ProjectInfo,
    QueryDefinition,
    QueryFolder,
    SuiteKind,
    TestCaseEntry,
    TestConfiguration,
    TestPlan,
    TestSuite,
    WorkItem,
    WorkItemTypeDefinition,
)
from witsync.store import WorkItemQuery

logger = get_logger("witsync.memory_store")

QUERY_PATH_SEPARATOR = "/"
SHARED_QUERIES = "Shared Queries"
MY_QUERIES = "My Queries"
DEFAULT_USER = "witsync"


class ProjectSnapshot(BaseModel):
    """Everything held for one team project."""

    name: str
    id: str | None = None
    work_item_types: list[WorkItemTypeDefinition] = Field(default_factory=list)
    work_items: list[WorkItem] = Field(default_factory=list)
    areas: ClassificationNode | None = None
    iterations: ClassificationNode | None = None
    test_configurations: list[TestConfiguration] = Field(default_factory=list)
    test_plans: list[TestPlan] = Field(default_factory=list)
    queries: QueryFolder | None = None


class CollectionSnapshot(BaseModel):
    """A project collection: its URL, its projects and the next free id."""

    url: str = "https://localhost/DefaultCollection"
    projects: list[ProjectSnapshot] = Field(default_factory=list)
    next_id: int = 1


class InMemoryCollection:
    """
    Store over a CollectionSnapshot.

    Work items, classification nodes, test artifacts and queries share one id
    sequence, like they share one database on a real collection. Missing
    classification roots and query roots are created on first access.
    """

    def __init__(self, snapshot: CollectionSnapshot | None = None, url: str | None = None):
        self.snapshot = snapshot or CollectionSnapshot()
        if url:
            self.snapshot.url = url
        for project in self.snapshot.projects:
            self._ensure_roots(project)
            for item in project.work_items:
                item.project = project.name
                item.collection_url = self.collection_url

    @classmethod
    def load(cls, path: str | Path) -> "InMemoryCollection":
        """Load a collection from a JSON snapshot file."""
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        logger.debug(f"Loaded collection snapshot from {path}")
        return cls(CollectionSnapshot.model_validate(data))

    def dump(self, path: str | Path) -> None:
        """Write the collection back to a JSON snapshot file."""
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.snapshot.model_dump(mode="json"), f, indent=2)
        logger.debug(f"Wrote collection snapshot to {path}")

    @property
    def collection_url(self) -> str:
        return self.snapshot.url.rstrip("/")

    def _next_id(self) -> int:
        value = self.snapshot.next_id
        self.snapshot.next_id += 1
        return value

    def _ensure_roots(self, project: ProjectSnapshot) -> None:
        if project.areas is None:
            project.areas = ClassificationNode(
                id=self._next_id(),
                name=project.name,
                path=f"{PATH_SEPARATOR}{project.name}",
                structure=NodeStructure.AREA,
            )
        if project.iterations is None:
            project.iterations = ClassificationNode(
                id=self._next_id(),
                name=project.name,
                path=f"{PATH_SEPARATOR}{project.name}",
                structure=NodeStructure.ITERATION,
            )
        if project.queries is None:
            project.queries = QueryFolder(
                name=project.name,
                path=project.name,
                children=[
                    QueryFolder(
                        name=SHARED_QUERIES,
                        path=f"{project.name}{QUERY_PATH_SEPARATOR}{SHARED_QUERIES}",
                    ),
                    QueryFolder(
                        name=MY_QUERIES,
                        path=f"{project.name}{QUERY_PATH_SEPARATOR}{MY_QUERIES}",
                        is_personal=True,
                    ),
                ],
            )

    def add_project(
        self, name: str, work_item_types: list[WorkItemTypeDefinition] | None = None
    ) -> ProjectSnapshot:
        """Create an empty project with its classification and query roots."""
        if self._find_project(name) is not None:
            raise AlreadyExistsError(f"Project '{name}' already exists")
        project = ProjectSnapshot(name=name, work_item_types=work_item_types or [])
        self._ensure_roots(project)
        self.snapshot.projects.append(project)
        return project

    def _find_project(self, name: str) -> ProjectSnapshot | None:
        return next((p for p in self.snapshot.projects if p.name == name), None)

    def _project(self, name: str) -> ProjectSnapshot:
        project = self._find_project(name)
        if project is None:
            raise ProjectNotFoundError(name)
        return project

    # Work items

    def get_project(self, name: str) -> ProjectInfo | None:
        project = self._find_project(name)
        if project is None:
            return None
        return ProjectInfo(name=project.name, id=project.id)

    def query(self, query: WorkItemQuery) -> list[WorkItem]:
        project = self._project(query.project)
        items = [item for item in project.work_items if query.matches(item)]
        if query.order_by:
            items.sort(key=lambda item: str(item.get(query.order_by) or ""), reverse=query.descending)
        return items

    def get_work_item(self, work_item_id: int) -> WorkItem | None:
        for project in self.snapshot.projects:
            for item in project.work_items:
                if item.id == work_item_id:
                    return item
        return None

    def get_type(self, project: str, type_name: str) -> WorkItemTypeDefinition | None:
        return next((t for t in self._project(project).work_item_types if t.name == type_name), None)

    def new_work_item(self, project: str, type_name: str) -> WorkItem:
        definition = self.get_type(project, type_name)
        if definition is None:
            raise UnsupportedTypeError(type_name)
        item = WorkItem(
            type_name=type_name,
            project=project,
            collection_url=self.collection_url,
            field_values={"System.WorkItemType": type_name, "System.TeamProject": project},
        )
        for field in definition.fields:
            if field.default is not None:
                item.set(field.reference_name, field.default)
        return item

    def validate(self, item: WorkItem) -> list[str]:
        """Return the reference names of required fields left empty."""
        definition = self.get_type(item.project, item.type_name)
        if definition is None:
            return []
        return [
            field.reference_name
            for field in definition.fields
            if field.required and item.get(field.reference_name) in (None, "")
        ]

    def save(self, item: WorkItem) -> None:
        """
        Commit a work item.

        Raises:
            SaveError: If the project is unknown or a required field is empty

        """
        project = self._find_project(item.project)
        if project is None:
            raise SaveError(f"Project '{item.project}' not found")
        invalid = self.validate(item)
        if invalid:
            raise SaveError(f"Required fields are empty: {', '.join(invalid)}")

        now = datetime.now().isoformat()
        item.set(CHANGED_DATE_FIELD, now)
        item.set("System.Rev", int(item.get("System.Rev") or 0) + 1)
        if item.id is None:
            item.id = self._next_id()
            item.collection_url = self.collection_url
            item.set("System.Id", item.id)
            if not item.get(CREATED_DATE_FIELD):
                item.set(CREATED_DATE_FIELD, now)
            if not item.get(CREATED_BY_FIELD):
                item.set(CREATED_BY_FIELD, DEFAULT_USER)
            project.work_items.append(item)
            return

        for index, existing in enumerate(project.work_items):
            if existing.id == item.id:
                project.work_items[index] = item
                return
        project.work_items.append(item)

    # Classification nodes

    def _tree(self, project: str, structure: NodeStructure) -> ClassificationNode:
        snapshot = self._project(project)
        root = snapshot.areas if structure is NodeStructure.AREA else snapshot.iterations
        if root is None:
            self._ensure_roots(snapshot)
            root = snapshot.areas if structure is NodeStructure.AREA else snapshot.iterations
        return root

    def get_root(self, project: str, structure: NodeStructure) -> ClassificationNode:
        return self._tree(project, structure)

    def get_tree(self, project: str, structure: NodeStructure) -> ClassificationNode:
        return self._tree(project, structure)

    def lookup(
        self, project: str, structure: NodeStructure, path: str
    ) -> ClassificationNode | None:
        node = self._tree(project, structure)
        segments = [s for s in path.split(PATH_SEPARATOR) if s]
        if not segments or segments[0] != node.name:
            return None
        for name in segments[1:]:
            node = next((child for child in node.children if child.name == name), None)
            if node is None:
                return None
        return node

    def create(
        self,
        project: str,
        structure: NodeStructure,
        parent_path: str,
        name: str,
        start_date=None,
        finish_date=None,
    ) -> ClassificationNode:
        """
        Create a node under ``parent_path``.

        Raises:
            NotFoundError: If the parent path does not exist
            AlreadyExistsError: If the parent already has a child with this name

        """
        parent = self.lookup(project, structure, parent_path)
        if parent is None:
            raise NotFoundError(f"{structure.value} path '{parent_path}' not found")
        if any(child.name == name for child in parent.children):
            raise AlreadyExistsError(f"{structure.value} '{parent_path}{PATH_SEPARATOR}{name}' exists")
        node = ClassificationNode(
            id=self._next_id(),
            name=name,
            path=f"{parent.path}{PATH_SEPARATOR}{name}",
            structure=structure,
            start_date=start_date,
            finish_date=finish_date,
        )
        parent.children.append(node)
        return node

    # Test management

    def query_configurations(self, project: str) -> list[TestConfiguration]:
        return list(self._project(project).test_configurations)

    def create_configuration(
        self, project: str, configuration: TestConfiguration
    ) -> TestConfiguration:
        snapshot = self._project(project)
        if any(c.name == configuration.name for c in snapshot.test_configurations):
            raise AlreadyExistsError(f"Test configuration '{configuration.name}' exists")
        created = configuration.model_copy(update={"id": self._next_id()})
        snapshot.test_configurations.append(created)
        return created

    def query_plans(self, project: str) -> list[TestPlan]:
        return list(self._project(project).test_plans)

    def create_plan(self, project: str, plan: TestPlan) -> TestPlan:
        snapshot = self._project(project)
        plan.id = self._next_id()
        plan.root_suite.id = self._next_id()
        plan.root_suite.is_root = True
        if not plan.root_suite.title:
            plan.root_suite.title = plan.name
        snapshot.test_plans.append(plan)
        return plan

    def save_plan(self, project: str, plan: TestPlan) -> None:
        snapshot = self._project(project)
        for index, existing in enumerate(snapshot.test_plans):
            if existing.id == plan.id:
                snapshot.test_plans[index] = plan
                return
        raise SaveError(f"Test plan '{plan.name}' has not been created")

    def _plan(self, project: str, plan_id: int) -> TestPlan:
        plan = next((p for p in self._project(project).test_plans if p.id == plan_id), None)
        if plan is None:
            raise NotFoundError(f"Test plan {plan_id} not found")
        return plan

    def _suite(self, plan: TestPlan, suite_id: int) -> TestSuite | None:
        pending = [plan.root_suite]
        while pending:
            suite = pending.pop()
            if suite.id == suite_id:
                return suite
            pending.extend(suite.children)
        return None

    def find_suite(
        self, project: str, plan_id: int, parent_suite_id: int, title: str
    ) -> TestSuite | None:
        parent = self._suite(self._plan(project, plan_id), parent_suite_id)
        if parent is None:
            return None
        return next((child for child in parent.children if child.title == title), None)

    def add_suite(
        self, project: str, plan_id: int, parent_suite_id: int, suite: TestSuite
    ) -> TestSuite:
        parent = self._suite(self._plan(project, plan_id), parent_suite_id)
        if parent is None:
            raise SuiteCreationError(f"Parent suite {parent_suite_id} not found")
        if parent.kind is not SuiteKind.STATIC:
            raise SuiteCreationError(f"Suite '{parent.title}' cannot hold child suites")
        suite.id = self._next_id()
        parent.children.append(suite)
        return suite

    def create_requirement_suite(
        self, project: str, requirement: WorkItem, title: str
    ) -> TestSuite:
        if requirement.id is None or requirement.project != project:
            raise TestValidationError(
                f"Work item {requirement.id} cannot host a requirement suite in '{project}'"
            )
        return TestSuite(title=title, kind=SuiteKind.REQUIREMENT, requirement_id=requirement.id)

    def find_test_case(self, project: str, work_item_id: int) -> TestCaseEntry | None:
        item = next((i for i in self._project(project).work_items if i.id == work_item_id), None)
        if item is None:
            return None
        return TestCaseEntry(test_case_id=item.id, title=item.title)

    def add_test_cases(
        self, project: str, plan_id: int, suite_id: int, entries: list[TestCaseEntry]
    ) -> None:
        suite = self._suite(self._plan(project, plan_id), suite_id)
        if suite is None:
            raise NotFoundError(f"Test suite {suite_id} not found")
        present = {entry.test_case_id for entry in suite.test_cases}
        for entry in entries:
            if entry.test_case_id not in present:
                suite.test_cases.append(entry)
                present.add(entry.test_case_id)

    def clear_default_configurations(self, suite: TestSuite) -> None:
        suite.default_configurations = []

    def set_default_configurations(
        self, suite: TestSuite, configurations: list[ConfigurationRef]
    ) -> None:
        suite.default_configurations = list(configurations)

    def clear_entry_configurations(self, entry: TestCaseEntry) -> None:
        entry.configurations = []

    def set_entry_configurations(
        self, entry: TestCaseEntry, configurations: list[ConfigurationRef]
    ) -> None:
        entry.configurations = list(configurations)

    # Queries

    def get_hierarchy(self, project: str) -> QueryFolder:
        snapshot = self._project(project)
        if snapshot.queries is None:
            self._ensure_roots(snapshot)
        return snapshot.queries

    def find_item(self, project: str, path: str) -> QueryFolder | QueryDefinition | None:
        item: Any = self.get_hierarchy(project)
        segments = [s for s in path.split(QUERY_PATH_SEPARATOR) if s]
        if not segments or segments[0] != item.name:
            return None
        for name in segments[1:]:
            if not isinstance(item, QueryFolder):
                return None
            item = item.find(name)
            if item is None:
                return None
        return item

    def _folder(self, project: str, path: str) -> QueryFolder:
        folder = self.find_item(project, path)
        if not isinstance(folder, QueryFolder):
            raise NotFoundError(f"Query folder '{path}' not found")
        return folder

    def create_folder(self, project: str, parent_path: str, name: str) -> QueryFolder:
        parent = self._folder(project, parent_path)
        if parent.find(name) is not None:
            raise AlreadyExistsError(f"Query item '{parent_path}/{name}' exists")
        folder = QueryFolder(
            name=name,
            path=f"{parent.path}{QUERY_PATH_SEPARATOR}{name}",
            is_personal=parent.is_personal,
        )
        parent.children.append(folder)
        return folder

    def create_query(
        self, project: str, parent_path: str, definition: QueryDefinition
    ) -> QueryDefinition:
        """
        Add a query definition under a folder.

        Raises:
            AlreadyExistsError: If the folder already holds an item with this name
            SaveError: If the query text is not a WIQL select statement

        """
        parent = self._folder(project, parent_path)
        if parent.find(definition.name) is not None:
            raise AlreadyExistsError(f"Query item '{parent_path}/{definition.name}' exists")
        if not definition.query_text.strip().upper().startswith("SELECT"):
            raise SaveError(f"Query '{definition.name}' is not a valid WIQL statement")
        query = definition.model_copy(
            update={"path": f"{parent.path}{QUERY_PATH_SEPARATOR}{definition.name}"}
        )
        parent.children.append(query)
        return query
