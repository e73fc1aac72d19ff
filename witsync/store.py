"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of witsync, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Contracts of the stores a migration reads from and writes to.

The migration contexts only talk to these protocols; witsync.memory_store
provides the JSON snapshot backed implementation.
"""

from enum import Enum
from typing import Any, Protocol

from pydantic import BaseModel, Field

from witsync.models import (
    ClassificationNode,
    NodeStructure,
    ProjectInfo,
    QueryDefinition,
    QueryFolder,
    TestCaseEntry,
    TestConfiguration,
    TestPlan,
    TestSuite,
    ConfigurationRef,
    WorkItem,
    WorkItemTypeDefinition,
)


class Operator(str, Enum):
    """Operators supported in work item query conditions."""

    EQ = "="
    NE = "<>"
    IS_EMPTY = "is_empty"
    NOT_EMPTY = "not_empty"
    IN = "in"


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


class FieldCondition(BaseModel):
    """A single ``[field] <operator> value`` condition."""

    field: str
    operator: Operator = Operator.EQ
    value: Any = None

    def matches(self, item: WorkItem) -> bool:
        actual = item.get(self.field)
        match self.operator:
            case Operator.EQ:
                return actual == self.value
            case Operator.NE:
                return actual != self.value
            case Operator.IS_EMPTY:
                return _is_empty(actual)
            case Operator.NOT_EMPTY:
                return not _is_empty(actual)
            case Operator.IN:
                return actual in (self.value or [])
        raise ValueError(f"Unsupported operator: {self.operator}")


class WorkItemQuery(BaseModel):
    """A work item query restricted to one project."""

    project: str
    conditions: list[FieldCondition] = Field(default_factory=list)
    order_by: str | None = None
    descending: bool = False

    def matches(self, item: WorkItem) -> bool:
        return item.project == self.project and all(c.matches(item) for c in self.conditions)

    def to_wiql(self) -> tuple[str, dict[str, Any]]:
        """
        Render the query as WIQL text and its bound parameters.

        Returns:
            A tuple of the WIQL text and a parameter dictionary keyed by
            parameter name without the leading ``@``

        """
        parameters: dict[str, Any] = {"project": self.project}
        clauses = ["[System.TeamProject] = @project"]
        for position, condition in enumerate(self.conditions):
            name = f"p{position}"
            match condition.operator:
                case Operator.IS_EMPTY:
                    clauses.append(f"[{condition.field}] = ''")
                case Operator.NOT_EMPTY:
                    clauses.append(f"[{condition.field}] <> ''")
                case Operator.IN:
                    names = []
                    for index, value in enumerate(condition.value or []):
                        parameters[f"{name}_{index}"] = value
                        names.append(f"@{name}_{index}")
                    clauses.append(f"[{condition.field}] IN ({', '.join(names)})")
                case _:
                    parameters[name] = condition.value
                    clauses.append(f"[{condition.field}] {condition.operator.value} @{name}")

        wiql = f"SELECT [System.Id] FROM WorkItems WHERE {' AND '.join(clauses)}"
        if self.order_by:
            wiql += f" ORDER BY [{self.order_by}]{' DESC' if self.descending else ''}"
        return wiql, parameters


class WorkItemStore(Protocol):
    """Query, factory, field and save capabilities for work items."""

    @property
    def collection_url(self) -> str: ...

    def get_project(self, name: str) -> ProjectInfo | None: ...

    def query(self, query: WorkItemQuery) -> list[WorkItem]: ...

    def get_work_item(self, work_item_id: int) -> WorkItem | None: ...

    def get_type(self, project: str, type_name: str) -> WorkItemTypeDefinition | None: ...

    def new_work_item(self, project: str, type_name: str) -> WorkItem: ...

    def validate(self, item: WorkItem) -> list[str]: ...

    def save(self, item: WorkItem) -> None: ...


class ClassificationStore(Protocol):
    """Lookup and creation of area and iteration nodes."""

    def get_root(self, project: str, structure: NodeStructure) -> ClassificationNode: ...

    def get_tree(self, project: str, structure: NodeStructure) -> ClassificationNode: ...

    def lookup(
        self, project: str, structure: NodeStructure, path: str
    ) -> ClassificationNode | None: ...

    def create(
        self,
        project: str,
        structure: NodeStructure,
        parent_path: str,
        name: str,
        start_date=None,
        finish_date=None,
    ) -> ClassificationNode: ...


class TestManagementStore(Protocol):
    """Test configurations, plans, suites and suite entries."""

    def query_configurations(self, project: str) -> list[TestConfiguration]: ...

    def create_configuration(
        self, project: str, configuration: TestConfiguration
    ) -> TestConfiguration: ...

    def query_plans(self, project: str) -> list[TestPlan]: ...

    def create_plan(self, project: str, plan: TestPlan) -> TestPlan: ...

    def save_plan(self, project: str, plan: TestPlan) -> None: ...

    def find_suite(
        self, project: str, plan_id: int, parent_suite_id: int, title: str
    ) -> TestSuite | None: ...

    def add_suite(
        self, project: str, plan_id: int, parent_suite_id: int, suite: TestSuite
    ) -> TestSuite: ...

    def create_requirement_suite(
        self, project: str, requirement: WorkItem, title: str
    ) -> TestSuite: ...

    def find_test_case(self, project: str, work_item_id: int) -> TestCaseEntry | None: ...

    def add_test_cases(
        self, project: str, plan_id: int, suite_id: int, entries: list[TestCaseEntry]
    ) -> None: ...

    def clear_default_configurations(self, suite: TestSuite) -> None: ...

    def set_default_configurations(
        self, suite: TestSuite, configurations: list[ConfigurationRef]
    ) -> None: ...

    def clear_entry_configurations(self, entry: TestCaseEntry) -> None: ...

    def set_entry_configurations(
        self, entry: TestCaseEntry, configurations: list[ConfigurationRef]
    ) -> None: ...


class QueryStore(Protocol):
    """The shared query hierarchy of a project."""

    def get_hierarchy(self, project: str) -> QueryFolder: ...

    def find_item(self, project: str, path: str) -> QueryFolder | QueryDefinition | None: ...

    def create_folder(self, project: str, parent_path: str, name: str) -> QueryFolder: ...

    def create_query(
        self, project: str, parent_path: str, definition: QueryDefinition
    ) -> QueryDefinition: ...
