"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of witsync, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Models for the entities handled by a migration.

This module provides Pydantic models for:
- work items, their type definitions, revisions and links
- classification nodes (area and iteration trees)
- test configurations, test plans, test suites and suite entries
- shared query folders and query definitions
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, ClassVar, Literal, Union

from pydantic import BaseModel, Field

AREA_PATH_FIELD = "System.AreaPath"
ITERATION_PATH_FIELD = "System.IterationPath"
TITLE_FIELD = "System.Title"
CHANGED_DATE_FIELD = "System.ChangedDate"
CREATED_DATE_FIELD = "System.CreatedDate"
CREATED_BY_FIELD = "System.CreatedBy"
HISTORY_FIELD = "System.History"
PATH_SEPARATOR = "\\"


class ProjectInfo(BaseModel):
    """A team project within a collection."""

    name: str
    id: str | None = None


class FieldDefinition(BaseModel):
    """A field as defined on a work item type."""

    reference_name: str
    name: str
    editable: bool = True
    required: bool = False
    default: Any = None


class WorkItemTypeDefinition(BaseModel):
    """A work item type and the fields it defines."""

    name: str
    fields: list[FieldDefinition] = Field(default_factory=list)

    def get_field(self, reference_name: str) -> FieldDefinition | None:
        return next((f for f in self.fields if f.reference_name == reference_name), None)

    def has_field(self, reference_name: str) -> bool:
        return self.get_field(reference_name) is not None

    def is_editable(self, reference_name: str) -> bool:
        definition = self.get_field(reference_name)
        return definition is not None and definition.editable


class LinkBaseType(str, Enum):
    """Base types of work item links."""

    EXTERNAL_LINK = "ExternalLink"
    HYPERLINK = "Hyperlink"
    RELATED_LINK = "RelatedLink"


class Link(BaseModel):
    """
    A link on a work item revision.

    ``target`` holds the linked artifact URI for external links, the location
    for hyperlinks, and the related work item id for related links.
    """

    base_type: LinkBaseType
    target: str = ""
    comment: str = ""


class RevisionField(BaseModel):
    """The value of one field in a revision, next to its value in the prior revision."""

    reference_name: str
    name: str
    value: Any = None
    original_value: Any = None

    @property
    def changed(self) -> bool:
        original = "" if self.original_value is None else str(self.original_value)
        value = "" if self.value is None else str(self.value)
        return original != value


class Revision(BaseModel):
    """A single revision from a work item's history."""

    index: int
    field_changes: list[RevisionField] = Field(default_factory=list)
    links: list[Link] = Field(default_factory=list)

    def get(self, reference_name: str, default: Any = None) -> Any:
        field = next((f for f in self.field_changes if f.reference_name == reference_name), None)
        return default if field is None else field.value


class WorkItem(BaseModel):
    """
    A work item.

    ``collection_url`` and ``project`` identify where the item is hosted; they
    are filled in by the store and feed the reflected identity.
    """

    id: int | None = None
    type_name: str
    project: str
    collection_url: str = ""
    field_values: dict[str, Any] = Field(default_factory=dict)
    revisions: list[Revision] = Field(default_factory=list)
    links: list[Link] = Field(default_factory=list)

    def get(self, reference_name: str, default: Any = None) -> Any:
        return self.field_values.get(reference_name, default)

    def set(self, reference_name: str, value: Any) -> None:
        self.field_values[reference_name] = value

    def has(self, reference_name: str) -> bool:
        return reference_name in self.field_values

    @property
    def title(self) -> str:
        return self.get(TITLE_FIELD, "") or ""

    @property
    def area_path(self) -> str:
        return self.get(AREA_PATH_FIELD, "") or ""

    @property
    def iteration_path(self) -> str:
        return self.get(ITERATION_PATH_FIELD, "") or ""


class NodeStructure(str, Enum):
    """The two classification trees of a project."""

    AREA = "Area"
    ITERATION = "Iteration"


class ClassificationNode(BaseModel):
    """A node of an area or iteration tree."""

    kind: Literal["classification"] = "classification"
    id: int | None = None
    name: str
    path: str = ""
    structure: NodeStructure = NodeStructure.AREA
    start_date: datetime | None = None
    finish_date: datetime | None = None
    children: list["ClassificationNode"] = Field(default_factory=list)

    def has_date_range(self) -> bool:
        """A date range is usable only when both bounds are present."""
        return self.start_date is not None and self.finish_date is not None


class ConfigurationRef(BaseModel):
    """A reference to a test configuration by target id and name."""

    id: int
    name: str


class TestConfiguration(BaseModel):
    """A named test configuration."""

    __test__: ClassVar[bool] = False

    id: int | None = None
    name: str
    description: str = ""
    area_path: str = ""
    is_default: bool = False
    state: str = "Active"
    values: dict[str, str] = Field(default_factory=dict)


class TestCaseEntry(BaseModel):
    """A test case entry of a static suite."""

    __test__: ClassVar[bool] = False

    test_case_id: int
    title: str = ""
    configurations: list[ConfigurationRef] | None = None


class SuiteKind(str, Enum):
    """Kinds of test suites."""

    STATIC = "static"
    DYNAMIC = "dynamic"
    REQUIREMENT = "requirement"


class TestSuite(BaseModel):
    """
    A test suite.

    Only static suites hold child suites and test case entries. Dynamic suites
    carry ``query_text``; requirement suites carry ``requirement_id``.
    """

    __test__: ClassVar[bool] = False

    id: int | None = None
    title: str
    kind: SuiteKind = SuiteKind.STATIC
    is_root: bool = False
    query_text: str | None = None
    requirement_id: int | None = None
    default_configurations: list[ConfigurationRef] | None = None
    children: list["TestSuite"] = Field(default_factory=list)
    test_cases: list[TestCaseEntry] = Field(default_factory=list)


class TestPlan(BaseModel):
    """A test plan and its root suite."""

    __test__: ClassVar[bool] = False

    id: int | None = None
    name: str
    description: str = ""
    owner: str = ""
    state: str = "Active"
    area_path: str = ""
    iteration: str = ""
    start_date: datetime | None = None
    end_date: datetime | None = None
    manual_test_settings_id: int = 0
    root_suite: TestSuite = Field(default_factory=lambda: TestSuite(title="", is_root=True))


class QueryDefinition(BaseModel):
    """A stored work item query."""

    kind: Literal["query"] = "query"
    name: str
    path: str = ""
    query_text: str = ""


class QueryFolder(BaseModel):
    """A folder of the query hierarchy."""

    kind: Literal["folder"] = "folder"
    name: str
    path: str = ""
    is_personal: bool = False
    children: list[Annotated[Union["QueryFolder", QueryDefinition], Field(discriminator="kind")]] = (
        Field(default_factory=list)
    )

    def find(self, name: str) -> Union["QueryFolder", QueryDefinition, None]:
        return next((child for child in self.children if child.name == name), None)


QueryItem = Annotated[Union[QueryFolder, QueryDefinition], Field(discriminator="kind")]

ClassificationNode.model_rebuild()
TestSuite.model_rebuild()
QueryFolder.model_rebuild()
