"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of witsync, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Field policies for work item replication.

This module decides, per field reference name, how a source value reaches
the target item:
- fields on the ignore list, or missing or read-only on the target type, are skipped
- area and iteration paths are rewritten for the target project
- the backlog priority is reset when it is not a number
- everything else is copied verbatim

It also applies the run-wide field maps configured by the user.
"""

import math
from enum import Enum
from typing import Any

from witsync.core.config import FieldMapConfig
from witsync.core.logging import get_logger
from witsync.models import (
    AREA_PATH_FIELD,
    ITERATION_PATH_FIELD,
    PATH_SEPARATOR,
    WorkItem,
    WorkItemTypeDefinition,
)

logger = get_logger("witsync.field_policy")

# Server-computed or collection-specific fields that are never copied
IGNORED_FIELDS = frozenset(
    {
        "System.Rev",
        "System.AreaId",
        "System.IterationId",
        "System.Id",
        "System.RevisedDate",
        "System.AttachedFileCount",
        "System.TeamProject",
        "System.NodeName",
        "System.RelatedLinkCount",
        "System.WorkItemType",
        "Microsoft.VSTS.Common.ActivatedDate",
        "Microsoft.VSTS.Common.StateChangeDate",
        "System.ExternalLinkCount",
        "System.HyperLinkCount",
        "System.Watermark",
        "System.AuthorizedDate",
        "System.BoardColumn",
        "System.BoardColumnDone",
        "System.BoardLane",
    }
)

PATH_FIELDS = (AREA_PATH_FIELD, ITERATION_PATH_FIELD)

BACKLOG_PRIORITY_FIELD = "Microsoft.VSTS.Common.BacklogPriority"
DEFAULT_BACKLOG_PRIORITY = 10


class FieldPolicy(str, Enum):
    """What happens to one source field."""

    COPY = "copy"
    PATH_REWRITE = "path_rewrite"
    NUMERIC_SANITIZE = "numeric_sanitize"
    SKIP_IGNORED = "skip_ignored"
    SKIP_NOT_EDITABLE = "skip_not_editable"
    SKIP_UNDEFINED = "skip_undefined"

    @property
    def copies(self) -> bool:
        return self in (FieldPolicy.COPY, FieldPolicy.NUMERIC_SANITIZE)


class PathPolicy(str, Enum):
    """How area and iteration paths move to the target project."""

    PREFIX = "prefix"
    SUBSTITUTE = "substitute"


class PathRewriter:
    """
    Rewrites area and iteration paths.

    With PREFIX the target project name is put in front of the full source
    path; with SUBSTITUTE the first occurrence of the source project name is
    replaced by the target project name.
    """

    def __init__(self, source_project: str, target_project: str, policy: PathPolicy):
        self.source_project = source_project
        self.target_project = target_project
        self.policy = policy

    @classmethod
    def for_run(
        cls, source_project: str, target_project: str, prefix_project_to_nodes: bool
    ) -> "PathRewriter":
        policy = PathPolicy.PREFIX if prefix_project_to_nodes else PathPolicy.SUBSTITUTE
        return cls(source_project, target_project, policy)

    def rewrite(self, path: str | None) -> str:
        if not path:
            return ""
        match self.policy:
            case PathPolicy.PREFIX:
                return f"{self.target_project}{PATH_SEPARATOR}{path}"
            case PathPolicy.SUBSTITUTE:
                return path.replace(self.source_project, self.target_project, 1)
        raise ValueError(f"Unknown path policy: {self.policy}")


def is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return not math.isnan(value)
    try:
        number = float(str(value).strip().replace(",", ""))
    except ValueError:
        return False
    return not math.isnan(number)


def sanitize_numeric(value: Any, default: int = DEFAULT_BACKLOG_PRIORITY) -> Any:
    """Return ``value`` unchanged when it is absent or numeric, otherwise ``default``."""
    if value is None or is_numeric(value):
        return value
    return default


class FieldPolicyResolver:
    """Decides the FieldPolicy of a field for a given target type."""

    def __init__(self, ignored_fields: frozenset[str] = IGNORED_FIELDS):
        self.ignored_fields = ignored_fields

    def policy_for(self, reference_name: str, target_type: WorkItemTypeDefinition) -> FieldPolicy:
        if reference_name in self.ignored_fields:
            return FieldPolicy.SKIP_IGNORED
        if not target_type.has_field(reference_name):
            return FieldPolicy.SKIP_UNDEFINED
        if not target_type.is_editable(reference_name):
            return FieldPolicy.SKIP_NOT_EDITABLE
        if reference_name in PATH_FIELDS:
            return FieldPolicy.PATH_REWRITE
        if reference_name == BACKLOG_PRIORITY_FIELD:
            return FieldPolicy.NUMERIC_SANITIZE
        return FieldPolicy.COPY


class FieldMapping:
    """Applies one FieldMapConfig to a target work item."""

    def __init__(self, config: FieldMapConfig):
        self.config = config

    def map_value(self, value: Any) -> Any:
        value_map = self.config.value_map
        if value_map:
            key = "" if value is None else str(value)
            if key in value_map:
                return value_map[key]
            if self.config.default_value is not None:
                return self.config.default_value
            return value
        if value in (None, "") and self.config.default_value is not None:
            return self.config.default_value
        return value

    def apply(
        self, source: WorkItem, target: WorkItem, target_type: WorkItemTypeDefinition | None
    ) -> bool:
        """
        Set the mapped value on ``target``.

        Returns:
            True when the target field was written

        """
        if target_type is not None and not target_type.is_editable(self.config.target_field):
            logger.debug(
                f"Field map target '{self.config.target_field}' is not editable on "
                f"'{target_type.name}'"
            )
            return False
        if not source.has(self.config.source_field) and self.config.default_value is None:
            return False
        target.set(self.config.target_field, self.map_value(source.get(self.config.source_field)))
        return True
