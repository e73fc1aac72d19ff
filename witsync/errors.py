"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of witsync, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Exceptions raised by the stores and the migration contexts.

Everything except setup failures is contained at the entity or sub-tree
level by the migration contexts; see witsync.migration.
"""

from dataclasses import dataclass


class WitsyncError(Exception):
    """Base class for all witsync errors."""


class UnsupportedTypeError(WitsyncError):
    """Raised when no target type is mapped for a source work item type."""

    def __init__(self, type_name: str):
        super().__init__(f"No target work item type mapped for '{type_name}'")
        self.type_name = type_name


class NotFoundError(WitsyncError):
    """Raised when an entity or a related entity cannot be found."""


class ProjectNotFoundError(NotFoundError):
    """Raised when a team project does not exist in a collection. Always fatal."""

    def __init__(self, project: str):
        super().__init__(f"Project '{project}' not found")
        self.project = project


class AlreadyExistsError(WitsyncError):
    """Raised by a store when a node with the same natural key already exists."""


class SaveError(WitsyncError):
    """Raised by a store when committing an entity fails."""


class SuiteCreationError(WitsyncError):
    """Raised when a new suite cannot be attached to its parent suite."""


class TestValidationError(WitsyncError):
    """Raised when the target rejects a suite during server-side validation."""

    __test__ = False


class RemoteReconciliationError(WitsyncError):
    """Raised when the target rejects a configuration-set update."""


@dataclass(frozen=True)
class ParseError:
    """Returned, never raised, when a reflected identity cannot be parsed."""

    value: str
    reason: str
