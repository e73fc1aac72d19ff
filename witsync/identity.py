"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of witsync, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Reflected identities and the resolver that finds already-migrated items.

A reflected identity is the locator ``{collection_url}/{project}/{id}`` of a
source work item, written into a designated field of its target copy. The
format is kept for compatibility with data migrated by earlier runs.
"""

import re

from witsync.core.logging import get_logger
from witsync.errors import ParseError
from witsync.models import WorkItem
from witsync.store import FieldCondition, Operator, WorkItemQuery, WorkItemStore

logger = get_logger("witsync.identity")

IDENTITY_PATTERN = re.compile(
    r"^(?:[A-Za-z][A-Za-z0-9+.-]*://)?"
    r"(?:[\w-]+\.)*[\w-]+(?::\d+)?"
    r"(?:/[^/]+)*"
    r"/(?P<id>\d+)$"
)


def format_identity(collection_url: str, project: str, work_item_id: int) -> str:
    return f"{collection_url.rstrip('/')}/{project}/{work_item_id}"


def compute_identity(item: WorkItem) -> str:
    """
    Compute the reflected identity of a work item.

    Args:
        item: A saved work item

    Returns:
        The identity string; the same item always yields the same string

    Raises:
        ValueError: If the item has not been saved yet

    """
    if item.id is None:
        raise ValueError("Cannot compute the identity of an unsaved work item")
    return format_identity(item.collection_url, item.project, item.id)


def parse_identity(value: str | None) -> int | ParseError:
    """
    Extract the work item id from a reflected identity.

    A value that does not match the locator grammar yields a ParseError, which
    callers treat as "no linked item".
    """
    if not value:
        return ParseError(value="" if value is None else value, reason="empty identity")
    match = IDENTITY_PATTERN.match(value.strip())
    if match is None:
        return ParseError(value=value, reason="not a locator ending in a numeric id")
    return int(match.group("id"))


class IdentityResolver:
    """
    Answers whether a source work item already exists on the target.

    The first lookup runs one query for every item of the project whose
    identity field is set, and indexes the results by identity. The index is
    only rebuilt by reset(), so items created after it was built are found
    through find_by_exact_identity() alone.
    """

    def __init__(self, store: WorkItemStore, project: str, identity_field: str):
        self.store = store
        self.project = project
        self.identity_field = identity_field
        self._index: dict[str, WorkItem] | None = None

    def reset(self) -> None:
        self._index = None

    @property
    def indexed(self) -> bool:
        return self._index is not None

    def _build_index(self) -> dict[str, WorkItem]:
        query = WorkItemQuery(
            project=self.project,
            conditions=[FieldCondition(field=self.identity_field, operator=Operator.NOT_EMPTY)],
        )
        index: dict[str, WorkItem] = {}
        for item in self.store.query(query):
            identity = str(item.get(self.identity_field))
            if self.linked_source_id(item) is None:
                logger.debug(f"Work item {item.id} carries an unparsable identity '{identity}'")
            index.setdefault(identity, item)
        logger.info(f"Indexed {len(index)} migrated work items in '{self.project}'")
        return index

    def find_existing(self, identity: str) -> WorkItem | None:
        if self._index is None:
            self._index = self._build_index()
        return self._index.get(identity)

    def find_migrated(self, source_item: WorkItem) -> WorkItem | None:
        return self.find_existing(compute_identity(source_item))

    def find_by_exact_identity(self, identity: str) -> WorkItem | None:
        """Run a targeted equality query for one identity, bypassing the index."""
        query = WorkItemQuery(
            project=self.project,
            conditions=[FieldCondition(field=self.identity_field, value=identity)],
        )
        found = self.store.query(query)
        return found[0] if found else None

    def linked_source_id(self, target_item: WorkItem) -> int | None:
        """Return the source id recorded on a target item, if it can be parsed."""
        parsed = parse_identity(target_item.get(self.identity_field))
        if isinstance(parsed, ParseError):
            return None
        return parsed
