"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of witsync, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Recursive mirroring of a source hierarchy onto a target parent.

TreeSynchronizer holds the create-or-reuse algorithm; a node adapter tells it
how one kind of hierarchy (classification nodes, query folders, test suites)
is looked up, created and walked.
"""

from collections.abc import Iterable
from typing import Generic, TypeVar, assert_never

from witsync.core.logging import ErrorTracker, get_logger
from witsync.errors import AlreadyExistsError, NotFoundError
from witsync.models import (
    PATH_SEPARATOR,
    ClassificationNode,
    NodeStructure,
    QueryDefinition,
    QueryFolder,
)
from witsync.run_state import RunState
from witsync.store import ClassificationStore, QueryStore

logger = get_logger("witsync.tree_sync")

S = TypeVar("S")
T = TypeVar("T")


class BaseNodeAdapter(Generic[S, T]):
    """
    How a TreeSynchronizer handles one kind of hierarchy.

    ``S`` is the source node type and ``T`` the target node type. Errors listed
    in ``skip_errors`` mark a node as skipped instead of failed; either way its
    branch is abandoned.
    """

    kind = "node"
    skip_errors: tuple[type[Exception], ...] = (NotFoundError,)

    def natural_key(self, source: S) -> str:
        raise NotImplementedError

    def find_child(self, parent: T, source: S) -> T | None:
        raise NotImplementedError

    def create_child(self, parent: T, source: S) -> T | None:
        raise NotImplementedError

    def children(self, source: S) -> Iterable[S]:
        return []

    def should_skip(self, source: S) -> bool:
        return False

    def on_resolved(self, source: S, target: T, created: bool) -> None:
        pass

    def after_children(self, source: S, target: T) -> None:
        pass


class TreeSynchronizer(Generic[S, T]):
    """Mirror source subtrees under target parents without duplicating nodes."""

    def __init__(
        self,
        adapter: BaseNodeAdapter[S, T],
        run_state: RunState,
        error_tracker: ErrorTracker | None = None,
    ):
        self.adapter = adapter
        self.run_state = run_state
        self.error_tracker = error_tracker or ErrorTracker(logger=logger)

    def sync(self, source: S, parent: T) -> T | None:
        """
        Resolve ``source`` under ``parent``, then its children under the result.

        A failure is contained at the node it happened on: siblings and, once
        the node itself is resolved, its children are still synchronized.

        Args:
            source: The source node
            parent: The target node to mirror it under

        Returns:
            The target node, or None when the branch was skipped or abandoned

        """
        adapter = self.adapter
        key = adapter.natural_key(source)
        self.run_state.attempted += 1

        if adapter.should_skip(source):
            logger.info(f"Skipping {adapter.kind} '{key}'")
            self.run_state.skipped += 1
            return None

        target, created = self._resolve(source, parent, key)
        if target is None:
            return None

        self._run_step("update", key, adapter.on_resolved, source, target, created)
        for child in adapter.children(source):
            self.sync(child, target)
        self._run_step("complete", key, adapter.after_children, source, target)
        return target

    def _run_step(self, action: str, key: str, hook, *args) -> None:
        # A failed step counts as one more attempted and failed operation.
        try:
            hook(*args)
        except Exception as e:
            logger.error(f"Failed to {action} {self.adapter.kind} '{key}': {e}")
            self.error_tracker.add_error(
                e, context={"kind": self.adapter.kind, "key": key, "step": action}, log=False
            )
            self.run_state.attempted += 1
            self.run_state.failed += 1

    def _fail(self, message: str, error: Exception, key: str) -> tuple[None, bool]:
        logger.error(f"{message}: {error}")
        self.error_tracker.add_error(
            error, context={"kind": self.adapter.kind, "key": key}, log=False
        )
        self.run_state.failed += 1
        return None, False

    def _resolve(self, source: S, parent: T, key: str) -> tuple[T | None, bool]:
        adapter = self.adapter
        try:
            target = adapter.find_child(parent, source)
        except Exception as e:
            return self._fail(f"Failed to look up {adapter.kind} '{key}'", e, key)
        if target is not None:
            logger.debug(f"{adapter.kind} '{key}' found")
            self.run_state.skipped += 1
            return target, False

        created = True
        try:
            adapter.create_child(parent, source)
            logger.info(f"{adapter.kind} '{key}' created")
        except AlreadyExistsError:
            logger.debug(f"{adapter.kind} '{key}' created concurrently, re-fetching")
            created = False
        except adapter.skip_errors as e:
            logger.warning(f"Skipping {adapter.kind} '{key}': {e}")
            self.run_state.skipped += 1
            return None, False
        except Exception as e:
            return self._fail(f"Failed to create {adapter.kind} '{key}'", e, key)

        try:
            target = adapter.find_child(parent, source)
        except Exception as e:
            return self._fail(f"Failed to re-fetch {adapter.kind} '{key}'", e, key)
        if target is None:
            return self._fail(
                f"{adapter.kind} '{key}' cannot be found after creation",
                NotFoundError(f"{adapter.kind} '{key}' missing after creation"),
                key,
            )

        if created:
            self.run_state.migrated += 1
        else:
            self.run_state.skipped += 1
        return target, created


class ClassificationNodeAdapter(BaseNodeAdapter[ClassificationNode, ClassificationNode]):
    """Area and iteration nodes, matched by name under the target parent."""

    def __init__(self, store: ClassificationStore, project: str, structure: NodeStructure):
        self.store = store
        self.project = project
        self.structure = structure
        self.kind = structure.value

    def natural_key(self, source: ClassificationNode) -> str:
        return source.name

    def find_child(
        self, parent: ClassificationNode, source: ClassificationNode
    ) -> ClassificationNode | None:
        path = f"{parent.path}{PATH_SEPARATOR}{source.name}"
        return self.store.lookup(self.project, self.structure, path)

    def create_child(
        self, parent: ClassificationNode, source: ClassificationNode
    ) -> ClassificationNode:
        # A range with one bound missing is dropped entirely.
        if source.has_date_range():
            return self.store.create(
                self.project,
                self.structure,
                parent.path,
                source.name,
                start_date=source.start_date,
                finish_date=source.finish_date,
            )
        return self.store.create(self.project, self.structure, parent.path, source.name)

    def children(self, source: ClassificationNode) -> list[ClassificationNode]:
        return source.children


class QueryItemAdapter(BaseNodeAdapter[QueryFolder | QueryDefinition, QueryFolder]):
    """
    Shared query folders and query definitions.

    Personal folders are skipped. Project references at the start of quoted
    values in the query text, such as area paths, are moved to the target
    project.
    """

    kind = "query item"

    def __init__(self, store: QueryStore, source_project: str, target_project: str):
        self.store = store
        self.source_project = source_project
        self.target_project = target_project

    def natural_key(self, source: QueryFolder | QueryDefinition) -> str:
        return source.name

    def should_skip(self, source: QueryFolder | QueryDefinition) -> bool:
        return isinstance(source, QueryFolder) and source.is_personal

    def find_child(
        self, parent: QueryFolder, source: QueryFolder | QueryDefinition
    ) -> QueryFolder | QueryDefinition | None:
        found = self.store.find_item(self.target_project, f"{parent.path}/{source.name}")
        if isinstance(source, QueryFolder) and not isinstance(found, QueryFolder):
            return None
        return found

    def rewrite_query_text(self, text: str) -> str:
        return text.replace(f"'{self.source_project}", f"'{self.target_project}")

    def create_child(
        self, parent: QueryFolder, source: QueryFolder | QueryDefinition
    ) -> QueryFolder | QueryDefinition:
        match source:
            case QueryFolder():
                return self.store.create_folder(self.target_project, parent.path, source.name)
            case QueryDefinition():
                definition = QueryDefinition(
                    name=source.name, query_text=self.rewrite_query_text(source.query_text)
                )
                return self.store.create_query(self.target_project, parent.path, definition)
            case _:
                assert_never(source)

    def children(self, source: QueryFolder | QueryDefinition) -> list:
        if isinstance(source, QueryFolder):
            return source.children
        return []
