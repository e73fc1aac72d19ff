"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of witsync, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Test suite for the hierarchy synchronizer and its node adapters.
"""

from datetime import datetime
from unittest.mock import MagicMock

import pytest

from tests.fixtures.factories import ClassificationTreeFactory, target_collection
from witsync.core.logging import ErrorTracker
from witsync.errors import AlreadyExistsError, NotFoundError, SaveError
from witsync.models import ClassificationNode, NodeStructure, QueryDefinition, QueryFolder
from witsync.run_state import RunState
from witsync.tree_sync import (
    ClassificationNodeAdapter,
    QueryItemAdapter,
    TreeSynchronizer,
)


def _tree() -> ClassificationNode:
    node = ClassificationTreeFactory.node
    return node("ProjectA", node("Team1", node("SubTeam")), node("Team2"))


@pytest.mark.unit
class TestClassificationSync:
    """Tests for mirroring area and iteration trees."""

    def _sync(self, collection, source: ClassificationNode, structure=NodeStructure.AREA):
        run_state = RunState(name="nodes")
        adapter = ClassificationNodeAdapter(collection, "ProjectB", structure)
        synchronizer = TreeSynchronizer(adapter, run_state, ErrorTracker())
        root = collection.get_root("ProjectB", structure)
        for child in source.children:
            synchronizer.sync(child, root)
        return run_state

    def test_creates_missing_nodes(self):
        collection = target_collection()

        run_state = self._sync(collection, _tree())

        assert run_state.migrated == 3
        assert run_state.attempted == 3
        assert collection.lookup("ProjectB", NodeStructure.AREA, "\\ProjectB\\Team1\\SubTeam")
        assert collection.lookup("ProjectB", NodeStructure.AREA, "\\ProjectB\\Team2")

    def test_second_pass_creates_nothing(self):
        """Each node is matched by name under its parent, so re-running adds no duplicates."""
        collection = target_collection()
        self._sync(collection, _tree())

        run_state = self._sync(collection, _tree())

        root = collection.get_root("ProjectB", NodeStructure.AREA)
        assert [child.name for child in root.children] == ["Team1", "Team2"]
        assert len(root.children[0].children) == 1
        assert run_state.migrated == 0
        assert run_state.skipped == 3

    def test_partial_date_range_is_dropped(self):
        collection = target_collection()
        node = ClassificationTreeFactory.node
        source = node(
            "ProjectA",
            node("Sprint 1", start_date=datetime(2024, 1, 1), finish_date=datetime(2024, 1, 14)),
            node("Sprint 2", start_date=datetime(2024, 1, 15)),
        )

        self._sync(collection, source, NodeStructure.ITERATION)

        sprint1 = collection.lookup("ProjectB", NodeStructure.ITERATION, "\\ProjectB\\Sprint 1")
        sprint2 = collection.lookup("ProjectB", NodeStructure.ITERATION, "\\ProjectB\\Sprint 2")
        assert sprint1.start_date == datetime(2024, 1, 1)
        assert sprint1.finish_date == datetime(2024, 1, 14)
        assert sprint2.start_date is None
        assert sprint2.finish_date is None

    def test_already_exists_is_refetched(self):
        """A node created concurrently is reused and its children still synchronized."""
        existing = ClassificationNode(id=9, name="Team1", path="\\ProjectB\\Team1")
        store = MagicMock()
        store.lookup.side_effect = [None, existing, None, existing.model_copy()]
        store.create.side_effect = [AlreadyExistsError("exists"), MagicMock()]
        adapter = ClassificationNodeAdapter(store, "ProjectB", NodeStructure.AREA)
        run_state = RunState(name="nodes")
        root = ClassificationNode(name="ProjectB", path="\\ProjectB")
        source = ClassificationTreeFactory.node("Team1", ClassificationTreeFactory.node("SubTeam"))

        result = TreeSynchronizer(adapter, run_state, ErrorTracker()).sync(source, root)

        assert result is existing
        assert run_state.skipped == 1
        assert run_state.migrated == 1
        assert store.create.call_args_list[1].args[2] == "\\ProjectB\\Team1"

    def test_failure_abandons_branch(self):
        store = MagicMock()
        store.lookup.return_value = None
        store.create.side_effect = SaveError("rejected")
        tracker = ErrorTracker()
        run_state = RunState(name="nodes")
        adapter = ClassificationNodeAdapter(store, "ProjectB", NodeStructure.AREA)
        root = ClassificationNode(name="ProjectB", path="\\ProjectB")

        result = TreeSynchronizer(adapter, run_state, tracker).sync(_tree().children[0], root)

        assert result is None
        assert store.create.call_count == 1
        assert run_state.failed == 1
        assert run_state.attempted == 1
        assert tracker.get_error_summary()["error_types"] == {"SaveError": 1}

    def test_missing_after_creation_counts_failed(self):
        store = MagicMock()
        store.lookup.return_value = None
        run_state = RunState(name="nodes")
        tracker = ErrorTracker()
        adapter = ClassificationNodeAdapter(store, "ProjectB", NodeStructure.AREA)
        root = ClassificationNode(name="ProjectB", path="\\ProjectB")

        assert TreeSynchronizer(adapter, run_state, tracker).sync(_tree().children[1], root) is None
        assert run_state.failed == 1
        assert tracker.has_errors()

    def test_skip_errors_count_skipped(self):
        store = MagicMock()
        store.lookup.return_value = None
        store.create.side_effect = NotFoundError("parent gone")
        run_state = RunState(name="nodes")
        adapter = ClassificationNodeAdapter(store, "ProjectB", NodeStructure.AREA)
        root = ClassificationNode(name="ProjectB", path="\\ProjectB")

        TreeSynchronizer(adapter, run_state, ErrorTracker()).sync(_tree().children[0], root)

        assert run_state.skipped == 1
        assert run_state.failed == 0

    def test_lookup_failure_leaves_siblings_running(self):
        """A node whose lookup raises fails alone; its siblings are still created."""
        collection = target_collection()
        real_lookup = collection.lookup

        def lookup(project, structure, path):
            if path.endswith("\\Team1"):
                raise ConnectionError("service unavailable")
            return real_lookup(project, structure, path)

        store = MagicMock(wraps=collection)
        store.lookup.side_effect = lookup
        run_state = RunState(name="nodes")
        tracker = ErrorTracker()
        adapter = ClassificationNodeAdapter(store, "ProjectB", NodeStructure.AREA)
        synchronizer = TreeSynchronizer(adapter, run_state, tracker)
        root = collection.get_root("ProjectB", NodeStructure.AREA)

        for child in _tree().children:
            synchronizer.sync(child, root)

        assert collection.lookup("ProjectB", NodeStructure.AREA, "\\ProjectB\\Team2")
        assert run_state.failed == 1
        assert run_state.migrated == 1
        assert run_state.attempted == run_state.migrated + run_state.skipped + run_state.failed
        assert tracker.get_error_summary()["error_types"] == {"ConnectionError": 1}

    def test_failed_completion_step_is_counted(self):
        collection = target_collection()
        adapter = ClassificationNodeAdapter(collection, "ProjectB", NodeStructure.AREA)
        adapter.after_children = MagicMock(side_effect=[SaveError("batch rejected"), None])
        run_state = RunState(name="nodes")
        tracker = ErrorTracker()
        root = collection.get_root("ProjectB", NodeStructure.AREA)

        TreeSynchronizer(adapter, run_state, tracker).sync(_tree().children[0], root)

        assert run_state.migrated == 2
        assert run_state.failed == 1
        assert run_state.attempted == run_state.migrated + run_state.skipped + run_state.failed
        assert tracker.errors[0]["context"]["step"] == "complete"

    def test_counters_add_up(self):
        collection = target_collection()
        self._sync(collection, _tree())

        run_state = self._sync(collection, _tree())

        assert run_state.attempted == run_state.migrated + run_state.skipped + run_state.failed


@pytest.mark.unit
class TestQueryItemAdapter:
    """Tests for the shared query adapter."""

    def test_personal_folders_are_skipped(self):
        adapter = QueryItemAdapter(MagicMock(), "ProjectA", "ProjectB")

        assert adapter.should_skip(QueryFolder(name="My Queries", is_personal=True))
        assert not adapter.should_skip(QueryFolder(name="Shared Queries"))
        assert not adapter.should_skip(QueryDefinition(name="Bugs"))

    def test_rewrite_query_text(self):
        adapter = QueryItemAdapter(MagicMock(), "ProjectA", "ProjectB")

        text = "SELECT [System.Id] FROM WorkItems WHERE [System.AreaPath] UNDER 'ProjectA\\Team1'"

        assert adapter.rewrite_query_text(text).endswith("UNDER 'ProjectB\\Team1'")

    def test_rewrite_leaves_unquoted_names(self):
        adapter = QueryItemAdapter(MagicMock(), "ProjectA", "ProjectB")

        assert adapter.rewrite_query_text("[Custom.ProjectA] = 1") == "[Custom.ProjectA] = 1"

    def test_query_does_not_match_folder(self):
        """A query with a folder's name is not reused as that folder."""
        store = MagicMock()
        store.find_item.return_value = QueryDefinition(name="Team", path="ProjectB/Shared Queries/Team")
        adapter = QueryItemAdapter(store, "ProjectA", "ProjectB")
        parent = QueryFolder(name="Shared Queries", path="ProjectB/Shared Queries")

        assert adapter.find_child(parent, QueryFolder(name="Team")) is None
        store.find_item.assert_called_with("ProjectB", "ProjectB/Shared Queries/Team")

    def test_creates_query_with_rewritten_text(self):
        collection = target_collection()
        adapter = QueryItemAdapter(collection, "ProjectA", "ProjectB")
        shared = collection.find_item("ProjectB", "ProjectB/Shared Queries")
        source = QueryDefinition(
            name="Active", query_text="SELECT [System.Id] FROM WorkItems WHERE [A] = 'ProjectA'"
        )

        adapter.create_child(shared, source)

        created = collection.find_item("ProjectB", "ProjectB/Shared Queries/Active")
        assert created.query_text.endswith("= 'ProjectB'")
