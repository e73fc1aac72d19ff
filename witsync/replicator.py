"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of witsync, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Work item replication.

This module builds the target copy of a source work item and saves it:
1. a new item of the mapped target type is drafted
2. fields are copied under their FieldPolicy
3. area and iteration paths are rewritten for the target project
4. a non-numeric backlog priority is reset
5. the source revision history becomes the first revision's comment
6. the reflected identity and the configured field maps are applied
7. the item is validated (advisory only) and saved

A failed save is logged with a dump of every field and reported through the
ReplicationResult; nothing is rolled back or retried.
"""

from dataclasses import dataclass, field

from witsync.core.config import MigrationConfig
from witsync.core.logging import ErrorTracker, get_logger
from witsync.field_policy import (
    BACKLOG_PRIORITY_FIELD,
    FieldMapping,
    FieldPolicyResolver,
    PathRewriter,
    sanitize_numeric,
)
from witsync.history import build_history
from witsync.identity import compute_identity
from witsync.models import (
    AREA_PATH_FIELD,
    CREATED_BY_FIELD,
    CREATED_DATE_FIELD,
    HISTORY_FIELD,
    ITERATION_PATH_FIELD,
    WorkItem,
    WorkItemTypeDefinition,
)
from witsync.store import WorkItemStore

logger = get_logger("witsync.replicator")


@dataclass
class ReplicationResult:
    """
    Outcome of replicating one work item.

    Attributes:
        source: The source work item
        target: The target work item, saved when ``success`` is True
        success: Whether the target item was saved
        errors: Errors that prevented the save
        warnings: Validation failures and other non-blocking problems
        source_marked: Whether the source item was updated with the target identity

    """

    source: WorkItem
    target: WorkItem | None = None
    success: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    source_marked: bool = False

    def add_error(self, error: str) -> None:
        self.errors.append(error)
        self.success = False

    def add_warning(self, warning: str) -> None:
        self.warnings.append(warning)


class WorkItemReplicator:
    """Creates target copies of source work items."""

    def __init__(
        self,
        target_store: WorkItemStore,
        target_project: str,
        config: MigrationConfig,
        path_rewriter: PathRewriter,
        source_store: WorkItemStore | None = None,
        policy_resolver: FieldPolicyResolver | None = None,
        error_tracker: ErrorTracker | None = None,
    ):
        self.target_store = target_store
        self.target_project = target_project
        self.config = config
        self.path_rewriter = path_rewriter
        self.source_store = source_store
        self.policy_resolver = policy_resolver or FieldPolicyResolver()
        self.field_mappings = [FieldMapping(m) for m in config.field_maps]
        self.error_tracker = error_tracker or ErrorTracker(logger=logger)

    def _target_type(self, type_name: str) -> WorkItemTypeDefinition:
        definition = self.target_store.get_type(self.target_project, type_name)
        if definition is None:
            return WorkItemTypeDefinition(name=type_name)
        return definition

    def replicate(self, source: WorkItem, target_type: str) -> WorkItem:
        """
        Draft the target copy of ``source`` without saving it.

        Raises:
            UnsupportedTypeError: If the target project lacks ``target_type``

        """
        draft = self.target_store.new_work_item(self.target_project, target_type)
        definition = self._target_type(target_type)

        for reference_name, value in source.field_values.items():
            if self.policy_resolver.policy_for(reference_name, definition).copies:
                draft.set(reference_name, value)

        for reference_name, path in (
            (AREA_PATH_FIELD, source.area_path),
            (ITERATION_PATH_FIELD, source.iteration_path),
        ):
            # Left to the target default when undefined or empty.
            if path and definition.has_field(reference_name):
                draft.set(reference_name, self.path_rewriter.rewrite(path))

        if definition.has_field(BACKLOG_PRIORITY_FIELD):
            draft.set(BACKLOG_PRIORITY_FIELD, sanitize_numeric(draft.get(BACKLOG_PRIORITY_FIELD)))

        draft.set(HISTORY_FIELD, build_history(source))
        return draft

    def finalize(self, source: WorkItem, draft: WorkItem) -> ReplicationResult:
        """Stamp identity and field maps on ``draft``, validate it and save it."""
        result = ReplicationResult(source=source, target=draft)
        definition = self._target_type(draft.type_name)
        identity_field = self.config.reflected_id_field

        if definition.has_field(identity_field):
            draft.set(identity_field, compute_identity(source))
        else:
            result.add_warning(f"Target type '{draft.type_name}' has no field '{identity_field}'")
            logger.warning(
                f"Work item {source.id} will not be linked: '{draft.type_name}' lacks "
                f"'{identity_field}'"
            )

        for mapping in self.field_mappings:
            mapping.apply(source, draft, definition)

        for reference_name in self.target_store.validate(draft):
            logger.warning(f"Invalid: {source.id}-{source.type_name}-{reference_name}")
            result.add_warning(f"Invalid field {reference_name}")

        if self.config.update_created_date:
            draft.set(CREATED_DATE_FIELD, source.get(CREATED_DATE_FIELD))
        if self.config.update_created_by:
            draft.set(CREATED_BY_FIELD, source.get(CREATED_BY_FIELD))

        try:
            self.target_store.save(draft)
        except Exception as e:
            logger.error(f"...FAILED to save work item {source.id}: {e}")
            for reference_name, value in draft.field_values.items():
                logger.error(f"{reference_name} | {value}")
            self.error_tracker.add_error(
                e, context={"source_id": source.id, "type": draft.type_name}, log=False
            )
            result.add_error(str(e))
            return result

        logger.info(f"...Saved as {draft.id}")
        if self.config.update_source_reflected_id:
            self._mark_source(source, draft, result)
        return result

    def _mark_source(self, source: WorkItem, target: WorkItem, result: ReplicationResult) -> None:
        identity_field = self.config.reflected_id_field
        if self.source_store is None:
            return
        source_type = self.source_store.get_type(source.project, source.type_name)
        if not (source.has(identity_field) or (source_type and source_type.has_field(identity_field))):
            return
        source.set(identity_field, compute_identity(target))
        try:
            self.source_store.save(source)
        except Exception as e:
            logger.error(f"Failed to mark source work item {source.id}: {e}")
            self.error_tracker.add_error(e, context={"source_id": source.id}, log=False)
            result.add_warning(f"Source not marked: {e}")
            return
        result.source_marked = True
        logger.info(f"...and source updated {source.id}")

    def migrate(self, source: WorkItem, target_type: str) -> ReplicationResult:
        return self.finalize(source, self.replicate(source, target_type))
