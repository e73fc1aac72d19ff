"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of witsync, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Name-based translation of test configuration references.

Source and target number their test configurations independently, so a
reference is carried over by name through a catalog of the target's
configurations loaded once per run.
"""

from collections.abc import Iterable

from witsync.core.logging import ErrorTracker, get_logger
from witsync.errors import RemoteReconciliationError
from witsync.models import ConfigurationRef, TestCaseEntry, TestConfiguration, TestSuite
from witsync.store import TestManagementStore

logger = get_logger("witsync.configuration")


class ConfigurationCatalog:
    """A snapshot of the target's test configurations keyed by name."""

    def __init__(self, configurations: Iterable[TestConfiguration] = ()):
        self._by_name: dict[str, TestConfiguration] = {}
        for configuration in configurations:
            self._by_name.setdefault(configuration.name, configuration)

    @classmethod
    def load(cls, store: TestManagementStore, project: str) -> "ConfigurationCatalog":
        catalog = cls(store.query_configurations(project))
        logger.debug(f"Loaded {len(catalog)} test configurations from '{project}'")
        return catalog

    def __len__(self) -> int:
        return len(self._by_name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def names(self) -> set[str]:
        return set(self._by_name)

    def resolve(self, name: str) -> ConfigurationRef | None:
        configuration = self._by_name.get(name)
        if configuration is None or configuration.id is None:
            return None
        return ConfigurationRef(id=configuration.id, name=configuration.name)


def counts_differ(
    source: list[ConfigurationRef] | None, target: list[ConfigurationRef] | None
) -> bool:
    """Only a source that lists configurations, in a different number, needs work."""
    return source is not None and len(source) != len(target or [])


class ConfigurationReconciler:
    """
    Applies translated configuration sets to target suites and suite entries.

    The target sometimes rejects a configuration update for no apparent
    reason. Such rejections are recorded and left as they are; whatever the
    target committed before rejecting stays in place.
    """

    def __init__(
        self,
        catalog: ConfigurationCatalog,
        store: TestManagementStore,
        error_tracker: ErrorTracker | None = None,
    ):
        self.catalog = catalog
        self.store = store
        self.error_tracker = error_tracker or ErrorTracker(logger=logger)

    def reconcile(self, names: Iterable[str]) -> list[ConfigurationRef]:
        """
        Translate source configuration names into target references.

        Names without an identically named target configuration are dropped.
        """
        resolved: list[ConfigurationRef] = []
        seen: set[str] = set()
        for name in names:
            if name in seen:
                continue
            seen.add(name)
            reference = self.catalog.resolve(name)
            if reference is None:
                logger.debug(f"Test configuration '{name}' does not exist on the target")
                continue
            resolved.append(reference)
        return resolved

    def apply_to_entry(self, source: TestCaseEntry, target: TestCaseEntry) -> bool:
        """Returns whether an update was attempted."""
        if not counts_differ(source.configurations, target.configurations):
            return False
        logger.info(f"Configuration mismatch on test case {target.test_case_id}, fixing")
        references = self.reconcile(c.name for c in source.configurations)
        try:
            self.store.clear_entry_configurations(target)
            self.store.set_entry_configurations(target, references)
        except RemoteReconciliationError as e:
            self._record(e, test_case_id=target.test_case_id)
        return True

    def apply_default_configurations(self, source: TestSuite, target: TestSuite) -> bool:
        """
        Carry a suite's default configurations onto its target counterpart.

        A root suite is never cleared before its configurations are set.
        """
        if not counts_differ(source.default_configurations, target.default_configurations):
            return False
        logger.info(f"Default configuration mismatch on suite '{target.title}', fixing")
        references = self.reconcile(c.name for c in source.default_configurations)
        try:
            if not target.is_root:
                self.store.clear_default_configurations(target)
            self.store.set_default_configurations(target, references)
        except RemoteReconciliationError as e:
            self._record(e, suite=target.title)
        return True

    def _record(self, error: RemoteReconciliationError, **context) -> None:
        logger.warning(f"Target rejected the configuration update: {error}")
        self.error_tracker.add_error(error, context=context, log=False)
