# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Auto-migration driver.

One pass, usually run when the engine starts:

    lock -> for every deployed key with registered migrations
         -> running instances whose tag has an outgoing migration
         -> MigrationChainExecutor.run() per instance

A failing instance does not stop the pass. Failures are collected and
raised together as ``MigrationPassError`` once the pass has committed.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..config import MigrationConfig
from ..events import Event, EventType
from ..exceptions import MigrationError, MigrationPassError
from ..interfaces import acquire_exclusive_lock
from ..versioning.models import Definition, RunningInstance
from ..versioning.tags import tags_equal
from .chain import MigrationChainExecutor
from .registry import MigrationDescriptor, MigrationRegistry

logger = logging.getLogger("tagmigrate.migration.driver")


@dataclass
class MigrationPassResult:
    """Outcome of one auto-migration pass."""

    applied: Dict[str, int] = field(default_factory=dict)
    failures: List[MigrationError] = field(default_factory=list)
    keys: List[str] = field(default_factory=list)
    skipped_keys: List[str] = field(default_factory=list)
    locked: bool = False

    @property
    def total_hops(self) -> int:
        return sum(self.applied.values())

    @property
    def migrated_instances(self) -> List[str]:
        return [instance_id for instance_id, hops in self.applied.items() if hops > 0]

    def to_dict(self) -> Dict[str, object]:
        return {
            "applied": dict(self.applied),
            "failures": [failure.to_dict() for failure in self.failures],
            "keys": list(self.keys),
            "skipped_keys": list(self.skipped_keys),
            "locked": self.locked,
        }


class AutoMigrationDriver:
    """
    Migrates running instances of every deployed key in one locked pass.

    Usage:
        driver = AutoMigrationDriver(registry)
        result = driver.run_once(engine)
    """

    def __init__(self, registry: MigrationRegistry, config: Optional[MigrationConfig] = None):
        self.registry = registry
        self.config = config or MigrationConfig()

    def run_once(self, engine) -> MigrationPassResult:
        """
        Run one auto-migration pass.

        Args:
            engine: Engine handle with a ``store``

        Returns:
            MigrationPassResult with hop counts per migrated instance

        Raises:
            LockUnavailable: If the exclusive lock is required but held elsewhere
            MigrationPassError: If any instance failed; the rest of the pass
                is committed
        """
        store = engine.store
        executor = MigrationChainExecutor(engine)
        result = MigrationPassResult()

        with store.transaction():
            if self.config.use_lock:
                result.locked = acquire_exclusive_lock(store, "Auto-migration")

            for key in store.list_deployed_keys():
                result.keys.append(key)
                self._migrate_key(engine, key, executor, result)

        logger.info(
            f"Auto-migration pass done: {len(result.migrated_instances)} instance(s) migrated, "
            f"{len(result.failures)} failed"
        )
        if result.failures:
            raise MigrationPassError(result.failures, result)
        return result

    def _migrate_key(
        self,
        engine,
        key: str,
        executor: MigrationChainExecutor,
        result: MigrationPassResult,
    ) -> None:
        migrations = self.registry.migrations_for(key)
        if not migrations:
            result.skipped_keys.append(key)
            return

        instances = self.find_migrating_instances(engine.store, key, migrations)
        logger.info(f"For {key} migrating {len(instances)} processes")

        events = getattr(engine, "events", None)
        for instance in instances:
            try:
                result.applied[instance.id] = executor.run(instance, migrations)
            except MigrationError as e:
                logger.error(f"Migration of instance {instance.id} failed: {e}")
                result.failures.append(e)
                if events is not None:
                    events.emit(Event(EventType.MIGRATION_FAILED, e.to_dict()))

    @staticmethod
    def find_migrating_instances(
        store, key: str, migrations: List[MigrationDescriptor]
    ) -> List[RunningInstance]:
        """Running instances of the key whose current tag has a migration."""
        definitions: Dict[str, Optional[Definition]] = {}
        migrating = []
        for instance in store.list_instances_by_definition_key(key):
            if instance.definition_id not in definitions:
                definitions[instance.definition_id] = store.get_definition(
                    instance.definition_id
                )
            definition = definitions[instance.definition_id]
            if definition is None:
                continue
            if any(tags_equal(m.source, definition.version_tag) for m in migrations):
                migrating.append(instance)
        return migrating
