# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Migration chains for a single running instance.

Starting from the definition the instance is bound to, the executor keeps
applying the migration whose source tag is the current tag:

    1.0.0 --m1--> 1.1.0 --m2--> 2.0.0     (no migration from 2.0.0: stop)

Each hop targets the newest definition deployed for the target tag. Hops
run in their own savepoint: a failing hop is undone, earlier hops stay.
"""

import logging
from typing import List, Optional, Sequence

from ..events import Event, EventType
from ..exceptions import (
    MigrationActionFailure,
    MigrationRegistrationError,
    MissingTargetDefinition,
)
from ..versioning.models import Definition, RunningInstance
from ..versioning.tags import tags_equal
from .actions import rebind_instances
from .registry import MigrationContext, MigrationDescriptor

logger = logging.getLogger("tagmigrate.migration.chain")


class MigrationChainExecutor:
    """Applies consecutive migrations to one instance."""

    def __init__(self, engine):
        """
        Args:
            engine: Engine handle; its ``store`` resolves definitions and
                opens savepoints, and it is passed on to migration actions
        """
        self.engine = engine
        self.store = engine.store

    def run(
        self, instance: RunningInstance, migrations: Sequence[MigrationDescriptor]
    ) -> int:
        """
        Migrate an instance as far as the migrations reach.

        Args:
            instance: Running instance to migrate
            migrations: Candidate migrations for the instance's key

        Returns:
            Number of migrations applied (0 if none applied)

        Raises:
            MissingTargetDefinition: A migration targets an undeployed tag
            MigrationActionFailure: A migration action raised
        """
        source = self.store.get_definition(instance.definition_id)
        if source is None:
            raise MissingTargetDefinition(
                f"Instance {instance.id} is bound to unknown definition {instance.definition_id}",
                key=instance.definition_key,
                instance_id=instance.id,
            )

        logger.info(f"Migrating process #{instance.id} of {source.id}")
        applied = 0
        while True:
            migration = self.find_migration(migrations, source)
            if migration is None:
                break

            target = self.store.get_definition_by_key_and_tag(source.key, migration.target)
            if target is None:
                raise MissingTargetDefinition(
                    f"No definition deployed for {source.key} #{migration.target}",
                    key=source.key,
                    instance_id=instance.id,
                    details={"migration": migration.describe()},
                )

            self._apply(instance, migration, source, target)
            source = target
            applied += 1

        return applied

    @staticmethod
    def find_migration(
        migrations: Sequence[MigrationDescriptor], definition: Definition
    ) -> Optional[MigrationDescriptor]:
        """The migration leaving the definition's tag, or None."""
        matches: List[MigrationDescriptor] = [
            migration
            for migration in migrations
            if migration.key == definition.key
            and tags_equal(migration.source, definition.version_tag)
        ]
        if len(matches) > 1:
            raise MigrationRegistrationError(
                f"More than one migration for {definition.key} from version {definition.version_tag}",
                key=definition.key,
                details={"migrations": [m.describe() for m in matches]},
            )
        return matches[0] if matches else None

    def _apply(
        self,
        instance: RunningInstance,
        migration: MigrationDescriptor,
        source: Definition,
        target: Definition,
    ) -> None:
        logger.debug(f"Applying {migration.describe()}")
        action = migration.action or rebind_instances
        context = MigrationContext(
            engine=self.engine,
            source=source,
            target=target,
            instance_ids=(instance.id,),
        )

        try:
            with self.store.transaction():
                action(context)
        except Exception as e:
            raise MigrationActionFailure(
                f"Migration {migration.describe()} failed for instance {instance.id}: {e}",
                key=source.key,
                instance_id=instance.id,
                source_id=source.id,
                target_id=target.id,
                cause=e,
            ) from e

        events = getattr(self.engine, "events", None)
        if events is not None:
            events.emit(
                Event(
                    EventType.INSTANCE_MIGRATED,
                    {
                        "instance_id": instance.id,
                        "source_id": source.id,
                        "target_id": target.id,
                    },
                )
            )
