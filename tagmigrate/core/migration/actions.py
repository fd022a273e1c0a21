# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""Built-in migration actions."""

import logging

from .registry import MigrationContext

logger = logging.getLogger("tagmigrate.migration.actions")


def rebind_instances(context: MigrationContext) -> None:
    """Move the instances to the target definition without touching their state."""
    store = context.engine.store
    changed = store.rebind_instances(list(context.instance_ids), context.target)
    logger.debug(
        f"Rebound {changed} instance(s) from {context.source.id} to {context.target.id}"
    )


def then_rebind(action):
    """Wrap an action so the instances are rebound after it succeeds."""
    def migrate(context: MigrationContext) -> None:
        action(context)
        rebind_instances(context)

    migrate.__name__ = getattr(action, "__name__", "migrate")
    return migrate
