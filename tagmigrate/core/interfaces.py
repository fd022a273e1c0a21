# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Collaborator contracts.

The allocator, the tagged deployment coordinator and the migration
components only talk to storage through these interfaces. ``EngineStore``
implements all of them on SQLite; tests and other engines can plug in their
own.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from .exceptions import LockUnavailable
from .versioning.models import Definition, Resource, RunningInstance

logger = logging.getLogger("tagmigrate.interfaces")


class DefinitionStore(ABC):
    """Read access to deployed definitions."""

    @abstractmethod
    def list_definitions_by_key(self, key: str) -> List[Definition]:
        """All definitions of a key, including uncommitted ones of the
        current transaction."""

    @abstractmethod
    def get_definition(self, definition_id: str) -> Optional[Definition]:
        """Definition by id, or None."""

    @abstractmethod
    def get_definition_by_key_and_tag(
        self, key: str, version_tag: Optional[str]
    ) -> Optional[Definition]:
        """Definition of key+tag with the highest ordering value, or None."""

    @abstractmethod
    def list_deployed_keys(self) -> List[str]:
        """Distinct keys that have at least one definition."""


class InstanceStore(ABC):
    """Read access to running instances."""

    @abstractmethod
    def list_instances_by_definition_key(self, key: str) -> List[RunningInstance]:
        """Running instances bound to any definition of the key."""


class DeploymentSink(ABC):
    """Persists one group of resources as a single deployment."""

    @abstractmethod
    def deploy(
        self,
        resources: Sequence[Resource],
        name: Optional[str] = None,
        tenant_id: Optional[str] = None,
        deploy_changed_only: bool = True,
    ) -> List[Definition]:
        """Deploy the group and return the definitions it created."""


class ExclusiveLock(ABC):
    """Store-level lock serializing deployments and migration passes.

    Acquisition is scoped to the store's current transaction and released
    when that transaction ends.
    """

    supported: bool = True

    @abstractmethod
    def try_acquire(self) -> bool:
        """Acquire the lock, returning False if another holder keeps it."""


def acquire_exclusive_lock(store, operation: str) -> bool:
    """
    Take the store's exclusive lock for the current transaction.

    Stores without a (supported) lock are run without one.

    Returns:
        True if the lock is held, False if the store offers none

    Raises:
        LockUnavailable: If the store has a lock but it is held elsewhere
    """
    lock = getattr(store, "exclusive_lock", None)
    if lock is None or not lock.supported:
        logger.warning(f"{operation}: store offers no exclusive lock, running without it")
        return False

    if not lock.try_acquire():
        raise LockUnavailable(
            f"{operation}: could not acquire the exclusive lock",
            details={"store": type(store).__name__},
        )
    return True
