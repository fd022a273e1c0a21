# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Version-tag-aware deployment.

A batch of resources is split into one deployment per version tag (taken
from the file names), deployed oldest tag first. Inside the deployment
pipeline ``VersionTagPolicy`` replaces auto-increment versions with values
from ``VersionAllocator`` and checks that every definition declares the same
tag as its file name.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from ..config import DeploymentConfig
from ..deployer import DefinitionDeployer, DeploymentPolicy
from ..events import Event, EventBus, EventType
from ..exceptions import DeploymentBatchError, DeploymentError, TagMismatch
from ..interfaces import DefinitionStore, InstanceStore, acquire_exclusive_lock
from ..store import EngineStore
from .allocator import VersionAllocator
from .models import Definition, Deployment, Resource, RunningInstance
from .resource_names import parse_version_tag
from .tags import normalize_tag, tag_sort_key, tags_equal

logger = logging.getLogger("tagmigrate.tagged_deployment")

ORPHANED_INSTANCES_MESSAGE = (
    "Deployed definition {}#{}, found {} active processes on older definitions with the "
    "same version tag. These processes will not be migrated to mentioned definition, "
    "instead auto-migration will attempt to migrate them directly to newer version tag "
    "if it finds one."
)


@dataclass
class Advisory:
    """Running instances left on older definitions of a redeployed tag."""

    definition: Definition
    instances: List[RunningInstance] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "definition_id": self.definition.id,
            "version_tag": self.definition.version_tag,
            "instances": [f"{i.id}@{i.definition_id}" for i in self.instances],
        }


class VersionTagPolicy(DeploymentPolicy):
    """Deployment policy that orders definitions by version tag."""

    def __init__(
        self,
        definitions: DefinitionStore,
        instances: InstanceStore,
        allocator: Optional[VersionAllocator] = None,
        events: Optional[EventBus] = None,
    ):
        super().__init__(definitions)
        self.instances = instances
        self.allocator = allocator or VersionAllocator()
        self.events = events
        self.advisories: List[Advisory] = []

    def on_transformed(
        self, deployment: Deployment, resource: Resource, definitions: List[Definition]
    ) -> None:
        resource_tag = parse_version_tag(resource.name)
        for definition in definitions:
            definition_tag = normalize_tag(definition.version_tag)
            if not tags_equal(definition_tag, resource_tag):
                raise TagMismatch(
                    deployment.name,
                    definition.key,
                    definition_tag,
                    resource.name,
                    resource_tag,
                )

    def next_version(self, deployment: Deployment, definition: Definition) -> int:
        existing = self.definitions.list_definitions_by_key(definition.key)
        return self.allocator.allocate(definition.version_tag, existing)

    def on_persisted(self, deployment: Deployment, definition: Definition) -> None:
        orphaned = self.find_orphaned_instances(definition)
        if not orphaned:
            return

        logger.warning(
            ORPHANED_INSTANCES_MESSAGE.format(
                definition.id, definition.version_tag, len(orphaned)
            )
        )
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"{[f'{i.id}@{i.definition_id}' for i in orphaned]}")

        advisory = Advisory(definition=definition, instances=orphaned)
        self.advisories.append(advisory)
        if self.events:
            self.events.emit(Event(EventType.ORPHANED_INSTANCES, advisory.to_dict()))

    def find_orphaned_instances(self, definition: Definition) -> List[RunningInstance]:
        """Instances bound to other definitions of the same key and tag."""
        overridden_ids = {
            other.id
            for other in self.definitions.list_definitions_by_key(definition.key)
            if other.id != definition.id
            and tags_equal(other.version_tag, definition.version_tag)
        }
        if not overridden_ids:
            return []
        return [
            instance
            for instance in self.instances.list_instances_by_definition_key(definition.key)
            if instance.definition_id in overridden_ids
        ]


class TaggedDeploymentCoordinator:
    """
    Deploys a batch of resources as one deployment per version tag.

    Usage:
        coordinator = TaggedDeploymentCoordinator(store)
        definitions = coordinator.deploy([
            Resource(name="invoice-1.0.0.bpmn", content=...),
            Resource(name="invoice-1.1.0.bpmn", content=...),
        ])
    """

    def __init__(
        self,
        store: EngineStore,
        config: Optional[DeploymentConfig] = None,
        events: Optional[EventBus] = None,
        allocator: Optional[VersionAllocator] = None,
    ):
        self.store = store
        self.config = config or DeploymentConfig()
        self.events = events
        self.policy = VersionTagPolicy(store, store, allocator=allocator, events=events)
        self.deployer = DefinitionDeployer(store, self.policy)

    @property
    def advisories(self) -> List[Advisory]:
        """Orphaned-instance advisories raised by the last deploy() call."""
        return list(self.policy.advisories)

    def deploy(
        self,
        resources: Sequence[Resource],
        name: Optional[str] = None,
        tenant_id: Optional[str] = None,
        deploy_changed_only: Optional[bool] = None,
    ) -> List[Definition]:
        """
        Deploy resources grouped by version tag.

        Args:
            resources: Resources to deploy
            name: Deployment name (defaults to the configured one)
            tenant_id: Tenant (defaults to the configured one)
            deploy_changed_only: Duplicate filtering mode (defaults to config)

        Returns:
            All definitions deployed by the batch

        Raises:
            LockUnavailable: If the exclusive lock is required but held elsewhere
            DeploymentBatchError: If any group failed; carries the errors and
                the definitions the other groups deployed
        """
        name = name if name is not None else self.config.name
        tenant_id = tenant_id if tenant_id is not None else self.config.tenant_id
        if deploy_changed_only is None:
            deploy_changed_only = self.config.deploy_changed_only

        logger.info(f"Found {len(resources)} resources")
        self.policy.advisories.clear()

        errors: List[DeploymentError] = []
        definitions: List[Definition] = []

        with self.store.transaction():
            if self.config.use_lock:
                acquire_exclusive_lock(self.store, "Deployment")

            for version_tag, group in self.group_resources(resources, errors):
                try:
                    deployed = self.deployer.deploy(
                        group,
                        name=name,
                        tenant_id=tenant_id,
                        deploy_changed_only=deploy_changed_only,
                    )
                except DeploymentError as e:
                    logger.error(f"Deployment of version {version_tag} failed: {e}")
                    errors.append(e)
                    continue

                definitions.extend(deployed)
                if self.events:
                    for definition in deployed:
                        self.events.emit(
                            Event(
                                EventType.DEFINITION_DEPLOYED,
                                {"definition_id": definition.id, "version_tag": definition.version_tag},
                            )
                        )

        logger.info(f"Deployed {len(definitions)} definitions")
        logger.debug(f"{[d.describe() for d in definitions]}")

        if errors:
            raise DeploymentBatchError(errors, definitions)
        return definitions

    def group_resources(
        self,
        resources: Sequence[Resource],
        errors: Optional[List[DeploymentError]] = None,
    ) -> List[Tuple[Optional[str], List[Resource]]]:
        """
        Group resources by the version tag in their names, oldest tag first.

        Resources with malformed names are left out; their errors go to
        ``errors`` when given, otherwise the first one is raised.
        """
        groups: Dict[Optional[str], List[Resource]] = {}
        for resource in resources:
            try:
                version_tag = parse_version_tag(resource.name)
            except DeploymentError as e:
                if errors is None:
                    raise
                logger.error(str(e))
                errors.append(e)
                continue
            groups.setdefault(version_tag, []).append(resource)

        ordered = sorted(groups.items(), key=lambda item: tag_sort_key(item[0]))
        logger.debug(f"Grouped resources into versions: {[tag for tag, _ in ordered]}")
        return ordered
