# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Definition deployment pipeline.

Stages for one group of resources:

    expand archives -> filter duplicates -> store deployment + resources
        -> parse definitions -> policy.on_transformed
        -> policy.next_version -> store definition -> policy.on_persisted

The pipeline itself is fixed. Versioning behaviour is injected through a
``DeploymentPolicy``; the default one numbers definitions 1, 2, 3, ... per
key like a plain workflow engine.
"""

import logging
from typing import List, Optional, Sequence

from .exceptions import DeploymentError
from .interfaces import DefinitionStore, DeploymentSink
from .parsers.bpmn import BpmnParser
from .store import EngineStore
from .versioning.models import Definition, Deployment, Resource

logger = logging.getLogger("tagmigrate.deployer")


class DeploymentPolicy:
    """Extension points called by the deployment pipeline."""

    def __init__(self, definitions: DefinitionStore):
        self.definitions = definitions

    def on_transformed(
        self, deployment: Deployment, resource: Resource, definitions: List[Definition]
    ) -> None:
        """Inspect definitions parsed from a resource before they get versions."""

    def next_version(self, deployment: Deployment, definition: Definition) -> int:
        """Ordering value for a definition about to be persisted."""
        existing = self.definitions.list_definitions_by_key(definition.key)
        return max((d.version for d in existing), default=0) + 1

    def on_persisted(self, deployment: Deployment, definition: Definition) -> None:
        """React to a definition that has just been stored."""


class DefinitionDeployer(DeploymentSink):
    """
    Deploys one group of resources as a single deployment.

    Usage:
        deployer = DefinitionDeployer(store)
        definitions = deployer.deploy(resources, name="billing")
    """

    def __init__(
        self,
        store: EngineStore,
        policy: Optional[DeploymentPolicy] = None,
        parser: Optional[BpmnParser] = None,
    ):
        self.store = store
        self.policy = policy or DeploymentPolicy(store)
        self.parser = parser or BpmnParser()

    def deploy(
        self,
        resources: Sequence[Resource],
        name: Optional[str] = None,
        tenant_id: Optional[str] = None,
        deploy_changed_only: bool = True,
    ) -> List[Definition]:
        """
        Deploy a group of resources.

        Args:
            resources: Resources of the group, archives are expanded
            name: Deployment name, duplicate filtering compares against
                earlier deployments with the same name and tenant
            tenant_id: Deployment tenant
            deploy_changed_only: Deploy only changed resources; when False a
                single change redeploys the whole group

        Returns:
            Definitions created by the deployment (empty if nothing changed)
        """
        expanded: List[Resource] = []
        for resource in resources:
            expanded.extend(self.parser.expand(resource))

        with self.store.transaction():
            to_deploy = self._filter_duplicates(expanded, name, tenant_id, deploy_changed_only)
            if not to_deploy:
                logger.info(f"Deployment {name}: no changed resources, skipping")
                return []

            deployment = self.store.insert_deployment(name=name, tenant_id=tenant_id)
            for resource in to_deploy:
                self.store.insert_resource(deployment, resource)

            definitions: List[Definition] = []
            seen_keys = set()
            for resource in to_deploy:
                transformed = self.parser.parse(resource)
                self.policy.on_transformed(deployment, resource, transformed)

                for definition in transformed:
                    if definition.key in seen_keys:
                        raise DeploymentError(
                            f"Deployment {name} contains definition {definition.key} more than once",
                            resource_name=resource.name,
                        )
                    seen_keys.add(definition.key)
                    definitions.append(self._persist(deployment, definition))

            logger.debug(
                f"Deployment {deployment.id} ({name}) created "
                f"{[d.describe() for d in definitions]}"
            )
            return definitions

    def _persist(self, deployment: Deployment, definition: Definition) -> Definition:
        version = self.policy.next_version(deployment, definition)
        definition = definition.model_copy(
            update={
                "id": f"{definition.key}:{version}:{deployment.id}",
                "version": version,
                "deployment_id": deployment.id,
                "tenant_id": deployment.tenant_id,
            }
        )
        definition = self.store.insert_definition(definition)
        self.policy.on_persisted(deployment, definition)
        return definition

    def _filter_duplicates(
        self,
        resources: List[Resource],
        name: Optional[str],
        tenant_id: Optional[str],
        deploy_changed_only: bool,
    ) -> List[Resource]:
        previous = self.store.latest_resource_checksums(name, tenant_id)
        changed = [r for r in resources if previous.get(r.name) != r.checksum]
        if not changed:
            return []
        return changed if deploy_changed_only else list(resources)
