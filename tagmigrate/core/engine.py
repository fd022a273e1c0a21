# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Workflow engine facade.

Wires the store, the tagged deployment coordinator and the auto-migration
driver together. This is the engine handle migration actions receive.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

from .config import TagMigrateConfig, get_config
from .events import EventBus
from .exceptions import TagMigrateError
from .migration.driver import AutoMigrationDriver, MigrationPassResult
from .migration.registry import MigrationRegistry, load_registry
from .store import EngineStore
from .versioning.models import Definition, Resource, RunningInstance
from .versioning.tagged_deployment import TaggedDeploymentCoordinator

logger = logging.getLogger("tagmigrate.engine")


class WorkflowEngine:
    """
    Version-tag-aware workflow engine.

    Usage:
        with WorkflowEngine(registry=catalog.build()) as engine:
            engine.deploy_files(["bpmn/invoice-1.1.0.bpmn"])
            engine.start()  # auto-migrates running instances
    """

    def __init__(
        self,
        config: Optional[TagMigrateConfig] = None,
        store: Optional[EngineStore] = None,
        registry: Optional[MigrationRegistry] = None,
        events: Optional[EventBus] = None,
    ):
        self.config = config or get_config()
        self.store = store or EngineStore(self.config.paths.database_path)
        self.events = events or EventBus()

        if registry is None:
            spec = self.config.migration.migrations
            registry = load_registry(spec) if spec else MigrationRegistry()
        self.registry = registry

        self.coordinator = TaggedDeploymentCoordinator(
            self.store, self.config.deployment, events=self.events
        )
        self.driver = AutoMigrationDriver(self.registry, self.config.migration)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        self.store.close()

    # ==========================================================================
    # Deployment
    # ==========================================================================

    def deploy(
        self,
        resources: Sequence[Resource],
        name: Optional[str] = None,
        tenant_id: Optional[str] = None,
        deploy_changed_only: Optional[bool] = None,
    ) -> List[Definition]:
        return self.coordinator.deploy(
            resources,
            name=name,
            tenant_id=tenant_id,
            deploy_changed_only=deploy_changed_only,
        )

    def deploy_files(
        self, paths: Iterable[Union[str, Path]], **kwargs
    ) -> List[Definition]:
        """Deploy files from disk, named by their file name."""
        resources = []
        for path in paths:
            path = Path(path)
            resources.append(Resource(name=path.name, content=path.read_bytes()))
        return self.deploy(resources, **kwargs)

    # ==========================================================================
    # Migration
    # ==========================================================================

    def start(self) -> Optional[MigrationPassResult]:
        """Engine start hook: run one auto-migration pass if enabled."""
        if not self.config.migration.auto_migrate_on_start:
            logger.info("Auto-migration on start is disabled")
            return None
        return self.migrate()

    def migrate(self) -> MigrationPassResult:
        return self.driver.run_once(self)

    # ==========================================================================
    # Queries and instances
    # ==========================================================================

    def definitions(self, key: str) -> List[Definition]:
        return self.store.list_definitions_by_key(key)

    def latest_definition(self, key: str) -> Optional[Definition]:
        definitions = self.store.list_definitions_by_key(key)
        return definitions[-1] if definitions else None

    def instances(self, key: str) -> List[RunningInstance]:
        return self.store.list_instances_by_definition_key(key)

    def start_instance(
        self,
        key: str,
        version_tag: Optional[str] = None,
        business_key: Optional[str] = None,
    ) -> RunningInstance:
        """
        Start an instance of a key.

        Without a version tag the definition with the highest ordering value
        is used, otherwise the newest definition of that tag.
        """
        if version_tag is None:
            definition = self.latest_definition(key)
        else:
            definition = self.store.get_definition_by_key_and_tag(key, version_tag)

        if definition is None:
            raise TagMigrateError(
                f"No definition deployed for {key}"
                + (f" #{version_tag}" if version_tag else ""),
                details={"key": key, "version_tag": version_tag},
            )

        instance = self.store.start_instance(definition, business_key=business_key)
        logger.info(f"Started instance {instance.id} of {definition.describe()}")
        return instance

    def cancel_instance(self, instance_id: str) -> None:
        """Remove a running instance; raises when the id is unknown."""
        if not self.store.delete_instance(instance_id):
            raise TagMigrateError(
                f"No running instance {instance_id}",
                details={"instance_id": instance_id},
            )
        logger.info(f"Cancelled instance {instance_id}")

    def status(self) -> Dict[str, object]:
        return {
            "deployments": self.store.count_deployments(),
            "instances": {
                key: self.store.count_instances(key) for key in self.store.list_deployed_keys()
            },
        }
