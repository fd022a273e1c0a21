# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Tagmigrate Core - Init file

Exports the engine facade, the deployment and migration components and the
configuration helpers.
"""

from .config import TagMigrateConfig, get_config, load_config
from .deployer import DefinitionDeployer, DeploymentPolicy
from .engine import WorkflowEngine
from .events import Event, EventBus, EventType
from .exceptions import (
    DeploymentBatchError,
    DeploymentError,
    LockUnavailable,
    MigrationError,
    MigrationPassError,
    TagMigrateError,
)
from .store import EngineStore

# Versioning
from .versioning import (
    Definition,
    Resource,
    RunningInstance,
    VersionAllocator,
    compare_tags,
    parse_version_tag,
)
from .versioning.tagged_deployment import TaggedDeploymentCoordinator, VersionTagPolicy

# Migration
from .migration import (
    AutoMigrationDriver,
    MigrationCatalog,
    MigrationContext,
    MigrationDescriptor,
    MigrationRegistry,
    load_registry,
)

__all__ = [
    # Engine
    "WorkflowEngine",
    "EngineStore",
    "EventBus",
    "Event",
    "EventType",
    "TagMigrateConfig",
    "get_config",
    "load_config",
    # Errors
    "TagMigrateError",
    "DeploymentError",
    "DeploymentBatchError",
    "MigrationError",
    "MigrationPassError",
    "LockUnavailable",
    # Deployment
    "DefinitionDeployer",
    "DeploymentPolicy",
    "TaggedDeploymentCoordinator",
    "VersionTagPolicy",
    "VersionAllocator",
    "Definition",
    "Resource",
    "RunningInstance",
    "compare_tags",
    "parse_version_tag",
    # Migration
    "AutoMigrationDriver",
    "MigrationCatalog",
    "MigrationContext",
    "MigrationDescriptor",
    "MigrationRegistry",
    "load_registry",
]
