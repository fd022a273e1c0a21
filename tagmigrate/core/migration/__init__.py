# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""Migration package - init file"""

from .actions import rebind_instances, then_rebind
from .chain import MigrationChainExecutor
from .driver import AutoMigrationDriver, MigrationPassResult
from .registry import (
    MigrationCatalog,
    MigrationContext,
    MigrationDescriptor,
    MigrationRegistry,
    load_registry,
)

__all__ = [
    "rebind_instances",
    "then_rebind",
    "MigrationChainExecutor",
    "AutoMigrationDriver",
    "MigrationPassResult",
    "MigrationCatalog",
    "MigrationContext",
    "MigrationDescriptor",
    "MigrationRegistry",
    "load_registry",
]
