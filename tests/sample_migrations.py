# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""Migrations loaded by name in the registry and CLI tests"""

from tagmigrate.core.migration.registry import MigrationCatalog, MigrationDescriptor

catalog = MigrationCatalog()
catalog.add("invoice", "1.0.0", "1.1.0")
catalog.add("invoice", "1.1.0", "2.0.0")

descriptors = [MigrationDescriptor(key="refund", source="1.0", target="2.0")]


def build():
    return descriptors


not_migrations = 42
