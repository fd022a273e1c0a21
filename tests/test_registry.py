# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

import pytest
from pydantic import ValidationError

from tagmigrate.core.exceptions import MigrationError, MigrationRegistrationError
from tagmigrate.core.migration.registry import (
    MigrationCatalog,
    MigrationDescriptor,
    MigrationRegistry,
    load_registry,
)


def _m(key, source, target, action=None):
    return MigrationDescriptor(key=key, source=source, target=target, action=action)


def test_registry_groups_by_key():
    """Test descriptors are indexed per workflow key"""
    registry = MigrationRegistry([
        _m("invoice", "1.0.0", "1.1.0"),
        _m("refund", "1.0", "2.0"),
        _m("invoice", "1.1.0", "2.0.0"),
    ])

    assert len(registry) == 3
    assert sorted(registry.keys()) == ["invoice", "refund"]
    assert "invoice" in registry
    assert "shipping" not in registry
    assert [m.target for m in registry.migrations_for("invoice")] == ["1.1.0", "2.0.0"]
    assert registry.migrations_for("shipping") == []


def test_descriptor_normalizes_tags():
    descriptor = _m(" invoice ", " 1.0.0 ", "")

    assert descriptor.key == "invoice"
    assert descriptor.source == "1.0.0"
    assert descriptor.target is None
    assert descriptor.describe() == "invoice 1.0.0 -> None"


def test_descriptor_is_immutable():
    descriptor = _m("invoice", "1.0.0", "1.1.0")

    with pytest.raises(ValidationError):
        descriptor.target = "2.0.0"


def test_descriptor_requires_key():
    with pytest.raises(ValidationError):
        _m("  ", "1.0.0", "1.1.0")


def test_duplicate_source_rejected():
    """Test two migrations leaving the same tag are ambiguous"""
    with pytest.raises(MigrationRegistrationError, match="More than one migration"):
        MigrationRegistry([
            _m("invoice", "1.0.0", "1.1.0"),
            _m("invoice", "1.0.0", "2.0.0"),
        ])


def test_same_source_on_different_keys_is_fine():
    registry = MigrationRegistry([
        _m("invoice", "1.0.0", "1.1.0"),
        _m("refund", "1.0.0", "1.1.0"),
    ])
    assert len(registry) == 2


@pytest.mark.parametrize("migrations", [
    [("1.0.0", "1.0.0")],
    [("1.0.0", "2.0.0"), ("2.0.0", "1.0.0")],
    [("1.0.0", "2.0.0"), ("2.0.0", "3.0.0"), ("3.0.0", "2.0.0")],
    [(None, "1.0.0"), ("1.0.0", None)],
])
def test_cycles_rejected(migrations):
    """Test migration chains must terminate"""
    with pytest.raises(MigrationRegistrationError, match="Cycle detected") as exc_info:
        MigrationRegistry([_m("invoice", s, t) for s, t in migrations])

    error = exc_info.value
    assert isinstance(error, MigrationError)
    assert error.key == "invoice"
    assert error.details["cycle"][0] == error.details["cycle"][-1]


def test_registry_rejects_other_objects():
    with pytest.raises(TypeError):
        MigrationRegistry([("invoice", "1.0.0", "1.1.0")])


def test_catalog_decorator_registers_action():
    """Test functions decorated on a catalog become migration actions"""
    catalog = MigrationCatalog()

    @catalog.migration("invoice", "1.0.0", "1.1.0")
    def add_approval(context):
        return context

    catalog.add("invoice", "1.1.0", "2.0.0")
    registry = catalog.build()

    first, second = registry.migrations_for("invoice")
    assert first.action is add_approval
    assert first.name == "add_approval"
    assert second.action is None
    assert len(catalog) == 2


def test_coerce_accepts_registry_catalog_iterable_and_factory():
    catalog = MigrationCatalog()
    catalog.add("invoice", "1.0.0", "1.1.0")
    registry = catalog.build()

    assert MigrationRegistry.coerce(registry) is registry
    assert len(MigrationRegistry.coerce(catalog)) == 1
    assert len(MigrationRegistry.coerce([_m("a", "1", "2")])) == 1
    assert len(MigrationRegistry.coerce(lambda: [_m("a", "1", "2")])) == 1

    with pytest.raises(MigrationRegistrationError):
        MigrationRegistry.coerce(42)


@pytest.mark.parametrize("spec,expected", [
    ("sample_migrations:catalog", 2),
    ("sample_migrations:descriptors", 1),
    ("sample_migrations:build", 1),
])
def test_load_registry(spec, expected):
    assert len(load_registry(spec)) == expected


@pytest.mark.parametrize("spec", [
    "sample_migrations",
    "sample_migrations:missing",
    "no_such_module_anywhere:catalog",
    "sample_migrations:not_migrations",
])
def test_load_registry_errors(spec):
    with pytest.raises(MigrationRegistrationError):
        load_registry(spec)
