# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

import pytest

from tagmigrate.core.store import EngineStore
from tagmigrate.core.versioning.models import Definition, Resource


def _definition(store, key="invoice", tag="1.0.0", version=1000):
    deployment = store.insert_deployment(name="test")
    return store.insert_definition(
        Definition(
            id=f"{key}:{version}:{deployment.id}",
            key=key,
            version_tag=tag,
            version=version,
            deployment_id=deployment.id,
        )
    )


def test_definitions_by_key_sorted_by_version(store):
    """Test definitions are listed in ordering-value order"""
    _definition(store, tag="2.0.0", version=2000)
    _definition(store, tag="1.0.0", version=1000)
    _definition(store, tag="1.5.0", version=1500)
    _definition(store, key="other", tag="1.0.0", version=1000)

    versions = [d.version for d in store.list_definitions_by_key("invoice")]

    assert versions == [1000, 1500, 2000]
    assert store.list_deployed_keys() == ["invoice", "other"]


def test_latest_definition_of_tag_wins(store):
    _definition(store, tag="1.0.0", version=1000)
    newest = _definition(store, tag="1.0.0", version=1001)
    _definition(store, tag="2.0.0", version=2000)

    assert store.get_definition_by_key_and_tag("invoice", "1.0.0").id == newest.id
    assert store.get_definition_by_key_and_tag("invoice", "3.0.0") is None


def test_untagged_lookup(store):
    untagged = _definition(store, tag="  ", version=1000)

    assert untagged.version_tag is None
    assert store.get_definition_by_key_and_tag("invoice", None).id == untagged.id
    assert store.get_definition_by_key_and_tag("invoice", "") is not None


def test_insert_requires_assigned_version(store):
    with pytest.raises(ValueError):
        store.insert_definition(Definition(key="invoice", version_tag="1.0.0"))


def test_instances_and_rebind(store):
    """Test instances follow their definition after a rebind"""
    v1 = _definition(store, tag="1.0.0", version=1000)
    v2 = _definition(store, tag="2.0.0", version=2000)
    first = store.start_instance(v1, business_key="order-1")
    second = store.start_instance(v1)

    assert store.count_instances("invoice") == 2
    assert [i.id for i in store.list_instances_by_definition_key("invoice")] == [first.id, second.id]

    assert store.rebind_instances([first.id], v2) == 1

    assert store.get_instance(first.id).definition_id == v2.id
    assert store.get_instance(first.id).business_key == "order-1"
    assert store.get_instance(second.id).definition_id == v1.id
    assert store.rebind_instances([], v2) == 0


def test_delete_instance(store):
    definition = _definition(store)
    instance = store.start_instance(definition)

    assert store.delete_instance(instance.id)
    assert not store.delete_instance(instance.id)
    assert store.count_instances() == 0


def test_transaction_rollback(store):
    """Test a failing transaction leaves nothing behind"""
    with pytest.raises(RuntimeError):
        with store.transaction():
            _definition(store)
            raise RuntimeError("boom")

    assert store.list_definitions_by_key("invoice") == []
    assert not store.in_transaction


def test_nested_transaction_rolls_back_to_savepoint(store):
    """Test an inner failure only undoes the inner block"""
    with store.transaction():
        _definition(store, tag="1.0.0", version=1000)

        with pytest.raises(RuntimeError):
            with store.transaction():
                _definition(store, tag="2.0.0", version=2000)
                assert len(store.list_definitions_by_key("invoice")) == 2
                raise RuntimeError("boom")

        assert len(store.list_definitions_by_key("invoice")) == 1

    assert [d.version for d in store.list_definitions_by_key("invoice")] == [1000]


def test_latest_resource_checksums(store):
    first = store.insert_deployment(name="billing")
    store.insert_resource(first, Resource(name="a.bpmn", content=b"one"))
    second = store.insert_deployment(name="billing")
    store.insert_resource(second, Resource(name="a.bpmn", content=b"two"))
    other = store.insert_deployment(name="other")
    store.insert_resource(other, Resource(name="a.bpmn", content=b"three"))

    checksums = store.latest_resource_checksums("billing", None)

    assert checksums == {"a.bpmn": Resource(name="a.bpmn", content=b"two").checksum}
    assert store.count_deployments() == 3


def test_exclusive_lock_requires_transaction(store):
    with pytest.raises(RuntimeError):
        store.exclusive_lock.try_acquire()

    with store.transaction():
        assert store.exclusive_lock.try_acquire()


def test_exclusive_lock_held_by_other_connection(tmp_path):
    """Test a second store cannot lock while the first holds the lock"""
    db_path = tmp_path / "engine.db"
    holder = EngineStore(db_path)
    contender = EngineStore(db_path, timeout=0.05)
    try:
        with holder.transaction():
            assert holder.exclusive_lock.try_acquire()

            with contender.transaction():
                assert not contender.exclusive_lock.try_acquire()

        with contender.transaction():
            assert contender.exclusive_lock.try_acquire()
    finally:
        holder.close()
        contender.close()


def test_file_database_persists(tmp_path):
    db_path = tmp_path / "nested" / "engine.db"
    store = EngineStore(db_path)
    _definition(store)
    store.close()

    reopened = EngineStore(db_path)
    try:
        assert len(reopened.list_definitions_by_key("invoice")) == 1
    finally:
        reopened.close()
