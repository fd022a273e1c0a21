# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

import random

import pytest

from tagmigrate.core.exceptions import AllocationExhausted, DeploymentError
from tagmigrate.core.versioning.allocator import RESERVE, VersionAllocator
from tagmigrate.core.versioning.models import Definition
from tagmigrate.core.versioning.tags import tag_sort_key

TAG_POOL = [None, "1.0.0", "1.0.1", "1.1.0", "1.2.0-SNAPSHOT", "1.2.0", "2.0.0", "10.0.0"]


def _defs(*pairs):
    return [
        Definition(id=f"invoice:{version}", key="invoice", version_tag=tag, version=version)
        for tag, version in pairs
    ]


@pytest.mark.parametrize("tag,existing,expected", [
    ("1.2.3", [], 1000),
    ("1.2.3", [("1.2.4", 1000)], 500),
    ("1.2.3", [("1.2.3", 1001), ("1.2.3", 1002)], 1003),
    ("1.2.3", [("1.2.2", 1002)], 2000),
    ("1.2.4", [("1.2.3", 1001), ("1.2.3", 1002), ("1.2.5", 2000)], 1501),
    ("1.2.4", [("1.2.3", 1002), ("1.2.5", 2147483647)], 1073742324),
    ("1.2.3", [("1.2.3", 1998), ("1.2.4", 2000)], 1999),
    ("1.2.3", [("1.2.3", 1001), ("1.2.3", 1003)], 1004),
    (None, [("1.0.0", 1000)], 500),
    (None, [(None, 1000)], 1001),
    ("2.0.0", [(None, 1000), ("1.0.0", 2000)], 3000),
])
def test_allocate(tag, existing, expected):
    """Test ordering values for known neighbour layouts"""
    assert VersionAllocator().allocate(tag, _defs(*existing)) == expected


@pytest.mark.parametrize("tag,existing", [
    ("1.2.3", [("1.2.3", 1999), ("1.2.4", 2000)]),
    ("1.2.3", [("1.2.4", 1)]),
    ("1.2.4", [("1.2.3", 1), ("1.2.5", 2)]),
])
def test_allocation_exhausted(tag, existing):
    """Test allocation fails when no value fits between the neighbours"""
    with pytest.raises(AllocationExhausted) as exc_info:
        VersionAllocator().allocate(tag, _defs(*existing))

    error = exc_info.value
    assert isinstance(error, DeploymentError)
    assert "Failed to get version between" in error.message
    assert error.to_dict()["value"] == error.value


def test_exhausted_error_names_neighbours():
    with pytest.raises(AllocationExhausted) as exc_info:
        VersionAllocator().allocate("1.2.3", _defs(("1.2.3", 1999), ("1.2.4", 2000)))

    error = exc_info.value
    assert (error.left, error.left_tag) == (1999, "1.2.3")
    assert (error.right, error.right_tag) == (2000, "1.2.4")
    assert error.value == 2000


def test_neighbours_ignore_input_order():
    allocator = VersionAllocator()
    existing = _defs(("1.2.5", 2000), ("1.2.3", 1002), ("1.2.3", 1001))

    left, right = allocator.neighbours("1.2.4", existing)

    assert left.version == 1002
    assert right.version == 2000


def test_custom_reserve():
    allocator = VersionAllocator(reserve=10)
    assert allocator.allocate("1.0.0", []) == 10
    assert allocator.allocate("2.0.0", _defs(("1.0.0", 13))) == 20


def test_reserve_must_leave_room():
    with pytest.raises(ValueError):
        VersionAllocator(reserve=1)


@pytest.mark.parametrize("seed", range(6))
def test_allocations_keep_tag_order(seed):
    """Test ordering values follow tag order across generated deploy sequences"""
    rng = random.Random(seed)
    allocator = VersionAllocator()
    deployed = []

    for _ in range(40):
        tag = rng.choice(TAG_POOL)
        left, right = allocator.neighbours(tag, deployed)
        try:
            version = allocator.allocate(tag, deployed)
        except AllocationExhausted as e:
            # only when the computed value really has no room
            assert (
                e.value <= 0
                or (left is not None and e.value <= left.version)
                or (right is not None and e.value >= right.version)
            )
            continue

        assert version > 0
        assert left is None or left.version < version
        assert right is None or version < right.version
        assert version not in {d.version for d in deployed}

        deployed.append(
            Definition(id=f"invoice:{version}", key="invoice", version_tag=tag, version=version)
        )

        by_value = sorted(deployed, key=lambda d: d.version)
        by_tag = sorted(by_value, key=lambda d: tag_sort_key(d.version_tag))
        assert [d.version for d in by_value] == [d.version for d in by_tag]

    assert deployed
    assert deployed[0].version % RESERVE == 0
