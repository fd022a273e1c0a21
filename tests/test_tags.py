# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

import random

import pytest

from tagmigrate.core.versioning.tags import (
    compare_tags,
    normalize_tag,
    parse_version_items,
    tag_sort_key,
    tags_equal,
)


def _sign(value):
    return (value > 0) - (value < 0)


def _random_tag(rng):
    roll = rng.random()
    if roll < 0.1:
        return None
    if roll < 0.15:
        return rng.choice(["", "  "])
    version = ".".join(str(rng.randint(0, 12)) for _ in range(rng.randint(1, 4)))
    suffix = rng.choice(["", "", "", "-SNAPSHOT", "-RELEASE", "-rc1", "-rc2", "-alpha", "-sp"])
    return version + suffix


@pytest.mark.parametrize("raw,expected", [
    (None, None),
    ("", None),
    ("   ", None),
    (" 1.2.3 ", "1.2.3"),
])
def test_normalize_tag(raw, expected):
    """Test blank tags are the same as no tag"""
    assert normalize_tag(raw) == expected


@pytest.mark.parametrize("tag,items", [
    ("1.2.3", [1, 2, 3]),
    ("1.0", [1]),
    ("1.0.0", [1]),
    ("1.2.3-SNAPSHOT", [1, 2, 3, "snapshot"]),
    ("1.0-rc1", [1, "rc", 1]),
    ("1.2-RELEASE", [1, 2]),
])
def test_parse_version_items(tag, items):
    assert parse_version_items(tag) == items


@pytest.mark.parametrize("smaller,larger", [
    (None, "1.0.0"),
    (None, "0"),
    ("1.2.3", "1.2.4"),
    ("1.2.9", "1.2.10"),
    ("1.9", "1.10.0"),
    ("1.2.3-SNAPSHOT", "1.2.3"),
    ("1.2.3.4-SNAPSHOT", "1.2.3.4"),
    ("1.0-alpha", "1.0-beta"),
    ("1.0-rc1", "1.0-rc2"),
    ("1.0-rc1", "1.0"),
    ("1.0", "1.0-sp"),
    ("1.0-rc", "1.0.1"),
    ("1.0-alpha", "1-sp"),
])
def test_tag_ordering(smaller, larger):
    """Test tags compare as versions, no tag first"""
    assert compare_tags(smaller, larger) == -1
    assert compare_tags(larger, smaller) == 1


def test_blank_tags_compare_equal_to_none():
    assert compare_tags(None, "") == 0
    assert compare_tags("  ", None) == 0
    assert tags_equal(" 1.2.3", "1.2.3 ")


def test_equal_versions_with_different_spelling_are_distinct():
    """Test "1.0" and "1.0.0" are ordered but never equal"""
    assert not tags_equal("1.0", "1.0.0")
    assert compare_tags("1.0", "1.0.0") == -compare_tags("1.0.0", "1.0")
    assert compare_tags("1.0", "1.0.0") != 0


def test_sort_key_orders_groups():
    tags = ["2.0.0", None, "1.10.0", "1.2.0", "1.2.0-SNAPSHOT"]
    assert sorted(tags, key=tag_sort_key) == [None, "1.2.0-SNAPSHOT", "1.2.0", "1.10.0", "2.0.0"]


@pytest.mark.parametrize("seed", range(5))
def test_ordering_is_antisymmetric_and_consistent_with_equality(seed):
    """Test compare(a, b) == -compare(b, a) and 0 only for equal strings"""
    rng = random.Random(seed)
    tags = [_random_tag(rng) for _ in range(60)]

    for a in tags:
        for b in tags:
            result = compare_tags(a, b)
            assert result in (-1, 0, 1)
            assert result == -compare_tags(b, a)
            assert (result == 0) == (normalize_tag(a) == normalize_tag(b))


@pytest.mark.parametrize("seed", range(5))
def test_ordering_is_transitive(seed):
    """Test a <= b and b <= c imply a <= c over generated tags"""
    rng = random.Random(1000 + seed)
    tags = [_random_tag(rng) for _ in range(30)]

    for a in tags:
        for b in tags:
            if compare_tags(a, b) > 0:
                continue
            for c in tags:
                if compare_tags(b, c) <= 0:
                    assert compare_tags(a, c) <= 0, (a, b, c)


@pytest.mark.parametrize("seed", range(3))
def test_sorted_tags_are_pairwise_ordered(seed):
    rng = random.Random(2000 + seed)
    tags = sorted((_random_tag(rng) for _ in range(50)), key=tag_sort_key)

    for i in range(len(tags)):
        for j in range(i + 1, len(tags)):
            assert _sign(compare_tags(tags[i], tags[j])) <= 0
