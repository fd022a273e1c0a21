# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Version tag ordering.

Tags are optional strings. Blank tags are the same as no tag, and no tag
sorts before every real tag. Real tags compare as dotted versions with
qualifiers, the way build tools order artifact versions:

    1.2.3-SNAPSHOT < 1.2.3 < 1.2.4 < 1.10.0

Two different strings never compare equal: "1.0" and "1.0.0" are the same
version, so their order falls back to plain string order. That keeps tag
equality usable for exact lookups.
"""

import re
from functools import cmp_to_key
from typing import List, Optional, Union

_TOKEN = re.compile(r"\d+|[a-z]+")

# Known qualifiers in ascending order, "" is a plain release
_QUALIFIERS = ["alpha", "beta", "milestone", "rc", "snapshot", "", "sp"]

_QUALIFIER_ALIASES = {
    "a": "alpha",
    "b": "beta",
    "m": "milestone",
    "cr": "rc",
    "ga": "",
    "final": "",
    "release": "",
}

Item = Union[int, str]


def normalize_tag(tag: Optional[str]) -> Optional[str]:
    """Trim a tag, mapping empty and blank values to None."""
    if tag is None:
        return None
    tag = tag.strip()
    return tag or None


def parse_version_items(tag: str) -> List[Item]:
    """
    Split a tag into comparable items.

    Numbers become ints, words become canonical qualifiers. Zeros and
    release qualifiers carry no weight at the end of the tag or in front of
    a qualifier and are dropped, so "1.0" and "1" produce the same items,
    as do "1.0-rc1" and "1-rc1".
    """
    items: List[Item] = []
    for token in _TOKEN.findall(tag.lower()):
        if token.isdigit():
            items.append(int(token))
            continue

        while items and (items[-1] == "" or items[-1] == 0):
            items.pop()
        items.append(_QUALIFIER_ALIASES.get(token, token))

    while items and (items[-1] == "" or items[-1] == 0):
        items.pop()
    return items


def _qualifier_rank(qualifier: str):
    if qualifier in _QUALIFIERS:
        return (_QUALIFIERS.index(qualifier), "")
    return (len(_QUALIFIERS), qualifier)


def _compare_items(a: Optional[Item], b: Optional[Item]) -> int:
    if a is None and b is None:
        return 0
    if a is None:
        return -_compare_items(b, a)

    if isinstance(a, int):
        if b is None:
            return 1 if a > 0 else 0
        if isinstance(b, int):
            return (a > b) - (a < b)
        # numbers outrank qualifiers: 1.0.1 > 1.0-rc
        return 1

    if b is None:
        b = ""
    elif isinstance(b, int):
        return -1

    rank_a, rank_b = _qualifier_rank(a), _qualifier_rank(b)
    return (rank_a > rank_b) - (rank_a < rank_b)


def compare_versions(a: str, b: str) -> int:
    """Compare two non-empty tags by version semantics only."""
    items_a = parse_version_items(a)
    items_b = parse_version_items(b)

    for index in range(max(len(items_a), len(items_b))):
        item_a = items_a[index] if index < len(items_a) else None
        item_b = items_b[index] if index < len(items_b) else None
        result = _compare_items(item_a, item_b)
        if result:
            return result
    return 0


def compare_tags(tag1: Optional[str], tag2: Optional[str]) -> int:
    """
    Total order over optional version tags.

    Returns -1, 0 or 1. Returns 0 only when both tags normalize to the same
    string.
    """
    tag1 = normalize_tag(tag1)
    tag2 = normalize_tag(tag2)

    if tag1 == tag2:
        return 0
    if tag1 is None:
        return -1
    if tag2 is None:
        return 1

    result = compare_versions(tag1, tag2)
    if result:
        return result
    return (tag1 > tag2) - (tag1 < tag2)


def tags_equal(tag1: Optional[str], tag2: Optional[str]) -> bool:
    return compare_tags(tag1, tag2) == 0


tag_sort_key = cmp_to_key(compare_tags)
