# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Ordering value allocation for tagged definitions.

Every definition of a key gets an integer ordering value (stored as the
definition's version). Values follow tag order and, within one tag, deploy
order. Existing values are never renumbered, so a new definition has to fit
strictly between its neighbours:

    null < 1000 < null      first definition of a key
    null < 500 < 1000       older tag than everything deployed
    1002 < 1003 < *         redeploy of the newest definition's tag
    1002 < 2000 < null      newer tag than everything deployed
    1002 < 1501 < 2000      tag between two deployed tags

Tag groups start on multiples of RESERVE so that redeploys of a tag have
room to append before the next group.
"""

import logging
from functools import cmp_to_key
from typing import Iterable, List, Optional, Protocol, Tuple

from ..exceptions import AllocationExhausted
from .tags import compare_tags, normalize_tag

logger = logging.getLogger("tagmigrate.allocator")

RESERVE = 1000

# Ordering values live in a signed 64-bit INTEGER column
MAX_ORDERING_VALUE = 2**63 - 1


class Versioned(Protocol):
    version_tag: Optional[str]
    version: int


class _NewEntry:
    """Stand-in for the definition being allocated (no ordering value yet)."""

    def __init__(self, version_tag: Optional[str]):
        self.version_tag = version_tag
        self.version = 0


def _compare_ordering_values(v1: Optional[int], v2: Optional[int]) -> int:
    # Unassigned (0/None) values sort after assigned ones
    v1 = v1 or 0
    v2 = v2 or 0
    if v1 == v2:
        return 0
    if v1 == 0:
        return 1
    if v2 == 0:
        return -1
    return (v1 > v2) - (v1 < v2)


def _compare_entries(d1: Versioned, d2: Versioned) -> int:
    # "" 1 < "" 2 < "alpha" 3 < "alpha" 4 < "alpha" 0 < "beta" 5
    result = compare_tags(d1.version_tag, d2.version_tag)
    if result:
        return result
    return _compare_ordering_values(d1.version, d2.version)


class VersionAllocator:
    """Computes the ordering value for a newly deployed definition."""

    def __init__(self, reserve: int = RESERVE):
        if reserve < 2:
            raise ValueError("reserve must be at least 2")
        self.reserve = reserve

    def allocate(self, version_tag: Optional[str], existing: Iterable[Versioned]) -> int:
        """
        Compute the ordering value for a new definition.

        Args:
            version_tag: Tag of the definition being deployed
            existing: All definitions already deployed for the same key,
                including ones not yet committed

        Returns:
            Positive ordering value strictly between the new definition's
            neighbours

        Raises:
            AllocationExhausted: If no integer fits between the neighbours
        """
        left, right = self.neighbours(version_tag, existing)
        return self._version_between(version_tag, left, right)

    def neighbours(
        self, version_tag: Optional[str], existing: Iterable[Versioned]
    ) -> Tuple[Optional[Versioned], Optional[Versioned]]:
        """Return the (left, right) neighbours the new tag would sit between."""
        entry = _NewEntry(normalize_tag(version_tag))
        ordered: List[Versioned] = list(existing)
        if not ordered:
            return None, None

        # sort is stable: the new entry stays after unassigned entries of its tag
        ordered.append(entry)
        ordered.sort(key=cmp_to_key(_compare_entries))

        index = next(i for i, item in enumerate(ordered) if item is entry)
        left = ordered[index - 1] if index > 0 else None
        right = ordered[index + 1] if index < len(ordered) - 1 else None
        return left, right

    def _version_between(
        self,
        version_tag: Optional[str],
        left: Optional[Versioned],
        right: Optional[Versioned],
    ) -> int:
        if left is None:
            version = self.reserve if right is None else right.version // 2
        elif compare_tags(left.version_tag, version_tag) == 0:
            version = left.version + 1
        elif right is None:
            version = (left.version // self.reserve + 1) * self.reserve
        else:
            version = left.version // 2 + right.version // 2

        if not (
            0 < version <= MAX_ORDERING_VALUE
            and (left is None or left.version < version)
            and (right is None or version < right.version)
        ):
            error = AllocationExhausted(
                version,
                left=left.version if left is not None else None,
                left_tag=left.version_tag if left is not None else None,
                right=right.version if right is not None else None,
                right_tag=right.version_tag if right is not None else None,
            )
            logger.error(error.message)
            raise error

        logger.debug(f"Allocated version {version} for tag {version_tag}")
        return version
