# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""Version tags, ordering values and versioned models."""

from .allocator import RESERVE, VersionAllocator
from .models import Definition, Deployment, Resource, RunningInstance
from .resource_names import parse_version_tag
from .tags import compare_tags, normalize_tag, tag_sort_key, tags_equal

__all__ = [
    "RESERVE",
    "VersionAllocator",
    "Definition",
    "Deployment",
    "Resource",
    "RunningInstance",
    "parse_version_tag",
    "compare_tags",
    "normalize_tag",
    "tag_sort_key",
    "tags_equal",
]
