# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Version tags from resource file names.

Convention:
    <base-name>[-<numeric-dotted-version>[-SNAPSHOT|-RELEASE]].<bpmn|bpmn20.xml|zip>

Examples:
    loan-app-completed-notification.bpmn  -> None
    invoice-approval-1.2.3.bpmn20.xml     -> "1.2.3"
    some-process-1.2.3.4-SNAPSHOT.bpmn    -> "1.2.3.4-SNAPSHOT"
"""

import re
from typing import Optional

from ..exceptions import MalformedResourceName

RESOURCE_NAME = re.compile(
    r"^(.+?)(?:[a-zA-Z-]+-(\d[\d.]*?(-(SNAPSHOT|RELEASE))?))?\.(bpmn?|bpmn20\.xml?|zip)$"
)


def resource_file_name(resource_name: str) -> str:
    """Strip directories from a resource path (both separators)."""
    return re.split(r"[\\/]", resource_name)[-1]


def parse_version_tag(resource_name: str) -> Optional[str]:
    """
    Extract the version tag from a resource name.

    Args:
        resource_name: File name or path of the resource

    Returns:
        The tag, or None when the name carries no version

    Raises:
        MalformedResourceName: If the name does not follow the convention
    """
    if resource_name is None:
        raise MalformedResourceName(str(resource_name))

    match = RESOURCE_NAME.match(resource_file_name(resource_name))
    if match is None:
        raise MalformedResourceName(resource_name)
    return match.group(2)
