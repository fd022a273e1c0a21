# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
BPMN Definition Parser

Turns deployable resources into (not yet versioned) definitions:
- ``.bpmn`` / ``.bpmn20.xml``: every executable <process> element
- ``.zip``: expanded into its BPMN entries first
"""

import io
import zipfile
import xml.etree.ElementTree as ET
from typing import List

from ..exceptions import DefinitionParseError
from ..versioning.models import Definition, Resource
from ..versioning.tags import normalize_tag

BPMN_SUFFIXES = (".bpmn", ".bpmn20.xml")
ARCHIVE_SUFFIXES = (".zip",)


def _local_name(name: str) -> str:
    """Strip the '{namespace}' prefix ElementTree puts on tags and attributes."""
    return name.rsplit("}", 1)[-1]


def is_archive(resource_name: str) -> bool:
    return resource_name.lower().endswith(ARCHIVE_SUFFIXES)


class BpmnParser:
    """Parser for BPMN 2.0 process definitions"""

    @staticmethod
    def expand(resource: Resource) -> List[Resource]:
        """
        Expand archives into their BPMN entries.

        Plain resources are returned unchanged. Entry names keep their path
        inside the archive.
        """
        if not is_archive(resource.name):
            return [resource]

        try:
            with zipfile.ZipFile(io.BytesIO(resource.content)) as archive:
                return [
                    Resource(name=info.filename, content=archive.read(info))
                    for info in archive.infolist()
                    if not info.is_dir() and info.filename.lower().endswith(BPMN_SUFFIXES)
                ]
        except zipfile.BadZipFile as e:
            raise DefinitionParseError(
                f"Couldn't read archive '{resource.name}'",
                resource_name=resource.name,
                cause=e,
            ) from e

    @staticmethod
    def parse(resource: Resource) -> List[Definition]:
        """
        Parse the executable processes declared by a BPMN resource.

        Non-BPMN resources (forms, scripts, ...) declare no definitions.

        Raises:
            DefinitionParseError: If the XML is malformed or a process has no id
        """
        if not resource.name.lower().endswith(BPMN_SUFFIXES):
            return []

        try:
            root = ET.fromstring(resource.content)
        except ET.ParseError as e:
            raise DefinitionParseError(
                f"Invalid BPMN in '{resource.name}': {e}",
                resource_name=resource.name,
                cause=e,
            ) from e

        definitions = []
        for element in root.iter():
            if _local_name(element.tag) != "process":
                continue

            attributes = {_local_name(k): v for k, v in element.attrib.items()}
            if attributes.get("isExecutable", "true").strip().lower() == "false":
                continue

            key = (attributes.get("id") or "").strip()
            if not key:
                raise DefinitionParseError(
                    f"Process without id in '{resource.name}'",
                    resource_name=resource.name,
                )

            definitions.append(
                Definition(
                    key=key,
                    name=attributes.get("name"),
                    version_tag=normalize_tag(attributes.get("versionTag")),
                    resource_name=resource.name,
                )
            )
        return definitions
