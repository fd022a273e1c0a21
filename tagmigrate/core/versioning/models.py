# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""Workflow versioning data models."""

import hashlib
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Resource(BaseModel):
    """A deployable file: BPMN XML or a zip of BPMN files."""

    model_config = ConfigDict(frozen=True)

    name: str
    content: bytes = b""

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.content).hexdigest()


class Deployment(BaseModel):
    """One atomic deployment unit."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: Optional[str] = None
    tenant_id: Optional[str] = None
    deployed_at: datetime = Field(default_factory=datetime.now)


class Definition(BaseModel):
    """A deployed, versioned workflow definition.

    ``version`` is the ordering value: 0 until the deployment pipeline assigns
    it, positive and unique within ``key`` once persisted.
    """

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    key: str
    version_tag: Optional[str] = None
    version: int = 0
    name: Optional[str] = None
    deployment_id: Optional[str] = None
    resource_name: Optional[str] = None
    tenant_id: Optional[str] = None

    def describe(self) -> str:
        return f"{self.id}#{self.version_tag}"


class RunningInstance(BaseModel):
    """An in-flight execution bound to exactly one definition."""

    model_config = ConfigDict(frozen=True)

    id: str
    definition_id: str
    definition_key: str
    business_key: Optional[str] = None
    started_at: datetime = Field(default_factory=datetime.now)
