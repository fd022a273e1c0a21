# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Tagmigrate Exception Hierarchy

Exception Hierarchy:
    TagMigrateError (base)
    ├── ConfigError
    ├── DeploymentError
    │   ├── MalformedResourceName
    │   ├── TagMismatch
    │   ├── AllocationExhausted
    │   ├── DefinitionParseError
    │   └── DeploymentBatchError
    ├── MigrationError
    │   ├── MigrationRegistrationError
    │   ├── MissingTargetDefinition
    │   ├── MigrationActionFailure
    │   └── MigrationPassError
    └── LockUnavailable
"""

from typing import Any, Dict, List, Optional

# ============================================================================
# Base Exception
# ============================================================================


class TagMigrateError(Exception):
    """Base exception for all tagmigrate errors"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        result = {
            "type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }

        if self.cause:
            result["cause"] = {
                "type": self.cause.__class__.__name__,
                "message": str(self.cause),
            }

        return result

    def __str__(self):
        base = self.message
        if self.details:
            base += f" | Details: {self.details}"
        if self.cause:
            base += f" | Caused by: {self.cause}"
        return base


class ConfigError(TagMigrateError):
    """Configuration could not be loaded or validated"""


class LockUnavailable(TagMigrateError):
    """The exclusive store lock is required but could not be acquired"""


# ============================================================================
# Deployment Errors
# ============================================================================


class DeploymentError(TagMigrateError):
    """Deployment-related errors"""

    def __init__(
        self,
        message: str,
        resource_name: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.resource_name = resource_name

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["resource_name"] = self.resource_name
        return result


class MalformedResourceName(DeploymentError):
    """Resource file name does not follow the versioned naming convention"""

    def __init__(self, resource_name: str, **kwargs):
        super().__init__(
            f"Bad resource name: {resource_name}", resource_name=resource_name, **kwargs
        )


class DefinitionParseError(DeploymentError):
    """Resource content could not be turned into definitions"""


class TagMismatch(DeploymentError):
    """Definition's declared version tag differs from its resource's tag"""

    def __init__(
        self,
        deployment_name: Optional[str],
        definition_key: str,
        definition_tag: Optional[str],
        resource_name: str,
        resource_tag: Optional[str],
        **kwargs,
    ):
        super().__init__(
            f"Deployment {deployment_name} version mismatch: definition "
            f"{definition_key} #{definition_tag} doesn't match resource "
            f"{resource_name} #{resource_tag}",
            resource_name=resource_name,
            **kwargs,
        )
        self.definition_key = definition_key
        self.definition_tag = definition_tag
        self.resource_tag = resource_tag


class AllocationExhausted(DeploymentError):
    """No ordering value fits strictly between the computed neighbours"""

    def __init__(
        self,
        value: int,
        left: Optional[int] = None,
        left_tag: Optional[str] = None,
        right: Optional[int] = None,
        right_tag: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            f"Failed to get version between {left} ({left_tag}) < {value} "
            f"< {right} ({right_tag})",
            **kwargs,
        )
        self.value = value
        self.left = left
        self.left_tag = left_tag
        self.right = right
        self.right_tag = right_tag

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result.update(
            {
                "value": self.value,
                "left": self.left,
                "left_tag": self.left_tag,
                "right": self.right,
                "right_tag": self.right_tag,
            }
        )
        return result


class DeploymentBatchError(DeploymentError):
    """One or more deployment units of a batch failed"""

    def __init__(
        self,
        errors: List[TagMigrateError],
        deployed: Optional[List[Any]] = None,
        **kwargs,
    ):
        super().__init__(
            f"{len(errors)} deployment unit(s) failed: "
            + "; ".join(error.message for error in errors),
            **kwargs,
        )
        self.errors = errors
        self.deployed = deployed or []

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["errors"] = [error.to_dict() for error in self.errors]
        result["deployed"] = len(self.deployed)
        return result


# ============================================================================
# Migration Errors
# ============================================================================


class MigrationError(TagMigrateError):
    """Migration-related errors"""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        instance_id: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.key = key
        self.instance_id = instance_id

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result.update({"key": self.key, "instance_id": self.instance_id})
        return result


class MigrationRegistrationError(MigrationError):
    """Registered migrations are ambiguous or cyclic"""


class MissingTargetDefinition(MigrationError):
    """A migration points at a version tag that has no deployed definition"""


class MigrationActionFailure(MigrationError):
    """A migration action raised while moving an instance"""

    def __init__(
        self,
        message: str,
        source_id: Optional[str] = None,
        target_id: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.source_id = source_id
        self.target_id = target_id

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result.update({"source_id": self.source_id, "target_id": self.target_id})
        return result


class MigrationPassError(MigrationError):
    """Some instances failed during an auto-migration pass"""

    def __init__(self, failures: List[MigrationError], result: Any = None, **kwargs):
        super().__init__(
            f"{len(failures)} instance(s) failed to migrate: "
            + "; ".join(failure.message for failure in failures),
            **kwargs,
        )
        self.failures = failures
        self.result = result

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["failures"] = [failure.to_dict() for failure in self.failures]
        return result
