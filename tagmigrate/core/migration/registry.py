# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Migration registry.

A migration descriptor says how to move running instances of a workflow key
from one version tag to another. Descriptors are collected once (directly or
with ``MigrationCatalog``) and frozen into a ``MigrationRegistry`` that the
auto-migration driver reads for the rest of its life.

Per key the descriptors form a graph on tags. A tag may have at most one
outgoing migration and the graph may not contain cycles, so following
migrations from any tag always ends.
"""

import importlib
import logging
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator

from ..exceptions import MigrationRegistrationError
from ..versioning.models import Definition
from ..versioning.tags import normalize_tag

logger = logging.getLogger("tagmigrate.migration.registry")


class MigrationContext(BaseModel):
    """Everything a migration action gets to work with."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    engine: Any
    source: Definition
    target: Definition
    instance_ids: Tuple[str, ...]


MigrationAction = Callable[[MigrationContext], Any]


class MigrationDescriptor(BaseModel):
    """Moves instances of ``key`` from tag ``source`` to tag ``target``.

    Without an ``action`` the instances are simply rebound to the target
    definition.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    key: str
    source: Optional[str] = None
    target: Optional[str] = None
    action: Optional[MigrationAction] = None
    name: Optional[str] = None

    @field_validator("source", "target", mode="before")
    @classmethod
    def normalize(cls, v):
        return normalize_tag(v)

    @field_validator("key")
    @classmethod
    def validate_key(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("migration key must not be empty")
        return v

    def describe(self) -> str:
        return f"{self.key} {self.source} -> {self.target}"


class MigrationRegistry:
    """
    Immutable index of migration descriptors grouped by workflow key.

    Raises:
        MigrationRegistrationError: If two descriptors share a key and source
            tag, or a key's migrations form a cycle
    """

    def __init__(self, migrations: Iterable[MigrationDescriptor] = ()):
        by_key: Dict[str, List[MigrationDescriptor]] = {}
        for migration in migrations:
            if not isinstance(migration, MigrationDescriptor):
                raise TypeError(f"Expected MigrationDescriptor, got {type(migration).__name__}")
            by_key.setdefault(migration.key, []).append(migration)

        for key, descriptors in by_key.items():
            self._validate(key, descriptors)

        self._by_key = MappingProxyType(
            {key: tuple(descriptors) for key, descriptors in by_key.items()}
        )
        logger.debug(f"Registered {len(self)} migrations for {len(self._by_key)} keys")

    @staticmethod
    def _validate(key: str, descriptors: List[MigrationDescriptor]) -> None:
        edges: Dict[Optional[str], Optional[str]] = {}
        for descriptor in descriptors:
            if descriptor.source in edges:
                raise MigrationRegistrationError(
                    f"More than one migration for {key} from version {descriptor.source}",
                    key=key,
                    details={
                        "source": descriptor.source,
                        "targets": [edges[descriptor.source], descriptor.target],
                    },
                )
            edges[descriptor.source] = descriptor.target

        # Each tag has at most one outgoing edge, so walking from every source
        # either leaves the graph or comes back to a tag already on the path.
        for start in edges:
            path = [start]
            current = edges[start]
            while current in edges:
                if current in path:
                    cycle = path[path.index(current):] + [current]
                    raise MigrationRegistrationError(
                        f"Cycle detected in migrations for {key}: "
                        + " -> ".join(str(tag) for tag in cycle),
                        key=key,
                        details={"cycle": cycle},
                    )
                path.append(current)
                current = edges[current]

    def migrations_for(self, key: str) -> List[MigrationDescriptor]:
        """Migrations registered for a key (empty list if none)."""
        return list(self._by_key.get(key, ()))

    def keys(self) -> List[str]:
        return list(self._by_key)

    def __contains__(self, key: object) -> bool:
        return key in self._by_key

    def __iter__(self) -> Iterator[MigrationDescriptor]:
        for descriptors in self._by_key.values():
            yield from descriptors

    def __len__(self) -> int:
        return sum(len(descriptors) for descriptors in self._by_key.values())

    @classmethod
    def coerce(cls, source: Any) -> "MigrationRegistry":
        """Build a registry from a registry, a catalog or an iterable of descriptors."""
        if isinstance(source, MigrationRegistry):
            return source
        if isinstance(source, MigrationCatalog):
            return source.build()
        if callable(source) and not isinstance(source, type):
            return cls.coerce(source())
        try:
            return cls(source)
        except TypeError as e:
            raise MigrationRegistrationError(
                f"Cannot build migrations from {type(source).__name__}", cause=e
            ) from e


class MigrationCatalog:
    """
    Mutable collection of descriptors, frozen with ``build()``.

    Usage:
        catalog = MigrationCatalog()

        @catalog.migration("invoice", "1.0.0", "1.1.0")
        def add_approval_step(context):
            ...

        catalog.add("invoice", "1.1.0", "2.0.0")  # plain rebind
        registry = catalog.build()
    """

    def __init__(self):
        self._descriptors: List[MigrationDescriptor] = []

    def add(
        self,
        key: str,
        source: Optional[str],
        target: Optional[str],
        action: Optional[MigrationAction] = None,
        name: Optional[str] = None,
    ) -> MigrationDescriptor:
        descriptor = MigrationDescriptor(
            key=key, source=source, target=target, action=action, name=name
        )
        self._descriptors.append(descriptor)
        logger.info(f"Registered migration: {descriptor.describe()}")
        return descriptor

    def migration(
        self, key: str, source: Optional[str], target: Optional[str], name: Optional[str] = None
    ):
        """Decorator registering a function as a migration action."""
        def decorator(func: MigrationAction) -> MigrationAction:
            self.add(key, source, target, action=func, name=name or func.__name__)
            return func
        return decorator

    def build(self) -> MigrationRegistry:
        return MigrationRegistry(self._descriptors)

    def __len__(self) -> int:
        return len(self._descriptors)


def load_registry(spec: str) -> MigrationRegistry:
    """
    Import migrations from a ``package.module:attribute`` spec.

    The attribute may be a registry, a catalog, an iterable of descriptors or
    a zero-argument callable returning one of those.
    """
    module_name, _, attribute = spec.partition(":")
    if not module_name or not attribute:
        raise MigrationRegistrationError(
            f"Invalid migrations spec '{spec}', expected 'module:attribute'"
        )

    try:
        module = importlib.import_module(module_name)
        source = getattr(module, attribute)
    except (ImportError, AttributeError) as e:
        raise MigrationRegistrationError(
            f"Cannot load migrations from '{spec}'", cause=e
        ) from e

    return MigrationRegistry.coerce(source)
