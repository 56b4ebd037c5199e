"""
Type registry for avrogen.

The TypeRegistry holds named Avro types keyed by fullname, together with the
two validation flags that govern parsing. One process-wide registry is shared
by every compilation; compilations never mutate it, they work on snapshots.

It provides:
- Registration and lookup of named types
- Namespace-aware name resolution
- Point-in-time snapshots (independent copies)
- Atomic reset of the process-wide registry on clean

Invariants:
    - A fullname is defined at most once per registry (define() raises)
    - snapshot() and reset_registry() each swap or read one reference
      under the module lock; callers never observe a torn registry
    - Types added to a snapshot are never published to the global registry

How to change safely:
    - Keep snapshot() a copy; never hand out the global instance to compilers
    - Only reset the global registry in response to an explicit clean

Example:
    >>> from avrogen.schema.registry import snapshot_registry
    >>> registry = snapshot_registry()
    >>> registry.add_types(parsed.types)  # visible to later files in the batch
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Union

from ..errors import SchemaParseError
from .types import NamedSchema

logger = logging.getLogger(__name__)


class TypeRegistry:
    """Named-type context for parsing Avro definitions.

    Thread-safety:
        - define(), add_types() and snapshot() hold an instance lock
        - Lookups are lock-free

    Attributes:
        validate: Whether names are validated while parsing
        validate_defaults: Whether field defaults are checked against their types

    Example:
        >>> registry = TypeRegistry()
        >>> registry.define(foo)
        >>> registry.resolve("Foo", "com.example") is foo
        True
    """

    def __init__(
        self,
        types: Optional[Union[Mapping[str, NamedSchema], Iterable[NamedSchema]]] = None,
        validate: bool = True,
        validate_defaults: bool = True,
    ) -> None:
        """Initialize a registry, optionally pre-populated with types."""
        self._types: Dict[str, NamedSchema] = {}
        self.validate = validate
        self.validate_defaults = validate_defaults
        self._lock = threading.Lock()
        if types is not None:
            self.add_types(types)

    def __len__(self) -> int:
        return len(self._types)

    def __contains__(self, fullname: object) -> bool:
        return fullname in self._types

    def __iter__(self) -> Iterator[NamedSchema]:
        return iter(list(self._types.values()))

    @property
    def types(self) -> Dict[str, NamedSchema]:
        """Copy of the fullname -> type mapping."""
        return dict(self._types)

    def names(self) -> List[str]:
        """Fullnames of all registered types, in definition order."""
        return list(self._types)

    def get(self, fullname: str) -> Optional[NamedSchema]:
        return self._types.get(fullname)

    def resolve(self, name: str, namespace: Optional[str] = None) -> Optional[NamedSchema]:
        """Resolve a type reference as written in a schema.

        A dotted name is looked up as is. A simple name is looked up in
        ``namespace`` first, then in the null namespace.
        """
        if "." in name:
            return self._types.get(name)
        if namespace:
            found = self._types.get(f"{namespace}.{name}")
            if found is not None:
                return found
        return self._types.get(name)

    def define(self, schema: NamedSchema) -> None:
        """Register a newly parsed named type.

        Raises:
            SchemaParseError: If the fullname is already defined
        """
        with self._lock:
            if schema.fullname in self._types:
                raise SchemaParseError(f"Can't redefine: {schema.fullname}")
            self._types[schema.fullname] = schema
        logger.debug(f"Defined type {schema.fullname}")

    def add_types(
        self, types: Union[Mapping[str, NamedSchema], Iterable[NamedSchema]]
    ) -> None:
        """Add (or replace) types, keyed by their fullname."""
        values = types.values() if isinstance(types, Mapping) else types
        with self._lock:
            for schema in values:
                self._types[schema.fullname] = schema

    def snapshot(self) -> TypeRegistry:
        """Return an independent copy of the types and validation flags."""
        with self._lock:
            types = dict(self._types)
        return TypeRegistry(
            types, validate=self.validate, validate_defaults=self.validate_defaults
        )


# Global registry instance
_global_registry = TypeRegistry()
_registry_lock = threading.Lock()


def get_registry() -> TypeRegistry:
    """Get the process-wide registry.

    Collaborators may seed it with shared types via add_types(); compilers
    only ever see snapshots of it.
    """
    with _registry_lock:
        return _global_registry


def snapshot_registry() -> TypeRegistry:
    """Atomically read the global registry and return a private copy of it."""
    with _registry_lock:
        registry = _global_registry
    return registry.snapshot()


def reset_registry() -> None:
    """Replace the global registry with a new, empty one.

    Called on an explicit clean; never implicitly.
    """
    global _global_registry
    with _registry_lock:
        _global_registry = TypeRegistry()
    logger.info("Type registry reset")
