"""
Schema module for avrogen.

This module provides the Avro type system used by the compilers:
- Type model (records, enums, fixed, arrays, maps, unions, protocols)
- JSON parser for .avsc and .avpr documents
- IDL parser for .avdl files
- Type registry with snapshot/reset discipline

Invariants:
    - A fullname is defined at most once per registry
    - Compilers parse into snapshots, never into the global registry
    - Parse errors carry the source path and, where known, the line

How to change safely:
    - Keep "Undefined name" as the prefix of unresolved-reference errors
    - Only reset the global registry on an explicit clean
"""

from .idl import IdlParser
from .parser import SchemaParser, is_valid_default, read_source
from .registry import TypeRegistry, get_registry, reset_registry, snapshot_registry
from .types import (
    ArraySchema,
    EnumSchema,
    Field,
    FixedSchema,
    MapSchema,
    Message,
    NamedSchema,
    PrimitiveSchema,
    Protocol,
    RecordSchema,
    Schema,
    UnionSchema,
)

__all__ = [
    # Types
    "Schema",
    "PrimitiveSchema",
    "NamedSchema",
    "RecordSchema",
    "EnumSchema",
    "FixedSchema",
    "ArraySchema",
    "MapSchema",
    "UnionSchema",
    "Field",
    "Message",
    "Protocol",
    # Parsing
    "SchemaParser",
    "IdlParser",
    "is_valid_default",
    "read_source",
    # Registry
    "TypeRegistry",
    "get_registry",
    "snapshot_registry",
    "reset_registry",
]
