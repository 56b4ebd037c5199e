"""
avrogen - Incremental Avro source generator.

This package compiles Avro definitions into Python modules:
- .avdl IDL files and .avpr protocol documents into protocol interfaces
  plus one module per named type
- .avsc schema files, compiled per directory as one batch so files can
  reference each other's types

Architecture:
    source dirs ──▶ Scanner ──▶ IncrementalCache ──(stale)──▶ Compilers ──▶ output dir
                                      ▲                           │
                                      └──── CacheEntry ◀──────────┘
                                                          TypeRegistry snapshot

Invariants:
    - Unchanged source directories are never recompiled
    - Compilers work on registry snapshots; only clean resets the registry
    - Only the .avsc batch isolates per-file failures

How to change safely:
    - Keep file extensions and option spellings stable
    - Keep generated module paths a function of the type's fullname
"""

from .config import CompileOptions, FieldVisibility, GeneratorSettings, StringType
from .generator import AvroGenerator

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "AvroGenerator",
    "CompileOptions",
    "FieldVisibility",
    "GeneratorSettings",
    "StringType",
]
