"""
Compiler module for avrogen.

This module turns Avro source directories into generated sources:
- Format detection (SchemaFormat, SchemaFile)
- Source directory scanning
- Format compilers (IDL, flat-schema batch, protocol document)
- Per-directory orchestration

Invariants:
    - Per directory, formats compile in order: IDL, schema batch, protocol
    - Only the flat-schema batch isolates per-file failures
    - Compilers work on a registry snapshot, never the global registry

How to change safely:
    - Keep file extensions stable; they are part of the build contract
    - Add formats through the COMPILERS table
"""

from .compilers import (
    COMPILERS,
    CompileResult,
    IdlCompiler,
    ProtocolCompiler,
    SchemaBatchCompiler,
)
from .formats import COMPILE_ORDER, SchemaFile, SchemaFormat
from .orchestrator import CompilationResult, compile_source_dir
from .scanner import find_files, find_inputs, find_outputs, scan_source_dir

__all__ = [
    # Formats
    "SchemaFormat",
    "SchemaFile",
    "COMPILE_ORDER",
    # Scanning
    "find_files",
    "find_inputs",
    "find_outputs",
    "scan_source_dir",
    # Compilers
    "CompileResult",
    "IdlCompiler",
    "SchemaBatchCompiler",
    "ProtocolCompiler",
    "COMPILERS",
    # Orchestration
    "CompilationResult",
    "compile_source_dir",
]
