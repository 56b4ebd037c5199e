"""
Per-directory compilation.

compile_source_dir() runs the three format compilers over one source
directory in a fixed order (IDL, flat-schema batch, protocol documents),
each against the same registry snapshot, then enumerates the whole
destination tree for generated sources.

Invariants:
    - One snapshot per compilation; it is discarded afterwards
    - The reported outputs are a scan of the destination tree, not the
      compilers' own lists, so fan-out from one input needs no bookkeeping
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from ..config import CompileOptions
from ..errors import AvroGenError
from ..schema.registry import TypeRegistry, snapshot_registry
from .compilers import COMPILERS, CompileResult
from .scanner import find_outputs, scan_source_dir

logger = logging.getLogger(__name__)


@dataclass
class CompilationResult:
    """Outcome of compiling one source directory.

    Attributes:
        outputs: Every generated source found under the destination afterwards
        written: Generated sources this directory's compilers produced
        errors: Isolated per-file errors from the flat-schema batch
    """

    outputs: List[Path] = field(default_factory=list)
    written: List[Path] = field(default_factory=list)
    errors: List[AvroGenError] = field(default_factory=list)


def compile_source_dir(
    source_dir: Path,
    target: Path,
    options: CompileOptions,
    snapshot: Optional[TypeRegistry] = None,
) -> CompilationResult:
    """Compile every Avro source under ``source_dir`` into ``target``.

    Args:
        source_dir: Root of the Avro sources
        target: Destination directory for generated modules
        options: Compile options
        snapshot: Type context to start from (default: a fresh snapshot of
            the global registry)

    Returns:
        CompilationResult with the destination scan, written files and errors

    Raises:
        SchemaParseError: If an IDL or protocol document fails to parse
        SchemaIOError: If a source cannot be read (IDL, protocol) or a
            generated file cannot be written
    """
    source_dir = Path(source_dir)
    target = Path(target)
    snapshot = snapshot if snapshot is not None else snapshot_registry()
    logger.info(f"Avro compiler using stringType={options.string_type.value}")

    combined = CompileResult()
    for fmt, files in scan_source_dir(source_dir).items():
        if files:
            combined.extend(COMPILERS[fmt].compile(files, options, snapshot, source_dir, target))

    return CompilationResult(
        outputs=find_outputs(target),
        written=sorted(set(combined.written)),
        errors=combined.errors,
    )
