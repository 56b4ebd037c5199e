"""
Format compilers.

One compiler per source format, all sharing the contract:

    compile(files, options, snapshot, source_root, target) -> CompileResult

Failure policy differs by format and is intentional:
    - IDL (.avdl) and protocol documents (.avpr) are fail-fast: any parse or
      read error is raised with the offending path
    - Flat schemas (.avsc) are compiled as one batch with per-file isolation:
      a failing file is logged and reported in CompileResult.errors, and the
      rest of the batch proceeds

Invariants:
    - Compilers never touch the global registry; the batch compiler only
      adds to the snapshot it was given
    - A flat schema that fails (parse or namespace layout) contributes
      neither generated sources nor types
    - Writing a generated source is fatal on failure for every format

How to change safely:
    - Keep the asymmetric failure policy; builds rely on it
    - New formats need an entry in COMPILERS and in formats.COMPILE_ORDER
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Sequence

from ..codegen import SourceGenerator
from ..config import CompileOptions
from ..errors import AvroGenError, NamespaceLayoutError
from ..schema.idl import IdlParser
from ..schema.parser import SchemaParser
from ..schema.registry import TypeRegistry
from ..schema.types import NamedSchema
from .formats import SchemaFile, SchemaFormat

logger = logging.getLogger(__name__)


@dataclass
class CompileResult:
    """Outcome of one compiler invocation.

    Attributes:
        written: Generated files this invocation wrote (or found up to date)
        errors: Per-file errors that were isolated rather than raised
    """

    written: List[Path] = field(default_factory=list)
    errors: List[AvroGenError] = field(default_factory=list)

    def extend(self, other: CompileResult) -> None:
        self.written.extend(other.written)
        self.errors.extend(other.errors)


class IdlCompiler:
    """Compiles .avdl files one at a time, failing fast."""

    def compile(
        self,
        files: Sequence[SchemaFile],
        options: CompileOptions,
        snapshot: TypeRegistry,
        source_root: Path,
        target: Path,
    ) -> CompileResult:
        generator = SourceGenerator(options)
        result = CompileResult()
        for source in files:
            logger.info(f"Compiling Avro IDL {source.path}")
            protocol = IdlParser.parse_file(source.path)
            result.written += generator.write(generator.generate_protocol(protocol), target)
        return result


class ProtocolCompiler:
    """Compiles .avpr files one at a time, failing fast."""

    def compile(
        self,
        files: Sequence[SchemaFile],
        options: CompileOptions,
        snapshot: TypeRegistry,
        source_root: Path,
        target: Path,
    ) -> CompileResult:
        generator = SourceGenerator(options)
        result = CompileResult()
        for source in files:
            logger.info(f"Compiling Avro protocol {source.path}")
            protocol = SchemaParser(TypeRegistry()).parse_protocol_file(source.path)
            result.written += generator.write(generator.generate_protocol(protocol), target)
        return result


class SchemaBatchCompiler:
    """Compiles all .avsc files of a source directory as one batch.

    Files may reference types defined in sibling files, in any discovery
    order: each round parses every pending file against a scratch copy of
    the snapshot, and files that fail are retried in the next round as
    long as the previous round made progress.

    Example:
        >>> result = SchemaBatchCompiler().compile(
        ...     files, CompileOptions(), snapshot_registry(), root, target
        ... )
        >>> [str(e) for e in result.errors]
        []
    """

    def compile(
        self,
        files: Sequence[SchemaFile],
        options: CompileOptions,
        snapshot: TypeRegistry,
        source_root: Path,
        target: Path,
    ) -> CompileResult:
        generator = SourceGenerator(options)
        result = CompileResult()
        pending = list(files)
        failures: Dict[Path, AvroGenError] = {}

        while pending:
            retry: List[SchemaFile] = []
            for source in pending:
                scratch = snapshot.snapshot()
                try:
                    schema = SchemaParser(scratch).parse_file(source.path)
                except AvroGenError as e:
                    failures[source.path] = e
                    retry.append(source)
                    continue
                failures.pop(source.path, None)

                if options.use_namespace and isinstance(schema, NamedSchema):
                    layout_error = self._check_layout(source.path, source_root, schema)
                    if layout_error is not None:
                        logger.error(str(layout_error))
                        result.errors.append(layout_error)
                        continue

                new_types = [t for t in scratch if t.fullname not in snapshot]
                logger.info(f"Compiling Avro schema {source.path}")
                result.written += generator.write(generator.generate_types(new_types), target)
                snapshot.add_types(new_types)

            if len(retry) == len(pending):
                break
            pending = retry

        for error in failures.values():
            logger.error(f"Failed to compile Avro schema: {error.message}")
            result.errors.append(error)
        return result

    @staticmethod
    def _check_layout(
        path: Path, source_root: Path, schema: NamedSchema
    ) -> NamespaceLayoutError | None:
        """Check that a schema file lives at <namespace dirs>/<Name>.avsc."""
        expected = schema.fullname.replace(".", "/") + SchemaFormat.SCHEMA.extension
        try:
            actual = Path(path).relative_to(source_root).as_posix()
        except ValueError:
            actual = Path(path).as_posix()
        if actual != expected:
            return NamespaceLayoutError(Path(path), expected, schema.fullname)
        return None


# Closed dispatch table, keyed by format
COMPILERS = {
    SchemaFormat.IDL: IdlCompiler(),
    SchemaFormat.SCHEMA: SchemaBatchCompiler(),
    SchemaFormat.PROTOCOL: ProtocolCompiler(),
}
