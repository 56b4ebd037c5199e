"""
Source formats recognised by the compiler.

The extension of each format is part of the build contract and must not
change: .avdl (IDL), .avsc (flat schema), .avpr (protocol document).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


class SchemaFormat(Enum):
    """Avro source format, keyed by file extension."""

    IDL = ".avdl"
    SCHEMA = ".avsc"
    PROTOCOL = ".avpr"

    @property
    def extension(self) -> str:
        return self.value

    @classmethod
    def for_path(cls, path: Path) -> Optional[SchemaFormat]:
        """Infer the format of a file from its extension, or None."""
        suffix = Path(path).suffix
        for fmt in cls:
            if fmt.value == suffix:
                return fmt
        return None


# Compilation order within one source directory
COMPILE_ORDER = (SchemaFormat.IDL, SchemaFormat.SCHEMA, SchemaFormat.PROTOCOL)


@dataclass(frozen=True)
class SchemaFile:
    """A discovered source file and its format."""

    path: Path
    format: SchemaFormat

    @classmethod
    def from_path(cls, path: Path) -> SchemaFile:
        """Build a SchemaFile, inferring the format from the extension.

        Raises:
            ValueError: If the extension is not an Avro source extension
        """
        fmt = SchemaFormat.for_path(path)
        if fmt is None:
            raise ValueError(f"Not an Avro source file: {path}")
        return cls(path=Path(path), format=fmt)
