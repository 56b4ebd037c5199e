"""
Error types for avrogen.

This module defines all exception types raised while compiling Avro sources:
- AvroGenError: Base exception
- SchemaParseError: Malformed IDL, protocol or schema document
- NamespaceLayoutError: Schema file location does not mirror its namespace
- SchemaIOError: Unreadable source or unwritable destination

Invariants:
    - All errors inherit from AvroGenError
    - Errors carry the offending file path when one is known
    - Error messages are actionable
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional


class AvroGenError(Exception):
    """Base exception for all avrogen errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "AVROGEN_ERROR"
        self.details = details or {}


class SchemaParseError(AvroGenError):
    """An Avro definition could not be parsed.

    Raised when:
    - JSON or IDL syntax is malformed
    - A referenced type name is undefined
    - A named type is defined twice
    - A field default does not match its type
    """

    def __init__(
        self,
        message: str,
        path: Optional[Path] = None,
        line: Optional[int] = None,
    ) -> None:
        location = ""
        if path is not None:
            location = f"{path}:{line}: " if line is not None else f"{path}: "
        elif line is not None:
            location = f"line {line}: "
        super().__init__(
            f"{location}{message}",
            code="PARSE_ERROR",
            details={"path": str(path) if path else None, "line": line},
        )
        self.reason = message
        self.path = path
        self.line = line

    def with_path(self, path: Path) -> SchemaParseError:
        """Return a copy of this error located in ``path``."""
        return SchemaParseError(self.reason, path=path, line=self.line)

    @property
    def is_undefined_name(self) -> bool:
        """Whether the error is an unresolved type reference."""
        return self.reason.startswith("Undefined name")


class NamespaceLayoutError(AvroGenError):
    """A schema file is not located where its namespace says it should be."""

    def __init__(self, path: Path, expected: str, fullname: str) -> None:
        super().__init__(
            f"{path}: type '{fullname}' must be declared in '{expected}'",
            code="NAMESPACE_LAYOUT_ERROR",
            details={"path": str(path), "expected": expected, "fullname": fullname},
        )
        self.path = path
        self.expected = expected
        self.fullname = fullname


class SchemaIOError(AvroGenError):
    """Reading a source or writing a generated file failed."""

    def __init__(self, message: str, path: Optional[Path] = None) -> None:
        super().__init__(
            f"{path}: {message}" if path else message,
            code="IO_ERROR",
            details={"path": str(path) if path else None},
        )
        self.path = path
