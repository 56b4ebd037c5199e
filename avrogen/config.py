"""
Configuration management for avrogen.

Settings come from three places, highest precedence first:
- explicit values (CLI flags, or a YAML project file via from_yaml())
- AVROGEN_* environment variables
- defaults, which mirror a conventional project layout

This module provides the CompileOptions value object handed to every
compiler and the GeneratorSettings class that drives a whole build.

Invariants:
    - CompileOptions is frozen; it is never mutated mid-compilation
    - All settings have defaults that work for a standard project layout
    - Option names accept the same spellings as the classic build plugin
      (CharSequence/String/Utf8, private/public/public_deprecated)

How to change safely:
    - Add new settings with defaults that keep existing builds unchanged
    - Keep option spellings stable; they appear in build files
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class StringType(Enum):
    """Python representation of Avro strings in generated code."""

    CHAR_SEQUENCE = "CharSequence"
    STRING = "String"
    UTF8 = "Utf8"

    @classmethod
    def from_str(cls, value: str) -> StringType:
        """Convert an option string to a StringType.

        Raises:
            ValueError: If value is not a valid string type
        """
        for kind in cls:
            if kind.value == value or kind.name == value:
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid string type '{value}'. Valid types: {valid}")


class FieldVisibility(Enum):
    """Visibility of record fields in generated code."""

    PRIVATE = "private"
    PUBLIC = "public"
    PUBLIC_DEPRECATED = "public_deprecated"

    @classmethod
    def from_str(cls, value: str) -> FieldVisibility:
        """Convert an option string to a FieldVisibility (case-insensitive).

        Raises:
            ValueError: If value is not a valid visibility
        """
        normalized = value.strip().lower()
        for kind in cls:
            if kind.value == normalized:
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid field visibility '{value}'. Valid values: {valid}")


class CacheStrategy(Enum):
    """How the incremental cache stamps input files."""

    LAST_MODIFIED = "last_modified"
    HASH = "hash"


@dataclass(frozen=True)
class CompileOptions:
    """Options shared by every format compiler.

    Attributes:
        string_type: Representation of Avro strings
        field_visibility: Visibility of generated record fields
        enable_decimal_logical_type: Map decimal logical types to decimal.Decimal
        use_namespace: Require schema file paths to mirror their namespace
    """

    string_type: StringType = StringType.CHAR_SEQUENCE
    field_visibility: FieldVisibility = FieldVisibility.PUBLIC_DEPRECATED
    enable_decimal_logical_type: bool = True
    use_namespace: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "string_type": self.string_type.value,
            "field_visibility": self.field_visibility.value,
            "enable_decimal_logical_type": self.enable_decimal_logical_type,
            "use_namespace": self.use_namespace,
        }


class GeneratorSettings(BaseSettings):
    """Settings for a complete generation run."""

    # Layout
    source_dirs: List[Path] = Field(default_factory=lambda: [Path("src/main/avro")])
    output_dir: Path = Field(default=Path("target/compiled_avro"))
    cache_dir: Path = Field(default=Path("target/.avrogen-cache"))

    # Compiler options
    string_type: StringType = Field(default=StringType.CHAR_SEQUENCE)
    field_visibility: FieldVisibility = Field(default=FieldVisibility.PUBLIC_DEPRECATED)
    enable_decimal_logical_type: bool = Field(default=True)
    use_namespace: bool = Field(default=False)

    # Incremental build
    cache_strategy: CacheStrategy = Field(default=CacheStrategy.LAST_MODIFIED)
    max_workers: int = Field(default=1, ge=1, description="Source directories compiled in parallel")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="text", description="text or json")

    model_config = {"env_prefix": "AVROGEN_"}

    @field_validator("string_type", mode="before")
    @classmethod
    def _parse_string_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return StringType.from_str(value)
        return value

    @field_validator("field_visibility", mode="before")
    @classmethod
    def _parse_field_visibility(cls, value: Any) -> Any:
        if isinstance(value, str):
            return FieldVisibility.from_str(value)
        return value

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        if value not in ("text", "json"):
            raise ValueError(f"Invalid log format '{value}'. Must be one of: text, json")
        return value

    @classmethod
    def from_yaml(cls, path: Path, **overrides: Any) -> GeneratorSettings:
        """Load settings from a YAML project file.

        Relative directories in the file are resolved against the file's
        directory. Keyword overrides win over file values, which win over
        the environment.

        Example:
            source_dirs: [src/main/avro, src/shared/avro]
            output_dir: build/generated
            string_type: String
            use_namespace: true
        """
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a mapping of settings")

        base = path.parent
        if "source_dirs" in data:
            data["source_dirs"] = [base / d for d in data["source_dirs"]]
        for key in ("output_dir", "cache_dir"):
            if key in data:
                data[key] = base / data[key]
        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**data)

    def compile_options(self) -> CompileOptions:
        """Freeze the compiler-facing subset of the settings."""
        return CompileOptions(
            string_type=self.string_type,
            field_visibility=self.field_visibility,
            enable_decimal_logical_type=self.enable_decimal_logical_type,
            use_namespace=self.use_namespace,
        )

    def log_config(self, target: Optional[logging.Logger] = None) -> None:
        """Log the effective configuration."""
        log = target or logger
        log.info(f"Source directories: {', '.join(str(d) for d in self.source_dirs)}")
        log.info(f"Output directory: {self.output_dir}")
        log.info(f"Cache: {self.cache_dir} (strategy={self.cache_strategy.value})")
        log.info(f"Compile options: {self.compile_options().to_dict()}")
