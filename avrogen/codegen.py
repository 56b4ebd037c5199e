"""
Code generation from the Avro schema model.

Generates one Python module per named type (record, error, enum, fixed) and
one per protocol interface. The schema is the source of truth - generated
code is always derived and carries the JSON it was generated from.

Layout:
    <destination>/<namespace as directories>/<Name>.py

Mapping of compile options:
    - string_type: String -> str, Utf8 -> bytes, CharSequence -> str | bytes
    - field_visibility: public -> plain dataclass fields;
      public_deprecated -> plain fields flagged deprecated in field metadata;
      private -> underscore-prefixed fields. All three get get_/set_ accessors.
    - enable_decimal_logical_type: decimal logical types become decimal.Decimal
      instead of bytes

Invariants:
    - Generated modules never import each other at runtime (only under
      TYPE_CHECKING), so cyclic references between types are safe
    - Output paths depend only on the type's fullname
    - Unchanged files are not rewritten; changed files are replaced atomically
    - Standard library modules are imported under private aliases that no
      class attribute of the module uses
"""

from __future__ import annotations

import json
import keyword
import logging
import math
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Iterable, List, Optional, Set

from .config import CompileOptions, FieldVisibility, StringType
from .errors import SchemaIOError
from .schema.types import (
    ArraySchema,
    EnumSchema,
    Field,
    FixedSchema,
    MapSchema,
    Message,
    NamedSchema,
    Protocol,
    RecordSchema,
    Schema,
    UnionSchema,
)

logger = logging.getLogger(__name__)

OUTPUT_EXTENSION = ".py"

_STRING_ANNOTATIONS = {
    StringType.STRING: "str",
    StringType.UTF8: "bytes",
    StringType.CHAR_SEQUENCE: "str | bytes",
}

_TIME_TYPES = {
    "date": "date",
    "time-millis": "time",
    "time-micros": "time",
    "timestamp-millis": "datetime",
    "timestamp-micros": "datetime",
    "local-timestamp-millis": "datetime",
    "local-timestamp-micros": "datetime",
}


@dataclass(frozen=True)
class GeneratedFile:
    """A generated module.

    Attributes:
        path: Path relative to the destination directory
        content: Module source
    """

    path: PurePosixPath
    content: str


def output_path(fullname: str) -> PurePosixPath:
    """Relative module path for a type or protocol fullname."""
    parts = fullname.split(".")
    return PurePosixPath(*parts[:-1], parts[-1] + OUTPUT_EXTENSION)


def python_name(name: str) -> str:
    """Escape Python keywords with a trailing underscore."""
    return f"{name}_" if keyword.iskeyword(name) else name


def _docstring(text: str, indent: str) -> List[str]:
    body = text.replace("\\", "\\\\").replace('"""', '\\"\\"\\"').strip()
    lines = body.splitlines() or [""]
    if len(lines) == 1:
        return [f'{indent}"""{lines[0]}"""']
    return (
        [f'{indent}"""{lines[0]}']
        + [f"{indent}{line}" if line else "" for line in lines[1:]]
        + [f'{indent}"""']
    )


def _is_decimal(schema: Schema) -> bool:
    if schema.logical_type != "decimal" or schema.type not in ("bytes", "fixed"):
        return False
    precision = schema.props.get("precision")
    scale = schema.props.get("scale", 0)
    return (
        isinstance(precision, int)
        and isinstance(scale, int)
        and precision > 0
        and 0 <= scale <= precision
    )


class _ModuleContext:
    """Tracks what a generated module needs to import.

    Standard library modules are imported under private aliases chosen to
    differ from every attribute the generated class binds, so a field named
    ``typing`` or ``dataclasses`` cannot shadow the module in the class body.
    """

    def __init__(self, owner: Optional[NamedSchema] = None, reserved: Iterable[str] = ()) -> None:
        self.owner = owner.fullname if owner else None
        self.aliases: Dict[str, str] = {}
        self.runtime: Set[str] = set()
        self.refs: Dict[str, str] = {}
        self._reserved = set(reserved)
        self._locals: Dict[str, str] = {}
        if owner is not None:
            self._locals[owner.name] = owner.fullname

    def module(self, name: str, runtime: bool = True) -> str:
        """Alias for a stdlib module; ``runtime=False`` imports it for annotations only."""
        if name not in self.aliases:
            alias = f"_{name}"
            while alias in self._reserved or alias in self._locals:
                alias += "_"
            self.aliases[name] = alias
        if runtime:
            self.runtime.add(name)
        return self.aliases[name]

    def ref(self, schema: NamedSchema) -> str:
        if schema.fullname == self.owner:
            return schema.name
        if schema.fullname in self.refs:
            return self.refs[schema.fullname]
        local = schema.name
        if self._locals.get(local, schema.fullname) != schema.fullname:
            local = schema.fullname.replace(".", "_")
        self._locals[local] = schema.fullname
        self.refs[schema.fullname] = local
        return local

    def runtime_imports(self) -> List[str]:
        return [f"import {m} as {self.aliases[m]}" for m in sorted(self.runtime)]

    def type_checking_imports(self) -> List[str]:
        lines = [
            f"    import {m} as {alias}"
            for m, alias in sorted(self.aliases.items())
            if m not in self.runtime
        ]
        refs = [
            f"    from {fullname} import {fullname.rpartition('.')[2]}"
            + ("" if local == fullname.rpartition(".")[2] else f" as {local}")
            for fullname, local in sorted(self.refs.items())
        ]
        if lines and refs:
            lines.append("")
        return lines + refs


class SourceGenerator:
    """Generates Python modules from parsed Avro definitions.

    Attributes:
        options: Compile options applied to every generated module

    Example:
        >>> generator = SourceGenerator(CompileOptions())
        >>> files = generator.generate_types(parsed_types)
        >>> written = generator.write(files, Path("target/compiled_avro"))
    """

    def __init__(self, options: CompileOptions) -> None:
        self.options = options

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate_types(self, types: Iterable[NamedSchema]) -> List[GeneratedFile]:
        return [self.generate_schema(t) for t in types]

    def generate_schema(self, schema: NamedSchema) -> GeneratedFile:
        """Generate the module for one named type."""
        if isinstance(schema, RecordSchema):
            content = self._record_module(schema)
        elif isinstance(schema, EnumSchema):
            content = self._enum_module(schema)
        elif isinstance(schema, FixedSchema):
            content = self._fixed_module(schema)
        else:
            raise TypeError(f"Cannot generate code for {schema.type}")
        return GeneratedFile(path=output_path(schema.fullname), content=content)

    def generate_protocol(self, protocol: Protocol) -> List[GeneratedFile]:
        """Generate modules for a protocol's types and its interface."""
        files = self.generate_types(protocol.types)
        files.append(
            GeneratedFile(
                path=output_path(protocol.fullname),
                content=self._protocol_module(protocol),
            )
        )
        return files

    def write(self, files: Iterable[GeneratedFile], destination: Path) -> List[Path]:
        """Write generated files under ``destination``.

        Files whose content is unchanged are left untouched. Changed files
        are staged next to the target and renamed over it, so concurrent
        readers never see a partial module.

        Returns:
            Paths of all files, written or already up to date

        Raises:
            SchemaIOError: If a file cannot be written
        """
        written = []
        for generated in files:
            target = Path(destination) / generated.path
            try:
                if not target.exists() or target.read_text(encoding="utf-8") != generated.content:
                    self._replace(target, generated.content)
                    logger.debug(f"Wrote {target}")
            except OSError as e:
                raise SchemaIOError(f"cannot write generated source: {e}", path=target) from e
            written.append(target)
        return written

    @staticmethod
    def _replace(target: Path, content: str) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=target.parent, prefix=f".{target.stem}.", suffix=".tmp", delete=False
        ) as tmp_file:
            tmp_file.write(content)
            tmp_path = Path(tmp_file.name)
        try:
            # Temp files are created 0600
            os.chmod(tmp_path, 0o644)
            os.replace(tmp_path, target)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise

    # ------------------------------------------------------------------
    # Type annotations
    # ------------------------------------------------------------------

    def annotation(self, schema: Schema, ctx: _ModuleContext) -> str:
        """Python annotation for a schema, as source text."""
        if isinstance(schema, UnionSchema):
            parts: List[str] = []
            for branch in schema.non_null():
                for part in self.annotation(branch, ctx).split(" | "):
                    if part not in parts:
                        parts.append(part)
            if schema.is_nullable:
                parts.append("None")
            return " | ".join(parts) if parts else "None"
        if isinstance(schema, ArraySchema):
            return f"list[{self.annotation(schema.items, ctx)}]"
        if isinstance(schema, MapSchema):
            key = _STRING_ANNOTATIONS[self.options.string_type]
            return f"dict[{key}, {self.annotation(schema.values, ctx)}]"
        if self.options.enable_decimal_logical_type and _is_decimal(schema):
            return f"{ctx.module('decimal', runtime=False)}.Decimal"
        if isinstance(schema, NamedSchema):
            return ctx.ref(schema)

        t = schema.type
        if schema.logical_type in _TIME_TYPES and t in ("int", "long"):
            return f"{ctx.module('datetime', runtime=False)}.{_TIME_TYPES[schema.logical_type]}"
        if t == "null":
            return "None"
        if t == "boolean":
            return "bool"
        if t in ("int", "long"):
            return "int"
        if t in ("float", "double"):
            return "float"
        if t == "bytes":
            return "bytes"
        if t == "string":
            return _STRING_ANNOTATIONS[self.options.string_type]
        raise TypeError(f"Unknown schema type: {t}")

    # ------------------------------------------------------------------
    # Modules
    # ------------------------------------------------------------------

    def _header(self, title: str, fullname: str, doc: Optional[str]) -> List[str]:
        text = title + "\n"
        if doc:
            text += "\n" + doc.strip() + "\n"
        text += (
            f"\nAuto-generated by avrogen from {fullname}.\n"
            "Do not edit directly - modify the Avro definition instead."
        )
        return _docstring(text, "") + ["", "from __future__ import annotations", ""]

    def _imports(self, ctx: _ModuleContext) -> List[str]:
        """Import block; call after everything else in the module is rendered."""
        checking = ctx.type_checking_imports()
        if checking:
            checking = ["", f"if {ctx.module('typing')}.TYPE_CHECKING:"] + checking
        return ctx.runtime_imports() + checking

    def _schema_method(self, constant: str, method: str, ctx: _ModuleContext) -> List[str]:
        return [
            "    @classmethod",
            f"    def {method}(cls) -> dict[str, {ctx.module('typing')}.Any]:",
            '        """Return the Avro definition this class was generated from."""',
            f"        return {ctx.module('json')}.loads({constant})",
        ]

    def _record_module(self, record: RecordSchema) -> str:
        visibility = self.options.field_visibility
        attrs = {f.name: self._attribute_name(f.name) for f in record.fields}
        ctx = _ModuleContext(record, reserved=attrs.values())
        kind = "error" if record.is_error else "record"

        body: List[str] = []
        accessors: List[str] = []
        for f in record.fields:
            annotation = self.annotation(f.schema, ctx)
            attr = attrs[f.name]
            if f.doc:
                body += [f"    # {line}" for line in f.doc.strip().splitlines()]
            body.append(f"    {attr}: {annotation}{self._field_value(f, visibility, ctx)}")
            accessors += self._accessors(f, attr, annotation)

        dataclasses_alias = ctx.module("dataclasses")
        decorator = f"@{dataclasses_alias}.dataclass(kw_only=True)"
        base = ""
        if record.is_error:
            decorator = f"@{dataclasses_alias}.dataclass(kw_only=True, eq=False)"
            base = "(Exception)"
        schema_method = self._schema_method("SCHEMA_JSON", "avro_schema", ctx)

        lines = self._header(f"{record.name} {kind}.", record.fullname, record.doc)
        lines += self._imports(ctx)
        lines += ["", f"SCHEMA_JSON = {json.dumps(json.dumps(record.to_json()))}", "", ""]
        lines += [decorator, f"class {record.name}{base}:"]
        lines += _docstring(record.doc or f"Avro {kind} {record.fullname}.", "    ")
        if body:
            lines += [""] + body
        lines += [""] + schema_method
        for accessor in accessors:
            lines += ["", accessor]
        return "\n".join(lines) + "\n"

    def _attribute_name(self, name: str) -> str:
        if self.options.field_visibility == FieldVisibility.PRIVATE:
            return f"_{name}"
        return python_name(name)

    def _field_value(self, f: Field, visibility: FieldVisibility, ctx: _ModuleContext) -> str:
        """The ``= ...`` part of a field declaration (possibly empty)."""
        args: List[str] = []
        if f.has_default:
            literal, mutable = self._default_literal(f.schema, f.default)
            if mutable:
                args.append(f"default_factory=lambda: {literal}")
            else:
                args.append(f"default={literal}")
        if visibility == FieldVisibility.PUBLIC_DEPRECATED:
            args.append('metadata={"deprecated": True}')
        if not args:
            return ""
        if len(args) == 1 and args[0].startswith("default="):
            return " = " + args[0][len("default="):]
        return f" = {ctx.module('dataclasses')}.field({', '.join(args)})"

    def _default_literal(self, schema: Schema, value: Any) -> tuple:
        """Render a JSON default as a Python literal; returns (source, is_mutable)."""
        if isinstance(schema, UnionSchema) and schema.schemas:
            schema = schema.schemas[0]
        if isinstance(value, (list, dict)):
            return repr(value), True
        if isinstance(value, str) and schema.type in ("bytes", "fixed"):
            return repr(value.encode("latin-1", errors="replace")), False
        if isinstance(value, float) and not math.isfinite(value):
            return f"float({str(value)!r})", False
        return repr(value), False

    def _accessors(self, f: Field, attr: str, annotation: str) -> List[str]:
        return [
            f"    def get_{f.name}(self) -> {annotation}:\n"
            f"        return self.{attr}",
            f"    def set_{f.name}(self, value: {annotation}) -> None:\n"
            f"        self.{attr} = value",
        ]

    def _enum_module(self, enum: EnumSchema) -> str:
        members = [python_name(symbol) for symbol in enum.symbols]
        ctx = _ModuleContext(enum, reserved=members)
        base = f"{ctx.module('enum')}.Enum"
        schema_method = self._schema_method("SCHEMA_JSON", "avro_schema", ctx)

        lines = self._header(f"{enum.name} enum.", enum.fullname, enum.doc)
        lines += self._imports(ctx)
        lines += ["", f"SCHEMA_JSON = {json.dumps(json.dumps(enum.to_json()))}", "", ""]
        lines += [f"class {enum.name}({base}):"]
        lines += _docstring(enum.doc or f"Avro enum {enum.fullname}.", "    ")
        lines.append("")
        lines += [f"    {member} = {json.dumps(symbol)}" for member, symbol in zip(members, enum.symbols)]
        if enum.symbols:
            lines.append("")
        lines += schema_method
        return "\n".join(lines) + "\n"

    def _fixed_module(self, fixed: FixedSchema) -> str:
        ctx = _ModuleContext(fixed)
        schema_method = self._schema_method("SCHEMA_JSON", "avro_schema", ctx)

        lines = self._header(f"{fixed.name} fixed.", fixed.fullname, fixed.doc)
        lines += self._imports(ctx)
        lines += ["", f"SCHEMA_JSON = {json.dumps(json.dumps(fixed.to_json()))}", "", ""]
        lines += [f"class {fixed.name}(bytes):"]
        lines += _docstring(fixed.doc or f"Avro fixed {fixed.fullname} ({fixed.size} bytes).", "    ")
        lines += [
            "",
            f"    SIZE = {fixed.size}",
            "",
            f"    def __new__(cls, value: bytes = bytes({fixed.size})) -> {fixed.name}:",
            "        if len(value) != cls.SIZE:",
            "            raise ValueError(",
            '                "%s requires %d bytes, got %d" % (cls.__name__, cls.SIZE, len(value))',
            "            )",
            "        return super().__new__(cls, value)",
            "",
        ]
        lines += schema_method
        return "\n".join(lines) + "\n"

    def _protocol_module(self, protocol: Protocol) -> str:
        ctx = _ModuleContext(reserved=[python_name(name) for name in protocol.messages])
        methods: List[str] = []
        for message in protocol.messages.values():
            methods += [""] + self._message_method(message, ctx)
        base = f"{ctx.module('typing')}.Protocol"
        schema_method = self._schema_method("PROTOCOL_JSON", "avro_protocol", ctx)

        lines = self._header(f"{protocol.name} protocol.", protocol.fullname, protocol.doc)
        lines += self._imports(ctx)
        lines += ["", f"PROTOCOL_JSON = {json.dumps(json.dumps(protocol.to_json()))}", "", ""]
        lines += [f"class {protocol.name}({base}):"]
        lines += _docstring(protocol.doc or f"Avro protocol {protocol.fullname}.", "    ")
        lines += methods
        lines += [""] + schema_method
        return "\n".join(lines) + "\n"

    def _message_method(self, message: Message, ctx: _ModuleContext) -> List[str]:
        params = ["self"] + [
            f"{python_name(p.name)}: {self.annotation(p.schema, ctx)}" for p in message.request
        ]
        returns = "None" if message.one_way else self.annotation(message.response, ctx)

        doc = message.doc or ("One-way message." if message.one_way else f"{message.name} message.")
        error_names = [
            ctx.ref(e) for e in message.errors if isinstance(e, NamedSchema)
        ]
        if error_names:
            doc += "\n\nRaises:\n" + "\n".join(f"    {name}" for name in error_names)

        lines = [f"    def {python_name(message.name)}({', '.join(params)}) -> {returns}:"]
        lines += _docstring(doc, "        ")
        lines.append("        ...")
        return lines
