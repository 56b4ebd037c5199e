"""
Avro JSON parser for schema (.avsc) and protocol (.avpr) documents.

The parser turns decoded JSON into the schema model, registering every named
type it meets in a TypeRegistry. References to named types are resolved
against that registry, so a registry pre-populated with previously parsed
types lets one document use types defined in another.

Invariants:
    - Named types are registered before their fields are parsed,
      so recursive records resolve
    - A parse failure may leave partial definitions in the registry;
      callers that need atomicity parse into a snapshot
    - Defaults are validated only when registry.validate_defaults is set

How to change safely:
    - Keep error messages starting with "Undefined name" for unresolved
      references; batch compilation retries on them
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..errors import SchemaIOError, SchemaParseError
from .registry import TypeRegistry
from .types import (
    FIELD_ORDERS,
    PRIMITIVE_TYPES,
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
    split_name,
)

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Attributes with a meaning of their own; everything else is kept as a prop
_RESERVED_ATTRS = frozenset(
    {"type", "name", "namespace", "doc", "aliases", "fields", "symbols", "size",
     "items", "values", "default"}
)
_RESERVED_FIELD_ATTRS = frozenset({"name", "type", "doc", "default", "order", "aliases"})


def read_source(path: Path) -> str:
    """Read a source file as UTF-8.

    Raises:
        SchemaIOError: If the file cannot be read
    """
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise SchemaIOError(f"cannot read source: {e}", path=Path(path)) from e


def is_valid_default(schema: Schema, value: Any) -> bool:
    """Check a decoded JSON default against a schema.

    Unions are checked against their first branch.
    """
    t = schema.type
    if t == "null":
        return value is None
    if t == "boolean":
        return isinstance(value, bool)
    if t in ("int", "long"):
        return isinstance(value, int) and not isinstance(value, bool)
    if t in ("float", "double"):
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if t in ("bytes", "string", "fixed"):
        return isinstance(value, str)
    if isinstance(schema, EnumSchema):
        return isinstance(value, str) and value in schema.symbols
    if isinstance(schema, ArraySchema):
        return isinstance(value, list) and all(is_valid_default(schema.items, v) for v in value)
    if isinstance(schema, MapSchema):
        return isinstance(value, dict) and all(
            is_valid_default(schema.values, v) for v in value.values()
        )
    if isinstance(schema, UnionSchema):
        return bool(schema.schemas) and is_valid_default(schema.schemas[0], value)
    if isinstance(schema, RecordSchema):
        if not isinstance(value, dict):
            return False
        for f in schema.fields:
            if f.name in value:
                if not is_valid_default(f.schema, value[f.name]):
                    return False
            elif not f.has_default:
                return False
        return True
    return False


class SchemaParser:
    """Parser for Avro JSON documents.

    Attributes:
        registry: Named types available to, and defined by, this parser

    Example:
        >>> parser = SchemaParser(TypeRegistry())
        >>> schema = parser.parse('{"type": "record", "name": "Foo", "fields": []}')
        >>> schema.fullname
        'Foo'
    """

    def __init__(self, registry: Optional[TypeRegistry] = None) -> None:
        self.registry = registry if registry is not None else TypeRegistry()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def parse(self, text: str) -> Schema:
        """Parse a schema document."""
        return self.parse_data(_load_json(text))

    def parse_file(self, path: Path) -> Schema:
        """Parse a schema file, attaching the path to any parse error."""
        text = read_source(path)
        try:
            return self.parse(text)
        except SchemaParseError as e:
            raise e.with_path(Path(path)) from e

    def parse_protocol(self, text: str) -> Protocol:
        """Parse a protocol document."""
        return self.parse_protocol_data(_load_json(text))

    def parse_protocol_file(self, path: Path) -> Protocol:
        """Parse a protocol file, attaching the path to any parse error."""
        text = read_source(path)
        try:
            return self.parse_protocol(text)
        except SchemaParseError as e:
            raise e.with_path(Path(path)) from e

    # ------------------------------------------------------------------
    # Schemas
    # ------------------------------------------------------------------

    def parse_data(self, data: Any, namespace: Optional[str] = None) -> Schema:
        """Parse decoded JSON in the context of an enclosing namespace."""
        if isinstance(data, str):
            if data in PRIMITIVE_TYPES:
                return PrimitiveSchema(type=data)
            named = self.registry.resolve(data, namespace)
            if named is None:
                raise SchemaParseError(f"Undefined name: {data}")
            return named
        if isinstance(data, list):
            return self.make_union([self.parse_data(d, namespace) for d in data])
        if isinstance(data, dict):
            return self._parse_object(data, namespace)
        raise SchemaParseError(f"Schema must be a string, object or array, got: {data!r}")

    def _parse_object(self, data: Dict[str, Any], namespace: Optional[str]) -> Schema:
        type_ = data.get("type")
        if type_ is None:
            raise SchemaParseError(f"No type: {json.dumps(data)}")
        if isinstance(type_, (dict, list)):
            return self.parse_data(type_, namespace)
        if not isinstance(type_, str):
            raise SchemaParseError(f"Type must be a string, got: {type_!r}")

        props = {k: v for k, v in data.items() if k not in _RESERVED_ATTRS}
        if type_ in PRIMITIVE_TYPES:
            return PrimitiveSchema(type=type_, props=props)
        if type_ in ("record", "error"):
            return self._parse_record(data, type_, namespace, props)
        if type_ == "enum":
            return self._parse_enum(data, namespace, props)
        if type_ == "fixed":
            return self._parse_fixed(data, namespace, props)
        if type_ == "array":
            if "items" not in data:
                raise SchemaParseError(f"Array has no items type: {json.dumps(data)}")
            return ArraySchema(
                type="array", items=self.parse_data(data["items"], namespace), props=props
            )
        if type_ == "map":
            if "values" not in data:
                raise SchemaParseError(f"Map has no values type: {json.dumps(data)}")
            return MapSchema(
                type="map", values=self.parse_data(data["values"], namespace), props=props
            )
        # {"type": "com.example.Foo"}
        return self.parse_data(type_, namespace)

    def _parse_record(
        self,
        data: Dict[str, Any],
        type_: str,
        namespace: Optional[str],
        props: Dict[str, Any],
    ) -> RecordSchema:
        name, ns = self._parse_name(data, namespace)
        fields_data = data.get("fields")
        if not isinstance(fields_data, list):
            raise SchemaParseError(f"Record has no fields: {json.dumps(data)}")

        record = RecordSchema(
            type=type_,
            name=name,
            namespace=ns,
            doc=self._doc(data),
            aliases=self._aliases(data),
            props=props,
        )
        self.registry.define(record)

        for field_data in fields_data:
            f = self.parse_field(field_data, ns)
            if record.get_field(f.name) is not None:
                raise SchemaParseError(f"Duplicate field {f.name} in record {record.fullname}")
            record.fields.append(f)
        return record

    def _parse_enum(
        self, data: Dict[str, Any], namespace: Optional[str], props: Dict[str, Any]
    ) -> EnumSchema:
        name, ns = self._parse_name(data, namespace)
        symbols = data.get("symbols")
        if not isinstance(symbols, list):
            raise SchemaParseError(f"Enum has no symbols: {json.dumps(data)}")
        enum = EnumSchema(
            type="enum",
            name=name,
            namespace=ns,
            doc=self._doc(data),
            aliases=self._aliases(data),
            symbols=list(symbols),
            default=data.get("default"),
            props=props,
        )
        self.check_enum(enum)
        self.registry.define(enum)
        return enum

    def _parse_fixed(
        self, data: Dict[str, Any], namespace: Optional[str], props: Dict[str, Any]
    ) -> FixedSchema:
        name, ns = self._parse_name(data, namespace)
        size = data.get("size")
        if not isinstance(size, int) or isinstance(size, bool) or size < 0:
            raise SchemaParseError(f"Invalid or no size: {json.dumps(data)}")
        fixed = FixedSchema(
            type="fixed",
            name=name,
            namespace=ns,
            doc=self._doc(data),
            aliases=self._aliases(data),
            size=size,
            props=props,
        )
        self.registry.define(fixed)
        return fixed

    def parse_field(self, data: Any, namespace: Optional[str]) -> Field:
        """Parse one record field or message parameter."""
        if not isinstance(data, dict):
            raise SchemaParseError(f"Field must be an object, got: {data!r}")
        name = data.get("name")
        if not isinstance(name, str):
            raise SchemaParseError(f"No field name: {json.dumps(data)}")
        self.check_name(name)
        if "type" not in data:
            raise SchemaParseError(f"No field type: {name}")

        order = data.get("order")
        if order is not None and order not in FIELD_ORDERS:
            raise SchemaParseError(f"Invalid order for field {name}: {order!r}")

        return self.make_field(
            name=name,
            schema=self.parse_data(data["type"], namespace),
            doc=self._doc(data),
            has_default="default" in data,
            default=data.get("default"),
            order=order,
            aliases=self._aliases(data),
            props={k: v for k, v in data.items() if k not in _RESERVED_FIELD_ATTRS},
        )

    def make_field(self, *, name: str, schema: Schema, has_default: bool, default: Any, **kwargs: Any) -> Field:
        """Build a field, validating its default when enabled."""
        if (
            has_default
            and self.registry.validate_defaults
            and not is_valid_default(schema, default)
        ):
            raise SchemaParseError(
                f"Invalid default for field {name}: {json.dumps(default)} not a {schema}"
            )
        return Field(name=name, schema=schema, has_default=has_default, default=default, **kwargs)

    def make_union(self, branches: List[Schema]) -> UnionSchema:
        """Build a union, rejecting nested unions and duplicate branches."""
        seen = set()
        for branch in branches:
            if isinstance(branch, UnionSchema):
                raise SchemaParseError("Nested union: unions may not immediately contain unions")
            key = branch.fullname if isinstance(branch, NamedSchema) else branch.type
            if key in seen:
                raise SchemaParseError(f"Duplicate in union: {key}")
            seen.add(key)
        return UnionSchema(type="union", schemas=list(branches))

    # ------------------------------------------------------------------
    # Protocols
    # ------------------------------------------------------------------

    def parse_protocol_data(self, data: Any) -> Protocol:
        """Parse a decoded protocol document."""
        if not isinstance(data, dict):
            raise SchemaParseError("Protocol must be a JSON object")
        name = data.get("protocol")
        if not isinstance(name, str) or not name:
            raise SchemaParseError("No protocol name specified")
        name, ns = split_name(name, data.get("namespace"))

        types_data = data.get("types", [])
        if not isinstance(types_data, list):
            raise SchemaParseError("Protocol types must be an array")
        before = set(self.registry.names())
        for type_data in types_data:
            schema = self.parse_data(type_data, ns)
            if not isinstance(schema, NamedSchema):
                raise SchemaParseError(f"Protocol types must be named, got: {schema}")

        messages_data = data.get("messages", {})
        if not isinstance(messages_data, dict):
            raise SchemaParseError("Protocol messages must be an object")
        messages = {
            msg_name: self._parse_message(msg_name, msg_data, ns)
            for msg_name, msg_data in messages_data.items()
        }

        reserved = {"protocol", "namespace", "doc", "types", "messages"}
        return Protocol(
            name=name,
            namespace=ns,
            doc=self._doc(data),
            types=[t for t in self.registry if t.fullname not in before],
            messages=messages,
            props={k: v for k, v in data.items() if k not in reserved},
        )

    def _parse_message(self, name: str, data: Any, namespace: Optional[str]) -> Message:
        if not isinstance(data, dict):
            raise SchemaParseError(f"Message {name} must be an object")
        request = data.get("request")
        if not isinstance(request, list):
            raise SchemaParseError(f"No request specified for message {name}")
        if "response" not in data:
            raise SchemaParseError(f"No response specified for message {name}")

        errors = [self.check_error_type(self.parse_data(e, namespace)) for e in data.get("errors", [])]
        return self.make_message(
            name=name,
            request=[self.parse_field(p, namespace) for p in request],
            response=self.parse_data(data["response"], namespace),
            errors=errors,
            one_way=bool(data.get("one-way", False)),
            doc=self._doc(data),
            props={
                k: v for k, v in data.items()
                if k not in {"request", "response", "errors", "one-way", "doc"}
            },
        )

    def make_message(self, **kwargs: Any) -> Message:
        """Build a message, enforcing the one-way constraints."""
        message = Message(**kwargs)
        if message.one_way and (message.response.type != "null" or message.errors):
            raise SchemaParseError(
                f"One way message {message.name} can't have a response or errors"
            )
        return message

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def check_name(self, name: str) -> None:
        if self.registry.validate and not _NAME_RE.match(name):
            raise SchemaParseError(f"Illegal name: {name!r}")

    def check_namespace(self, namespace: Optional[str]) -> None:
        if namespace:
            for part in namespace.split("."):
                self.check_name(part)

    def check_enum(self, enum: EnumSchema) -> None:
        seen = set()
        for symbol in enum.symbols:
            if not isinstance(symbol, str):
                raise SchemaParseError(f"Enum symbol must be a string: {symbol!r}")
            self.check_name(symbol)
            if symbol in seen:
                raise SchemaParseError(f"Duplicate enum symbol: {symbol}")
            seen.add(symbol)
        if enum.default is not None and enum.default not in enum.symbols:
            raise SchemaParseError(
                f"The Enum Default: {enum.default} is not in the enum symbol set: {enum.symbols}"
            )

    def check_error_type(self, schema: Schema) -> RecordSchema:
        if not isinstance(schema, RecordSchema) or not schema.is_error:
            raise SchemaParseError(f"Not an error type: {schema}")
        return schema

    def _parse_name(
        self, data: Dict[str, Any], namespace: Optional[str]
    ) -> Tuple[str, Optional[str]]:
        name = data.get("name")
        if not isinstance(name, str) or not name:
            raise SchemaParseError(f"No name in schema: {json.dumps(data)}")
        ns = data.get("namespace", namespace)
        if ns is not None and not isinstance(ns, str):
            raise SchemaParseError(f"Namespace must be a string: {ns!r}")
        name, ns = split_name(name, ns)
        self.check_name(name)
        self.check_namespace(ns)
        return name, ns

    @staticmethod
    def _doc(data: Dict[str, Any]) -> Optional[str]:
        doc = data.get("doc")
        return doc if isinstance(doc, str) else None

    @staticmethod
    def _aliases(data: Dict[str, Any]) -> List[str]:
        aliases = data.get("aliases", [])
        if not isinstance(aliases, list) or not all(isinstance(a, str) for a in aliases):
            raise SchemaParseError(f"Aliases must be a list of strings: {aliases!r}")
        return list(aliases)


def _load_json(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise SchemaParseError(f"Invalid JSON: {e.msg}", line=e.lineno) from e
