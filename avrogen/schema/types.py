"""
Core type definitions for the Avro schema model.

This module defines the in-memory representation of Avro definitions:
- PrimitiveSchema: null, boolean, int, long, float, double, bytes, string
- RecordSchema / EnumSchema / FixedSchema: named types
- ArraySchema / MapSchema / UnionSchema: complex unnamed types
- Field, Message, Protocol: record fields and protocol declarations

Invariants:
    - A named type is identified by its fullname (namespace + "." + name)
    - Named types are compared by identity; recursive records are allowed
    - to_json() emits a named type in full once, then by fullname

How to change safely:
    - Keep to_json() output valid Avro JSON; generated modules embed it
    - Add new logical types as props, never as new schema classes

Example:
    >>> from avrogen.schema.types import RecordSchema, Field, PrimitiveSchema
    >>> foo = RecordSchema(type="record", name="Foo", namespace="com.example")
    >>> foo.fields.append(Field(name="id", schema=PrimitiveSchema(type="long")))
    >>> foo.fullname
    'com.example.Foo'
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

PRIMITIVE_TYPES = frozenset(
    {"null", "boolean", "int", "long", "float", "double", "bytes", "string"}
)
NAMED_TYPES = frozenset({"record", "error", "enum", "fixed"})
FIELD_ORDERS = frozenset({"ascending", "descending", "ignore"})


def split_name(name: str, namespace: Optional[str]) -> Tuple[str, Optional[str]]:
    """Split a possibly qualified name into (name, namespace).

    A dotted name carries its own namespace and ignores the enclosing one.
    An empty namespace means the null namespace.
    """
    if "." in name:
        namespace, _, name = name.rpartition(".")
    return name, namespace or None


def make_fullname(name: str, namespace: Optional[str]) -> str:
    """Join a simple name and namespace into a fullname."""
    return f"{namespace}.{name}" if namespace else name


@dataclass(eq=False, kw_only=True)
class Schema:
    """Base class of all schema nodes.

    Attributes:
        type: Avro type name ("record", "array", "string", ...)
        props: Extra attributes such as logicalType, precision, scale
    """

    type: str
    props: Dict[str, Any] = field(default_factory=dict)

    @property
    def logical_type(self) -> Optional[str]:
        """The logicalType attribute, if any."""
        return self.props.get("logicalType")

    def to_json(self, names: Optional[Set[str]] = None) -> Any:
        """Convert to the Avro JSON representation."""
        raise NotImplementedError

    def _with_props(self, data: Dict[str, Any]) -> Dict[str, Any]:
        for key, value in self.props.items():
            data.setdefault(key, value)
        return data

    def __str__(self) -> str:
        return json.dumps(self.to_json())


@dataclass(eq=False, kw_only=True)
class PrimitiveSchema(Schema):
    """A primitive type, possibly annotated with a logical type."""

    def to_json(self, names: Optional[Set[str]] = None) -> Any:
        if not self.props:
            return self.type
        return self._with_props({"type": self.type})


@dataclass(eq=False, kw_only=True)
class NamedSchema(Schema):
    """A record, error, enum or fixed type.

    Attributes:
        name: Simple name
        namespace: Dotted namespace, None for the null namespace
        doc: Documentation string
        aliases: Alternate names
    """

    name: str
    namespace: Optional[str] = None
    doc: Optional[str] = None
    aliases: List[str] = field(default_factory=list)

    @property
    def fullname(self) -> str:
        return make_fullname(self.name, self.namespace)

    def _named_json(self, names: Set[str]) -> Any:
        if self.fullname in names:
            return self.fullname
        names.add(self.fullname)
        data: Dict[str, Any] = {"type": self.type, "name": self.name}
        if self.namespace:
            data["namespace"] = self.namespace
        if self.doc:
            data["doc"] = self.doc
        if self.aliases:
            data["aliases"] = list(self.aliases)
        return data


@dataclass(eq=False, kw_only=True)
class RecordSchema(NamedSchema):
    """A record or error type. Fields are appended after registration."""

    fields: List[Field] = field(default_factory=list, repr=False)

    @property
    def is_error(self) -> bool:
        return self.type == "error"

    def get_field(self, name: str) -> Optional[Field]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def to_json(self, names: Optional[Set[str]] = None) -> Any:
        names = set() if names is None else names
        data = self._named_json(names)
        if isinstance(data, str):
            return data
        data["fields"] = [f.to_json(names) for f in self.fields]
        return self._with_props(data)


@dataclass(eq=False, kw_only=True)
class EnumSchema(NamedSchema):
    """An enumeration with an ordered list of symbols."""

    symbols: List[str] = field(default_factory=list)
    default: Optional[str] = None

    def to_json(self, names: Optional[Set[str]] = None) -> Any:
        names = set() if names is None else names
        data = self._named_json(names)
        if isinstance(data, str):
            return data
        data["symbols"] = list(self.symbols)
        if self.default is not None:
            data["default"] = self.default
        return self._with_props(data)


@dataclass(eq=False, kw_only=True)
class FixedSchema(NamedSchema):
    """A fixed-size byte sequence."""

    size: int = 0

    def to_json(self, names: Optional[Set[str]] = None) -> Any:
        names = set() if names is None else names
        data = self._named_json(names)
        if isinstance(data, str):
            return data
        data["size"] = self.size
        return self._with_props(data)


@dataclass(eq=False, kw_only=True)
class ArraySchema(Schema):
    items: Schema

    def to_json(self, names: Optional[Set[str]] = None) -> Any:
        names = set() if names is None else names
        return self._with_props({"type": "array", "items": self.items.to_json(names)})


@dataclass(eq=False, kw_only=True)
class MapSchema(Schema):
    values: Schema

    def to_json(self, names: Optional[Set[str]] = None) -> Any:
        names = set() if names is None else names
        return self._with_props({"type": "map", "values": self.values.to_json(names)})


@dataclass(eq=False, kw_only=True)
class UnionSchema(Schema):
    schemas: List[Schema] = field(default_factory=list)

    @property
    def is_nullable(self) -> bool:
        return any(s.type == "null" for s in self.schemas)

    def non_null(self) -> List[Schema]:
        return [s for s in self.schemas if s.type != "null"]

    def to_json(self, names: Optional[Set[str]] = None) -> Any:
        names = set() if names is None else names
        return [s.to_json(names) for s in self.schemas]


@dataclass(eq=False, kw_only=True)
class Field:
    """A record field or message parameter.

    Attributes:
        name: Field name
        schema: Field type
        doc: Documentation string
        default: Default value as decoded JSON (only meaningful if has_default)
        has_default: Whether a default was declared (null is a valid default)
        order: Sort order (ascending, descending, ignore)
        aliases: Alternate field names
        props: Extra field attributes
    """

    name: str
    schema: Schema
    doc: Optional[str] = None
    default: Any = None
    has_default: bool = False
    order: Optional[str] = None
    aliases: List[str] = field(default_factory=list)
    props: Dict[str, Any] = field(default_factory=dict)

    def to_json(self, names: Optional[Set[str]] = None) -> Dict[str, Any]:
        names = set() if names is None else names
        data: Dict[str, Any] = {"name": self.name, "type": self.schema.to_json(names)}
        if self.doc:
            data["doc"] = self.doc
        if self.has_default:
            data["default"] = self.default
        if self.order and self.order != "ascending":
            data["order"] = self.order
        if self.aliases:
            data["aliases"] = list(self.aliases)
        for key, value in self.props.items():
            data.setdefault(key, value)
        return data


@dataclass(eq=False, kw_only=True)
class Message:
    """A protocol message.

    Attributes:
        name: Message name
        request: Ordered parameters
        response: Response type ("null" for void)
        errors: Declared error types
        one_way: Whether the message expects no response
    """

    name: str
    request: List[Field] = field(default_factory=list)
    response: Schema
    errors: List[Schema] = field(default_factory=list)
    one_way: bool = False
    doc: Optional[str] = None
    props: Dict[str, Any] = field(default_factory=dict)

    def to_json(self, names: Optional[Set[str]] = None) -> Dict[str, Any]:
        names = set() if names is None else names
        data: Dict[str, Any] = {
            "request": [f.to_json(names) for f in self.request],
            "response": self.response.to_json(names),
        }
        if self.doc:
            data["doc"] = self.doc
        if self.errors:
            data["errors"] = [e.to_json(names) for e in self.errors]
        if self.one_way:
            data["one-way"] = True
        for key, value in self.props.items():
            data.setdefault(key, value)
        return data


@dataclass(eq=False, kw_only=True)
class Protocol:
    """A named interface with its types and messages."""

    name: str
    namespace: Optional[str] = None
    doc: Optional[str] = None
    types: List[NamedSchema] = field(default_factory=list)
    messages: Dict[str, Message] = field(default_factory=dict)
    props: Dict[str, Any] = field(default_factory=dict)

    @property
    def fullname(self) -> str:
        return make_fullname(self.name, self.namespace)

    def to_json(self) -> Dict[str, Any]:
        names: Set[str] = set()
        data: Dict[str, Any] = {"protocol": self.name}
        if self.namespace:
            data["namespace"] = self.namespace
        if self.doc:
            data["doc"] = self.doc
        data["types"] = [t.to_json(names) for t in self.types]
        data["messages"] = {name: m.to_json(names) for name, m in self.messages.items()}
        for key, value in self.props.items():
            data.setdefault(key, value)
        return data

    def __str__(self) -> str:
        return json.dumps(self.to_json())


def iter_named_types(schema: Schema, seen: Optional[Set[int]] = None) -> Iterator[NamedSchema]:
    """Yield every named type reachable from ``schema``, outermost first."""
    seen = set() if seen is None else seen
    if id(schema) in seen:
        return
    seen.add(id(schema))
    if isinstance(schema, NamedSchema):
        yield schema
    if isinstance(schema, RecordSchema):
        for f in schema.fields:
            yield from iter_named_types(f.schema, seen)
    elif isinstance(schema, ArraySchema):
        yield from iter_named_types(schema.items, seen)
    elif isinstance(schema, MapSchema):
        yield from iter_named_types(schema.values, seen)
    elif isinstance(schema, UnionSchema):
        for branch in schema.schemas:
            yield from iter_named_types(branch, seen)
