"""
Unit tests for the Avro JSON parser.

Tests cover:
- Named types (record, error, enum, fixed) and complex types
- Name resolution against a registry
- Default validation
- Protocol documents
- Error reporting
"""

import json

import pytest

from avrogen.errors import SchemaIOError, SchemaParseError
from avrogen.schema.parser import SchemaParser, is_valid_default
from avrogen.schema.registry import TypeRegistry
from avrogen.schema.types import (
    ArraySchema,
    EnumSchema,
    FixedSchema,
    MapSchema,
    PrimitiveSchema,
    RecordSchema,
    UnionSchema,
)


def parse(data, registry=None):
    return SchemaParser(registry if registry is not None else TypeRegistry()).parse(json.dumps(data))


class TestNamedTypes:
    """Tests for records, enums and fixed types."""

    def test_record_with_fields(self):
        """A record parses with its fields in order."""
        schema = parse(
            {
                "type": "record",
                "name": "User",
                "namespace": "com.example",
                "doc": "A user.",
                "fields": [
                    {"name": "id", "type": "long"},
                    {"name": "email", "type": ["null", "string"], "default": None},
                ],
            }
        )

        assert isinstance(schema, RecordSchema)
        assert schema.fullname == "com.example.User"
        assert schema.doc == "A user."
        assert [f.name for f in schema.fields] == ["id", "email"]
        assert isinstance(schema.fields[1].schema, UnionSchema)
        assert schema.fields[1].has_default
        assert schema.fields[1].default is None

    def test_dotted_name_overrides_namespace(self):
        """A dotted name carries its own namespace."""
        schema = parse(
            {"type": "record", "name": "a.b.Foo", "namespace": "x.y", "fields": []}
        )
        assert schema.name == "Foo"
        assert schema.namespace == "a.b"

    def test_error_type(self):
        """Error declarations are records flagged as errors."""
        schema = parse({"type": "error", "name": "Oops", "fields": []})
        assert isinstance(schema, RecordSchema)
        assert schema.is_error

    def test_enum(self):
        """An enum keeps its symbols and default."""
        schema = parse(
            {"type": "enum", "name": "Suit", "symbols": ["SPADES", "HEARTS"], "default": "SPADES"}
        )
        assert isinstance(schema, EnumSchema)
        assert schema.symbols == ["SPADES", "HEARTS"]
        assert schema.default == "SPADES"

    def test_enum_default_must_be_a_symbol(self):
        """An enum default outside the symbol set is rejected."""
        with pytest.raises(SchemaParseError, match="not in the enum symbol set"):
            parse({"type": "enum", "name": "Suit", "symbols": ["A"], "default": "B"})

    def test_duplicate_enum_symbol(self):
        with pytest.raises(SchemaParseError, match="Duplicate enum symbol"):
            parse({"type": "enum", "name": "Suit", "symbols": ["A", "A"]})

    def test_fixed(self):
        """A fixed type keeps its size."""
        schema = parse({"type": "fixed", "name": "MD5", "size": 16})
        assert isinstance(schema, FixedSchema)
        assert schema.size == 16

    def test_fixed_requires_size(self):
        with pytest.raises(SchemaParseError, match="Invalid or no size"):
            parse({"type": "fixed", "name": "MD5"})

    def test_recursive_record(self):
        """A record may reference itself."""
        schema = parse(
            {
                "type": "record",
                "name": "Node",
                "fields": [{"name": "next", "type": ["null", "Node"], "default": None}],
            }
        )
        assert schema.fields[0].schema.schemas[1] is schema

    def test_illegal_name(self):
        """Names are validated when validation is enabled."""
        with pytest.raises(SchemaParseError, match="Illegal name"):
            parse({"type": "record", "name": "1Bad", "fields": []})

    def test_illegal_name_allowed_without_validation(self):
        registry = TypeRegistry(validate=False)
        schema = parse({"type": "record", "name": "1Bad", "fields": []}, registry)
        assert schema.name == "1Bad"


class TestComplexTypes:
    """Tests for arrays, maps, unions and logical types."""

    def test_array_and_map(self):
        """Array items and map values are parsed recursively."""
        schema = parse(
            {
                "type": "record",
                "name": "Bag",
                "fields": [
                    {"name": "tags", "type": {"type": "array", "items": "string"}},
                    {"name": "counts", "type": {"type": "map", "values": "int"}},
                ],
            }
        )
        tags, counts = schema.fields
        assert isinstance(tags.schema, ArraySchema)
        assert tags.schema.items.type == "string"
        assert isinstance(counts.schema, MapSchema)
        assert counts.schema.values.type == "int"

    def test_logical_type_is_kept_as_prop(self):
        """Logical types are props on the underlying primitive."""
        schema = parse({"type": "bytes", "logicalType": "decimal", "precision": 9, "scale": 2})
        assert isinstance(schema, PrimitiveSchema)
        assert schema.logical_type == "decimal"
        assert schema.props["precision"] == 9

    def test_nested_union_rejected(self):
        with pytest.raises(SchemaParseError, match="Nested union"):
            parse(["null", ["int", "string"]])

    def test_duplicate_union_branch_rejected(self):
        with pytest.raises(SchemaParseError, match="Duplicate in union"):
            parse(["int", "int"])


class TestNameResolution:
    """Tests for resolving references against the registry."""

    def test_undefined_name(self):
        """An unknown reference is an 'Undefined name' error."""
        with pytest.raises(SchemaParseError, match="Undefined name: Missing") as exc_info:
            parse({"type": "record", "name": "Foo", "fields": [{"name": "m", "type": "Missing"}]})
        assert exc_info.value.is_undefined_name

    def test_reference_to_previously_parsed_type(self):
        """Types registered earlier are visible to later documents."""
        registry = TypeRegistry()
        foo = parse({"type": "record", "name": "Foo", "namespace": "ns", "fields": []}, registry)
        bar = parse(
            {
                "type": "record",
                "name": "Bar",
                "namespace": "ns",
                "fields": [{"name": "f", "type": "Foo"}],
            },
            registry,
        )
        assert bar.fields[0].schema is foo

    def test_null_namespace_fallback(self):
        """A simple name falls back to the null namespace."""
        registry = TypeRegistry()
        foo = parse({"type": "record", "name": "Foo", "fields": []}, registry)
        bar = parse(
            {"type": "record", "name": "Bar", "namespace": "ns", "fields": [{"name": "f", "type": "Foo"}]},
            registry,
        )
        assert bar.fields[0].schema is foo

    def test_redefinition(self):
        """Defining the same fullname twice fails."""
        registry = TypeRegistry()
        parse({"type": "record", "name": "Foo", "fields": []}, registry)
        with pytest.raises(SchemaParseError, match="Can't redefine: Foo"):
            parse({"type": "record", "name": "Foo", "fields": []}, registry)


class TestDefaults:
    """Tests for default value validation."""

    def test_invalid_default_rejected(self):
        with pytest.raises(SchemaParseError, match="Invalid default for field n"):
            parse({"type": "record", "name": "R", "fields": [{"name": "n", "type": "int", "default": "x"}]})

    def test_invalid_default_allowed_without_validation(self):
        registry = TypeRegistry(validate_defaults=False)
        schema = parse(
            {"type": "record", "name": "R", "fields": [{"name": "n", "type": "int", "default": "x"}]},
            registry,
        )
        assert schema.fields[0].default == "x"

    def test_union_default_checks_first_branch(self):
        """A union default must match the first branch."""
        union = UnionSchema(
            type="union", schemas=[PrimitiveSchema(type="null"), PrimitiveSchema(type="string")]
        )
        assert is_valid_default(union, None)
        assert not is_valid_default(union, "text")

    def test_bool_is_not_an_int(self):
        assert not is_valid_default(PrimitiveSchema(type="int"), True)
        assert is_valid_default(PrimitiveSchema(type="double"), 1)


class TestProtocols:
    """Tests for protocol documents."""

    def test_protocol(self):
        """A protocol parses its types and messages."""
        protocol = SchemaParser().parse_protocol(
            json.dumps(
                {
                    "protocol": "Mail",
                    "namespace": "org.example",
                    "types": [
                        {"type": "record", "name": "Message", "fields": [{"name": "to", "type": "string"}]},
                        {"type": "error", "name": "Bounce", "fields": []},
                    ],
                    "messages": {
                        "send": {
                            "request": [{"name": "message", "type": "Message"}],
                            "response": "string",
                            "errors": ["Bounce"],
                        },
                        "ping": {"request": [], "response": "null", "one-way": True},
                    },
                }
            )
        )

        assert protocol.fullname == "org.example.Mail"
        assert [t.fullname for t in protocol.types] == ["org.example.Message", "org.example.Bounce"]
        send = protocol.messages["send"]
        assert send.request[0].schema.name == "Message"
        assert send.errors[0].name == "Bounce"
        assert protocol.messages["ping"].one_way

    def test_one_way_with_response_rejected(self):
        with pytest.raises(SchemaParseError, match="One way message"):
            SchemaParser().parse_protocol(
                json.dumps(
                    {
                        "protocol": "P",
                        "messages": {"m": {"request": [], "response": "string", "one-way": True}},
                    }
                )
            )

    def test_protocol_requires_name(self):
        with pytest.raises(SchemaParseError, match="No protocol name"):
            SchemaParser().parse_protocol("{}")


class TestErrors:
    """Tests for error reporting."""

    def test_invalid_json_reports_line(self):
        with pytest.raises(SchemaParseError, match="Invalid JSON") as exc_info:
            SchemaParser().parse('{\n  "type": "record",\n  oops\n}')
        assert exc_info.value.line == 3

    def test_parse_file_attaches_path(self, tmp_path):
        path = tmp_path / "bad.avsc"
        path.write_text('{"type": "record", "name": "Foo", "fields": [{"name": "x", "type": "Nope"}]}')

        with pytest.raises(SchemaParseError) as exc_info:
            SchemaParser().parse_file(path)

        assert exc_info.value.path == path
        assert str(path) in str(exc_info.value)

    def test_missing_file(self, tmp_path):
        with pytest.raises(SchemaIOError, match="cannot read source"):
            SchemaParser().parse_file(tmp_path / "missing.avsc")
