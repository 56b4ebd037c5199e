"""
Avro IDL (.avdl) parser.

Parses the textual interface-description grammar into a Protocol:

    @namespace("org.example")
    protocol Mail {
        import schema "Address.avsc";

        /** A message. */
        record Message {
            string to;
            union { null, string } subject = null;
            timestamp_ms sent_at;
        }

        error Bounce { string reason; }

        string send(Message message) throws Bounce;
        void ping() oneway;
    }

Supported constructs: schema properties (@name(json)), doc comments,
record/error/enum/fixed declarations, array<T>, map<T>, union { ... },
the nullable shorthand T?, logical-type keywords (date, time_ms,
timestamp_ms, local_timestamp_ms, uuid, decimal(p, s)), field defaults,
messages with oneway/throws, and import idl|protocol|schema.

Invariants:
    - Types must be declared before they are referenced
    - Imports resolve relative to the importing file and are read once
    - Parse errors carry the file path and line number

How to change safely:
    - New keywords must not shadow identifiers that are valid today;
      backtick-escaped identifiers always win over keywords
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from ..errors import SchemaParseError
from .parser import SchemaParser, read_source
from .registry import TypeRegistry
from .types import (
    ArraySchema,
    EnumSchema,
    Field,
    FixedSchema,
    MapSchema,
    NamedSchema,
    PrimitiveSchema,
    Protocol,
    RecordSchema,
    Schema,
    UnionSchema,
    split_name,
)

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(
    r"""
      (?P<ws>\s+)
    | (?P<doc>/\*\*(?!/).*?\*/)
    | (?P<comment>//[^\n]*|/\*.*?\*/)
    | (?P<prop>@[A-Za-z_][A-Za-z0-9_.\-]*)
    | (?P<string>"(?:[^"\\\n]|\\.)*")
    | (?P<number>-?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?)
    | (?P<escaped>`[A-Za-z_][A-Za-z0-9_]*`)
    | (?P<ident>[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*)
    | (?P<punct>[{}()\[\]<>;,=?:])
    """,
    re.VERBOSE | re.DOTALL,
)

_INTEGER_RE = re.compile(r"^-?\d+$")

# keyword -> (Avro type, logicalType)
_PRIMITIVES = {
    "null": ("null", None),
    "boolean": ("boolean", None),
    "int": ("int", None),
    "long": ("long", None),
    "float": ("float", None),
    "double": ("double", None),
    "bytes": ("bytes", None),
    "string": ("string", None),
    "date": ("int", "date"),
    "time_ms": ("int", "time-millis"),
    "timestamp_ms": ("long", "timestamp-millis"),
    "local_timestamp_ms": ("long", "local-timestamp-millis"),
    "uuid": ("string", "uuid"),
}


@dataclass(frozen=True)
class Token:
    """A lexical token.

    Attributes:
        kind: ident, prop, string, number, punct or eof
        value: Token text (backticks stripped from escaped identifiers)
        line: 1-based line number
        doc: Doc comment immediately preceding the token
        escaped: Whether the identifier was backtick-escaped
    """

    kind: str
    value: str
    line: int
    doc: Optional[str] = None
    escaped: bool = False


def _clean_doc(raw: str) -> str:
    body = raw[3:-2]
    lines = []
    for line in body.splitlines():
        line = line.strip()
        if line.startswith("*"):
            line = line[1:]
            if line.startswith(" "):
                line = line[1:]
        lines.append(line.rstrip())
    return "\n".join(lines).strip()


def tokenize(text: str, path: Optional[Path] = None) -> List[Token]:
    """Split IDL text into tokens, attaching doc comments to the next token.

    Raises:
        SchemaParseError: On a character that starts no token
    """
    tokens: List[Token] = []
    pos, line = 0, 1
    pending_doc: Optional[str] = None
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise SchemaParseError(f"Unexpected character {text[pos]!r}", path=path, line=line)
        kind = match.lastgroup
        value = match.group()
        if kind == "doc":
            pending_doc = _clean_doc(value)
        elif kind not in ("ws", "comment"):
            escaped = kind == "escaped"
            tokens.append(
                Token(
                    kind="ident" if escaped else kind,
                    value=value[1:-1] if escaped else value,
                    line=line,
                    doc=pending_doc,
                    escaped=escaped,
                )
            )
            pending_doc = None
        line += value.count("\n")
        pos = match.end()
    tokens.append(Token(kind="eof", value="", line=line))
    return tokens


class IdlParser:
    """Recursive-descent parser for one IDL compilation unit.

    Attributes:
        path: Source file, used to resolve imports and locate errors
        registry: Named types declared so far (shared with imported files)

    Example:
        >>> protocol = IdlParser(text, path=Path("mail.avdl")).parse()
        >>> [t.name for t in protocol.types]
        ['Message', 'Bounce']
    """

    def __init__(
        self,
        text: str,
        path: Optional[Path] = None,
        registry: Optional[TypeRegistry] = None,
        imported: Optional[Set[Path]] = None,
    ) -> None:
        self.path = path
        self.registry = registry if registry is not None else TypeRegistry()
        self.schema_parser = SchemaParser(self.registry)
        self.namespace: Optional[str] = None
        self.messages: Dict[str, Any] = {}
        self._imported: Set[Path] = imported if imported is not None else set()
        if path is not None:
            self._imported.add(Path(path).resolve())
        self._tokens = tokenize(text, path)
        self._pos = 0
        self._optional_unions: Set[int] = set()

    @classmethod
    def parse_file(cls, path: Path) -> Protocol:
        """Parse an IDL file into a Protocol."""
        return cls(read_source(path), path=Path(path)).parse()

    # ------------------------------------------------------------------
    # Token helpers
    # ------------------------------------------------------------------

    def _peek(self) -> Token:
        return self._tokens[self._pos]

    def _next(self) -> Token:
        token = self._tokens[self._pos]
        if token.kind != "eof":
            self._pos += 1
        return token

    def _error(self, message: str, token: Optional[Token] = None) -> SchemaParseError:
        token = token or self._peek()
        return SchemaParseError(message, path=self.path, line=token.line)

    def _describe(self, token: Token) -> str:
        return "end of file" if token.kind == "eof" else repr(token.value)

    def _at_punct(self, char: str) -> bool:
        token = self._peek()
        return token.kind == "punct" and token.value == char

    def _at_keyword(self, word: str) -> bool:
        token = self._peek()
        return token.kind == "ident" and not token.escaped and token.value == word

    def _expect_punct(self, char: str) -> Token:
        if not self._at_punct(char):
            raise self._error(f"Expected {char!r}, found {self._describe(self._peek())}")
        return self._next()

    def _expect_keyword(self, word: str) -> Token:
        if not self._at_keyword(word):
            raise self._error(f"Expected {word!r}, found {self._describe(self._peek())}")
        return self._next()

    def _identifier(self, simple: bool = False) -> str:
        token = self._peek()
        if token.kind != "ident":
            raise self._error(f"Expected identifier, found {self._describe(token)}")
        if simple and "." in token.value:
            raise self._error(f"Expected simple name, found {token.value!r}")
        self._next()
        return token.value

    # ------------------------------------------------------------------
    # Compilation unit
    # ------------------------------------------------------------------

    def parse(self) -> Protocol:
        """Parse the whole input as one protocol declaration."""
        doc = self._peek().doc
        props = self._properties()
        self._expect_keyword("protocol")
        name, ns = split_name(self._identifier(), props.pop("namespace", None))
        self.schema_parser.check_namespace(ns)
        self.namespace = ns

        self._expect_punct("{")
        while not self._at_punct("}"):
            if self._peek().kind == "eof":
                raise self._error("Unexpected end of file in protocol body")
            self._protocol_member()
        self._expect_punct("}")
        if self._peek().kind != "eof":
            raise self._error(f"Unexpected {self._describe(self._peek())} after protocol")

        return Protocol(
            name=name,
            namespace=ns,
            doc=doc,
            types=list(self.registry),
            messages=dict(self.messages),
            props=props,
        )

    def _protocol_member(self) -> None:
        doc = self._peek().doc
        if self._at_keyword("import"):
            self._import()
            return
        props = self._properties()
        if self._at_keyword("record") or self._at_keyword("error"):
            self._record(props, doc)
        elif self._at_keyword("enum"):
            self._enum(props, doc)
        elif self._at_keyword("fixed"):
            self._fixed(props, doc)
        else:
            self._message(props, doc)

    def _properties(self) -> Dict[str, Any]:
        props: Dict[str, Any] = {}
        while self._peek().kind == "prop":
            name = self._next().value[1:]
            self._expect_punct("(")
            props[name] = self._json_value()
            self._expect_punct(")")
        return props

    # ------------------------------------------------------------------
    # Imports
    # ------------------------------------------------------------------

    def _import(self) -> None:
        self._expect_keyword("import")
        kind_token = self._next()
        if kind_token.kind != "ident" or kind_token.value not in ("idl", "protocol", "schema"):
            raise self._error("Expected idl, protocol or schema after import", kind_token)
        location = self._string()
        self._expect_punct(";")

        base = Path(self.path).parent if self.path is not None else Path.cwd()
        target = base / location
        resolved = target.resolve()
        if resolved in self._imported:
            return
        self._imported.add(resolved)
        logger.debug(f"Importing {kind_token.value} {target}")

        if kind_token.value == "idl":
            imported = IdlParser(
                read_source(target), path=target, registry=self.registry, imported=self._imported
            ).parse()
            self._add_messages(imported.messages.values())
        elif kind_token.value == "protocol":
            imported = SchemaParser(self.registry).parse_protocol_file(target)
            self._add_messages(imported.messages.values())
        else:
            SchemaParser(self.registry).parse_file(target)

    def _add_messages(self, messages: Any) -> None:
        for message in messages:
            self.messages[message.name] = message

    # ------------------------------------------------------------------
    # Named type declarations
    # ------------------------------------------------------------------

    def _named(self, props: Dict[str, Any]) -> tuple:
        name, ns = split_name(self._identifier(), props.pop("namespace", self.namespace))
        self.schema_parser.check_name(name)
        self.schema_parser.check_namespace(ns)
        aliases = props.pop("aliases", [])
        if not isinstance(aliases, list):
            raise self._error(f"Aliases must be a list: {aliases!r}")
        return name, ns, aliases

    def _define(self, schema: NamedSchema, token: Token) -> None:
        try:
            self.registry.define(schema)
        except SchemaParseError as e:
            raise self._error(e.reason, token) from e

    def _record(self, props: Dict[str, Any], doc: Optional[str]) -> None:
        keyword = self._next()
        start = self._peek()
        name, ns, aliases = self._named(props)
        record = RecordSchema(
            type=keyword.value, name=name, namespace=ns, doc=doc, aliases=aliases, props=props
        )
        self._define(record, start)

        self._expect_punct("{")
        while not self._at_punct("}"):
            if self._peek().kind == "eof":
                raise self._error(f"Unexpected end of file in record {name}")
            for f in self._field_declaration(ns):
                if record.get_field(f.name) is not None:
                    raise self._error(f"Duplicate field {f.name} in record {record.fullname}")
                record.fields.append(f)
        self._expect_punct("}")

    def _enum(self, props: Dict[str, Any], doc: Optional[str]) -> None:
        self._expect_keyword("enum")
        start = self._peek()
        name, ns, aliases = self._named(props)
        self._expect_punct("{")
        symbols: List[str] = []
        while not self._at_punct("}"):
            symbols.append(self._identifier(simple=True))
            if not self._at_punct("}"):
                self._expect_punct(",")
        self._expect_punct("}")
        default = None
        if self._at_punct("="):
            self._next()
            default = self._identifier(simple=True)
            self._expect_punct(";")

        enum = EnumSchema(
            type="enum", name=name, namespace=ns, doc=doc, aliases=aliases,
            symbols=symbols, default=default, props=props,
        )
        try:
            self.schema_parser.check_enum(enum)
        except SchemaParseError as e:
            raise self._error(e.reason, start) from e
        self._define(enum, start)

    def _fixed(self, props: Dict[str, Any], doc: Optional[str]) -> None:
        self._expect_keyword("fixed")
        start = self._peek()
        name, ns, aliases = self._named(props)
        self._expect_punct("(")
        size = self._integer()
        self._expect_punct(")")
        self._expect_punct(";")
        self._define(
            FixedSchema(
                type="fixed", name=name, namespace=ns, doc=doc, aliases=aliases,
                size=size, props=props,
            ),
            start,
        )

    # ------------------------------------------------------------------
    # Fields and types
    # ------------------------------------------------------------------

    def _field_declaration(self, namespace: Optional[str]) -> List[Field]:
        doc = self._peek().doc
        type_props = self._properties()
        schema = self._type(namespace)
        schema, field_props = self._apply_props(schema, type_props)

        fields = [self._variable(schema, doc, field_props)]
        while self._at_punct(","):
            self._next()
            fields.append(self._variable(schema, doc, field_props))
        self._expect_punct(";")
        return fields

    def _apply_props(self, schema: Schema, props: Dict[str, Any]) -> tuple:
        """Attach declaration props to an unnamed type; named types keep theirs."""
        if not props:
            return schema, {}
        if isinstance(schema, PrimitiveSchema):
            return PrimitiveSchema(type=schema.type, props={**schema.props, **props}), {}
        if isinstance(schema, (ArraySchema, MapSchema)):
            schema.props.update(props)
            return schema, {}
        return schema, props

    def _variable(self, schema: Schema, doc: Optional[str], extra_props: Dict[str, Any]) -> Field:
        props = self._properties()
        token = self._peek()
        name = self._identifier(simple=True)
        try:
            self.schema_parser.check_name(name)
        except SchemaParseError as e:
            raise self._error(e.reason, token) from e

        has_default, default = False, None
        if self._at_punct("="):
            self._next()
            has_default, default = True, self._json_value()

        if (
            id(schema) in self._optional_unions
            and has_default
            and default is not None
        ):
            # T? with a non-null default puts T first
            schema = UnionSchema(type="union", schemas=list(reversed(schema.schemas)))

        order = props.pop("order", None)
        aliases = props.pop("aliases", [])
        try:
            return self.schema_parser.make_field(
                name=name,
                schema=schema,
                doc=doc,
                has_default=has_default,
                default=default,
                order=order,
                aliases=aliases,
                props={**extra_props, **props},
            )
        except SchemaParseError as e:
            raise self._error(e.reason, token) from e

    def _type(self, namespace: Optional[str]) -> Schema:
        props = self._properties()
        token = self._peek()
        if token.kind != "ident":
            raise self._error(f"Expected a type, found {self._describe(token)}")

        if self._at_keyword("array"):
            self._next()
            self._expect_punct("<")
            schema: Schema = ArraySchema(type="array", items=self._type(namespace))
            self._expect_punct(">")
        elif self._at_keyword("map"):
            self._next()
            self._expect_punct("<")
            schema = MapSchema(type="map", values=self._type(namespace))
            self._expect_punct(">")
        elif self._at_keyword("union"):
            self._next()
            self._expect_punct("{")
            branches = [self._type(namespace)]
            while self._at_punct(","):
                self._next()
                branches.append(self._type(namespace))
            self._expect_punct("}")
            schema = self._union(branches, token)
        elif self._at_keyword("decimal"):
            self._next()
            self._expect_punct("(")
            precision = self._integer()
            self._expect_punct(",")
            scale = self._integer()
            self._expect_punct(")")
            schema = PrimitiveSchema(
                type="bytes",
                props={"logicalType": "decimal", "precision": precision, "scale": scale},
            )
        elif not token.escaped and token.value in _PRIMITIVES:
            self._next()
            type_, logical = _PRIMITIVES[token.value]
            schema = PrimitiveSchema(
                type=type_, props={"logicalType": logical} if logical else {}
            )
        else:
            self._next()
            named = self.registry.resolve(token.value, namespace)
            if named is None and namespace != self.namespace:
                named = self.registry.resolve(token.value, self.namespace)
            if named is None:
                raise self._error(f"Undefined name: {token.value}", token)
            schema = named

        schema, _ = self._apply_props(schema, props)

        if self._at_punct("?"):
            self._next()
            if isinstance(schema, UnionSchema):
                raise self._error("Unions can't be made optional with '?'")
            schema = self._union([PrimitiveSchema(type="null"), schema], token)
            self._optional_unions.add(id(schema))
        return schema

    def _union(self, branches: List[Schema], token: Token) -> UnionSchema:
        try:
            return self.schema_parser.make_union(branches)
        except SchemaParseError as e:
            raise self._error(e.reason, token) from e

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def _message(self, props: Dict[str, Any], doc: Optional[str]) -> None:
        start = self._peek()
        if self._at_keyword("void"):
            self._next()
            response: Schema = PrimitiveSchema(type="null")
        else:
            response = self._type(self.namespace)
        name = self._identifier(simple=True)

        self._expect_punct("(")
        request: List[Field] = []
        while not self._at_punct(")"):
            param_props = self._properties()
            param_type, extra = self._apply_props(self._type(self.namespace), param_props)
            request.append(self._variable(param_type, None, extra))
            if not self._at_punct(")"):
                self._expect_punct(",")
        self._expect_punct(")")

        one_way = False
        errors: List[Schema] = []
        if self._at_keyword("oneway"):
            self._next()
            one_way = True
        elif self._at_keyword("throws"):
            self._next()
            errors.append(self._error_type())
            while self._at_punct(","):
                self._next()
                errors.append(self._error_type())
        self._expect_punct(";")

        if name in self.messages:
            raise self._error(f"Duplicate message: {name}", start)
        try:
            self.messages[name] = self.schema_parser.make_message(
                name=name,
                request=request,
                response=response,
                errors=errors,
                one_way=one_way,
                doc=doc,
                props=props,
            )
        except SchemaParseError as e:
            raise self._error(e.reason, start) from e

    def _error_type(self) -> RecordSchema:
        token = self._peek()
        name = self._identifier()
        schema = self.registry.resolve(name, self.namespace)
        if schema is None:
            raise self._error(f"Undefined name: {name}", token)
        try:
            return self.schema_parser.check_error_type(schema)
        except SchemaParseError as e:
            raise self._error(e.reason, token) from e

    # ------------------------------------------------------------------
    # Literals
    # ------------------------------------------------------------------

    def _string(self) -> str:
        token = self._next()
        if token.kind != "string":
            raise self._error(f"Expected string literal, found {self._describe(token)}", token)
        try:
            return json.loads(token.value)
        except json.JSONDecodeError as e:
            raise self._error(f"Invalid string literal {token.value}", token) from e

    def _integer(self) -> int:
        token = self._next()
        if token.kind != "number" or not _INTEGER_RE.match(token.value):
            raise self._error(f"Expected integer, found {self._describe(token)}", token)
        return int(token.value)

    def _json_value(self) -> Any:
        token = self._peek()
        if token.kind == "string":
            return self._string()
        if token.kind == "number":
            self._next()
            return int(token.value) if _INTEGER_RE.match(token.value) else float(token.value)
        if token.kind == "ident" and token.value in ("true", "false", "null"):
            self._next()
            return {"true": True, "false": False, "null": None}[token.value]
        if self._at_punct("["):
            self._next()
            items = []
            while not self._at_punct("]"):
                items.append(self._json_value())
                if not self._at_punct("]"):
                    self._expect_punct(",")
            self._next()
            return items
        if self._at_punct("{"):
            self._next()
            obj: Dict[str, Any] = {}
            while not self._at_punct("}"):
                key = self._string()
                self._expect_punct(":")
                obj[key] = self._json_value()
                if not self._at_punct("}"):
                    self._expect_punct(",")
            self._next()
            return obj
        raise self._error(f"Expected a JSON value, found {self._describe(token)}")
