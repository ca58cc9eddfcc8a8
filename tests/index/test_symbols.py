from __future__ import annotations

import textwrap
from pathlib import Path

from pbls.index import extract
from pbls.models import DiagnosticCode, ReferenceKind, SymbolKind
from pbls.syntax import parse

SCHEMA = textwrap.dedent(
    """
    syntax = "proto3";
    package acme.v1;

    import public "common.proto";

    message Order {
      message Line { string sku = 1; }
      enum State {
        STATE_UNSPECIFIED = 0;
        STATE_OPEN = 1;
      }
      repeated Line lines = 1;
      State state = 2;
      oneof payment {
        Card card = 3;
      }
      string note = 4 [(acme.redact) = true];
    }

    service Orders {
      rpc Create(Order) returns (Order);
    }

    extend Order {
      int32 priority = 100;
    }
    """
).lstrip("\n")

PATH = Path("/ws/order.proto")


def _symbols() -> dict[str, SymbolKind]:
    index = extract(PATH, parse(SCHEMA, PATH).tree)
    return {symbol.fqn: symbol.kind for symbol in index.symbols}


def test_extracts_fully_qualified_declarations() -> None:
    assert _symbols() == {
        "acme.v1.Order": SymbolKind.MESSAGE,
        "acme.v1.Order.Line": SymbolKind.MESSAGE,
        "acme.v1.Order.Line.sku": SymbolKind.FIELD,
        "acme.v1.Order.State": SymbolKind.ENUM,
        "acme.v1.Order.State.STATE_UNSPECIFIED": SymbolKind.ENUM_VALUE,
        "acme.v1.Order.State.STATE_OPEN": SymbolKind.ENUM_VALUE,
        "acme.v1.Order.lines": SymbolKind.FIELD,
        "acme.v1.Order.state": SymbolKind.FIELD,
        "acme.v1.Order.payment": SymbolKind.ONEOF,
        "acme.v1.Order.card": SymbolKind.FIELD,
        "acme.v1.Order.note": SymbolKind.FIELD,
        "acme.v1.Orders": SymbolKind.SERVICE,
        "acme.v1.Orders.Create": SymbolKind.METHOD,
        "acme.v1.priority": SymbolKind.FIELD,
    }


def test_symbol_spans_cover_declaration_and_name() -> None:
    index = extract(PATH, parse(SCHEMA, PATH).tree)
    line = next(symbol for symbol in index.symbols if symbol.fqn == "acme.v1.Order.Line")

    assert line.path == PATH
    assert line.container == "acme.v1.Order"
    assert line.span is not None and line.selection_span is not None
    assert SCHEMA[line.span.start : line.span.end] == "message Line { string sku = 1; }"
    assert SCHEMA[line.selection_span.start : line.selection_span.end] == "Line"
    assert index.symbol_at(line.selection_span.start + 1) == line


def test_references_record_scope_and_expected_kinds() -> None:
    index = extract(PATH, parse(SCHEMA, PATH).tree)
    refs = [(ref.name, ref.kind, ref.scope) for ref in index.references]

    assert refs == [
        ("Line", ReferenceKind.TYPE, "acme.v1.Order"),
        ("State", ReferenceKind.TYPE, "acme.v1.Order"),
        ("Card", ReferenceKind.TYPE, "acme.v1.Order"),
        ("acme.redact", ReferenceKind.OPTION, "acme.v1.Order"),
        ("Order", ReferenceKind.TYPE, "acme.v1.Orders"),
        ("Order", ReferenceKind.TYPE, "acme.v1.Orders"),
        ("Order", ReferenceKind.TYPE, "acme.v1"),
    ]
    rpc_input = index.references[4]
    assert rpc_input.expected == frozenset({SymbolKind.MESSAGE})
    option = index.references[3]
    assert option.expected == frozenset({SymbolKind.FIELD})
    assert SCHEMA[option.span.start : option.span.end] == "acme.redact"


def test_imports_and_extensions_are_recorded() -> None:
    index = extract(PATH, parse(SCHEMA, PATH).tree)

    assert [(entry.path, entry.public) for entry in index.imports] == [("common.proto", True)]
    entry = index.imports[0]
    assert SCHEMA[entry.span.start : entry.span.end] == '"common.proto"'
    assert index.import_at(entry.span.start + 3) == entry

    assert [(ext.symbol.fqn, ext.extendee) for ext in index.extensions] == [("acme.v1.priority", "Order")]


def test_reference_at_prefers_innermost_span() -> None:
    index = extract(PATH, parse(SCHEMA, PATH).tree)
    offset = SCHEMA.index("Line lines") + 2

    reference = index.reference_at(offset)

    assert reference is not None
    assert reference.name == "Line"


def test_duplicate_declarations_are_reported_once() -> None:
    text = "package p;\nmessage A {}\nmessage A { int32 x = 1; }\n"
    index = extract(PATH, parse(text, PATH).tree)

    assert [symbol.fqn for symbol in index.symbols] == ["p.A", "p.A.x"]
    assert [(d.message, d.code) for d in index.diagnostics] == [
        ('"p.A" is already defined', DiagnosticCode.DUPLICATE_SYMBOL)
    ]
    duplicate = index.diagnostics[0]
    assert duplicate.range is not None
    assert duplicate.range.start.line == 2


def test_exports_ignore_body_only_edits() -> None:
    before = extract(PATH, parse("message A {\n  int32 x = 1;\n}\n", PATH).tree)
    moved = extract(PATH, parse("\n\nmessage A {\n  int32 x = 1;\n}\n", PATH).tree)
    renamed = extract(PATH, parse("message A {\n  int32 y = 1;\n}\n", PATH).tree)

    assert before.exports() == moved.exports()
    assert before.exports() != renamed.exports()


def test_partial_declarations_still_produce_symbols() -> None:
    index = extract(PATH, parse("message A {\n  B b = \n}\n", PATH).tree)

    assert [symbol.fqn for symbol in index.symbols] == ["A", "A.b"]
    assert [ref.name for ref in index.references] == ["B"]
