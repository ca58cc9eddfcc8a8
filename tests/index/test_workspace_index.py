from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Dict, FrozenSet

import pytest

from pbls.index import ImportResolver, WorkspaceIndex, extract, relative_name, symbol_matches
from pbls.models import (
    TYPE_KINDS,
    DiagnosticCode,
    Position,
    Range,
    Reference,
    ReferenceKind,
    Span,
    Symbol,
    SymbolKind,
)
from pbls.syntax import parse

from tests._fixtures.proto_workspace import offset_of


class IndexHarness:
    def __init__(self, root: Path) -> None:
        self.root = root
        self.texts: Dict[Path, str] = {}
        self.index = WorkspaceIndex(ImportResolver(root, []))

    def add(self, relative: str, content: str) -> Path:
        path = self.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        text = textwrap.dedent(content).lstrip("\n")
        path.write_text(text, encoding="utf-8")
        self.texts[path] = text
        self.index.update(extract(path, parse(text, path).tree))
        return path


@pytest.fixture
def harness(tmp_path: Path) -> IndexHarness:
    return IndexHarness(tmp_path.resolve())


def _ref(name: str, scope: str = "", expected: FrozenSet[SymbolKind] = TYPE_KINDS) -> Reference:
    return Reference(
        name=name,
        kind=ReferenceKind.TYPE,
        span=Span(0, 0),
        range=Range(Position(0, 0), Position(0, 0)),
        scope=scope,
        expected=expected,
    )


def test_goto_definition_across_files(harness: IndexHarness) -> None:
    a = harness.add("a.proto", 'syntax = "proto3";\npackage p;\nmessage Foo {}\n')
    b = harness.add("b.proto", 'syntax = "proto3";\npackage p;\nimport "a.proto";\nmessage Bar { Foo f = 1; }\n')

    locations = harness.index.definition(b, offset_of(harness.texts[b], "Foo f"))

    assert len(locations) == 1
    assert locations[0].path == a
    assert locations[0].range.start.line == 2
    assert harness.texts[a][locations[0].span.start : locations[0].span.end] == "message Foo {}"


def test_goto_on_import_string_opens_the_file(harness: IndexHarness) -> None:
    a = harness.add("a.proto", "message A {}\n")
    b = harness.add("b.proto", 'import "a.proto";\nimport "google/protobuf/empty.proto";\n')
    text = harness.texts[b]

    [location] = harness.index.definition(b, offset_of(text, "a.proto", delta=2))
    assert location.path == a
    assert location.range.start.line == 0 and location.range.start.character == 0
    assert harness.index.definition(b, offset_of(text, "empty.proto")) == []


def test_scope_walk_prefers_innermost_declaration(harness: IndexHarness) -> None:
    path = harness.add(
        "nested.proto",
        """
        package p;
        message Inner {}
        message Outer {
          message Inner {}
          Inner a = 1;
          .p.Inner b = 2;
        }
        """,
    )
    text = harness.texts[path]

    [inner] = harness.index.definition(path, offset_of(text, "Inner a"))
    [outer] = harness.index.definition(path, offset_of(text, "p.Inner b", delta=3))

    assert inner.range.start.line == 3
    assert outer.range.start.line == 1


def test_resolution_respects_visibility_then_falls_back_to_exact_and_suffix(harness: IndexHarness) -> None:
    harness.add("x.proto", "package x;\nmessage Thing {}\n")
    importer = harness.add("y.proto", "package y;\nmessage User { Thing t = 1; }\n")
    index = harness.index

    exact = index.resolve(importer, _ref("x.Thing", "y.User"))
    suffix = index.resolve(importer, _ref("Thing", "y.User"))
    missing = index.resolve(importer, _ref("Nope", "y.User"))

    assert exact is not None and exact.fqn == "x.Thing"
    assert suffix is not None and suffix.fqn == "x.Thing"
    assert missing is None


def test_expected_kinds_filter_candidates(harness: IndexHarness) -> None:
    path = harness.add("k.proto", "package k;\nenum Color { RED = 0; }\n")

    assert harness.index.resolve(path, _ref("Color", "k")) is not None
    assert harness.index.resolve(path, _ref("Color", "k", frozenset({SymbolKind.MESSAGE}))) is None


def test_well_known_types_resolve_without_files_on_disk(harness: IndexHarness) -> None:
    path = harness.add(
        "t.proto",
        'import "google/protobuf/timestamp.proto";\nmessage E { google.protobuf.Timestamp at = 1; }\n',
    )

    symbol = harness.index.resolve(path, _ref("google.protobuf.Timestamp", "E"))

    assert symbol is not None
    assert symbol.well_known is True
    assert symbol.kind is SymbolKind.MESSAGE
    assert harness.index.diagnostics(path) == []
    assert harness.index.definition(path, offset_of(harness.texts[path], "Timestamp at")) == []


def test_public_imports_are_transitively_visible(harness: IndexHarness) -> None:
    base = harness.add("base.proto", "message Base {}\n")
    middle = harness.add("middle.proto", 'import public "base.proto";\n')
    private = harness.add("private.proto", 'import "base.proto";\n')
    top = harness.add("top.proto", 'import "middle.proto";\nimport "private.proto";\n')

    assert harness.index.visible_files(top) == [top, middle, private, base]
    assert harness.index.visible_files(private) == [private, base]
    assert harness.index.importers_of(base) == [middle, private]


def test_references_include_declaration_once(harness: IndexHarness) -> None:
    a = harness.add("a.proto", "package p;\nmessage Foo {}\nmessage Self { Foo one = 1; }\n")
    b = harness.add("b.proto", 'package p;\nimport "a.proto";\nmessage Bar { Foo f = 1; repeated Foo g = 2; }\n')

    from_use = harness.index.references(b, offset_of(harness.texts[b], "Foo f"))
    from_declaration = harness.index.references(a, offset_of(harness.texts[a], "Foo {}"))

    assert from_use == from_declaration
    assert [(loc.path, loc.range.start.line) for loc in from_use] == [(a, 1), (a, 2), (b, 2), (b, 2)]
    declaration = from_use[0]
    assert harness.texts[a][declaration.span.start : declaration.span.end] == "Foo"


def test_references_on_import_list_every_importer(harness: IndexHarness) -> None:
    harness.add("common.proto", "message C {}\n")
    one = harness.add("one.proto", 'import "common.proto";\n')
    two = harness.add("two.proto", 'import public "common.proto";\n')

    locations = harness.index.references(one, offset_of(harness.texts[one], "common"))

    assert [loc.path for loc in locations] == [one, two]


def test_diagnostics_report_unknown_types_and_options(harness: IndexHarness) -> None:
    path = harness.add(
        "bad.proto",
        """
        package p;
        message M {
          Missing m = 1;
          string s = 2 [(p.nope) = true];
        }
        """,
    )

    diagnostics = harness.index.diagnostics(path)

    assert [(d.message, d.code) for d in diagnostics] == [
        ('Unknown type "Missing"', DiagnosticCode.UNRESOLVED_REFERENCE),
        ('Unknown option "p.nope"', DiagnosticCode.UNRESOLVED_REFERENCE),
    ]
    assert diagnostics[0].range is not None and diagnostics[0].range.start.line == 2


def test_unresolved_import_is_reported_once_and_suppresses_reference_errors(harness: IndexHarness) -> None:
    path = harness.add("lonely.proto", 'import "gone.proto";\nmessage M { Gone g = 1; }\n')

    diagnostics = harness.index.diagnostics(path)

    assert [(d.message, d.code) for d in diagnostics] == [
        ('Import "gone.proto" was not found in any search path', DiagnosticCode.UNRESOLVED_IMPORT)
    ]
    assert [symbol.fqn for symbol in harness.index.document_symbols(path)] == ["M", "M.g"]


def test_epoch_moves_only_when_exports_change(harness: IndexHarness) -> None:
    path = harness.add("e.proto", "message A {}\n")
    epoch = harness.index.epoch

    assert harness.index.update(extract(path, parse("message A {\n}\n", path).tree)) is False
    assert harness.index.epoch == epoch
    assert harness.index.update(extract(path, parse("message B {}\n", path).tree)) is True
    assert harness.index.epoch == epoch + 1
    assert harness.index.remove(path) is True
    assert harness.index.remove(path) is False


def test_cached_resolution_follows_edits_in_other_files(harness: IndexHarness) -> None:
    harness.add("a.proto", "message Foo {}\n")
    b = harness.add("b.proto", 'import "a.proto";\nmessage Bar { Foo f = 1; }\n')
    assert harness.index.diagnostics(b) == []

    harness.add("a.proto", "message Renamed {}\n")

    assert [d.message for d in harness.index.diagnostics(b)] == ['Unknown type "Foo"']


def test_workspace_symbols_rank_by_kind_then_name(harness: IndexHarness) -> None:
    harness.add("s.proto", "package s;\nservice Api {}\nenum Kind { K = 0; }\nmessage Api2 { int32 api_id = 1; }\n")

    names = [(symbol.kind, symbol.name) for symbol in harness.index.workspace_symbols("api")]

    assert names == [
        (SymbolKind.MESSAGE, "Api2"),
        (SymbolKind.SERVICE, "Api"),
        (SymbolKind.FIELD, "api_id"),
    ]


def test_workspace_symbols_match_names_not_containers(harness: IndexHarness) -> None:
    harness.add("o.proto", "package shop;\nmessage Order { int32 id = 1; }\nenum Status { ORDER_NEW = 0; }\n")

    assert [symbol.fqn for symbol in harness.index.workspace_symbols("Order")] == ["shop.Order"]
    assert harness.index.workspace_symbols("shop") == []


def test_symbol_matches_is_smart_case_subsequence() -> None:
    symbol = Symbol(name="UserProfile", fqn="acme.UserProfile", kind=SymbolKind.MESSAGE, path=Path("/x.proto"))

    assert symbol_matches("", symbol)
    assert symbol_matches("uprof", symbol)
    assert symbol_matches("user prof", symbol)
    assert not symbol_matches("acme", symbol)
    assert symbol_matches("UP", symbol)
    assert not symbol_matches("up", Symbol(name="Zed", fqn="Zed", kind=SymbolKind.MESSAGE, path=Path("/x")))
    assert not symbol_matches("Uprof", symbol)


def test_relative_name_strips_the_longest_enclosing_scope() -> None:
    symbol = Symbol(name="Line", fqn="acme.v1.Order.Line", kind=SymbolKind.MESSAGE, path=Path("/x.proto"))

    assert relative_name(symbol, "acme.v1.Order") == "Line"
    assert relative_name(symbol, "acme.v1.Invoice") == "Order.Line"
    assert relative_name(symbol, "other") == "acme.v1.Order.Line"
