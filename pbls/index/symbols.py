"""Per-file extraction of declared symbols, references and imports."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Tuple

from ..constants import SCALAR_TYPES
from ..models import (
    TYPE_KINDS,
    Diagnostic,
    DiagnosticCode,
    DiagnosticSource,
    Range,
    Reference,
    ReferenceKind,
    Severity,
    Span,
    Symbol,
    SymbolKind,
)
from ..syntax import (
    EnumNode,
    EnumValueNode,
    ExtendNode,
    FieldNode,
    ImportNode,
    MessageNode,
    MethodNode,
    Node,
    OneofNode,
    OptionNode,
    ServiceNode,
    SyntaxTree,
)

_MESSAGE_ONLY: FrozenSet[SymbolKind] = frozenset({SymbolKind.MESSAGE})
_EXTENSION_FIELDS: FrozenSet[SymbolKind] = frozenset({SymbolKind.FIELD})


@dataclass(frozen=True)
class ImportEntry:
    """One ``import`` statement; ``span`` covers the string literal."""

    path: str
    span: Span
    range: Range
    node_span: Span
    node_range: Range
    modifier: Optional[str] = None

    @property
    def public(self) -> bool:
        return self.modifier == "public"


@dataclass(frozen=True)
class Extension:
    """An extension field together with the message it extends."""

    symbol: Symbol
    extendee: str


@dataclass(frozen=True)
class FileIndex:
    path: Path
    package: Optional[str]
    symbols: Tuple[Symbol, ...] = ()
    references: Tuple[Reference, ...] = ()
    imports: Tuple[ImportEntry, ...] = ()
    extensions: Tuple[Extension, ...] = ()
    diagnostics: Tuple[Diagnostic, ...] = ()

    def exports(self) -> Tuple[FrozenSet[Tuple[str, SymbolKind]], Tuple[Tuple[str, Optional[str]], ...]]:
        """Signature of what other files can observe: symbol keys and imports."""
        keys = frozenset(symbol.key for symbol in self.symbols)
        imports = tuple((entry.path, entry.modifier) for entry in self.imports)
        return keys, imports

    def symbol_at(self, offset: int) -> Optional[Symbol]:
        for symbol in self.symbols:
            if symbol.selection_span is not None and symbol.selection_span.contains(offset):
                return symbol
        return None

    def reference_at(self, offset: int) -> Optional[Reference]:
        matches = [ref for ref in self.references if ref.span.contains(offset)]
        if not matches:
            return None
        return min(matches, key=lambda ref: ref.span.length)

    def import_at(self, offset: int) -> Optional[ImportEntry]:
        for entry in self.imports:
            if entry.span.contains(offset):
                return entry
        return None

    def symbol_by_key(self, key: Tuple[str, SymbolKind]) -> Optional[Symbol]:
        for symbol in self.symbols:
            if symbol.key == key:
                return symbol
        return None


def extract(path: Path, tree: SyntaxTree) -> FileIndex:
    """Build the :class:`FileIndex` for ``tree`` in a single walk."""
    extractor = _Extractor(path, tree)
    return extractor.run()


def join_name(scope: str, name: str) -> str:
    return f"{scope}.{name}" if scope else name


class _Extractor:
    def __init__(self, path: Path, tree: SyntaxTree) -> None:
        self._path = path
        self._tree = tree
        self._lines = tree.line_index
        self._symbols: List[Symbol] = []
        self._seen: Dict[Tuple[str, SymbolKind], Symbol] = {}
        self._references: List[Reference] = []
        self._imports: List[ImportEntry] = []
        self._extensions: List[Extension] = []
        self._diagnostics: List[Diagnostic] = []

    def run(self) -> FileIndex:
        package = self._tree.package()
        scope = package or ""
        for node in self._tree.children:
            if isinstance(node, ImportNode):
                self._import(node)
            else:
                self._visit(node, scope)
        return FileIndex(
            path=self._path,
            package=package,
            symbols=tuple(self._symbols),
            references=tuple(self._references),
            imports=tuple(self._imports),
            extensions=tuple(self._extensions),
            diagnostics=tuple(self._diagnostics),
        )

    def _visit(self, node: Node, scope: str, *, extendee: Optional[str] = None) -> None:
        if isinstance(node, (MessageNode, EnumNode, ServiceNode)):
            kind = {
                MessageNode: SymbolKind.MESSAGE,
                EnumNode: SymbolKind.ENUM,
                ServiceNode: SymbolKind.SERVICE,
            }[type(node)]
            inner = self._declare(node, kind, scope)
            for child in node.children:
                self._visit(child, inner if inner is not None else scope)
        elif isinstance(node, OneofNode):
            # Oneof members live in the enclosing message's scope.
            self._declare(node, SymbolKind.ONEOF, scope)
            for child in node.children:
                self._visit(child, scope)
        elif isinstance(node, EnumValueNode):
            self._declare(node, SymbolKind.ENUM_VALUE, scope)
        elif isinstance(node, FieldNode):
            self._field(node, scope, extendee)
        elif isinstance(node, MethodNode):
            self._method(node, scope)
        elif isinstance(node, ExtendNode):
            if node.type_name and node.type_span is not None:
                self._reference(node.type_name, node.type_span, scope, ReferenceKind.TYPE, _MESSAGE_ONLY)
            for child in node.children:
                self._visit(child, scope, extendee=node.type_name or "")
        elif isinstance(node, OptionNode):
            self._option(node, scope)

    def _declare(self, node: Node, kind: SymbolKind, scope: str) -> Optional[str]:
        name = getattr(node, "name", None)
        name_span: Optional[Span] = getattr(node, "name_span", None)
        if not name or name_span is None:
            return None
        fqn = join_name(scope, name)
        symbol = Symbol(
            name=name,
            fqn=fqn,
            kind=kind,
            path=self._path,
            span=node.span,
            range=node.range,
            selection_span=name_span,
            selection_range=self._lines.range(name_span),
            container=scope or None,
        )
        existing = self._seen.get(symbol.key)
        if existing is not None:
            self._diagnostics.append(
                Diagnostic(
                    path=self._path,
                    message=f'"{fqn}" is already defined',
                    severity=Severity.ERROR,
                    source=DiagnosticSource.INDEX,
                    code=DiagnosticCode.DUPLICATE_SYMBOL,
                    range=symbol.selection_range,
                    span=name_span,
                )
            )
            return fqn
        self._seen[symbol.key] = symbol
        self._symbols.append(symbol)
        return fqn

    def _field(self, node: FieldNode, scope: str, extendee: Optional[str]) -> None:
        if node.type_name and node.type_span is not None and node.type_name not in SCALAR_TYPES:
            self._reference(node.type_name, node.type_span, scope, ReferenceKind.TYPE, TYPE_KINDS)
        fqn = self._declare(node, SymbolKind.FIELD, scope)
        if extendee is not None and fqn is not None:
            symbol = self._seen[(fqn, SymbolKind.FIELD)]
            if symbol.span == node.span:
                self._extensions.append(Extension(symbol=symbol, extendee=extendee.lstrip(".")))
        for child in node.children:
            self._visit(child, scope)

    def _method(self, node: MethodNode, scope: str) -> None:
        inner = self._declare(node, SymbolKind.METHOD, scope)
        for type_name, span in ((node.input_type, node.input_span), (node.output_type, node.output_span)):
            if type_name and span is not None:
                self._reference(type_name, span, scope, ReferenceKind.TYPE, _MESSAGE_ONLY)
        for child in node.children:
            self._visit(child, inner or scope)

    def _option(self, node: OptionNode, scope: str) -> None:
        if node.extension and node.extension_span is not None:
            self._reference(node.extension, node.extension_span, scope, ReferenceKind.OPTION, _EXTENSION_FIELDS)

    def _import(self, node: ImportNode) -> None:
        if not node.path or node.path_span is None:
            return
        self._imports.append(
            ImportEntry(
                path=node.path,
                span=node.path_span,
                range=self._lines.range(node.path_span),
                node_span=node.span,
                node_range=node.range,
                modifier=node.modifier,
            )
        )

    def _reference(
        self,
        name: str,
        span: Span,
        scope: str,
        kind: ReferenceKind,
        expected: FrozenSet[SymbolKind],
    ) -> None:
        self._references.append(
            Reference(
                name=name,
                kind=kind,
                span=span,
                range=self._lines.range(span),
                scope=scope,
                expected=expected,
            )
        )


__all__ = ["Extension", "FileIndex", "ImportEntry", "extract", "join_name"]
