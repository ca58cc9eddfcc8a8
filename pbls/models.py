"""Core data models shared across pbls components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import FrozenSet, Optional, Tuple


@dataclass(frozen=True, order=True)
class Position:
    """Zero-based line and character within a document."""

    line: int
    character: int


@dataclass(frozen=True)
class Range:
    """Half-open line/column range."""

    start: Position
    end: Position

    def contains(self, position: Position) -> bool:
        return self.start <= position <= self.end


@dataclass(frozen=True, order=True)
class Span:
    """Offsets into a document's text; ``end`` is exclusive."""

    start: int
    end: int

    def contains(self, offset: int) -> bool:
        """Return True when ``offset`` touches the span (cursor at either edge counts)."""
        return self.start <= offset <= self.end

    def encloses(self, other: "Span") -> bool:
        return self.start <= other.start and other.end <= self.end

    def overlaps(self, other: "Span") -> bool:
        return self.start < other.end and other.start < self.end

    @property
    def length(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class Location:
    """A span inside a specific file."""

    path: Path
    range: Range
    span: Span


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class DiagnosticSource(str, Enum):
    SYNTAX = "syntax"
    INDEX = "index"
    COMPILER = "external-compiler"


class DiagnosticCode(str, Enum):
    SYNTAX_ERROR = "syntax-error"
    UNRESOLVED_IMPORT = "unresolved-import"
    UNRESOLVED_REFERENCE = "unresolved-reference"
    DUPLICATE_SYMBOL = "duplicate-symbol"
    COMPILER_ERROR = "compiler-error"
    EXTERNAL_TOOL_FAILURE = "external-tool-failure"


@dataclass(frozen=True)
class Diagnostic:
    """A problem attached to a file; ``range`` is None for whole-file diagnostics."""

    path: Path
    message: str
    severity: Severity
    source: DiagnosticSource
    code: DiagnosticCode
    range: Optional[Range] = None
    span: Optional[Span] = None

    def dedupe_key(self) -> Tuple[object, ...]:
        start = self.range.start if self.range is not None else None
        return (start, self.severity, " ".join(self.message.split()))


class SymbolKind(str, Enum):
    MESSAGE = "message"
    ENUM = "enum"
    SERVICE = "service"
    METHOD = "method"
    FIELD = "field"
    ONEOF = "oneof"
    ENUM_VALUE = "enum-value"

    @property
    def sort_order(self) -> int:
        return _SYMBOL_KIND_ORDER.index(self)


_SYMBOL_KIND_ORDER = list(SymbolKind)

TYPE_KINDS: FrozenSet[SymbolKind] = frozenset({SymbolKind.MESSAGE, SymbolKind.ENUM})


@dataclass(frozen=True)
class Symbol:
    """A declaration with its fully qualified name.

    ``span`` covers the whole declaration and ``selection_span`` only its name.
    Well-known symbols are synthetic and carry no spans.
    """

    name: str
    fqn: str
    kind: SymbolKind
    path: Path
    span: Optional[Span] = None
    range: Optional[Range] = None
    selection_span: Optional[Span] = None
    selection_range: Optional[Range] = None
    container: Optional[str] = None
    well_known: bool = False

    @property
    def key(self) -> Tuple[str, SymbolKind]:
        return (self.fqn, self.kind)

    def location(self) -> Optional[Location]:
        if self.span is None or self.range is None:
            return None
        return Location(path=self.path, range=self.range, span=self.span)

    def selection_location(self) -> Optional[Location]:
        if self.selection_span is None or self.selection_range is None:
            return self.location()
        return Location(path=self.path, range=self.selection_range, span=self.selection_span)


class ReferenceKind(str, Enum):
    TYPE = "type"
    OPTION = "option"
    IMPORT = "import"


@dataclass(frozen=True)
class Reference:
    """A name occurrence that should bind to a declared symbol (or file, for imports)."""

    name: str
    kind: ReferenceKind
    span: Span
    range: Range
    scope: str = ""
    expected: FrozenSet[SymbolKind] = field(default_factory=lambda: TYPE_KINDS)


class CompletionKind(str, Enum):
    KEYWORD = "keyword"
    MESSAGE = "message"
    ENUM = "enum"
    SCALAR = "scalar"
    FILE = "file"
    OPTION = "option"
    SNIPPET = "snippet"


@dataclass(frozen=True)
class CompletionItem:
    """A single completion candidate."""

    label: str
    kind: CompletionKind
    detail: Optional[str] = None
    insert_text: Optional[str] = None


@dataclass(frozen=True)
class TextChange:
    """An editor change; ``range`` None replaces the whole document."""

    text: str
    range: Optional[Range] = None


__all__ = [
    "CompletionItem",
    "CompletionKind",
    "Diagnostic",
    "DiagnosticCode",
    "DiagnosticSource",
    "Location",
    "Position",
    "Range",
    "Reference",
    "ReferenceKind",
    "Severity",
    "Span",
    "Symbol",
    "SymbolKind",
    "TYPE_KINDS",
    "TextChange",
]
