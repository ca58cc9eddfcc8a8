"""Workspace-wide symbol table and cross-file reference resolution."""

from __future__ import annotations

import re
import threading
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from ..constants import WELL_KNOWN_TYPES
from ..logging import get_logger
from ..models import (
    Diagnostic,
    DiagnosticCode,
    DiagnosticSource,
    Location,
    Position,
    Range,
    Reference,
    ReferenceKind,
    Severity,
    Span,
    Symbol,
    SymbolKind,
)
from .imports import WELL_KNOWN_ROOT, ImportResolver
from .symbols import FileIndex, ImportEntry, join_name

SymbolKey = Tuple[str, SymbolKind]
# (defining path, symbol key); cached instead of Symbol so spans stay current.
_Target = Tuple[Path, SymbolKey]

_FILE_START = Range(Position(0, 0), Position(0, 0))


class WorkspaceIndex:
    """Derived index over every known file's :class:`FileIndex`.

    Resolution results are cached per reference name and scope. The cache is
    dropped whenever ``epoch`` advances, which happens when any file's symbol
    keys or imports change.
    """

    def __init__(self, resolver: ImportResolver) -> None:
        self.resolver = resolver
        self._files: Dict[Path, FileIndex] = {}
        self._exports: Dict[Path, object] = {}
        self._epoch = 0
        self._cache_epoch = -1
        self._imports_cache: Dict[Path, Tuple[Tuple[ImportEntry, Optional[Path]], ...]] = {}
        self._resolution_cache: Dict[Tuple[Path, str, str, FrozenSet[SymbolKind]], Optional[_Target]] = {}
        self._by_fqn: Dict[str, List[Symbol]] = {}
        self._lock = threading.RLock()
        self.logger = get_logger("index.workspace")

    @property
    def epoch(self) -> int:
        return self._epoch

    def get(self, path: Path) -> Optional[FileIndex]:
        with self._lock:
            return self._files.get(path)

    def paths(self) -> List[Path]:
        with self._lock:
            return sorted(self._files)

    def update(self, file_index: FileIndex) -> bool:
        """Store ``file_index``; returns True when the exported surface changed."""
        with self._lock:
            path = file_index.path
            exports = file_index.exports()
            self._files[path] = file_index
            if self._exports.get(path) == exports:
                return False
            self._exports[path] = exports
            self._advance()
            return True

    def remove(self, path: Path) -> bool:
        with self._lock:
            if self._files.pop(path, None) is None:
                return False
            self._exports.pop(path, None)
            self._advance()
            return True

    # ------------------------------------------------------------------
    # Import graph

    def resolved_imports(self, path: Path) -> Tuple[Tuple[ImportEntry, Optional[Path]], ...]:
        with self._lock:
            self._sync_cache()
            cached = self._imports_cache.get(path)
            if cached is not None:
                return cached
            file_index = self._files.get(path)
            if file_index is None:
                return ()
            resolved = tuple(
                (entry, self.resolver.resolve(entry.path, importer=path)) for entry in file_index.imports
            )
            self._imports_cache[path] = resolved
            return resolved

    def visible_files(self, path: Path) -> List[Path]:
        """``path`` itself, its direct imports, then public re-exports transitively."""
        with self._lock:
            visible: List[Path] = [path]
            pending: List[Path] = []
            for _, target in self.resolved_imports(path):
                if target is not None and target not in visible:
                    visible.append(target)
                    pending.append(target)
            while pending:
                current = pending.pop(0)
                for entry, target in self.resolved_imports(current):
                    if entry.public and target is not None and target not in visible:
                        visible.append(target)
                        pending.append(target)
            return visible

    def importers_of(self, target: Path) -> List[Path]:
        with self._lock:
            return [
                path
                for path in sorted(self._files)
                if any(resolved == target for _, resolved in self.resolved_imports(path))
            ]

    # ------------------------------------------------------------------
    # Resolution

    def resolve(self, path: Path, reference: Reference) -> Optional[Symbol]:
        """Bind ``reference`` (occurring in ``path``) to a symbol, or None."""
        with self._lock:
            self._sync_cache()
            key = (path, reference.name, reference.scope, reference.expected)
            if key in self._resolution_cache:
                target = self._resolution_cache[key]
            else:
                target = self._resolve_uncached(path, reference)
                self._resolution_cache[key] = target
            if target is None:
                return None
            return self._symbol_for(target)

    def definition(self, path: Path, offset: int) -> List[Location]:
        with self._lock:
            file_index = self._files.get(path)
            if file_index is None:
                return []
            entry = file_index.import_at(offset)
            if entry is not None:
                target = self._import_target(path, entry)
                if target is None or target.is_relative_to(WELL_KNOWN_ROOT):
                    return []
                return [Location(path=target, range=_FILE_START, span=Span(0, 0))]
            reference = file_index.reference_at(offset)
            if reference is not None:
                symbol = self.resolve(path, reference)
                location = symbol.location() if symbol is not None else None
                return [location] if location is not None else []
            symbol = file_index.symbol_at(offset)
            if symbol is not None:
                location = symbol.location()
                return [location] if location is not None else []
            return []

    def references(self, path: Path, offset: int) -> List[Location]:
        """Every occurrence of the symbol (or imported file) under ``offset``.

        The declaration's name span is always included, exactly once.
        """
        with self._lock:
            file_index = self._files.get(path)
            if file_index is None:
                return []
            entry = file_index.import_at(offset)
            if entry is not None:
                target_file = self._import_target(path, entry)
                if target_file is None:
                    return []
                return self._import_occurrences(target_file)

            target: Optional[Symbol] = None
            reference = file_index.reference_at(offset)
            if reference is not None:
                target = self.resolve(path, reference)
            else:
                target = file_index.symbol_at(offset)
            if target is None:
                return []

            locations: List[Location] = []
            declaration = target.selection_location()
            if declaration is not None:
                locations.append(declaration)
            for other_path in sorted(self._files):
                for ref in self._files[other_path].references:
                    resolved = self.resolve(other_path, ref)
                    if resolved is None or resolved.key != target.key or resolved.path != target.path:
                        continue
                    location = Location(path=other_path, range=ref.range, span=ref.span)
                    if location not in locations:
                        locations.append(location)
            return locations

    # ------------------------------------------------------------------
    # Symbol queries

    def document_symbols(self, path: Path, query: str = "") -> List[Symbol]:
        with self._lock:
            file_index = self._files.get(path)
            if file_index is None:
                return []
            return _rank(symbol for symbol in file_index.symbols if symbol_matches(query, symbol))

    def workspace_symbols(self, query: str = "", paths: Optional[Iterable[Path]] = None) -> List[Symbol]:
        with self._lock:
            selected = sorted(paths) if paths is not None else sorted(self._files)
            symbols = (
                symbol
                for path in selected
                if path in self._files
                for symbol in self._files[path].symbols
                if symbol_matches(query, symbol)
            )
            return _rank(symbols)

    def visible_symbols(self, path: Path, kinds: FrozenSet[SymbolKind]) -> List[Symbol]:
        """Symbols of ``kinds`` declared in ``path`` or any file visible from it."""
        with self._lock:
            result: List[Symbol] = []
            for visible in self.visible_files(path):
                file_index = self._files.get(visible)
                if file_index is None:
                    continue
                result.extend(symbol for symbol in file_index.symbols if symbol.kind in kinds)
            return result

    def visible_extensions(self, path: Path, extendee: str) -> List[Symbol]:
        """Extension fields visible from ``path`` whose extended message is named ``extendee``."""
        with self._lock:
            result: List[Symbol] = []
            for visible in self.visible_files(path):
                file_index = self._files.get(visible)
                if file_index is None:
                    continue
                result.extend(
                    extension.symbol
                    for extension in file_index.extensions
                    if extension.extendee.rsplit(".", 1)[-1] == extendee.rsplit(".", 1)[-1]
                )
            return result

    # ------------------------------------------------------------------
    # Diagnostics

    def diagnostics(self, path: Path) -> List[Diagnostic]:
        """Unresolved imports, unresolved references and duplicates for ``path``."""
        with self._lock:
            file_index = self._files.get(path)
            if file_index is None:
                return []
            diagnostics: List[Diagnostic] = list(file_index.diagnostics)
            unresolved_imports = 0
            for entry, target in self.resolved_imports(path):
                if target is not None:
                    continue
                unresolved_imports += 1
                diagnostics.append(
                    Diagnostic(
                        path=path,
                        message=f'Import "{entry.path}" was not found in any search path',
                        severity=Severity.ERROR,
                        source=DiagnosticSource.INDEX,
                        code=DiagnosticCode.UNRESOLVED_IMPORT,
                        range=entry.node_range,
                        span=entry.node_span,
                    )
                )
            if unresolved_imports:
                # Types from a missing import would all be reported again here.
                self.logger.debug(
                    "Skipping reference checks for %s: %d unresolved imports", path, unresolved_imports
                )
                return diagnostics
            for reference in file_index.references:
                if self.resolve(path, reference) is not None:
                    continue
                label = "option" if reference.kind is ReferenceKind.OPTION else "type"
                diagnostics.append(
                    Diagnostic(
                        path=path,
                        message=f'Unknown {label} "{reference.name}"',
                        severity=Severity.ERROR,
                        source=DiagnosticSource.INDEX,
                        code=DiagnosticCode.UNRESOLVED_REFERENCE,
                        range=reference.range,
                        span=reference.span,
                    )
                )
            return diagnostics

    # ------------------------------------------------------------------
    # Internals

    def _advance(self) -> None:
        self._epoch += 1
        self.logger.debug("Index epoch advanced to %d", self._epoch)

    def _sync_cache(self) -> None:
        if self._cache_epoch == self._epoch:
            return
        self._imports_cache.clear()
        self._resolution_cache.clear()
        by_fqn: Dict[str, List[Symbol]] = {}
        for path in sorted(self._files):
            for symbol in self._files[path].symbols:
                by_fqn.setdefault(symbol.fqn, []).append(symbol)
        self._by_fqn = by_fqn
        self._cache_epoch = self._epoch

    def _import_target(self, path: Path, entry: ImportEntry) -> Optional[Path]:
        for candidate, target in self.resolved_imports(path):
            if candidate == entry:
                return target
        return None

    def _import_occurrences(self, target: Path) -> List[Location]:
        locations: List[Location] = []
        for path in sorted(self._files):
            for entry, resolved in self.resolved_imports(path):
                if resolved == target:
                    locations.append(Location(path=path, range=entry.range, span=entry.span))
        return locations

    def _symbol_for(self, target: _Target) -> Optional[Symbol]:
        path, key = target
        if path.is_relative_to(WELL_KNOWN_ROOT):
            return _well_known_symbol(key[0])
        file_index = self._files.get(path)
        if file_index is None:
            return None
        return file_index.symbol_by_key(key)

    def _resolve_uncached(self, path: Path, reference: Reference) -> Optional[_Target]:
        name = reference.name
        expected = reference.expected
        visible = self.visible_files(path)

        if name.startswith("."):
            absolute = name[1:]
            for symbol in self._candidates(absolute, expected):
                if symbol.path in visible:
                    return symbol.path, symbol.key
        else:
            # Innermost scope first, as protoc does.
            scopes = _enclosing_scopes(reference.scope)
            for scope in scopes:
                fqn = join_name(scope, name)
                for symbol in self._candidates(fqn, expected):
                    if symbol.path in visible:
                        return symbol.path, symbol.key

        fqn = name.lstrip(".")
        exact = self._candidates(fqn, expected)
        if exact:
            return exact[0].path, exact[0].key

        well_known = self._well_known(name, reference.scope, expected)
        if well_known is not None:
            return well_known

        suffix = "." + fqn
        matches = [
            symbol
            for symbols in self._by_fqn.values()
            for symbol in symbols
            if symbol.kind in expected and symbol.fqn.endswith(suffix)
        ]
        if matches:
            matches.sort(key=lambda symbol: (symbol.path not in visible, str(symbol.path), symbol.fqn))
            return matches[0].path, matches[0].key
        self.logger.debug("Unresolved %s %s in %s", reference.kind.value, name, path)
        return None

    def _candidates(self, fqn: str, expected: FrozenSet[SymbolKind]) -> List[Symbol]:
        return [symbol for symbol in self._by_fqn.get(fqn, ()) if symbol.kind in expected]

    def _well_known(self, name: str, scope: str, expected: FrozenSet[SymbolKind]) -> Optional[_Target]:
        bare = name.lstrip(".")
        candidates = [bare] if name.startswith(".") else [join_name(s, bare) for s in _enclosing_scopes(scope)]
        for fqn in candidates:
            entry = WELL_KNOWN_TYPES.get(fqn)
            if entry is None:
                continue
            kind = SymbolKind(entry[0])
            if kind in expected:
                return WELL_KNOWN_ROOT / entry[1], (fqn, kind)
        return None


def _enclosing_scopes(scope: str) -> List[str]:
    """``a.b.C`` -> ``["a.b.C", "a.b", "a", ""]``."""
    scopes: List[str] = []
    parts = scope.split(".") if scope else []
    while parts:
        scopes.append(".".join(parts))
        parts.pop()
    scopes.append("")
    return scopes


def _well_known_symbol(fqn: str) -> Optional[Symbol]:
    entry = WELL_KNOWN_TYPES.get(fqn)
    if entry is None:
        return None
    kind_value, file = entry
    return Symbol(
        name=fqn.rsplit(".", 1)[-1],
        fqn=fqn,
        kind=SymbolKind(kind_value),
        path=WELL_KNOWN_ROOT / file,
        container=fqn.rsplit(".", 1)[0],
        well_known=True,
    )


def _rank(symbols: Iterable[Symbol]) -> List[Symbol]:
    return sorted(symbols, key=lambda s: (s.kind.sort_order, s.name, s.fqn, str(s.path)))


def symbol_matches(query: str, symbol: Symbol) -> bool:
    """Smart-case fuzzy match of every query word against the symbol's own name."""
    words = query.split()
    if not words:
        return True
    flags = 0 if any(char.isupper() for char in query) else re.IGNORECASE
    return all(_word_pattern(word, flags).search(symbol.name) for word in words)


def _word_pattern(word: str, flags: int) -> "re.Pattern[str]":
    return re.compile(".*?".join(re.escape(char) for char in word), flags)


def relative_name(symbol: Symbol, scope: str) -> str:
    """Shortest name for ``symbol`` that scope walking from ``scope`` resolves."""
    for prefix in _enclosing_scopes(scope):
        if prefix and symbol.fqn.startswith(prefix + "."):
            return symbol.fqn[len(prefix) + 1 :]
    return symbol.fqn


__all__ = [
    "SymbolKey",
    "WorkspaceIndex",
    "relative_name",
    "symbol_matches",
]
