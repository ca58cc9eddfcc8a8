"""In-memory document store with version-gated mutation."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .logging import get_logger
from .models import Diagnostic, Position, TextChange
from .syntax import ParseResult, SyntaxTree, parse
from .text import LineIndex, apply_text_changes

Parser = Callable[[str, Path], ParseResult]


class DocumentNotOpenError(KeyError):
    """Raised when a change or close targets a document that is not open."""

    def __init__(self, path: Path) -> None:
        super().__init__(str(path))
        self.path = path

    def __str__(self) -> str:
        return f"Document is not open: {self.path}"


@dataclass(frozen=True)
class Document:
    """Snapshot of one file: text, version and its parse."""

    path: Path
    text: str
    version: int
    tree: SyntaxTree
    diagnostics: Tuple[Diagnostic, ...] = ()
    is_open: bool = True

    @property
    def line_index(self) -> LineIndex:
        return self.tree.line_index

    def offset_of(self, position: Position | int) -> int:
        if isinstance(position, int):
            return min(max(position, 0), len(self.text))
        return self.line_index.offset(position)


@dataclass
class _PendingChange:
    text: Optional[str]
    changes: Sequence[TextChange] = field(default_factory=tuple)


class DocumentStore:
    """Owns the authoritative text and parse for every known file.

    Open documents belong to the editor; visited documents are imports loaded
    from disk (``is_open`` False) and may be replaced whenever they are re-read.
    """

    def __init__(self, parser: Parser | None = None) -> None:
        self._parser = parser or parse
        self._documents: Dict[Path, Document] = {}
        self._pending: Dict[Path, Dict[int, _PendingChange]] = {}
        self._lock = threading.RLock()
        self.logger = get_logger("documents")

    @staticmethod
    def canonical(path: Path | str) -> Path:
        return Path(path).expanduser().resolve()

    def get(self, path: Path | str) -> Optional[Document]:
        with self._lock:
            return self._documents.get(self.canonical(path))

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, Path)):
            return False
        return self.get(path) is not None

    def documents(self) -> List[Document]:
        with self._lock:
            return sorted(self._documents.values(), key=lambda doc: str(doc.path))

    def open_paths(self) -> List[Path]:
        with self._lock:
            return sorted(path for path, doc in self._documents.items() if doc.is_open)

    def open(self, path: Path | str, text: str, version: Optional[int] = None) -> Document:
        """Open (or re-open) a document with editor-provided text."""
        canonical = self.canonical(path)
        with self._lock:
            existing = self._documents.get(canonical)
            if version is None:
                version = existing.version + 1 if existing is not None else 1
            self._pending.pop(canonical, None)
            document = self._build(canonical, text, version, is_open=True)
            self._documents[canonical] = document
        self.logger.debug("Opened %s at version %d", canonical, version)
        return document

    def visit(self, path: Path | str, text: str) -> Optional[Document]:
        """Store a non-open document loaded from disk; open documents are left alone."""
        canonical = self.canonical(path)
        with self._lock:
            existing = self._documents.get(canonical)
            if existing is not None and existing.is_open:
                return None
            if existing is not None and existing.text == text:
                return existing
            version = existing.version + 1 if existing is not None else 0
            document = self._build(canonical, text, version, is_open=False)
            self._documents[canonical] = document
        self.logger.debug("Visited %s", canonical)
        return document

    def change(
        self,
        path: Path | str,
        text: Optional[str] = None,
        *,
        version: Optional[int] = None,
        changes: Optional[Iterable[TextChange]] = None,
    ) -> Optional[Document]:
        """Apply a full-text or incremental change.

        Returns the updated document, or None when the change was rejected as
        stale or queued behind a missing version.
        """
        canonical = self.canonical(path)
        pending = _PendingChange(text=text, changes=tuple(changes or ()))
        with self._lock:
            current = self._require_open(canonical)
            if version is None:
                version = current.version + 1
            if version <= current.version:
                self.logger.warning(
                    "Rejected change to %s: version %d is not newer than %d",
                    canonical,
                    version,
                    current.version,
                )
                return None
            if version > current.version + 1:
                self._pending.setdefault(canonical, {})[version] = pending
                self.logger.debug(
                    "Queued change to %s at version %d (current %d)",
                    canonical,
                    version,
                    current.version,
                )
                return None

            document = self._apply(current, pending, version)
            queue = self._pending.get(canonical, {})
            while document.version + 1 in queue:
                document = self._apply(document, queue.pop(document.version + 1), document.version + 1)
            if not queue:
                self._pending.pop(canonical, None)
            self._documents[canonical] = document
        return document

    def close(self, path: Path | str) -> Document:
        """Remove an open document and discard its text."""
        canonical = self.canonical(path)
        with self._lock:
            document = self._require_open(canonical)
            del self._documents[canonical]
            self._pending.pop(canonical, None)
        self.logger.debug("Closed %s", canonical)
        return document

    # ------------------------------------------------------------------
    # Internals

    def _require_open(self, path: Path) -> Document:
        document = self._documents.get(path)
        if document is None or not document.is_open:
            raise DocumentNotOpenError(path)
        return document

    def _apply(self, current: Document, pending: _PendingChange, version: int) -> Document:
        text = current.text
        if pending.text is not None:
            text = pending.text
        if pending.changes:
            text = apply_text_changes(text, pending.changes)
        self.logger.debug("Applied change to %s at version %d", current.path, version)
        return self._build(current.path, text, version, is_open=True)

    def _build(self, path: Path, text: str, version: int, *, is_open: bool) -> Document:
        result = self._parser(text, path)
        return Document(
            path=path,
            text=text,
            version=version,
            tree=result.tree,
            diagnostics=result.diagnostics,
            is_open=is_open,
        )


__all__ = ["Document", "DocumentNotOpenError", "DocumentStore", "Parser"]
